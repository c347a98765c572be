from fastapi import FastAPI

from mailnotes.routes.admin import router as admin_router
from mailnotes.routes.digests import router as digests_router
from mailnotes.routes.inbound import router as inbound_router


def create_app() -> FastAPI:
    app = FastAPI(title="Mailnotes API", version="0.1.0")

    app.include_router(inbound_router)
    app.include_router(digests_router)
    app.include_router(admin_router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    return app


app = create_app()
