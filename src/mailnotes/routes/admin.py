from __future__ import annotations

from fastapi import APIRouter, Depends, Form, HTTPException, Header, status
from sqlalchemy import func, select

from mailnotes.config import settings
from mailnotes.database import async_session
from mailnotes.models import Document

router = APIRouter(prefix="/admin", tags=["admin"])


async def require_admin_key(x_admin_key: str = Header(...)) -> str:
    if not settings.admin_api_key or x_admin_key != settings.admin_api_key:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid admin key")
    return x_admin_key


@router.get("/stats")
async def get_stats(_: str = Depends(require_admin_key)):
    async with async_session() as db:
        document_count = await db.scalar(select(func.count()).select_from(Document))
        digest_count = await db.scalar(
            select(func.count())
            .select_from(Document)
            .where(Document.key.like(f"{settings.digest_folder}/%"))
        )
        return {"documents": document_count, "digests": digest_count}


@router.post("/tasks/capture")
async def trigger_capture(
    recipient: str = Form(...),
    body_mime: str = Form(..., alias="body-mime"),
    _: str = Depends(require_admin_key),
):
    from mailnotes.tasks.capture import enqueue_capture

    enqueue_capture(body_mime.encode("utf-8"), recipient)
    return {"status": "enqueued", "task": "capture_raw_message", "recipient": recipient}
