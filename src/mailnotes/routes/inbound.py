import logging

from fastapi import APIRouter, Form, HTTPException
from fastapi.responses import JSONResponse

from mailnotes.database import async_session
from mailnotes.ingestion.email import EmailDecoder
from mailnotes.services.capture import CaptureService
from mailnotes.services.digest.document import DigestParseError
from mailnotes.services.document_store import SqlDocumentStore, StorageTimeout
from mailnotes.tasks.capture import enqueue_capture

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/webhooks/inbound")
async def inbound_email(
    recipient: str = Form(...),
    body_mime: str = Form(..., alias="body-mime"),
):
    raw = body_mime.encode("utf-8")
    message = EmailDecoder().decode(raw)
    logger.info("Processing email %s from %s", message.id, message.sender.address)

    async with async_session() as db:
        service = CaptureService(SqlDocumentStore(db))
        try:
            result = await service.capture(message, recipient)
        except StorageTimeout:
            logger.warning("Storage timed out for %s, queueing retry", message.id)
            await db.rollback()
            enqueue_capture(raw, recipient)
            return JSONResponse(status_code=202, content={"status": "queued"})
        except DigestParseError as exc:
            logger.exception("Digest for %s is unreadable, not overwriting", message.id)
            await db.rollback()
            raise HTTPException(status_code=500, detail=f"Digest unreadable: {exc}")
        await db.commit()

    return {
        "status": "accepted",
        "route": result.route.value,
        "key": result.key,
        "written": result.written,
        "duplicate": result.duplicate,
    }
