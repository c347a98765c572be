import asyncio
import base64
import logging

from mailnotes.database import async_session
from mailnotes.ingestion.email import EmailDecoder
from mailnotes.services.capture import CaptureResult, CaptureService
from mailnotes.services.document_store import SqlDocumentStore, StorageTimeout
from mailnotes.worker import celery_app

logger = logging.getLogger(__name__)


async def _capture(raw: bytes, recipient: str) -> CaptureResult:
    message = EmailDecoder().decode(raw)
    async with async_session() as db:
        service = CaptureService(SqlDocumentStore(db))
        result = await service.capture(message, recipient)
        await db.commit()
    return result


@celery_app.task(
    name="mailnotes.tasks.capture.capture_raw_message",
    autoretry_for=(StorageTimeout,),
    retry_backoff=True,
    retry_backoff_max=600,
    max_retries=8,
)
def capture_raw_message(raw_b64: str, recipient: str) -> dict:
    result = asyncio.run(_capture(base64.b64decode(raw_b64), recipient))
    logger.info(
        "Captured message for %s into %s (written=%s)", recipient, result.key, result.written
    )
    return {"route": result.route.value, "key": result.key, "written": result.written}


def enqueue_capture(raw: bytes, recipient: str) -> None:
    capture_raw_message.delay(base64.b64encode(raw).decode("ascii"), recipient)
