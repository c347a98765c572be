from __future__ import annotations

from datetime import date

from fastapi import APIRouter, HTTPException
from fastapi.responses import PlainTextResponse
from pydantic import BaseModel

from mailnotes.config import settings
from mailnotes.database import async_session
from mailnotes.services.digest.document import DigestParseError, parse_digest
from mailnotes.services.digest.merger import digest_key
from mailnotes.services.document_store import SqlDocumentStore

router = APIRouter(prefix="/digests", tags=["digests"])


class DigestEntryResponse(BaseModel):
    message_id: str
    topic: str
    block: str


class DigestResponse(BaseModel):
    day: date
    key: str
    newsletter_count: int
    entries: list[DigestEntryResponse]


async def _load(day: date) -> tuple[str, bytes]:
    key = digest_key(day)
    async with async_session() as db:
        body = await SqlDocumentStore(db).get(key)
    if body is None:
        raise HTTPException(status_code=404, detail="Digest not found")
    return key, body


@router.get("/{day}", response_class=PlainTextResponse)
async def get_digest(day: date):
    _, body = await _load(day)
    return PlainTextResponse(body.decode("utf-8"), media_type="text/markdown; charset=utf-8")


@router.get("/{day}/entries", response_model=DigestResponse)
async def get_digest_entries(day: date):
    key, body = await _load(day)
    try:
        document = parse_digest(body, default_topic=settings.default_topic, day=day)
    except DigestParseError as exc:
        raise HTTPException(status_code=422, detail=str(exc))

    return DigestResponse(
        day=document.day,
        key=key,
        newsletter_count=len(document.entries),
        entries=[
            DigestEntryResponse(message_id=e.source_message_id, topic=e.topic, block=e.rendered_block)
            for e in document.entries
        ],
    )
