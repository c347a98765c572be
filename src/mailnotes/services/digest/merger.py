from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date

from mailnotes.config import settings
from mailnotes.services.digest.document import (
    DigestDocument,
    DigestEntry,
    parse_digest,
    render_digest,
)
from mailnotes.services.topics import TopicTable

logger = logging.getLogger(__name__)


@dataclass
class MergeResult:
    should_write: bool
    document: bytes
    entry_count: int


def digest_key(day: date, folder: str | None = None) -> str:
    folder = settings.digest_folder if folder is None else folder
    return f"{folder}/{day.isoformat()} - Newsletter Digest.md"


class DigestMerger:
    """Read-modify-write of one day's digest.

    ``merge`` is pure: it takes the bytes currently stored (or ``None``) and
    returns what should be stored next. Parse failures propagate as
    :class:`DigestParseError` so an unreadable digest is never replaced by a
    document holding only the new entry.
    """

    def __init__(self, table: TopicTable | None = None, default_topic: str | None = None):
        self.table = table or TopicTable()
        self.default_topic = default_topic or settings.default_topic

    def merge(self, existing: bytes | None, entry: DigestEntry, day: date) -> MergeResult:
        if existing is None:
            document = DigestDocument(day=day, entries=[entry])
            return MergeResult(True, self.render(document), 1)

        document = parse_digest(existing, default_topic=self.default_topic, day=day)
        if not document.add(entry):
            logger.info(
                "Message %s already in digest for %s", entry.source_message_id, document.day
            )
            return MergeResult(False, existing, len(document.entries))

        return MergeResult(True, self.render(document), len(document.entries))

    def render(self, document: DigestDocument) -> bytes:
        return render_digest(document, self.table).encode("utf-8")
