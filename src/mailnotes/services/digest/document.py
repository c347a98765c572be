"""Per-day newsletter digest document.

A digest has two views of the same entry list that are always regenerated
together from :class:`DigestDocument`:

* the YAML frontmatter, listing ``message_ids`` and ``topics`` in merge order
  (the authoritative record used for dedup and to restore insertion order), and
* the markdown body, where entries are grouped under topic headings in topic
  priority order.

Every entry block in the body is introduced by a hidden marker line, e.g.
``<!-- digest:entry <message id> -->``, and every topic group by
``<!-- digest:section <topic> -->``. Any line starting with
:data:`MARKER_PREFIX` is a section boundary, so an entry block must not
contain one.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import date

import yaml

from mailnotes.services.topics import TopicTable

logger = logging.getLogger(__name__)

DOCUMENT_TYPE = "newsletter-digest"
MARKER_PREFIX = "<!-- digest:"

_FRONTMATTER = re.compile(r"\A---\n(.*?)\n---[ \t]*(?:\n|\Z)", re.DOTALL)
_MARKER = re.compile(r"^<!-- digest:(section|entry) (.+?) -->[ \t]*$")


class DigestParseError(Exception):
    """An existing digest could not be read back without losing entries."""


@dataclass(frozen=True)
class DigestEntry:
    source_message_id: str
    topic: str
    rendered_block: str


@dataclass
class DigestDocument:
    day: date
    entries: list[DigestEntry] = field(default_factory=list)

    @property
    def message_ids(self) -> list[str]:
        return [e.source_message_id for e in self.entries]

    @property
    def topics(self) -> list[str]:
        return [e.topic for e in self.entries]

    def __contains__(self, message_id: str) -> bool:
        return any(e.source_message_id == message_id for e in self.entries)

    def add(self, entry: DigestEntry) -> bool:
        if entry.source_message_id in self:
            return False
        self.entries.append(entry)
        return True


def render_entry_block(
    newsletter_name: str, subject: str, excerpt: str, link: str | None = None
) -> str:
    lines = [f"### {newsletter_name} — {subject}"]
    if link:
        lines.append(f"[Read full newsletter](<{link}>)")
    lines.append("")
    if excerpt:
        lines.extend(f"> {line}".rstrip() for line in excerpt.splitlines())
    else:
        lines.append("> *No preview available*")
    return "\n".join(lines)


def _long_date(day: date) -> str:
    return f"{day:%B} {day.day}, {day.year}"


def group_by_topic(entries: list[DigestEntry], table: TopicTable) -> list[tuple[str, list[DigestEntry]]]:
    buckets: dict[str, list[DigestEntry]] = {}
    for entry in entries:
        buckets.setdefault(entry.topic, []).append(entry)
    # sorted() is stable, so unregistered topics keep first-seen order
    ordered = sorted(buckets, key=table.priority)
    return [(topic, buckets[topic]) for topic in ordered]


def render_digest(document: DigestDocument, table: TopicTable) -> str:
    header = {
        "type": DOCUMENT_TYPE,
        "date": document.day.isoformat(),
        "newsletter_count": len(document.entries),
        "message_ids": document.message_ids,
        "topics": document.topics,
    }
    lines = [
        "---",
        yaml.safe_dump(header, sort_keys=False, allow_unicode=True).rstrip("\n"),
        "---",
        "",
        f"# 📬 Newsletter Digest — {_long_date(document.day)}",
        "",
    ]
    for topic_name, entries in group_by_topic(document.entries, table):
        lines.append(f"{MARKER_PREFIX}section {topic_name} -->")
        lines.append(f"## {table.get(topic_name).heading}")
        lines.append("")
        for entry in entries:
            lines.append(f"{MARKER_PREFIX}entry {entry.source_message_id} -->")
            lines.append(entry.rendered_block.strip())
            lines.append("")
    return "\n".join(lines)


def _read_header(text: str) -> tuple[dict, str]:
    match = _FRONTMATTER.match(text)
    if not match:
        return {}, text
    body = text[match.end():]
    try:
        header = yaml.safe_load(match.group(1))
    except yaml.YAMLError:
        logger.warning("Digest frontmatter is not valid YAML, reading from body")
        return {}, body
    return (header if isinstance(header, dict) else {}), body


def _read_body(body: str) -> list[tuple[str, str | None, str]]:
    blocks: list[tuple[str, str | None, str]] = []
    topic: str | None = None
    current_id: str | None = None
    current: list[str] = []

    def flush() -> None:
        if current_id is not None:
            blocks.append((current_id, topic, "\n".join(current).strip()))

    for line in body.split("\n"):
        marker = _MARKER.match(line)
        if marker is None:
            if current_id is not None:
                current.append(line)
            continue

        flush()
        kind, value = marker.groups()
        current = []
        if kind == "section":
            topic = value.strip()
            current_id = None
        else:
            current_id = value.strip()
    flush()
    return blocks


def _string_list(value) -> list[str] | None:
    if not isinstance(value, list):
        return None
    if not all(isinstance(v, (str, int)) and not isinstance(v, bool) for v in value):
        return None
    return [str(v) for v in value]


def _header_day(value, fallback: date | None) -> date | None:
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError:
            pass
    return fallback


def parse_digest(
    raw: bytes | str, default_topic: str = "General", day: date | None = None
) -> DigestDocument:
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise DigestParseError("digest is not valid UTF-8") from exc
    text = raw.replace("\r\n", "\n")

    header, body = _read_header(text)
    blocks = _read_body(body)
    if not blocks:
        raise DigestParseError("digest contains no entries")

    by_id: dict[str, tuple[str | None, str]] = {}
    for message_id, topic, block in blocks:
        if message_id in by_id:
            raise DigestParseError(f"duplicate entry for message {message_id}")
        by_id[message_id] = (topic, block)

    ids = _string_list(header.get("message_ids"))
    if ids is None:
        logger.warning("Digest header has no message_ids, using body order")
        ids = [message_id for message_id, _, _ in blocks]
    if len(set(ids)) != len(ids) or set(ids) != set(by_id):
        raise DigestParseError(
            f"digest header lists {len(ids)} messages but body holds {len(by_id)} entries"
        )

    topics = _string_list(header.get("topics"))
    if topics is None or len(topics) != len(ids):
        if header.get("topics") is not None:
            logger.warning("Digest header topics are malformed, inferring from sections")
        topics = [by_id[message_id][0] or default_topic for message_id in ids]

    document_day = _header_day(header.get("date"), day)
    if document_day is None:
        raise DigestParseError("digest has no date")

    entries = [
        DigestEntry(source_message_id=message_id, topic=topic, rendered_block=by_id[message_id][1])
        for message_id, topic in zip(ids, topics)
    ]
    return DigestDocument(day=document_day, entries=entries)
