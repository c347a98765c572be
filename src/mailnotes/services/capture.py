from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from datetime import timezone

from mailnotes.config import Settings, settings as default_settings
from mailnotes.ingestion.email import (
    Message,
    extract_newsletter_name,
    extract_route,
    is_newsletter,
)
from mailnotes.models import EmailRoute
from mailnotes.services.converter import ContentConverter
from mailnotes.services.digest.document import DigestEntry, render_entry_block
from mailnotes.services.digest.merger import DigestMerger, digest_key
from mailnotes.services.document_store import DocumentStore, with_timeout
from mailnotes.services.excerpt import ExcerptExtractor
from mailnotes.services.notes import (
    newsletter_base_filename,
    note_filename,
    render_agent_note,
    render_inbox_note,
    render_newsletter_note,
    render_task_note,
)
from mailnotes.services.sanitizer import HtmlSanitizer
from mailnotes.services.topics import TopicClassifier, TopicTable

logger = logging.getLogger(__name__)

HTML = "text/html; charset=utf-8"


@dataclass
class CleanedContent:
    sanitized_html: str
    converted_text: str
    excerpt: str


@dataclass
class CaptureResult:
    route: EmailRoute
    key: str
    written: bool
    duplicate: bool = False
    topic: str | None = None


class CaptureService:
    def __init__(
        self,
        store: DocumentStore,
        sanitizer: HtmlSanitizer | None = None,
        converter: ContentConverter | None = None,
        extractor: ExcerptExtractor | None = None,
        classifier: TopicClassifier | None = None,
        merger: DigestMerger | None = None,
        config: Settings | None = None,
    ):
        self.config = config or default_settings
        table = TopicTable(self.config.topics)
        self.store = store
        self.sanitizer = sanitizer or HtmlSanitizer(
            self.config.tracker_patterns,
            self.config.compliance_markers,
            self.config.spam_report_patterns,
        )
        self.converter = converter or ContentConverter()
        self.extractor = extractor or ExcerptExtractor(self.config.excerpt_max_length)
        self.classifier = classifier or TopicClassifier(
            table,
            self.config.sender_topics,
            self.config.topic_keywords,
            self.config.default_topic,
        )
        self.merger = merger or DigestMerger(table, self.config.default_topic)
        self.timeout = self.config.storage_timeout

    def resolve_route(self, message: Message, recipient: str) -> EmailRoute:
        route = extract_route(recipient)
        if route == EmailRoute.inbox and is_newsletter(message):
            return EmailRoute.newsletter
        return route

    def clean(self, message: Message) -> CleanedContent:
        sanitized = self.sanitizer.sanitize(message.html_body) if message.html_body else ""
        converted = self.converter.render_body(sanitized or None, message.text_body)
        return CleanedContent(
            sanitized_html=sanitized,
            converted_text=converted,
            excerpt=self.extractor.extract(converted),
        )

    async def capture(self, message: Message, recipient: str) -> CaptureResult:
        route = self.resolve_route(message, recipient)
        if route == EmailRoute.newsletter:
            return await self._capture_newsletter(message)
        return await self._capture_note(message, route)

    async def _capture_note(self, message: Message, route: EmailRoute) -> CaptureResult:
        body = self.converter.render_body(message.html_body, message.text_body)
        if route == EmailRoute.task:
            key = note_filename(self.config.task_folder, message)
            note = render_task_note(message, body)
        elif route == EmailRoute.agent:
            key = note_filename(self.config.agent_folder, message, strip_forward=True)
            note = render_agent_note(message, body)
        else:
            key = note_filename(self.config.inbox_folder, message)
            note = render_inbox_note(message, body)

        if await with_timeout(self.store.exists(key), self.timeout, key):
            logger.info("Note already exists: %s", key)
            return CaptureResult(route=route, key=key, written=False, duplicate=True)

        await with_timeout(
            self.store.put(key, note.encode("utf-8"), metadata=self._metadata(message)),
            self.timeout,
            key,
        )
        logger.info("Created note: %s", key)
        return CaptureResult(route=route, key=key, written=True)

    async def _capture_newsletter(self, message: Message) -> CaptureResult:
        name = extract_newsletter_name(message)
        content = self.clean(message)
        topic = self.classifier.classify(name, message.subject)

        base = newsletter_base_filename(self.config.newsletter_folder, message, name)
        html_key = f"{base}.html" if content.sanitized_html else None
        note_key = f"{base}.md"
        link = posixpath.relpath(html_key, self.config.digest_folder) if html_key else None

        entry = DigestEntry(
            source_message_id=message.id,
            topic=topic.name,
            rendered_block=render_entry_block(name, message.subject, content.excerpt, link),
        )

        day = message.received_at.astimezone(timezone.utc).date()
        key = digest_key(day, self.config.digest_folder)
        existing = await with_timeout(self.store.get(key), self.timeout, key)
        # Raises before anything is written if the stored digest is unreadable
        result = self.merger.merge(existing, entry, day)
        if not result.should_write:
            logger.info("Newsletter %s already in digest %s", message.id, key)
            return CaptureResult(
                route=EmailRoute.newsletter, key=key, written=False, duplicate=True, topic=topic.name
            )

        metadata = self._metadata(message)
        if html_key:
            await with_timeout(
                self.store.put(html_key, content.sanitized_html.encode("utf-8"), HTML, metadata),
                self.timeout,
                html_key,
            )
        if not await with_timeout(self.store.exists(note_key), self.timeout, note_key):
            note = render_newsletter_note(
                message,
                name,
                content.converted_text,
                topic.name,
                posixpath.basename(html_key) if html_key else None,
            )
            await with_timeout(
                self.store.put(note_key, note.encode("utf-8"), metadata=metadata),
                self.timeout,
                note_key,
            )

        await with_timeout(self.store.put(key, result.document), self.timeout, key)
        logger.info(
            "Added %s (%s) to digest %s, now %d entries", name, topic.name, key, result.entry_count
        )
        return CaptureResult(route=EmailRoute.newsletter, key=key, written=True, topic=topic.name)

    def _metadata(self, message: Message) -> dict:
        return {
            "email-id": message.id,
            "email-from": message.sender.address,
        }
