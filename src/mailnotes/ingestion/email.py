from __future__ import annotations

import random
import re
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from email import policy
from email.message import EmailMessage
from email.parser import BytesParser
from email.utils import getaddresses, parsedate_to_datetime

from mailnotes.models import EmailRoute, EmailSource

UNKNOWN_SENDER = ("Unknown", "unknown@unknown.com")

_ROUTES = {
    "email-to-obsidian": EmailRoute.task,
    "newsletters": EmailRoute.newsletter,
    "newsletter": EmailRoute.newsletter,
    "claude": EmailRoute.agent,
}


@dataclass(frozen=True)
class Sender:
    display_name: str
    address: str


@dataclass(frozen=True)
class Message:
    id: str
    sender: Sender
    subject: str
    received_at: datetime
    html_body: str | None = None
    text_body: str | None = None
    headers: list[tuple[str, str]] = field(default_factory=list)

    def header_values(self, name: str) -> list[str]:
        name = name.lower()
        return [value for key, value in self.headers if key.lower() == name]


def sanitize_message_id(message_id: str) -> str:
    return re.sub(r"[^a-zA-Z0-9@._-]", "_", re.sub(r"[<>]", "", message_id))


def generate_message_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"{int(time.time() * 1000)}-{suffix}"


def detect_email_source(headers: list[tuple[str, str]]) -> EmailSource:
    for key, value in headers:
        key = key.lower()
        value = value.lower()

        if key == "x-gm-message-state":
            return EmailSource.gmail
        if key in ("x-ms-exchange-organization-authas", "x-microsoft-antispam"):
            return EmailSource.outlook
        if key == "received" and ("apple.com" in value or "icloud.com" in value):
            return EmailSource.icloud

    return EmailSource.unknown


def is_newsletter(message: Message) -> bool:
    return bool(message.header_values("list-unsubscribe"))


def extract_newsletter_name(message: Message) -> str:
    if message.sender.display_name and message.sender.display_name != message.sender.address:
        return message.sender.display_name
    return message.sender.address.split("@")[0]


def extract_route(recipient: str) -> EmailRoute:
    local_part = recipient.strip().strip("<>").split("@")[0].lower()
    return _ROUTES.get(local_part, EmailRoute.inbox)


class EmailDecoder:
    """Turns raw RFC822 bytes into a :class:`Message`."""

    def __init__(self):
        self.policy = policy.default

    def decode(self, raw: bytes) -> Message:
        msg = BytesParser(policy=self.policy).parsebytes(raw)
        html_body, text_body = self._extract_bodies(msg)

        return Message(
            id=sanitize_message_id(str(msg.get("Message-ID", "")).strip())
            or generate_message_id(),
            sender=self._extract_sender(msg),
            subject=str(msg.get("Subject", "")).strip() or "No Subject",
            received_at=self._parse_date(msg.get("Date")),
            html_body=html_body,
            text_body=text_body,
            headers=[(key, str(value)) for key, value in msg.items()],
        )

    def _extract_sender(self, msg: EmailMessage) -> Sender:
        addresses = [(name, addr) for name, addr in getaddresses([str(msg.get("From", ""))]) if addr]
        if not addresses:
            return Sender(*UNKNOWN_SENDER)
        name, address = addresses[0]
        return Sender(display_name=name or address, address=address)

    def _parse_date(self, value) -> datetime:
        if value:
            try:
                parsed = parsedate_to_datetime(str(value))
            except (TypeError, ValueError):
                parsed = None
            if parsed is not None:
                return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
        return datetime.now(timezone.utc)

    def _extract_bodies(self, msg: EmailMessage) -> tuple[str | None, str | None]:
        html_part = msg.get_body(preferencelist=("html",))
        text_part = msg.get_body(preferencelist=("plain",))
        return self._content(html_part), self._content(text_part)

    def _content(self, part: EmailMessage | None) -> str | None:
        if part is None:
            return None
        try:
            return part.get_content()
        except (LookupError, UnicodeDecodeError):
            # Unknown or lying charset declarations
            payload = part.get_payload(decode=True) or b""
            return payload.decode("utf-8", errors="replace")
