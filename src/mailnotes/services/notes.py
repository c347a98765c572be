from __future__ import annotations

import re
from datetime import datetime, timezone

from mailnotes.ingestion.email import Message, detect_email_source

_YAML_SPECIAL = re.compile(r"[:#{}\[\],&*?|<>=!%@`]")
_YAML_RESERVED = {"true", "false", "null", "yes", "no", "on", "off", "~"}
_UNSAFE_FILENAME = re.compile(r'[/\\?%*:|"<>]')
_FORWARD_PREFIX = re.compile(r"^(?:(?:fwd?|fw)\s*:\s*)+", re.IGNORECASE)

SUBJECT_MAX = 100
NEWSLETTER_NAME_MAX = 40


def format_date(value: datetime) -> str:
    return value.astimezone(timezone.utc).date().isoformat()


def format_date_long(value: datetime) -> str:
    return f"{value:%B} {value.day}, {value.year} at {value:%I:%M %p}"


def escape_yaml(value: str) -> str:
    needs_quotes = (
        value == ""
        or value.lower() in _YAML_RESERVED
        or value.startswith(("-", "'", '"', "`", "!"))
        or value != value.strip()
        or "\n" in value
        or '"' in value
        or _YAML_SPECIAL.search(value) is not None
    )
    if not needs_quotes:
        return value
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
    return f'"{escaped}"'


def safe_filename_part(value: str, limit: int = SUBJECT_MAX) -> str:
    value = _UNSAFE_FILENAME.sub("-", value)
    value = re.sub(r"\s+", " ", value).strip()
    return value[:limit]


def strip_forward_prefix(subject: str) -> str:
    return _FORWARD_PREFIX.sub("", subject).strip() or subject


def note_filename(folder: str, message: Message, strip_forward: bool = False) -> str:
    subject = strip_forward_prefix(message.subject) if strip_forward else message.subject
    return f"{folder}/{format_date(message.received_at)} - {safe_filename_part(subject)}.md"


def newsletter_base_filename(folder: str, message: Message, newsletter_name: str) -> str:
    """Filename without extension; the .md note and .html copy share it."""
    name = safe_filename_part(newsletter_name, NEWSLETTER_NAME_MAX)
    subject = safe_filename_part(strip_forward_prefix(message.subject))
    return f"{folder}/{format_date(message.received_at)} - {name} - {subject}"


def _email_section(message: Message, body: str) -> list[str]:
    return [
        "## Email",
        f"**From:** {message.sender.display_name} <{message.sender.address}>",
        f"**Date:** {format_date_long(message.received_at)}",
        f"**Subject:** {message.subject}",
        "",
        body,
    ]


def _frontmatter(tags: list[str], fields: list[tuple[str, str]]) -> list[str]:
    lines = ["---", "tags:"]
    lines.extend(f"  - {tag}" for tag in tags)
    lines.extend(f"{key}: {value}" for key, value in fields)
    lines.append("---")
    return lines


def _common_fields(message: Message) -> list[tuple[str, str]]:
    return [
        ("created", format_date(message.received_at)),
        ("from", message.sender.address),
        ("subject", escape_yaml(message.subject)),
        ("email_id", message.id),
        ("source", detect_email_source(message.headers).value),
    ]


def render_task_note(message: Message, body: str) -> str:
    lines = _frontmatter(["all", "email-task"], _common_fields(message))
    lines += [
        "",
        "## Tasks in this note",
        "",
        "- [ ] Review and process this email",
        "",
        "---",
    ]
    lines += _email_section(message, body)
    lines += ["", "---", "## Notes", "", ""]
    return "\n".join(lines)


def render_inbox_note(message: Message, body: str) -> str:
    lines = _frontmatter(["all"], _common_fields(message))
    lines.append("")
    lines += _email_section(message, body)
    lines.append("")
    return "\n".join(lines)


def render_agent_note(message: Message, body: str) -> str:
    fields = _common_fields(message) + [("status", "pending")]
    lines = _frontmatter(["agent-message"], fields)
    lines += [
        "",
        "## Agent Message",
        f"**From:** {message.sender.display_name} <{message.sender.address}>",
        f"**Date:** {format_date_long(message.received_at)}",
        f"**Subject:** {message.subject}",
        "",
        body,
        "",
    ]
    return "\n".join(lines)


def render_newsletter_note(
    message: Message,
    newsletter_name: str,
    body: str,
    topic: str,
    html_filename: str | None = None,
) -> str:
    fields = _common_fields(message) + [
        ("newsletter_name", escape_yaml(newsletter_name)),
        ("topic", escape_yaml(topic)),
        ("status", "unprocessed"),
    ]
    lines = _frontmatter(["newsletter"], fields)
    lines += ["", f"## {newsletter_name} — {message.subject}", ""]
    if html_filename:
        lines += [f"[Open full newsletter](<{html_filename}>)", ""]
    lines += [body, ""]
    return "\n".join(lines)
