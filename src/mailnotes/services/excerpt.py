from __future__ import annotations

import re

from mailnotes.config import settings

ELLIPSIS = "..."

# Only cuts where a line or sentence *starts* with the phrase; markdown
# decoration such as "[Unsubscribe](...)" or "*You are receiving this*" is allowed.
_BOILERPLATE = re.compile(
    r"(?:^|(?<=[.!?] ))[ \t>*_#\[-]*"
    r"(?:you(?:'|’| a)re receiving this|unsubscribe|update your preferences)",
    re.IGNORECASE | re.MULTILINE,
)
_EXCESS_NEWLINES = re.compile(r"\n{3,}")


class ExcerptExtractor:
    def __init__(self, max_length: int | None = None):
        self.max_length = settings.excerpt_max_length if max_length is None else max_length

    def extract(self, text: str, max_length: int | None = None) -> str:
        limit = self.max_length if max_length is None else max_length
        if not text:
            return ""

        match = _BOILERPLATE.search(text)
        if match:
            text = text[: match.start()]

        text = _EXCESS_NEWLINES.sub("\n\n", text).strip()
        if len(text) <= limit:
            return text

        cut = text[:limit]
        boundary = cut.rfind(". ")
        if boundary != -1 and boundary >= limit * 0.5:
            return cut[: boundary + 1]
        return cut + ELLIPSIS
