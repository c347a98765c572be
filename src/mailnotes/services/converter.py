from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup
from markdownify import MarkdownConverter

logger = logging.getLogger(__name__)

NO_CONTENT = "*No email content*"

# Zero-width and soft-hyphen characters used as inbox-preview padding
_INVISIBLE = re.compile(r"[\u00ad\u034f\u200b-\u200f\u2060-\u2064\ufeff]")
_EXCESS_NEWLINES = re.compile(r"\n{3,}")
_NON_CONTENT_TAGS = ["head", "script", "style", "title", "meta", "link", "noscript"]
_LAYOUT_TAGS = ["table", "thead", "tbody", "tfoot", "tr"]


def _has_background(style: str | None) -> bool:
    compact = re.sub(r"\s+", "", style or "").lower()
    return "background-color:" in compact or "background:" in compact


class NewsletterMarkdownConverter(MarkdownConverter):
    """Markdown rules for newsletter layout markup.

    Newsletter tables are layout devices, so each cell becomes its own
    paragraph block and row/section wrappers flatten away. Links styled as
    buttons lose their chrome and become plain links.
    """

    def convert_soup(self, soup):
        for cell in soup.find_all(["td", "th"]):
            cell.name = "div"
            cell.attrs = {}
        for wrapper in soup.find_all(_LAYOUT_TAGS):
            wrapper.unwrap()
        return super().convert_soup(soup)

    def convert_div(self, el, text, parent_tags):
        if "_inline" in parent_tags:
            return " " + text.strip() + " "
        text = text.strip()
        return f"\n\n{text}\n\n" if text else ""

    def convert_a(self, el, text, parent_tags):
        href = el.get("href")
        if href and _has_background(el.get("style")):
            label = " ".join(el.get_text(" ", strip=True).split())
            return f"[{label}]({href})" if label else ""
        return super().convert_a(el, text, parent_tags)


class ContentConverter:
    def __init__(self):
        self._markdown = NewsletterMarkdownConverter(heading_style="atx", bullets="-")

    def convert(self, sanitized_html: str) -> str:
        soup = BeautifulSoup(sanitized_html, "html.parser")
        for el in soup.find_all(_NON_CONTENT_TAGS):
            el.decompose()

        text = self._markdown.convert_soup(soup)
        text = _INVISIBLE.sub("", text)
        text = re.sub(r"[ \t]+\n", "\n", text)
        return _EXCESS_NEWLINES.sub("\n\n", text).strip()

    def _strip_html(self, html: str) -> str:
        return BeautifulSoup(html, "lxml").get_text(separator=" ", strip=True)

    def render_body(self, html: str | None, text: str | None) -> str:
        """Best available markdown for a message body; never raises."""
        if html:
            try:
                converted = self.convert(html)
            except Exception:
                logger.warning("HTML conversion failed, using text fallback", exc_info=True)
            else:
                if converted:
                    return converted
        if text and text.strip():
            return text.strip()
        if html:
            try:
                stripped = self._strip_html(html)
            except Exception:
                logger.exception("Could not extract any text from HTML body")
            else:
                if stripped:
                    return stripped
        return NO_CONTENT
