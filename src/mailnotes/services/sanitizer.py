"""Newsletter HTML cleanup.

Strips tracking and compliance artifacts that sending platforms and privacy
relays inject into bulk email, while keeping the author's markup (tables and
inline styles) intact so the cleaned document still renders
the way the newsletter was designed.
"""

from __future__ import annotations

import logging
import re

from bs4 import BeautifulSoup, Tag

from mailnotes.config import settings

logger = logging.getLogger(__name__)

# Downlevel-hidden conditional blocks for Outlook/MSO rendering engines.
# The revealed form (<!--[if !mso]><!-->) is visible content and is kept.
_CONDITIONAL_BLOCK = re.compile(
    r"<!--\[if\s[^\]]*\]>(?!<!-->).*?<!\[endif\]-->",
    re.IGNORECASE | re.DOTALL,
)
# Markers around revealed conditional content; the content itself is kept
_REVEALED_MARKER = re.compile(
    r"<!--\[if\s[^\]]*\]><!-->|<!--<!\[endif\]-->",
    re.IGNORECASE,
)
_BODY_END = re.compile(r"</body\s*>", re.IGNORECASE)
_DOCUMENT_END = re.compile(r"</html\s*>", re.IGNORECASE)
_DOCUMENT_END_AFTER_BODY = re.compile(r"\s*</html\s*>", re.IGNORECASE)
_BLANK_RUN = re.compile(r"\n(?:[ \t]*\n){3,}")

_PIXEL_DIMENSIONS = {"0", "1"}
_PREHEADER_TAGS = {"span", "div", "p", "td"}
_PREHEADER_MAX_TEXT = 500
_HIDDEN_DECLARATIONS = {
    "display:none",
    "visibility:hidden",
    "opacity:0",
    "max-height:0",
    "max-height:0px",
    "height:0",
    "height:0px",
    "font-size:0",
    "font-size:0px",
    "mso-hide:all",
}
_WRAPPER_TAGS = {"table", "tbody", "thead", "tfoot", "tr", "td", "th", "div", "center"}


def _declarations(style: str | None) -> set[str]:
    compact = re.sub(r"\s+", "", style or "").lower()
    return {d.removesuffix("!important") for d in compact.split(";") if d}


def _dimension(value: str | None) -> str:
    return (value or "").strip().lower().removesuffix("px")


class HtmlSanitizer:
    def __init__(
        self,
        tracker_patterns: list[str] | None = None,
        compliance_markers: list[str] | None = None,
        spam_report_patterns: list[str] | None = None,
    ):
        self.tracker_patterns = [
            p.lower()
            for p in (
                settings.tracker_patterns if tracker_patterns is None else tracker_patterns
            )
        ]
        self.compliance_markers = [
            m.lower()
            for m in (
                settings.compliance_markers
                if compliance_markers is None
                else compliance_markers
            )
        ]
        self.spam_report_patterns = [
            p.lower()
            for p in (
                settings.spam_report_patterns
                if spam_report_patterns is None
                else spam_report_patterns
            )
        ]

    def sanitize(self, html: str) -> str:
        if not html:
            return ""

        html = self._strip_after_document_end(html)
        html = _CONDITIONAL_BLOCK.sub("", html)
        html = _REVEALED_MARKER.sub("", html)

        try:
            soup = BeautifulSoup(html, "html.parser")
            self._remove_scripts(soup)
            self._remove_tracking_pixels(soup)
            self._remove_hidden_preheaders(soup)
            self._remove_compliance_banners(soup)
            self._remove_spam_report_links(soup)
            html = str(soup)
        except Exception:
            logger.warning("HTML tree cleanup failed, keeping text-level cleanup only", exc_info=True)

        return _BLANK_RUN.sub("\n\n", html)

    def _strip_after_document_end(self, html: str) -> str:
        # Relay footers ("You received this because...") get appended after the body
        body_ends = list(_BODY_END.finditer(html))
        if body_ends:
            end = body_ends[-1].end()
            closing = _DOCUMENT_END_AFTER_BODY.match(html, end)
            if closing:
                end = closing.end()
            return html[:end]
        ends = list(_DOCUMENT_END.finditer(html))
        if not ends:
            return html
        return html[: ends[-1].end()]

    def _remove_scripts(self, soup: BeautifulSoup) -> None:
        for script in soup.find_all("script"):
            script.decompose()

    def is_tracking_pixel(self, img: Tag) -> bool:
        if _dimension(img.get("width")) in _PIXEL_DIMENSIONS:
            return True
        if _dimension(img.get("height")) in _PIXEL_DIMENSIONS:
            return True
        src = (img.get("src") or "").lower()
        return any(pattern in src for pattern in self.tracker_patterns)

    def _remove_tracking_pixels(self, soup: BeautifulSoup) -> None:
        for img in soup.find_all("img"):
            if self.is_tracking_pixel(img):
                img.decompose()

    def _is_hidden_preheader(self, el: Tag) -> bool:
        if el.name not in _PREHEADER_TAGS:
            return False
        if _declarations(el.get("style")).isdisjoint(_HIDDEN_DECLARATIONS):
            return False
        # Layout containers that merely collapse on mobile are real content
        if el.find(["table", "img"]) is not None:
            return False
        return len(el.get_text(strip=True)) <= _PREHEADER_MAX_TEXT

    def _remove_hidden_preheaders(self, soup: BeautifulSoup) -> None:
        for el in soup.find_all(self._is_hidden_preheader):
            if not el.decomposed:
                el.decompose()

    def _is_compliance_banner(self, el: Tag) -> bool:
        if not self.compliance_markers:
            return False
        values = [name.lower() for name in el.attrs]
        for attr in ("id", "class"):
            value = el.get(attr)
            if isinstance(value, list):
                values.extend(v.lower() for v in value)
            elif value:
                values.append(value.lower())
        return any(marker in value for value in values for marker in self.compliance_markers)

    def _remove_compliance_banners(self, soup: BeautifulSoup) -> None:
        # Outermost matches first; decompose takes every nested level with it
        for el in soup.find_all(self._is_compliance_banner):
            if el.decomposed:
                continue
            wrapper = el
            while (
                wrapper.parent is not None
                and wrapper.parent.name in _WRAPPER_TAGS
                and self._only_holds(wrapper.parent, wrapper)
            ):
                wrapper = wrapper.parent
            wrapper.decompose()

    def _only_holds(self, parent: Tag, child: Tag) -> bool:
        for node in parent.children:
            if node is child:
                continue
            if isinstance(node, Tag) or node.strip():
                return False
        return True

    def _remove_spam_report_links(self, soup: BeautifulSoup) -> None:
        if not self.spam_report_patterns:
            return
        for link in soup.find_all("a", href=True):
            href = link["href"].lower()
            if any(pattern in href for pattern in self.spam_report_patterns):
                link.decompose()
