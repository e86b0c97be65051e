"""Helpers that turn provider payloads into compact plain text."""

import base64
import binascii
import re
from html import unescape
from html.parser import HTMLParser
from typing import (
    Any,
    Dict,
    List,
)

from workmate.config import settings

_BLOCK_TAGS = {"p", "div", "br", "li", "tr", "h1", "h2", "h3", "h4", "h5", "h6", "blockquote"}
_SKIP_TAGS = {"script", "style", "head"}
_WS_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n\s*\n+")


class _TextExtractor(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.parts: List[str] = []
        self._skip_depth = 0

    def handle_starttag(self, tag: str, attrs: Any) -> None:
        if tag in _SKIP_TAGS:
            self._skip_depth += 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_endtag(self, tag: str) -> None:
        if tag in _SKIP_TAGS and self._skip_depth:
            self._skip_depth -= 1
        elif tag in _BLOCK_TAGS:
            self.parts.append("\n")

    def handle_data(self, data: str) -> None:
        if not self._skip_depth:
            self.parts.append(data)


def html_to_text(html: str | None) -> str:
    """Strip tags from *html* and collapse whitespace."""
    if not html:
        return ""
    parser = _TextExtractor()
    parser.feed(html)
    parser.close()
    text = unescape("".join(parser.parts))
    text = _WS_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n", text)
    return "\n".join(line.strip() for line in text.splitlines()).strip()


def decode_base64url(data: str | None) -> str:
    """Decode a Gmail ``body.data`` value (base64url, padding optional) to text."""
    if not data:
        return ""
    padded = data + "=" * (-len(data) % 4)
    try:
        raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    except (binascii.Error, ValueError, UnicodeEncodeError):
        return ""
    return raw.decode("utf-8", errors="replace")


def encode_base64url(raw: bytes) -> str:
    """Base64url-encode *raw* without padding."""
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def truncate(text: str | None, limit: int | None = None) -> str:
    """Cut *text* to *limit* characters (``BODY_CHAR_LIMIT`` by default)."""
    limit = settings.BODY_CHAR_LIMIT if limit is None else limit
    text = text or ""
    if len(text) <= limit:
        return text
    return text[:limit].rstrip() + "…"


def message_body_text(body: Dict[str, Any] | None) -> str:
    """Plain text of a Graph ``itemBody`` (``{"content", "contentType"}``), truncated."""
    if not body:
        return ""
    content = body.get("content") or ""
    if str(body.get("contentType", "")).lower() == "html":
        content = html_to_text(content)
    return truncate(content.strip())
