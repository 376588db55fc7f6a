"""
metadata.py -- Extract a page's title and description from HTML.

Uses the stdlib html.parser, which tolerates the malformed markup found on
real pages. Only the first <title> and the first <meta name="description">
(falling back to og:title / og:description) are considered.
"""

from __future__ import annotations

import logging
from html.parser import HTMLParser
from typing import Optional

from core.errors import ErrorKind, PinSquirrelError
from core.fetcher import DEFAULT_TIMEOUT, fetch_html, validate_url_for_fetching

logger = logging.getLogger("pinsquirrel.fetcher")


class _MetadataParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__(convert_charrefs=True)
        self.title: Optional[str] = None
        self.description: Optional[str] = None
        self.og_title: Optional[str] = None
        self.og_description: Optional[str] = None
        self._in_title = False
        self._title_parts: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, Optional[str]]]) -> None:
        if tag == "title" and self.title is None:
            self._in_title = True
            self._title_parts = []
        elif tag == "meta":
            a = {k.lower(): (v or "") for k, v in attrs}
            key = (a.get("name") or a.get("property") or "").lower()
            content = a.get("content", "").strip()
            if not content:
                return
            if key == "description" and self.description is None:
                self.description = content
            elif key == "og:description" and self.og_description is None:
                self.og_description = content
            elif key == "og:title" and self.og_title is None:
                self.og_title = content

    def handle_endtag(self, tag: str) -> None:
        if tag == "title" and self._in_title:
            self._in_title = False
            self.title = " ".join("".join(self._title_parts).split()) or None

    def handle_data(self, data: str) -> None:
        if self._in_title:
            self._title_parts.append(data)


def parse_metadata(html: str) -> dict[str, str]:
    """Return {"title"?, "description"?}; keys are omitted when the page has no value."""
    parser = _MetadataParser()
    try:
        parser.feed(html)
        parser.close()
    except (AssertionError, ValueError) as e:
        raise PinSquirrelError(ErrorKind.PARSE_ERROR) from e

    result: dict[str, str] = {}
    title = parser.title or parser.og_title
    description = parser.description or parser.og_description
    if title:
        result["title"] = title
    if description:
        result["description"] = description
    return result


def fetch_metadata(url: str, timeout: float = DEFAULT_TIMEOUT) -> dict[str, str]:
    """Validate, fetch and parse. Raises PinSquirrelError on any failure."""
    safe_url = validate_url_for_fetching(url)
    html = fetch_html(safe_url, timeout=timeout)
    metadata = parse_metadata(html)
    logger.debug("Fetched metadata for %s (%d fields)", safe_url, len(metadata))
    return metadata
