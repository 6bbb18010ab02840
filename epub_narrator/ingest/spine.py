"""Reading-order fallback used when no usable table of contents exists."""

from __future__ import annotations

import logging
import posixpath
import re
from typing import Iterator, List, Optional
from urllib.parse import unquote

from . import Chapter
from ..errors import UnreadableSpineItem
from ..text.clean import ContentCleaner, strip_html
from .archive import EpubArchive, EpubPackage

LOGGER = logging.getLogger(__name__)

_HEADING_PATTERNS = (
    re.compile(r"<h1\b[^>]*>(.*?)</h1\s*>", re.S | re.I),
    re.compile(r"<h2\b[^>]*>(.*?)</h2\s*>", re.S | re.I),
    re.compile(
        r"<([a-z][a-z0-9]*)\b[^>]*\bclass\s*=\s*([\"'])[^\"']*chapter[^\"']*\2[^>]*>(.*?)</\1\s*>",
        re.S | re.I,
    ),
)
# A class-matched element wrapping paragraphs or sections is a container, not a heading.
_BLOCK_CONTENT_RE = re.compile(
    r"<(?:p|div|section|article|blockquote|ul|ol|table|h[1-6])\b", re.I
)
MAX_HEADING_CHARS = 200


def _candidates(pattern: re.Pattern[str], html: str) -> Iterator[str]:
    # Restart one character past each hit so nested matches are still seen.
    pos = 0
    while True:
        match = pattern.search(html, pos)
        if match is None:
            return
        yield match.group(match.lastindex or 1)
        pos = match.start() + 1


def find_heading(html: str) -> Optional[str]:
    """First ``<h1>``, then ``<h2>``, then ``class="...chapter..."`` text in *html*.

    Candidates longer than :data:`MAX_HEADING_CHARS` are ignored, as are
    class-matched elements that wrap block content.
    """

    for pattern in _HEADING_PATTERNS:
        for inner in _candidates(pattern, html):
            if pattern.groups > 1 and _BLOCK_CONTENT_RE.search(inner):
                continue
            heading = strip_html(inner)
            if heading and len(heading) <= MAX_HEADING_CHARS:
                return heading
    return None


def spine_chapters(
    archive: EpubArchive,
    package: EpubPackage,
    cleaner: ContentCleaner,
    *,
    min_chars: int = 100,
    chapter_label: str = "Chapter",
) -> List[Chapter]:
    """Extract chapters by walking the spine directly."""

    chapters: List[Chapter] = []
    for idref in package.spine:
        item = package.manifest.get(idref)
        if item is None:
            LOGGER.debug("Spine entry %r has no manifest item", idref)
            continue
        filename = unquote(posixpath.basename(item.href))
        if cleaner.is_denied_filename(filename):
            LOGGER.debug("Skipping front matter file: %s", filename)
            continue
        path = package.resolve(item.href)
        try:
            html = archive.read_text(path)
        except UnreadableSpineItem as exc:
            LOGGER.warning("Skipping unreadable spine item %r: %s", idref, exc)
            continue
        text = cleaner.strip(html)
        if len(text) <= min_chars:
            LOGGER.debug("Skipping short spine item %s (%d chars)", filename, len(text))
            continue

        heading = find_heading(html)
        if heading and not cleaner.is_denied_title(heading):
            title = heading
            text = cleaner.remove_title_echo(title, text)
            if len(text) <= min_chars:
                LOGGER.debug("Skipping spine item %s: only a heading (%r)", filename, title)
                continue
        else:
            title = f"{chapter_label} {len(chapters) + 1}"
        chapters.append(Chapter(index=len(chapters), title=title, text=cleaner.cap(text)))
    return chapters


__all__ = ["find_heading", "spine_chapters"]
