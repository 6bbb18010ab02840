"""Markup stripping and noise filtering for chapter text.

Stripping is done with regular expressions rather than a DOM: the rules are
small and fixed (drop a handful of block elements, turn every other tag into
a space, decode a short entity table) and a best-effort pass that never
raises is worth more here than structural accuracy on broken markup.
"""

from __future__ import annotations

from dataclasses import dataclass
import re
import unicodedata
from typing import Iterable, Optional, Sequence, Tuple

TITLE_DENYLIST: Tuple[str, ...] = (
    "giới thiệu",
    "mục lục",
    "thông tin",
    "bản quyền",
    "loi mo dau",
    "lời mở đầu",
    "lời tựa",
    "về tác giả",
    "tựa đề",
    "trang tên",
    "phụ lục",
    "lời cảm ơn",
    "loi cam on",
    "chú thích",
    "bia sách",
    "tên ebook",
    "tác giả:",
    "thể loại:",
    "nhà xuất bản",
    "nguồn:",
    "biên tập",
    "sửa lỗi",
    "tâm nguyện cuối cùng",
    "cover",
    "title",
    "copyright",
    "intro",
    "preface",
    "info",
    "author",
    "credits",
    "so-thao",
    "metadata",
    "nav",
    "frontmatter",
)

FILENAME_DENYLIST: Tuple[str, ...] = (
    "cover",
    "title",
    "copyright",
    "author",
    "frontmatter",
    "front-matter",
)

PLACEHOLDER_PREFIXES: Tuple[str, ...] = ("Chưa xác định",)

MAX_CONTENT_CHARS = 100_000

ENTITIES = {
    "nbsp": " ",
    "amp": "&",
    "lt": "<",
    "gt": ">",
    "quot": '"',
    "apos": "'",
}

_BLOCK_RE = re.compile(
    r"<(head|style|script|metadata)\b(?:[^>]*/>|[^>]*>.*?</\1\s*>)",
    re.S | re.I,
)
_COMMENT_RE = re.compile(r"<!--.*?-->", re.S)
_TAG_RE = re.compile(r"<[^>]+>")
_ENTITY_RE = re.compile(r"&(nbsp|amp|lt|gt|quot|apos|#\d+|#[xX][0-9a-fA-F]+);")
_WHITESPACE_RE = re.compile(r"\s+")
_ECHO_TAIL_RE = re.compile(r"^[:.\-–—\s]+")


@dataclass(frozen=True)
class CleanerOptions:
    """Keyword lists and limits used by :class:`ContentCleaner`."""

    title_denylist: Sequence[str] = TITLE_DENYLIST
    filename_denylist: Sequence[str] = FILENAME_DENYLIST
    placeholder_prefixes: Sequence[str] = PLACEHOLDER_PREFIXES
    max_chars: int = MAX_CONTENT_CHARS

    def __post_init__(self) -> None:
        if self.max_chars <= 0:
            raise ValueError("max_chars must be positive")
        # Keywords are compared casefolded.
        object.__setattr__(self, "title_denylist", _fold_all(self.title_denylist))
        object.__setattr__(self, "filename_denylist", _fold_all(self.filename_denylist))
        object.__setattr__(self, "placeholder_prefixes", tuple(self.placeholder_prefixes))


def _fold(value: str) -> str:
    return unicodedata.normalize("NFC", value).casefold()


def _fold_all(values: Iterable[str]) -> Tuple[str, ...]:
    return tuple(_fold(value) for value in values if value)


def _decode_entity(match: re.Match[str]) -> str:
    name = match.group(1)
    if not name.startswith("#"):
        return ENTITIES[name]
    try:
        if name[1:2] in {"x", "X"}:
            codepoint = int(name[2:], 16)
        else:
            codepoint = int(name[1:])
        return chr(codepoint)
    except (ValueError, OverflowError):
        return match.group(0)


def decode_entities(text: str) -> str:
    """Decode the named entity table and numeric references, one layer only."""

    return _ENTITY_RE.sub(_decode_entity, text)


def collapse_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def strip_html(html: str) -> str:
    """Flatten *html* into a single line of plain text."""

    if not html:
        return ""
    text = _BLOCK_RE.sub(" ", html)
    text = _COMMENT_RE.sub(" ", text)
    text = _TAG_RE.sub(" ", text)
    text = collapse_whitespace(text)
    return collapse_whitespace(decode_entities(text))


def _anchor_pattern(anchor: str) -> re.Pattern[str]:
    return re.compile(
        r"\s(?:id|name)\s*=\s*([\"'])" + re.escape(anchor) + r"\1",
        re.I,
    )


def slice_at_anchor(
    html: str, anchor: str, stop_anchors: Iterable[str] = ()
) -> Optional[str]:
    """Return the markup following the element that carries *anchor*.

    The slice ends where the nearest element carrying one of *stop_anchors*
    opens. ``None`` means the anchor does not occur in *html*.
    """

    match = _anchor_pattern(anchor).search(html)
    if match is None:
        return None
    tag_end = html.find(">", match.end())
    start = len(html) if tag_end == -1 else tag_end + 1

    end = len(html)
    for other in stop_anchors:
        if other == anchor:
            continue
        stop = _anchor_pattern(other).search(html, start)
        if stop is None:
            continue
        tag_start = html.rfind("<", start, stop.start())
        boundary = stop.start() if tag_start == -1 else tag_start
        end = min(end, boundary)
    return html[start:end]


class ContentCleaner:
    """Turn chapter markup into narration-ready text."""

    def __init__(self, options: CleanerOptions | None = None) -> None:
        self.options = options or CleanerOptions()

    def strip(self, html: str) -> str:
        text = strip_html(html)
        for prefix in self.options.placeholder_prefixes:
            if prefix and text.startswith(prefix):
                text = text[len(prefix):].strip()
        return text

    def extract(
        self,
        html: str,
        anchor: Optional[str] = None,
        stop_anchors: Iterable[str] = (),
    ) -> str:
        """Strip *html*, limited to the section at *anchor* when one is given."""

        if anchor:
            section = slice_at_anchor(html, anchor, stop_anchors)
            if section is not None:
                return self.strip(section)
        return self.strip(html)

    def is_denied_title(self, title: str) -> bool:
        return _contains_any(title, self.options.title_denylist)

    def is_denied_filename(self, filename: str) -> bool:
        return _contains_any(filename, self.options.filename_denylist)

    def remove_title_echo(self, title: str, text: str) -> str:
        text = text.strip()
        title = title.strip()
        if title and _fold(text[: len(title)]) == _fold(title):
            text = text[len(title):]
            text = _ECHO_TAIL_RE.sub("", text)
        return text.strip()

    def cap(self, text: str) -> str:
        return text[: self.options.max_chars]

    def clean_chapter(
        self,
        title: str,
        html: str,
        anchor: Optional[str] = None,
        stop_anchors: Iterable[str] = (),
    ) -> str:
        text = self.extract(html, anchor, stop_anchors)
        return self.cap(self.remove_title_echo(title, text))


def _contains_any(value: str, keywords: Sequence[str]) -> bool:
    folded = _fold(value or "")
    return any(keyword in folded for keyword in keywords)


__all__ = [
    "CleanerOptions",
    "ContentCleaner",
    "FILENAME_DENYLIST",
    "MAX_CONTENT_CHARS",
    "TITLE_DENYLIST",
    "collapse_whitespace",
    "decode_entities",
    "slice_at_anchor",
    "strip_html",
]
