"""EPUB ingestion: nav, NCX and spine stages run as successive fallbacks."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Callable, List, Optional, Sequence, Set, Tuple

from . import Chapter, ParsedBook
from . import navigation, spine
from ..errors import MissingNavigationSource
from ..text.clean import CleanerOptions, ContentCleaner
from .archive import ArchiveSource, EpubArchive, EpubPackage, load_package

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoaderOptions:
    """Thresholds and labels used while extracting chapters."""

    cleaner: CleanerOptions = field(default_factory=CleanerOptions)
    min_toc_chars: int = 20
    min_spine_chars: int = 100
    dedupe_prefix_chars: int = 100
    deduplicate: bool = True
    untitled_label: str = navigation.UNTITLED_LABEL
    chapter_label: str = "Chapter"
    default_title: str = "Unknown Title"
    default_author: str = "Unknown Author"

    def __post_init__(self) -> None:
        if self.min_toc_chars < 0 or self.min_spine_chars < 0:
            raise ValueError("Minimum chapter lengths must not be negative")
        if self.dedupe_prefix_chars <= 0:
            raise ValueError("dedupe_prefix_chars must be positive")
        if not self.chapter_label.strip():
            raise ValueError("chapter_label must not be empty")


def deduplicate(chapters: Sequence[Chapter], prefix_chars: int = 100) -> List[Chapter]:
    """Drop chapters whose title and leading text repeat an earlier chapter."""

    seen: Set[Tuple[str, str]] = set()
    unique: List[Chapter] = []
    for chapter in chapters:
        key = (chapter.title, chapter.text[:prefix_chars])
        if key in seen:
            LOGGER.debug("Dropping duplicate chapter: %s", chapter.title)
            continue
        seen.add(key)
        chapter.index = len(unique)
        unique.append(chapter)
    return unique


class EpubLoader:
    """Extract a title, an author and narration-ordered chapters from an EPUB.

    The loader keeps only its immutable options, so one instance can serve
    any number of parses, including concurrent ones.
    """

    def __init__(self, options: LoaderOptions | None = None) -> None:
        self.options = options or LoaderOptions()
        self.cleaner = ContentCleaner(self.options.cleaner)

    def load(self, source: ArchiveSource) -> ParsedBook:
        """Parse the EPUB given as bytes, a binary file object or a path."""

        with EpubArchive.open(source) as archive:
            package = load_package(
                archive,
                default_title=self.options.default_title,
                default_author=self.options.default_author,
            )
            chapters = self._extract_chapters(archive, package)

        if self.options.deduplicate:
            chapters = deduplicate(chapters, self.options.dedupe_prefix_chars)
        if not chapters:
            LOGGER.warning("No narratable chapters found in %r", package.title)
        else:
            LOGGER.info("Parsed %r: %d chapters", package.title, len(chapters))
        return ParsedBook(title=package.title, author=package.author, chapters=chapters)

    def _extract_chapters(self, archive: EpubArchive, package: EpubPackage) -> List[Chapter]:
        stages: List[Tuple[str, Callable[[EpubArchive, EpubPackage], List[Chapter]]]] = [
            ("nav", self._nav_chapters),
            ("ncx", self._ncx_chapters),
            ("spine", self._spine_chapters),
        ]
        for name, stage in stages:
            try:
                chapters = stage(archive, package)
            except MissingNavigationSource as exc:
                LOGGER.debug("Stage %s skipped: %s", name, exc)
                continue
            if chapters:
                LOGGER.debug("Stage %s produced %d chapters", name, len(chapters))
                return chapters
            LOGGER.debug("Stage %s produced no chapters, falling back", name)
        return []

    def _nav_chapters(self, archive: EpubArchive, package: EpubPackage) -> List[Chapter]:
        nodes = navigation.read_nav_nodes(
            archive, package, untitled_label=self.options.untitled_label
        )
        return navigation.chapters_from_nodes(
            nodes, archive, self.cleaner, min_chars=self.options.min_toc_chars
        )

    def _ncx_chapters(self, archive: EpubArchive, package: EpubPackage) -> List[Chapter]:
        nodes = navigation.read_ncx_nodes(
            archive, package, untitled_label=self.options.untitled_label
        )
        return navigation.chapters_from_nodes(
            nodes, archive, self.cleaner, min_chars=self.options.min_toc_chars
        )

    def _spine_chapters(self, archive: EpubArchive, package: EpubPackage) -> List[Chapter]:
        return spine.spine_chapters(
            archive,
            package,
            self.cleaner,
            min_chars=self.options.min_spine_chars,
            chapter_label=self.options.chapter_label,
        )


def parse_epub(source: ArchiveSource, options: Optional[LoaderOptions] = None) -> ParsedBook:
    """Parse one EPUB archive into a :class:`ParsedBook`."""

    return EpubLoader(options).load(source)


async def parse_epub_async(
    source: ArchiveSource, options: Optional[LoaderOptions] = None
) -> ParsedBook:
    """Run :func:`parse_epub` in a worker thread."""

    return await asyncio.to_thread(parse_epub, source, options)


__all__ = [
    "EpubLoader",
    "LoaderOptions",
    "deduplicate",
    "parse_epub",
    "parse_epub_async",
]
