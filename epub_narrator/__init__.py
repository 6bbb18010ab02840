"""Turn EPUB archives into narration-ready chapter text."""

from __future__ import annotations

from .errors import EpubNarratorError, MalformedArchive
from .ingest import Chapter, ParsedBook
from .ingest.epub_loader import EpubLoader, LoaderOptions, parse_epub, parse_epub_async

__all__ = [
    "Chapter",
    "EpubLoader",
    "EpubNarratorError",
    "LoaderOptions",
    "MalformedArchive",
    "ParsedBook",
    "parse_epub",
    "parse_epub_async",
]

__version__ = "0.1.0"
