"""Exceptions raised while reading EPUB archives."""

from __future__ import annotations


class EpubNarratorError(Exception):
    """Base class for every error raised by :mod:`epub_narrator`."""


class MalformedArchive(EpubNarratorError):
    """The archive is not a zip or lacks its container/package documents."""


class MissingNavigationSource(EpubNarratorError):
    """The package declares no navigation document or NCX table of contents."""


class UnreadableSpineItem(EpubNarratorError):
    """A file referenced by the manifest is absent or corrupt inside the archive."""

    def __init__(self, path: str, reason: str = "missing from archive") -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


__all__ = [
    "EpubNarratorError",
    "MalformedArchive",
    "MissingNavigationSource",
    "UnreadableSpineItem",
]
