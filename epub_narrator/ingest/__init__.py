"""Content ingestion helpers for EPUB narration."""

from dataclasses import dataclass, field
from typing import List


@dataclass
class Chapter:
    """Representation of a logical chapter extracted from a book."""

    index: int
    title: str
    text: str

    @property
    def content(self) -> str:
        return self.text

    def to_dict(self) -> dict:
        return {"title": self.title, "content": self.text}


@dataclass
class ParsedBook:
    """Title, author and narration-ordered chapters of one EPUB."""

    title: str
    author: str
    chapters: List[Chapter] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "title": self.title,
            "author": self.author,
            "chapters": [chapter.to_dict() for chapter in self.chapters],
        }


__all__ = ["Chapter", "ParsedBook"]
