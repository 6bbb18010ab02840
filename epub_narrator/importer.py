"""Batch import of parsed EPUBs into a SQLite library.

The schema matches the narration app's prebuilt database: one row per book
and one row per chapter, ordered by ``order_index``. Parsing is delegated to
:mod:`epub_narrator.ingest.epub_loader`; a book that fails to parse is logged
and counted, and the rest of the batch carries on.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Sequence
import logging
import os
import sqlite3
import time

from .errors import EpubNarratorError
from .ingest import ParsedBook
from .ingest.epub_loader import EpubLoader, LoaderOptions

__all__ = [
    "ImportOptions",
    "ImportResult",
    "ImportedBook",
    "LibraryImporter",
    "SCHEMA",
]

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS books (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    author TEXT,
    cover_uri TEXT,
    language TEXT DEFAULT 'vi',
    description TEXT,
    last_chapter_index INTEGER DEFAULT 0
);
CREATE TABLE IF NOT EXISTS chapters (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    book_id INTEGER,
    title TEXT NOT NULL,
    content TEXT NOT NULL,
    order_index INTEGER,
    FOREIGN KEY (book_id) REFERENCES books (id)
);
"""


def library_path_from_env() -> Path:
    return Path(
        os.getenv(
            "EPUB_NARRATOR_DB",
            Path.home() / ".cache" / "epub_narrator" / "library.db",
        )
    )


@dataclass
class ImportOptions:
    """Options that control a library import run."""

    inputs: Sequence[Path]
    database_path: Optional[Path] = None
    language: str = "vi"
    replace: bool = False
    description_template: str = "Bản dịch của {title}"
    loader: LoaderOptions = field(default_factory=LoaderOptions)

    def __post_init__(self) -> None:
        if not self.inputs:
            raise ValueError("At least one input path is required")
        self.inputs = [Path(path) for path in self.inputs]
        if self.database_path is not None:
            self.database_path = Path(self.database_path)
        if not self.language.strip():
            raise ValueError("language must not be empty")


@dataclass
class ImportedBook:
    source: Path
    book_id: int
    title: str
    chapter_count: int


@dataclass
class ImportResult:
    """Outcome returned after an import run."""

    database_path: Path
    books: List[ImportedBook]
    failures: List[Path]
    elapsed_seconds: float

    @property
    def chapter_count(self) -> int:
        return sum(book.chapter_count for book in self.books)


class LibraryImporter:
    """Parse EPUB files and store them in a SQLite database."""

    def __init__(self, default_database_path: Optional[Path] = None) -> None:
        self.default_database_path = default_database_path or library_path_from_env()

    # Public API -----------------------------------------------------------------
    def run(self, options: ImportOptions) -> ImportResult:
        start_time = time.perf_counter()
        database_path = options.database_path or self.default_database_path
        database_path.parent.mkdir(parents=True, exist_ok=True)

        sources = self._collect_sources(options.inputs)
        logger.info("Importing %d EPUB files into %s", len(sources), database_path)

        loader = EpubLoader(options.loader)
        books: List[ImportedBook] = []
        failures: List[Path] = []

        connection = sqlite3.connect(str(database_path))
        try:
            self._prepare_schema(connection, replace=options.replace)
            for source in sources:
                logger.info("Processing: %s", source.name)
                try:
                    parsed = loader.load(source)
                except (EpubNarratorError, OSError) as exc:
                    logger.error("Error processing %s: %s", source, exc)
                    failures.append(source)
                    continue
                book_id = self._store_book(connection, parsed, options)
                books.append(
                    ImportedBook(
                        source=source,
                        book_id=book_id,
                        title=parsed.title,
                        chapter_count=len(parsed.chapters),
                    )
                )
                logger.info(
                    "Successfully imported: %s (%d chapters)", parsed.title, len(parsed.chapters)
                )
        finally:
            connection.close()

        elapsed = time.perf_counter() - start_time
        logger.info("Finished import in %.2fs", elapsed)
        return ImportResult(
            database_path=database_path,
            books=books,
            failures=failures,
            elapsed_seconds=elapsed,
        )

    # Input handling --------------------------------------------------------------
    def _collect_sources(self, inputs: Iterable[Path]) -> List[Path]:
        sources: List[Path] = []
        for path in inputs:
            if path.is_dir():
                sources.extend(
                    sorted(p for p in path.iterdir() if p.is_file() and p.suffix.lower() == ".epub")
                )
            elif path.exists():
                sources.append(path)
            else:
                raise FileNotFoundError(f"Input does not exist: {path}")
        return sources

    # Persistence -----------------------------------------------------------------
    def _prepare_schema(self, connection: sqlite3.Connection, *, replace: bool) -> None:
        connection.executescript(SCHEMA)
        if replace:
            logger.debug("Clearing existing books and chapters")
            with connection:
                connection.execute("DELETE FROM chapters")
                connection.execute("DELETE FROM books")

    def _store_book(
        self, connection: sqlite3.Connection, parsed: ParsedBook, options: ImportOptions
    ) -> int:
        description = options.description_template.format(
            title=parsed.title, author=parsed.author
        )
        with connection:
            cursor = connection.execute(
                "INSERT INTO books (title, author, language, description) VALUES (?, ?, ?, ?)",
                (parsed.title, parsed.author, options.language, description),
            )
            book_id = int(cursor.lastrowid)
            connection.executemany(
                "INSERT INTO chapters (book_id, title, content, order_index) VALUES (?, ?, ?, ?)",
                [
                    (book_id, chapter.title, chapter.text, order)
                    for order, chapter in enumerate(parsed.chapters)
                ],
            )
        return book_id
