"""Command line interface for epub-narrator."""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
import sys
from typing import List, Optional

from . import __version__
from .importer import ImportOptions, LibraryImporter
from .ingest.epub_loader import LoaderOptions, parse_epub


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="epub-narrator",
        description="Extract narration-ready chapters from EPUB files.",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only print warnings and errors")
    parser.add_argument("--version", action="version", version=f"epub-narrator {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True)

    parse_cmd = subparsers.add_parser("parse", help="Print the chapters of one EPUB as JSON")
    parse_cmd.add_argument("book", type=Path, help="EPUB file to parse")
    parse_cmd.add_argument("--out", dest="output_path", type=Path, help="Write JSON here instead of stdout")
    parse_cmd.add_argument("--indent", type=int, default=2, help="JSON indentation (0 for compact)")
    parse_cmd.add_argument(
        "--no-dedupe",
        dest="deduplicate",
        action="store_false",
        help="Keep chapters that repeat an earlier title and opening",
    )

    import_cmd = subparsers.add_parser("import", help="Import EPUB files into a SQLite library")
    import_cmd.add_argument("inputs", nargs="+", type=Path, help="EPUB files or directories")
    import_cmd.add_argument("--db", dest="database_path", type=Path, help="SQLite database path")
    import_cmd.add_argument("--language", default="vi", help="Language code stored with each book")
    import_cmd.add_argument("--replace", action="store_true", help="Remove existing books first")
    return parser


def configure_logging(verbose: bool, quiet: bool) -> None:
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(levelname)s: %(message)s")


def run_parse(args: argparse.Namespace) -> int:
    book = parse_epub(args.book, LoaderOptions(deduplicate=args.deduplicate))
    payload = json.dumps(book.to_dict(), ensure_ascii=False, indent=args.indent or None)
    if args.output_path:
        args.output_path.parent.mkdir(parents=True, exist_ok=True)
        args.output_path.write_text(payload + "\n", encoding="utf-8")
        print(f"Wrote {len(book.chapters)} chapters to {args.output_path}")
    else:
        sys.stdout.write(payload + "\n")
    return 0


def run_import(args: argparse.Namespace) -> int:
    options = ImportOptions(
        inputs=args.inputs,
        database_path=args.database_path,
        language=args.language,
        replace=args.replace,
    )
    result = LibraryImporter().run(options)
    print(
        f"Imported {len(result.books)} books ({result.chapter_count} chapters) "
        f"into {result.database_path}"
    )
    if result.failures:
        print(f"Failed: {len(result.failures)} books")
    print(f"Elapsed: {result.elapsed_seconds:.2f}s")
    return 1 if result.failures and not result.books else 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    handlers = {"parse": run_parse, "import": run_import}
    try:
        return handlers[args.command](args)
    except Exception as exc:
        logging.getLogger(__name__).error(str(exc))
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
