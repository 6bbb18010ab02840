"""Zip container access and package document (OPF) loading."""

from __future__ import annotations

import codecs
from dataclasses import dataclass, field
import io
import logging
import os
import posixpath
import re
from types import MappingProxyType
from typing import Any, BinaryIO, Dict, List, Optional, Tuple, Union
from urllib.parse import unquote
import zipfile
import zlib

from lxml import etree

from ..errors import MalformedArchive, UnreadableSpineItem

LOGGER = logging.getLogger(__name__)

CONTAINER_PATH = "META-INF/container.xml"
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"

# Shared by every parse; a fresh lxml parser is built from it per document.
XML_PARSER_OPTIONS = MappingProxyType(
    {
        "resolve_entities": False,
        "no_network": True,
        "remove_comments": True,
        "remove_pis": True,
    }
)

ArchiveSource = Union[bytes, bytearray, memoryview, str, os.PathLike, BinaryIO]

_XML_ENCODING_RE = re.compile(rb"""^\s*<\?xml[^>]*encoding\s*=\s*["']([A-Za-z0-9._-]+)["']""")


def as_list(value: Any) -> List[Any]:
    """Normalise ``None``, a single value or a sequence into a list."""

    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def parse_xml(data: bytes, *, recover: bool = False) -> Optional[etree._Element]:
    """Parse *data* into an element tree root.

    Raises :class:`lxml.etree.XMLSyntaxError` on broken input unless
    *recover* is set, in which case ``None`` may be returned instead.
    """

    parser = etree.XMLParser(recover=recover, **XML_PARSER_OPTIONS)
    return etree.fromstring(data, parser)


def decode_text(data: bytes) -> str:
    if data.startswith(codecs.BOM_UTF8):
        return data[len(codecs.BOM_UTF8):].decode("utf-8", errors="replace")
    if data.startswith((codecs.BOM_UTF16_LE, codecs.BOM_UTF16_BE)):
        return data.decode("utf-16", errors="replace")
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        pass
    match = _XML_ENCODING_RE.match(data[:200])
    if match:
        encoding = match.group(1).decode("ascii")
        try:
            return data.decode(encoding)
        except (LookupError, UnicodeDecodeError):
            LOGGER.debug("Declared encoding %s did not decode cleanly", encoding)
    return data.decode("utf-8", errors="replace")


def resolve_path(base_dir: str, href: str) -> str:
    """Resolve *href* against the archive directory *base_dir*."""

    href = unquote((href or "").strip())
    if not href:
        return ""
    if href.startswith("/"):
        return posixpath.normpath(href.lstrip("/"))
    joined = posixpath.join(base_dir, href) if base_dir else href
    return posixpath.normpath(joined)


def split_href(href: str) -> Tuple[str, Optional[str]]:
    """Split ``file.xhtml#anchor`` into its path and optional anchor."""

    path, _, fragment = (href or "").strip().partition("#")
    anchor = unquote(fragment) if fragment else None
    return path, anchor


class EpubArchive:
    """Read-only view over the entries of one EPUB zip container."""

    def __init__(self, zf: zipfile.ZipFile) -> None:
        self._zf = zf
        self._names = set(zf.namelist())
        self._folded: Dict[str, str] = {}
        for name in zf.namelist():
            self._folded.setdefault(name.casefold(), name)

    @classmethod
    def open(cls, source: ArchiveSource) -> "EpubArchive":
        if isinstance(source, (bytes, bytearray, memoryview)):
            handle: Any = io.BytesIO(bytes(source))
        else:
            handle = source
        try:
            zf = zipfile.ZipFile(handle, "r")
        except (zipfile.BadZipFile, EOFError) as exc:
            raise MalformedArchive(f"Not a zip archive: {exc}") from exc
        except OSError as exc:
            raise MalformedArchive(f"Cannot open archive: {exc}") from exc
        return cls(zf)

    def close(self) -> None:
        self._zf.close()

    def __enter__(self) -> "EpubArchive":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def resolve_name(self, path: str) -> Optional[str]:
        if path in self._names:
            return path
        return self._folded.get(path.casefold())

    def has(self, path: str) -> bool:
        return self.resolve_name(path) is not None

    def read_bytes(self, path: str) -> bytes:
        name = self.resolve_name(path)
        if name is None:
            raise UnreadableSpineItem(path)
        try:
            return self._zf.read(name)
        except (zipfile.BadZipFile, zlib.error, EOFError, NotImplementedError, RuntimeError) as exc:
            raise UnreadableSpineItem(path, str(exc)) from exc

    def read_text(self, path: str) -> str:
        return decode_text(self.read_bytes(path))


@dataclass(frozen=True)
class ManifestItem:
    """One ``<item>`` of the package manifest."""

    id: str
    href: str
    media_type: str = ""
    properties: Tuple[str, ...] = ()

    @property
    def is_nav(self) -> bool:
        return "nav" in self.properties

    @property
    def is_ncx(self) -> bool:
        return self.media_type.lower() == NCX_MEDIA_TYPE


@dataclass
class EpubPackage:
    """Metadata, manifest and spine read from the package document."""

    opf_path: str
    title: str
    author: str
    manifest: Dict[str, ManifestItem] = field(default_factory=dict)
    spine: List[str] = field(default_factory=list)
    toc_id: Optional[str] = None

    @property
    def opf_dir(self) -> str:
        return posixpath.dirname(self.opf_path)

    def resolve(self, href: str) -> str:
        return resolve_path(self.opf_dir, href)

    @property
    def nav_item(self) -> Optional[ManifestItem]:
        for item in self.manifest.values():
            if item.is_nav:
                return item
        return None

    @property
    def ncx_item(self) -> Optional[ManifestItem]:
        if self.toc_id:
            item = self.manifest.get(self.toc_id)
            if item is not None:
                return item
            LOGGER.debug("Spine toc id %r is not in the manifest", self.toc_id)
        for item in self.manifest.values():
            if item.is_ncx:
                return item
        return None


def _metadata_text(value: Any) -> str:
    """Text of a metadata value given as a string, an element or a list."""

    values = as_list(value)
    if not values:
        return ""
    first = values[0]
    if first is None:
        return ""
    if isinstance(first, str):
        text = first
    else:
        text = "".join(first.itertext())
    return " ".join(text.split())


def _read_container(archive: EpubArchive) -> str:
    try:
        data = archive.read_bytes(CONTAINER_PATH)
    except UnreadableSpineItem as exc:
        raise MalformedArchive(f"Invalid EPUB: {CONTAINER_PATH} not found") from exc
    try:
        root = parse_xml(data)
    except etree.XMLSyntaxError as exc:
        raise MalformedArchive(f"Invalid EPUB: {CONTAINER_PATH} is not XML ({exc})") from exc
    rootfiles = as_list(root.findall(".//{*}rootfile"))
    if not rootfiles:
        raise MalformedArchive(f"Invalid EPUB: {CONTAINER_PATH} lists no rootfile")
    full_path = (rootfiles[0].get("full-path") or "").strip()
    if not full_path:
        raise MalformedArchive(f"Invalid EPUB: rootfile in {CONTAINER_PATH} has no full-path")
    return resolve_path("", full_path)


def load_package(
    archive: EpubArchive,
    *,
    default_title: str = "Unknown Title",
    default_author: str = "Unknown Author",
) -> EpubPackage:
    """Locate and read the package document of *archive*."""

    opf_path = _read_container(archive)
    try:
        data = archive.read_bytes(opf_path)
    except UnreadableSpineItem as exc:
        raise MalformedArchive(f"Invalid EPUB: package document {opf_path} not found") from exc
    try:
        root = parse_xml(data, recover=True)
    except etree.XMLSyntaxError as exc:
        raise MalformedArchive(f"Invalid EPUB: package document {opf_path} is not XML") from exc
    if root is None:
        raise MalformedArchive(f"Invalid EPUB: package document {opf_path} is empty")

    metadata = root.find("{*}metadata")
    scope = metadata if metadata is not None else root
    title = _metadata_text(list(scope.iter("{*}title"))) or default_title
    author = _metadata_text(list(scope.iter("{*}creator"))) or default_author

    manifest: Dict[str, ManifestItem] = {}
    manifest_el = root.find("{*}manifest")
    items = as_list(manifest_el.findall("{*}item")) if manifest_el is not None else []
    for element in items:
        item_id = element.get("id")
        href = element.get("href")
        if not item_id or not href:
            continue
        manifest[item_id] = ManifestItem(
            id=item_id,
            href=href,
            media_type=element.get("media-type") or "",
            properties=tuple((element.get("properties") or "").split()),
        )

    spine: List[str] = []
    toc_id = None
    spine_el = root.find("{*}spine")
    if spine_el is not None:
        toc_id = spine_el.get("toc") or None
        for ref in as_list(spine_el.findall("{*}itemref")):
            idref = ref.get("idref")
            if idref:
                spine.append(idref)

    LOGGER.debug(
        "Package %s: %d manifest items, %d spine entries", opf_path, len(manifest), len(spine)
    )
    return EpubPackage(
        opf_path=opf_path,
        title=title,
        author=author,
        manifest=manifest,
        spine=spine,
        toc_id=toc_id,
    )


__all__ = [
    "EpubArchive",
    "EpubPackage",
    "ManifestItem",
    "XML_PARSER_OPTIONS",
    "as_list",
    "decode_text",
    "load_package",
    "parse_xml",
    "resolve_path",
    "split_href",
]
