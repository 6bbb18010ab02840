"""Table-of-contents driven chapter extraction (EPUB3 nav and EPUB2 NCX)."""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
import posixpath
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from lxml import etree
from lxml import html as lxml_html

from . import Chapter
from ..errors import MissingNavigationSource, UnreadableSpineItem
from ..text.clean import ContentCleaner, collapse_whitespace
from .archive import EpubArchive, EpubPackage, as_list, parse_xml, resolve_path, split_href

LOGGER = logging.getLogger(__name__)

UNTITLED_LABEL = "Untitled Chapter"


@dataclass
class NavNode:
    """A table-of-contents entry pointing into the archive."""

    title: str
    path: str
    anchor: Optional[str] = None
    children: List["NavNode"] = field(default_factory=list)
    # Set when the entry had no label of its own and got the generic one.
    untitled: bool = False


def walk(nodes: Iterable[NavNode]) -> Iterator[NavNode]:
    """Yield *nodes* and all their descendants in document order."""

    stack = list(reversed(list(nodes)))
    while stack:
        node = stack.pop()
        yield node
        stack.extend(reversed(node.children))


def _local_name(name: str) -> str:
    return name.rsplit("}", 1)[-1].rsplit(":", 1)[-1].lower()


def _is_toc_nav(element: etree._Element) -> bool:
    for key, value in element.attrib.items():
        name = _local_name(key)
        tokens = (value or "").lower().split()
        if name == "type" and "toc" in tokens:
            return True
        if name == "role" and "doc-toc" in tokens:
            return True
    return False


def _element_text(element: Optional[etree._Element]) -> str:
    if element is None:
        return ""
    return collapse_whitespace("".join(element.itertext()))


def _target_path(archive: EpubArchive, bases: Sequence[str], href_path: str) -> str:
    """Resolve *href_path* against each of *bases*, preferring an existing entry."""

    if "://" in href_path:
        return ""
    candidates = [resolve_path(base, href_path) for base in bases]
    for candidate in candidates:
        if candidate and archive.has(candidate):
            return candidate
    return candidates[0] if candidates else ""


def _bases_for(document_path: str, package: EpubPackage) -> Tuple[str, ...]:
    document_dir = posixpath.dirname(document_path)
    if document_dir == package.opf_dir:
        return (document_dir,)
    return (document_dir, package.opf_dir)


def _find_toc_nav(data: bytes) -> Optional[etree._Element]:
    roots = []
    try:
        root = parse_xml(data, recover=True)
    except etree.XMLSyntaxError:
        root = None
    if root is not None:
        roots.append(root)
    if not roots or not list(roots[0].iter("{*}nav")):
        # Not well-formed enough for XML; retry as HTML.
        try:
            roots.append(lxml_html.fromstring(data))
        except (etree.ParserError, etree.XMLSyntaxError, ValueError):
            LOGGER.debug("Navigation document could not be parsed as HTML either")
    for root in roots:
        navs = as_list(list(root.iter("{*}nav")))
        if not navs:
            continue
        for nav in navs:
            if _is_toc_nav(nav):
                return nav
        return navs[0]
    return None


def read_nav_nodes(
    archive: EpubArchive, package: EpubPackage, *, untitled_label: str = UNTITLED_LABEL
) -> List[NavNode]:
    """Entries of the EPUB3 navigation document, in document order."""

    item = package.nav_item
    if item is None:
        raise MissingNavigationSource("Package declares no EPUB3 navigation document")
    nav_path = package.resolve(item.href)
    try:
        data = archive.read_bytes(nav_path)
    except UnreadableSpineItem as exc:
        LOGGER.warning("Navigation document unreadable: %s", exc)
        return []

    nav = _find_toc_nav(data)
    if nav is None:
        LOGGER.debug("No <nav> element in %s", nav_path)
        return []

    bases = _bases_for(nav_path, package)
    nodes: List[NavNode] = []
    for li in nav.iter("{*}li"):
        anchor_el = li.find("{*}a")
        label_el = anchor_el if anchor_el is not None else li.find("{*}span")
        label = _element_text(label_el)
        href = anchor_el.get("href") if anchor_el is not None else None
        if not href:
            continue
        href_path, anchor = split_href(href)
        path = _target_path(archive, bases, href_path) if href_path else nav_path
        nodes.append(
            NavNode(
                title=label or untitled_label, path=path, anchor=anchor, untitled=not label
            )
        )
    return nodes


def _build_ncx_tree(
    nav_map: etree._Element,
    archive: EpubArchive,
    bases: Sequence[str],
    untitled_label: str,
) -> List[NavNode]:
    roots: List[NavNode] = []
    stack: List[Tuple[etree._Element, List[NavNode]]] = [(nav_map, roots)]
    while stack:
        element, siblings = stack.pop()
        for point in element.findall("{*}navPoint"):
            label = _element_text(point.find("{*}navLabel/{*}text"))
            content = point.find("{*}content")
            src = (content.get("src") or "") if content is not None else ""
            href_path, anchor = split_href(src)
            path = _target_path(archive, bases, href_path) if href_path else ""
            node = NavNode(
                title=label or untitled_label, path=path, anchor=anchor, untitled=not label
            )
            siblings.append(node)
            stack.append((point, node.children))
    return roots


def read_ncx_nodes(
    archive: EpubArchive, package: EpubPackage, *, untitled_label: str = UNTITLED_LABEL
) -> List[NavNode]:
    """navPoint tree of the EPUB2 NCX referenced by the spine."""

    item = package.ncx_item
    if item is None:
        raise MissingNavigationSource("Package declares no NCX table of contents")
    ncx_path = package.resolve(item.href)
    try:
        data = archive.read_bytes(ncx_path)
    except UnreadableSpineItem as exc:
        LOGGER.warning("NCX unreadable: %s", exc)
        return []
    try:
        root = parse_xml(data, recover=True)
    except etree.XMLSyntaxError as exc:
        LOGGER.debug("NCX %s is not XML: %s", ncx_path, exc)
        return []
    if root is None:
        return []
    nav_map = root.find(".//{*}navMap")
    if nav_map is None:
        LOGGER.debug("NCX %s has no navMap", ncx_path)
        return []
    return _build_ncx_tree(nav_map, archive, _bases_for(ncx_path, package), untitled_label)


def chapters_from_nodes(
    nodes: Iterable[NavNode],
    archive: EpubArchive,
    cleaner: ContentCleaner,
    *,
    min_chars: int = 20,
) -> List[Chapter]:
    """Turn table-of-contents entries into cleaned chapters.

    Entries with a denied title, an unreadable target or too little text
    are skipped; the children of a skipped entry are still visited. The
    generic label given to unlabelled entries is never checked against the
    denylist.
    """

    flat = list(walk(nodes))
    anchors_by_path: Dict[str, List[str]] = {}
    for node in flat:
        if node.path and node.anchor:
            anchors_by_path.setdefault(node.path, []).append(node.anchor)

    documents: Dict[str, Optional[str]] = {}
    chapters: List[Chapter] = []
    for node in flat:
        if not node.path:
            continue
        if not node.untitled and cleaner.is_denied_title(node.title):
            LOGGER.debug("Skipping front matter entry: %s", node.title)
            continue
        if node.path not in documents:
            try:
                documents[node.path] = archive.read_text(node.path)
            except UnreadableSpineItem as exc:
                LOGGER.warning("Skipping unreadable chapter %r: %s", node.title, exc)
                documents[node.path] = None
        html = documents[node.path]
        if html is None:
            continue
        text = cleaner.clean_chapter(
            node.title, html, node.anchor, anchors_by_path.get(node.path, ())
        )
        if len(text) <= min_chars:
            LOGGER.debug("Skipping short entry %r (%d chars)", node.title, len(text))
            continue
        chapters.append(Chapter(index=len(chapters), title=node.title, text=text))
    return chapters


__all__ = [
    "NavNode",
    "UNTITLED_LABEL",
    "chapters_from_nodes",
    "read_nav_nodes",
    "read_ncx_nodes",
    "walk",
]
