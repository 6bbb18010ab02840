from __future__ import annotations

import io
from typing import Dict, Iterable, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape
import zipfile

import pytest

CONTAINER_XML = """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="{opf_path}" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

NcxEntry = Tuple[str, str, list]


def xhtml_page(body: str, title: str = "Page") -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<html xmlns="http://www.w3.org/1999/xhtml">\n'
        f"<head><title>{escape(title)}</title>"
        "<style>p { margin: 0; }</style></head>\n"
        f"<body>{body}</body>\n</html>\n"
    )


def nav_page(entries: Iterable[Tuple[str, str]]) -> str:
    items = "".join(
        f'<li><a href="{escape(href)}">{escape(title)}</a></li>' for title, href in entries
    )
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">\n'
        "<head><title>Navigation</title></head>\n"
        f'<body><nav epub:type="toc" id="toc"><ol>{items}</ol></nav></body>\n</html>\n'
    )


def _nav_points(entries: Sequence[NcxEntry], counter: List[int]) -> str:
    parts = []
    for title, src, children in entries:
        counter[0] += 1
        parts.append(
            f'<navPoint id="np{counter[0]}" playOrder="{counter[0]}">'
            f"<navLabel><text>{escape(title)}</text></navLabel>"
            f'<content src="{escape(src)}"/>'
            f"{_nav_points(children, counter)}</navPoint>"
        )
    return "".join(parts)


def ncx_document(entries: Sequence[NcxEntry]) -> str:
    return (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<ncx xmlns="http://www.daisy.org/z3986/2005/ncx/" version="2005-1">\n'
        "<head/><docTitle><text>Book</text></docTitle>\n"
        f"<navMap>{_nav_points(entries, [0])}</navMap>\n</ncx>\n"
    )


def build_epub(
    documents: Sequence[Tuple[str, str, str]],
    *,
    title: Optional[str] = "Sample Book",
    author: Optional[str] = "Test Author",
    nav: Optional[str] = None,
    nav_href: str = "nav.xhtml",
    ncx: Optional[str] = None,
    spine: Optional[Sequence[str]] = None,
    opf_dir: str = "OEBPS",
    container: Optional[str] = None,
    include_opf: bool = True,
    skip_files: Iterable[str] = (),
    extra_files: Optional[Dict[str, bytes]] = None,
) -> bytes:
    """Assemble an EPUB in memory from ``(id, href, html)`` documents."""

    opf_path = f"{opf_dir}/content.opf" if opf_dir else "content.opf"
    prefix = f"{opf_dir}/" if opf_dir else ""
    skipped = set(skip_files)

    manifest = []
    for item_id, href, _html in documents:
        manifest.append(
            f'<item id="{item_id}" href="{escape(href)}" media-type="application/xhtml+xml"/>'
        )
    if nav is not None:
        manifest.append(
            f'<item id="nav" href="{escape(nav_href)}" media-type="application/xhtml+xml"'
            ' properties="nav"/>'
        )
    if ncx is not None:
        manifest.append('<item id="ncx" href="toc.ncx" media-type="application/x-dtbncx+xml"/>')

    spine_ids = list(spine) if spine is not None else [item_id for item_id, _h, _c in documents]
    itemrefs = "".join(f'<itemref idref="{item_id}"/>' for item_id in spine_ids)
    toc_attr = ' toc="ncx"' if ncx is not None else ""

    metadata = []
    if title is not None:
        metadata.append(f"<dc:title>{escape(title)}</dc:title>")
    if author is not None:
        metadata.append(f"<dc:creator>{escape(author)}</dc:creator>")

    opf = (
        '<?xml version="1.0" encoding="utf-8"?>\n'
        '<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="id">\n'
        '<metadata xmlns:dc="http://purl.org/dc/elements/1.1/">'
        f'<dc:identifier id="id">test-book</dc:identifier>{"".join(metadata)}</metadata>\n'
        f"<manifest>{''.join(manifest)}</manifest>\n"
        f"<spine{toc_attr}>{itemrefs}</spine>\n"
        "</package>\n"
    )

    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("mimetype", "application/epub+zip")
        if container is None:
            zf.writestr("META-INF/container.xml", CONTAINER_XML.format(opf_path=opf_path))
        elif container:
            zf.writestr("META-INF/container.xml", container)
        if include_opf:
            zf.writestr(opf_path, opf)
        if nav is not None:
            zf.writestr(prefix + nav_href, nav)
        if ncx is not None:
            zf.writestr(prefix + "toc.ncx", ncx)
        for _item_id, href, html in documents:
            if href in skipped:
                continue
            zf.writestr(prefix + href, html)
        for name, data in (extra_files or {}).items():
            zf.writestr(name, data)
    return buffer.getvalue()


@pytest.fixture
def make_epub():
    return build_epub


@pytest.fixture
def page():
    return xhtml_page


@pytest.fixture
def make_nav():
    return nav_page


@pytest.fixture
def make_ncx():
    return ncx_document
