from __future__ import annotations

import json
import mimetypes
import posixpath
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Mapping

from bs4 import BeautifulSoup

from .config import FilterConfig
from .containers import ContainerError, ZipContainer
from .decoders import LCP_SCHEME, DrmContext
from .filters import ContentFilter, content_filter_for
from .positions import (
    ContainerPdfPageCounter,
    PageCountPositionListFactory,
    PerResourcePositionListFactory,
)
from .publication import (
    LAYOUT_FIXED,
    LAYOUT_REFLOWABLE,
    PROGRESSION_AUTO,
    PROGRESSION_LTR,
    PROGRESSION_RTL,
    Encryption,
    Link,
    Locator,
    Metadata,
    Publication,
)

__all__ = [
    "OpenedPublication",
    "open_publication",
    "parse_cbz",
    "parse_epub",
    "parse_readium_package",
]

CONTAINER_XML = "META-INF/container.xml"
ENCRYPTION_XML = "META-INF/encryption.xml"
READIUM_MANIFEST = "manifest.json"
LCP_LICENSE = "license.lcpl"

IMAGE_EXTS = (".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".avif")
NCX_MEDIA_TYPE = "application/x-dtbncx+xml"
_DEFLATE_METHOD = "8"


@dataclass(slots=True)
class OpenedPublication:
    publication: Publication
    container: ZipContainer
    kind: str

    def content_filter(self, config: FilterConfig | None = None) -> ContentFilter:
        return content_filter_for(self.kind, config)

    def read_resource(self, href: str, config: FilterConfig | None = None) -> bytes:
        stream: BinaryIO = self.container.open(href)
        return self.content_filter(config).apply(stream, self.publication, self.container, href).read()

    def positions(self) -> list[Locator]:
        reading_order = self.publication.reading_order
        if self.kind in {"lcpdf", "pdf"}:
            return PageCountPositionListFactory(
                reading_order=reading_order,
                page_count=ContainerPdfPageCounter(self.container),
            ).create()
        fallback = "image/*" if self.kind == "cbz" else ""
        return PerResourcePositionListFactory(
            reading_order=reading_order,
            fallback_media_type=fallback,
        ).create()


def _strip_tag(tag: str) -> str:
    return tag.split("}", 1)[-1] if "}" in tag else tag


def _get_attr(elem: ET.Element, name: str) -> str | None:
    for attr, value in elem.attrib.items():
        if _strip_tag(attr) == name:
            return value
    return None


def _iter_local(root: ET.Element, name: str):
    for elem in root.iter():
        if _strip_tag(elem.tag) == name:
            yield elem


def _resolve_relative_path(base_file: str, href: str) -> str:
    base = posixpath.dirname(base_file)
    combined = posixpath.join(base, href) if base else href
    return posixpath.normpath(combined)


def _split_href_fragment(href: str) -> tuple[str, str | None]:
    if "#" in href:
        base, frag = href.split("#", 1)
        return base, frag
    return href, None


def _find_opf_path(container: ZipContainer) -> str:
    # META-INF/container.xml -> rootfiles/rootfile@full-path
    if container.exists(CONTAINER_XML):
        try:
            root = ET.fromstring(container.read_text(CONTAINER_XML))
        except ET.ParseError:
            root = None
        if root is not None:
            for rootfile in _iter_local(root, "rootfile"):
                full = rootfile.attrib.get("full-path")
                if full:
                    return full
    for name in container.namelist():
        if name.lower().endswith(".opf"):
            return name
    raise ContainerError("OPF file not found in EPUB")


def _parse_encryption(container: ZipContainer) -> dict[str, Encryption]:
    if not container.exists(ENCRYPTION_XML):
        return {}
    try:
        root = ET.fromstring(container.read_text(ENCRYPTION_XML))
    except ET.ParseError:
        return {}
    encrypted: dict[str, Encryption] = {}
    for data in _iter_local(root, "EncryptedData"):
        algorithm = None
        uri = None
        scheme = None
        compression = None
        original_length = None
        for elem in data.iter():
            name = _strip_tag(elem.tag)
            if name == "EncryptionMethod":
                algorithm = _get_attr(elem, "Algorithm")
            elif name == "CipherReference":
                uri = _get_attr(elem, "URI")
            elif name == "RetrievalMethod":
                retrieval = _get_attr(elem, "URI") or ""
                if retrieval.startswith(f"{LCP_LICENSE}#"):
                    scheme = LCP_SCHEME
            elif name == "Compression":
                if _get_attr(elem, "Method") == _DEFLATE_METHOD:
                    compression = "deflate"
                length = _get_attr(elem, "OriginalLength")
                if length and length.isdigit():
                    original_length = int(length)
        if not algorithm or not uri:
            continue
        encrypted[posixpath.normpath(uri.lstrip("/"))] = Encryption(
            algorithm=algorithm,
            scheme=scheme,
            compression=compression,
            original_length=original_length,
        )
    return encrypted


def _parse_nav_document(html: str) -> list[tuple[str, str]]:
    soup = BeautifulSoup(html, "html.parser")
    nav_tags = []
    for nav in soup.find_all("nav"):
        nav_type = (nav.get("epub:type") or "").lower()
        role = (nav.get("role") or "").lower()
        if "toc" in nav_type or role == "doc-toc":
            nav_tags.append(nav)
    if not nav_tags:
        nav_tags = soup.find_all("nav")
    entries: list[tuple[str, str]] = []
    for nav in nav_tags:
        for anchor in nav.find_all("a"):
            href = anchor.get("href")
            if not href:
                continue
            entries.append((href, anchor.get_text(strip=True)))
    return entries


def _parse_ncx_document(xml_text: str) -> list[tuple[str, str]]:
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError:
        return []
    entries: list[tuple[str, str]] = []
    for nav_point in _iter_local(root, "navPoint"):
        href = None
        text = ""
        for child in nav_point:
            name = _strip_tag(child.tag)
            if name == "content":
                href = child.attrib.get("src")
            elif name == "navLabel":
                text = "".join(child.itertext()).strip()
        if href:
            entries.append((href, text))
    return entries


def _toc_titles(container: ZipContainer, nav_path: str | None, ncx_path: str | None) -> dict[str, str]:
    entries: list[tuple[str, str]] = []
    base = None
    if nav_path and container.exists(nav_path):
        entries = _parse_nav_document(container.read_text(nav_path))
        base = nav_path
    if not entries and ncx_path and container.exists(ncx_path):
        entries = _parse_ncx_document(container.read_text(ncx_path))
        base = ncx_path
    titles: dict[str, str] = {}
    if base is None:
        return titles
    for href, title in entries:
        path, _ = _split_href_fragment(href)
        if not title or not path:
            continue
        titles.setdefault(_resolve_relative_path(base, path), title)
    return titles


def _layout_from_properties(properties: str | None) -> str | None:
    tokens = (properties or "").split()
    if "rendition:layout-pre-paginated" in tokens:
        return LAYOUT_FIXED
    if "rendition:layout-reflowable" in tokens:
        return LAYOUT_REFLOWABLE
    return None


def parse_epub(container: ZipContainer) -> Publication:
    opf_path = _find_opf_path(container)
    try:
        root = ET.fromstring(container.read_text(opf_path))
    except ET.ParseError as exc:
        raise ContainerError(f"Malformed package document: {opf_path}") from exc
    encrypted = _parse_encryption(container)

    unique_id = root.attrib.get("unique-identifier")
    identifier = None
    title = None
    languages: list[str] = []
    layout = LAYOUT_REFLOWABLE
    for elem in root.iter():
        name = _strip_tag(elem.tag)
        text = (elem.text or "").strip()
        if name == "identifier" and text:
            if identifier is None or (unique_id and elem.attrib.get("id") == unique_id):
                identifier = text
        elif name == "title" and text and title is None:
            title = text
        elif name == "language" and text:
            languages.append(text)
        elif name == "meta" and elem.attrib.get("property") == "rendition:layout":
            if text == "pre-paginated":
                layout = LAYOUT_FIXED

    manifest: dict[str, Link] = {}
    nav_path = None
    for item in _iter_local(root, "item"):
        item_id = item.attrib.get("id")
        href = item.attrib.get("href")
        if not item_id or not href:
            continue
        path = _resolve_relative_path(opf_path, href)
        properties = item.attrib.get("properties") or ""
        if "nav" in properties.split():
            nav_path = path
        manifest[item_id] = Link(
            href=path,
            media_type=item.attrib.get("media-type"),
            layout=_layout_from_properties(properties),
            encryption=encrypted.get(path),
        )

    reading_progression = PROGRESSION_AUTO
    ncx_path = None
    spine_ids: list[tuple[str, str | None]] = []
    for spine in _iter_local(root, "spine"):
        direction = (spine.attrib.get("page-progression-direction") or "").lower()
        if direction in {PROGRESSION_LTR, PROGRESSION_RTL}:
            reading_progression = direction
        toc_id = spine.attrib.get("toc")
        if toc_id and toc_id in manifest:
            ncx_path = manifest[toc_id].href
        for itemref in spine:
            if _strip_tag(itemref.tag) != "itemref":
                continue
            idref = itemref.attrib.get("idref")
            if idref in manifest:
                spine_ids.append((idref, itemref.attrib.get("properties")))
        break
    if ncx_path is None:
        for link in manifest.values():
            if (link.media_type or "").lower() == NCX_MEDIA_TYPE:
                ncx_path = link.href
                break

    titles = _toc_titles(container, nav_path, ncx_path)
    reading_order: list[Link] = []
    in_spine: set[str] = set()
    for idref, properties in spine_ids:
        link = manifest[idref]
        layout_override = _layout_from_properties(properties) or link.layout
        reading_order.append(
            Link(
                href=link.href,
                media_type=link.media_type,
                layout=layout_override,
                title=titles.get(link.href),
                encryption=link.encryption,
            )
        )
        in_spine.add(idref)
    resources = [link for item_id, link in manifest.items() if item_id not in in_spine]

    return Publication(
        metadata=Metadata(
            identifier=identifier,
            title=title,
            languages=languages,
            layout=layout,
            reading_progression=reading_progression,
        ),
        reading_order=reading_order,
        resources=resources,
    )


def parse_cbz(container: ZipContainer) -> Publication:
    images = sorted(
        (name for name in container.namelist() if name.lower().endswith(IMAGE_EXTS)),
        key=lambda name: name.casefold(),
    )
    reading_order = [
        Link(href=name, media_type=mimetypes.guess_type(name)[0], layout=LAYOUT_FIXED)
        for name in images
    ]
    return Publication(
        metadata=Metadata(title=container.path.stem, layout=LAYOUT_FIXED),
        reading_order=reading_order,
    )


def _encryption_from_properties(properties: object) -> Encryption | None:
    if not isinstance(properties, Mapping):
        return None
    encrypted = properties.get("encrypted")
    if not isinstance(encrypted, Mapping):
        return None
    algorithm = encrypted.get("algorithm")
    if not isinstance(algorithm, str):
        return None
    scheme = encrypted.get("scheme")
    compression = encrypted.get("compression")
    original_length = encrypted.get("originalLength")
    return Encryption(
        algorithm=algorithm,
        scheme=scheme if isinstance(scheme, str) else None,
        compression=compression if isinstance(compression, str) else None,
        original_length=original_length if isinstance(original_length, int) else None,
    )


def _links_from_manifest(entries: object) -> list[Link]:
    links: list[Link] = []
    if not isinstance(entries, list):
        return links
    for entry in entries:
        if not isinstance(entry, Mapping):
            continue
        href = entry.get("href")
        if not isinstance(href, str) or not href:
            continue
        media_type = entry.get("type")
        title = entry.get("title")
        links.append(
            Link(
                href=href.lstrip("/"),
                media_type=media_type if isinstance(media_type, str) else None,
                title=title if isinstance(title, str) else None,
                encryption=_encryption_from_properties(entry.get("properties")),
            )
        )
    return links


def parse_readium_package(container: ZipContainer) -> Publication:
    try:
        raw = json.loads(container.read_text(READIUM_MANIFEST))
    except json.JSONDecodeError as exc:
        raise ContainerError(f"Malformed {READIUM_MANIFEST} in {container.path.name}") from exc
    if not isinstance(raw, dict):
        raise ContainerError(f"{READIUM_MANIFEST} must contain a JSON object.")
    metadata_payload = raw.get("metadata")
    if not isinstance(metadata_payload, dict):
        metadata_payload = {}
    language = metadata_payload.get("language")
    if isinstance(language, str):
        languages = [language]
    elif isinstance(language, list):
        languages = [value for value in language if isinstance(value, str)]
    else:
        languages = []
    progression = metadata_payload.get("readingProgression")
    if progression not in {PROGRESSION_LTR, PROGRESSION_RTL}:
        progression = PROGRESSION_AUTO
    identifier = metadata_payload.get("identifier")
    title = metadata_payload.get("title")
    return Publication(
        metadata=Metadata(
            identifier=identifier if isinstance(identifier, str) else None,
            title=title if isinstance(title, str) else None,
            languages=languages,
            layout=LAYOUT_FIXED,
            reading_progression=progression,
        ),
        reading_order=_links_from_manifest(raw.get("readingOrder")),
        resources=_links_from_manifest(raw.get("resources")),
    )


def _detect_kind(path: Path) -> str:
    archive = ZipContainer(path, kind="unknown")
    if archive.exists(CONTAINER_XML) or path.suffix.lower() == ".epub":
        return "epub"
    if archive.exists(READIUM_MANIFEST):
        return "lcpdf" if archive.exists(LCP_LICENSE) or path.suffix.lower() == ".lcpdf" else "pdf"
    if any(name.lower().endswith(IMAGE_EXTS) for name in archive.namelist()):
        return "cbz"
    raise ContainerError(f"Unrecognized publication format: {path}")


def open_publication(path: Path, *, drm: DrmContext | None = None) -> OpenedPublication:
    path = Path(path).expanduser()
    if not path.is_file():
        raise ContainerError(f"Publication not found: {path}")
    kind = _detect_kind(path)
    container = ZipContainer(path, kind=kind, drm=drm)
    if kind == "epub":
        publication = parse_epub(container)
    elif kind == "cbz":
        publication = parse_cbz(container)
    else:
        publication = parse_readium_package(container)
    return OpenedPublication(publication=publication, container=container, kind=kind)
