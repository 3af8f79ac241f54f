from __future__ import annotations

import io
from dataclasses import dataclass, field
from typing import BinaryIO, Protocol

from .config import FilterConfig
from .decoders import DrmContext, DrmDecoder, FontDecoder
from .html_inject import inject_fixed_layout_html, inject_reflowable_html
from .logging_utils import debug_log
from .publication import LAYOUT_REFLOWABLE, Link, Publication
from .styles import resolve_style_properties

__all__ = [
    "CONTAINER_KINDS",
    "CbzContentFilter",
    "ContentFilter",
    "EpubContentFilter",
    "LcpContentFilter",
    "content_filter_for",
    "uses_reflowable_layout",
]

CONTAINER_KINDS = ("epub", "lcpdf", "cbz", "pdf")


class DrmCarrier(Protocol):
    drm: DrmContext | None


class ContentFilter(Protocol):
    kind: str

    def apply(
        self,
        stream: BinaryIO,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> BinaryIO: ...

    def apply_bytes(
        self,
        data: bytes,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> bytes: ...


def uses_reflowable_layout(publication: Publication, link: Link) -> bool:
    if link.layout == LAYOUT_REFLOWABLE:
        return True
    return publication.metadata.layout == LAYOUT_REFLOWABLE and link.layout is None


def _read_all(stream: BinaryIO) -> bytes:
    data = stream.read()
    return data if isinstance(data, bytes) else bytes(data)


@dataclass(frozen=True)
class EpubContentFilter:
    config: FilterConfig = field(default_factory=FilterConfig)
    kind: str = "epub"

    def apply(
        self,
        stream: BinaryIO,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> BinaryIO:
        link = publication.link_with_href(path)
        if link is None:
            return stream
        decoded = DrmDecoder().decoding(stream, link, container.drm)
        decoded = FontDecoder().decoding(decoded, publication, link)
        if not link.is_html:
            return decoded
        return io.BytesIO(self._augment_html(_read_all(decoded), publication, link))

    def apply_bytes(
        self,
        data: bytes,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> bytes:
        return _read_all(self.apply(io.BytesIO(data), publication, container, path))

    def _augment_html(self, data: bytes, publication: Publication, link: Link) -> bytes:
        try:
            html = data.decode("utf-8")
        except UnicodeDecodeError:
            debug_log(f"Serving {link.href} unmodified: not UTF-8")
            return data
        if uses_reflowable_layout(publication, link):
            augmented = inject_reflowable_html(
                html,
                content_layout=publication.content_layout,
                css_style=publication.css_style,
                custom_resources=self.config.custom_resources,
                style_properties=resolve_style_properties(
                    self.config.user_properties_path,
                    self.config.presets,
                ),
            )
        else:
            augmented = inject_fixed_layout_html(html)
        if augmented is None:
            debug_log(f"Serving {link.href} unmodified: no </head> anchor")
            return data
        return augmented.encode("utf-8")


@dataclass(frozen=True)
class LcpContentFilter:
    """Decrypt-only filter for LCP protected packages other than EPUB."""

    kind: str = "lcpdf"

    def apply(
        self,
        stream: BinaryIO,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> BinaryIO:
        link = publication.link_with_href(path)
        if link is None:
            return stream
        return DrmDecoder().decoding(stream, link, container.drm)

    def apply_bytes(
        self,
        data: bytes,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> bytes:
        return _read_all(self.apply(io.BytesIO(data), publication, container, path))


@dataclass(frozen=True)
class CbzContentFilter:
    kind: str = "cbz"

    def apply(
        self,
        stream: BinaryIO,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> BinaryIO:
        return stream

    def apply_bytes(
        self,
        data: bytes,
        publication: Publication,
        container: DrmCarrier,
        path: str,
    ) -> bytes:
        return data


def content_filter_for(kind: str, config: FilterConfig | None = None) -> ContentFilter:
    normalized = kind.strip().lower()
    if normalized == "epub":
        return EpubContentFilter(config=config or FilterConfig())
    if normalized in {"lcpdf", "pdf"}:
        return LcpContentFilter(kind=normalized)
    if normalized == "cbz":
        return CbzContentFilter()
    raise ValueError(f"Unsupported container kind: {kind!r} (expected one of {', '.join(CONTAINER_KINDS)})")
