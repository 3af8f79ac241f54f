from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import fitz  # PyMuPDF

from .decoders import DrmContext, DrmDecoder
from .logging_utils import debug_log
from .publication import Link, Locations, Locator

__all__ = [
    "ContainerPdfPageCounter",
    "PageCountPositionListFactory",
    "PageCountProvider",
    "PerResourcePositionListFactory",
]

PageCountProvider = Callable[[Link], int]


@dataclass(frozen=True)
class PerResourcePositionListFactory:
    """One position per reading-order resource, e.g. the pages of a comic archive."""

    reading_order: Sequence[Link]
    fallback_media_type: str = ""

    def create(self) -> list[Locator]:
        page_count = len(self.reading_order)
        return [
            Locator(
                href=link.href,
                type=link.media_type or self.fallback_media_type,
                title=link.title,
                locations=Locations(
                    position=index,
                    progression=0.0,
                    total_progression=(index - 1) / page_count,
                ),
            )
            for index, link in enumerate(self.reading_order, start=1)
        ]


@dataclass(frozen=True)
class PageCountPositionListFactory:
    """
    Positions for paginated resources (PDF inside a package), one per page.

    ``page_count`` is queried once per reading-order link. Failures count as
    zero pages: the resource gets no positions and consumes none.
    """

    reading_order: Sequence[Link]
    page_count: PageCountProvider
    fallback_media_type: str = "application/pdf"

    def create(self) -> list[Locator]:
        resources = [(self._safe_page_count(link), link) for link in self.reading_order]
        total_page_count = sum(count for count, _ in resources)
        if total_page_count <= 0:
            return []

        locators: list[Locator] = []
        start_position = 0
        for page_count, link in resources:
            locators.extend(
                self._positions_of(
                    link,
                    page_count=page_count,
                    total_page_count=total_page_count,
                    start_position=start_position,
                )
            )
            start_position += page_count
        return locators

    def _safe_page_count(self, link: Link) -> int:
        try:
            count = int(self.page_count(link))
        except Exception as exc:
            debug_log(f"Page count failed for {link.href}: {exc}")
            return 0
        return max(count, 0)

    def _positions_of(
        self,
        link: Link,
        *,
        page_count: int,
        total_page_count: int,
        start_position: int,
    ) -> list[Locator]:
        if page_count <= 0 or total_page_count <= 0:
            return []
        return [
            Locator(
                href=link.href,
                type=link.media_type or self.fallback_media_type,
                locations=Locations(
                    fragments=(f"page={page}",),
                    progression=(page - 1) / page_count,
                    total_progression=(start_position + page - 1) / total_page_count,
                    position=start_position + page,
                ),
            )
            for page in range(1, page_count + 1)
        ]


class ContainerPdfPageCounter:
    """Page-count provider that opens each (possibly encrypted) PDF from its container."""

    def __init__(self, container, decoder: DrmDecoder | None = None) -> None:
        self.container = container
        self.decoder = decoder or DrmDecoder()

    def __call__(self, link: Link) -> int:
        drm: DrmContext | None = getattr(self.container, "drm", None)
        try:
            stream = self.decoder.decoding(self.container.open(link.href), link, drm)
            with fitz.open(stream=stream.read(), filetype="pdf") as document:
                return document.page_count
        except Exception as exc:
            debug_log(f"Cannot open PDF {link.href}: {exc}")
            return 0
