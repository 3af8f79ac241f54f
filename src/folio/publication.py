from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Sequence
from urllib.parse import unquote

__all__ = [
    "LAYOUT_REFLOWABLE",
    "LAYOUT_FIXED",
    "PROGRESSION_LTR",
    "PROGRESSION_RTL",
    "PROGRESSION_AUTO",
    "CONTENT_LAYOUT_LTR",
    "CONTENT_LAYOUT_RTL",
    "CONTENT_LAYOUT_CJK_VERTICAL",
    "CONTENT_LAYOUT_CJK_HORIZONTAL",
    "Encryption",
    "Link",
    "Locations",
    "Locator",
    "Metadata",
    "Publication",
    "content_layout_for",
    "is_font_media_type",
    "is_html_media_type",
    "normalize_href",
    "readium_css_path",
]

LAYOUT_REFLOWABLE = "reflowable"
LAYOUT_FIXED = "fixed"

PROGRESSION_LTR = "ltr"
PROGRESSION_RTL = "rtl"
PROGRESSION_AUTO = "auto"

CONTENT_LAYOUT_LTR = "ltr"
CONTENT_LAYOUT_RTL = "rtl"
CONTENT_LAYOUT_CJK_VERTICAL = "cjk-vertical"
CONTENT_LAYOUT_CJK_HORIZONTAL = "cjk-horizontal"

_READIUM_CSS_PATHS = {
    CONTENT_LAYOUT_LTR: "",
    CONTENT_LAYOUT_RTL: "rtl/",
    CONTENT_LAYOUT_CJK_VERTICAL: "cjk-vertical/",
    CONTENT_LAYOUT_CJK_HORIZONTAL: "cjk-horizontal/",
}

_CJK_LANGUAGES = {"zh", "ja", "ko"}
_RTL_LANGUAGES = {"ar", "fa", "he"}

_HTML_MEDIA_TYPES = {"text/html", "application/xhtml+xml"}
_FONT_MEDIA_TYPES = {
    "application/vnd.ms-opentype",
    "application/vnd.ms-fontobject",
    "application/x-font-ttf",
    "application/x-font-truetype",
    "application/x-font-otf",
    "application/x-font-woff",
    "application/font-sfnt",
    "application/font-woff",
}


def _base_media_type(media_type: str | None) -> str:
    if not media_type:
        return ""
    return media_type.split(";", 1)[0].strip().lower()


def is_html_media_type(media_type: str | None) -> bool:
    return _base_media_type(media_type) in _HTML_MEDIA_TYPES


def is_font_media_type(media_type: str | None) -> bool:
    base = _base_media_type(media_type)
    return base.startswith("font/") or base in _FONT_MEDIA_TYPES


def normalize_href(href: str) -> str:
    """Strip the leading slash and fragment so hrefs compare by path only."""
    path = href.split("#", 1)[0]
    return unquote(path).lstrip("/")


def content_layout_for(language: str | None, reading_progression: str = PROGRESSION_AUTO) -> str:
    """
    Resolve how text is laid out from the primary language and page progression.

    CJK languages read vertically when pages turn right-to-left; Arabic, Farsi
    and Hebrew are always right-to-left; everything else follows the declared
    progression.
    """
    primary = (language or "").split("-", 1)[0].strip().lower()
    rtl = reading_progression == PROGRESSION_RTL
    if primary in _CJK_LANGUAGES:
        return CONTENT_LAYOUT_CJK_VERTICAL if rtl else CONTENT_LAYOUT_CJK_HORIZONTAL
    if primary in _RTL_LANGUAGES:
        return CONTENT_LAYOUT_RTL
    return CONTENT_LAYOUT_RTL if rtl else CONTENT_LAYOUT_LTR


def readium_css_path(content_layout: str) -> str:
    return _READIUM_CSS_PATHS.get(content_layout, "")


@dataclass(frozen=True)
class Encryption:
    algorithm: str
    scheme: str | None = None
    compression: str | None = None
    original_length: int | None = None


@dataclass(frozen=True)
class Link:
    href: str
    media_type: str | None = None
    layout: str | None = None
    title: str | None = None
    encryption: Encryption | None = None

    @property
    def is_html(self) -> bool:
        return is_html_media_type(self.media_type)

    @property
    def is_font(self) -> bool:
        return is_font_media_type(self.media_type)


@dataclass(frozen=True)
class Locations:
    position: int
    total_progression: float
    progression: float = 0.0
    fragments: tuple[str, ...] = ()

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {}
        if self.fragments:
            payload["fragments"] = list(self.fragments)
        payload["progression"] = self.progression
        payload["totalProgression"] = self.total_progression
        payload["position"] = self.position
        return payload


@dataclass(frozen=True)
class Locator:
    href: str
    type: str
    locations: Locations
    title: str | None = None

    def to_dict(self) -> dict[str, object]:
        payload: dict[str, object] = {"href": self.href, "type": self.type}
        if self.title is not None:
            payload["title"] = self.title
        payload["locations"] = self.locations.to_dict()
        return payload


@dataclass
class Metadata:
    identifier: str | None = None
    title: str | None = None
    languages: list[str] = field(default_factory=list)
    layout: str = LAYOUT_REFLOWABLE
    reading_progression: str = PROGRESSION_AUTO


@dataclass
class Publication:
    metadata: Metadata
    reading_order: list[Link]
    resources: list[Link] = field(default_factory=list)

    def link_with_href(self, href: str) -> Link | None:
        target = normalize_href(href)
        for link in _iter_links(self.reading_order, self.resources):
            if normalize_href(link.href) == target:
                return link
        return None

    @property
    def content_layout(self) -> str:
        language = self.metadata.languages[0] if self.metadata.languages else None
        return content_layout_for(language, self.metadata.reading_progression)

    @property
    def css_style(self) -> str:
        return self.content_layout


def _iter_links(*groups: Sequence[Link]) -> Iterable[Link]:
    for group in groups:
        yield from group
