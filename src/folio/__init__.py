from .config import CustomResources, FilterConfig, load_filter_config
from .decoders import DecryptionError, DrmContext, DrmDecoder, FontDecoder
from .filters import CbzContentFilter, EpubContentFilter, LcpContentFilter, content_filter_for
from .html_inject import inject_fixed_layout_html, inject_reflowable_html
from .parsers import OpenedPublication, open_publication
from .positions import (
    ContainerPdfPageCounter,
    PageCountPositionListFactory,
    PerResourcePositionListFactory,
)
from .publication import Link, Locations, Locator, Metadata, Publication
from .styles import StyleProperty, resolve_style_properties

__all__ = [
    "CustomResources",
    "FilterConfig",
    "load_filter_config",
    "DecryptionError",
    "DrmContext",
    "DrmDecoder",
    "FontDecoder",
    "EpubContentFilter",
    "LcpContentFilter",
    "CbzContentFilter",
    "content_filter_for",
    "inject_reflowable_html",
    "inject_fixed_layout_html",
    "OpenedPublication",
    "open_publication",
    "PerResourcePositionListFactory",
    "PageCountPositionListFactory",
    "ContainerPdfPageCounter",
    "Link",
    "Locations",
    "Locator",
    "Metadata",
    "Publication",
    "StyleProperty",
    "resolve_style_properties",
]
