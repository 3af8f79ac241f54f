from __future__ import annotations

import re
from typing import Sequence

from .config import INJECTABLE_SCRIPT, INJECTABLE_STYLE, CustomResources
from .publication import CONTENT_LAYOUT_LTR, readium_css_path
from .styles import StyleProperty, format_style_properties

__all__ = [
    "BASELINE_SCRIPTS",
    "READER_SCRIPTS",
    "VIEWPORT_META",
    "TextCursor",
    "apply_direction_attribute",
    "html_font_face",
    "html_link",
    "html_script",
    "inject_fixed_layout_html",
    "inject_reflowable_html",
]

VIEWPORT_META = (
    '<meta name="viewport" content="width=device-width, height=device-height, '
    'initial-scale=1.0, maximum-scale=1.0, user-scalable=0" />'
)
BASELINE_SCRIPTS = ("touchHandling.js", "utils.js")
READER_SCRIPTS = BASELINE_SCRIPTS + ("crypto-sha256.js", "highlight.js")

FALLBACK_FONT_FAMILY = "OpenDyslexic"
FALLBACK_FONT_HREF = "/assets/fonts/OpenDyslexic-Regular.otf"
FONT_IMPORT = (
    "<style>@import url('https://fonts.googleapis.com/css?family="
    "PT+Serif|Roboto|Source+Sans+Pro|Vollkorn');</style>\n"
)

_STYLE_ATTR_RE = re.compile(r"""\sstyle\s*=\s*["']""")
_DIR_ATTR_RE = re.compile(r"\sdir\s*=")


class TextCursor:
    """
    Mutable text plus named offsets that follow earlier insertions.

    Inserting at a mark shifts every other mark at or past that offset; the
    mark itself moves past the fragment only when ``advance`` is set, so
    repeated non-advancing inserts stack in reverse order.
    """

    def __init__(self, text: str) -> None:
        self.text = text
        self._marks: dict[str, int] = {}

    def find(self, anchor: str, start: int = 0, end: int | None = None) -> int:
        if end is None:
            return self.text.find(anchor, start)
        return self.text.find(anchor, start, end)

    def mark(self, name: str, offset: int) -> None:
        self._marks[name] = offset

    def offset(self, name: str) -> int:
        return self._marks[name]

    def insert(self, name: str, fragment: str, *, advance: bool = True) -> None:
        index = self._marks[name]
        self.text = self.text[:index] + fragment + self.text[index:]
        size = len(fragment)
        for other, position in self._marks.items():
            if other == name:
                if advance:
                    self._marks[other] = position + size
            elif position >= index:
                self._marks[other] = position + size


def html_link(href: str) -> str:
    return f'<link rel="stylesheet" type="text/css" href="{href}"/>\n'


def html_script(src: str) -> str:
    return f'<script type="text/javascript" src="{src}"></script>\n'


def html_font_face(font_family: str, href: str) -> str:
    return (
        f'<style type="text/css"> @font-face{{font-family: "{font_family}"; '
        f"src:url(\"{href}\") format('truetype');}}</style>\n"
    )


def _head_content_start(text: str, end_head: int) -> int:
    begin = text.find("<head>", 0, end_head)
    if begin != -1:
        return begin + len("<head>")
    # <head> carrying attributes
    search_from = 0
    while True:
        begin = text.find("<head", search_from, end_head)
        if begin == -1:
            return end_head
        after = begin + len("<head")
        if after < len(text) and text[after].isspace():
            close = text.find(">", after, end_head)
            return close + 1 if close != -1 else end_head
        search_from = after


def _custom_resource_includes(custom_resources: CustomResources | None) -> list[str]:
    includes: list[str] = []
    if not custom_resources:
        return includes
    for key, (kind, _) in custom_resources:
        if kind == INJECTABLE_SCRIPT:
            includes.append(html_script(f"/{INJECTABLE_SCRIPT}/{key}"))
        elif kind == INJECTABLE_STYLE:
            includes.append(html_link(f"/{INJECTABLE_STYLE}/{key}"))
    return includes


def _tag_bounds(text: str, tag_name: str) -> tuple[int, int] | None:
    opener = f"<{tag_name}"
    search_from = 0
    while True:
        start = text.find(opener, search_from)
        if start == -1:
            return None
        after = start + len(opener)
        if after < len(text) and (text[after].isspace() or text[after] in ">/"):
            close = text.find(">", after)
            if close == -1:
                return None
            return start, close + 1
        search_from = after


def _inject_style_properties(text: str, style_properties: Sequence[StyleProperty]) -> str:
    bounds = _tag_bounds(text, "html")
    if bounds is None:
        return text
    start, end = bounds
    flattened = format_style_properties(style_properties)
    match = _STYLE_ATTR_RE.search(text, start, end)
    if match is not None:
        index = match.end()
        return text[:index] + f"{flattened} " + text[index:]
    index = start + len("<html")
    return text[:index] + f' style="{flattened}"' + text[index:]


def apply_direction_attribute(html: str, css_style: str) -> str:
    """Add dir="rtl" to <html> and <body> for right-to-left publications."""
    if css_style != "rtl":
        return html
    for tag_name in ("html", "body"):
        bounds = _tag_bounds(html, tag_name)
        if bounds is None:
            continue
        start, end = bounds
        if _DIR_ATTR_RE.search(html, start, end):
            continue
        index = start + len(tag_name) + 1
        html = html[:index] + ' dir="rtl"' + html[index:]
    return html


def inject_reflowable_html(
    html: str,
    *,
    content_layout: str = CONTENT_LAYOUT_LTR,
    css_style: str = CONTENT_LAYOUT_LTR,
    custom_resources: CustomResources | None = None,
    style_properties: Sequence[StyleProperty] = (),
) -> str | None:
    """
    Wire ReadiumCSS, reader scripts, fonts and user styles into a reflowable
    document.

    Returns ``None`` when the document has no ``</head>``; callers then serve
    the original bytes.
    """
    doc = TextCursor(html.strip())
    end_head = doc.find("</head>")
    if end_head == -1:
        return None
    doc.mark("head", _head_content_start(doc.text, end_head))
    doc.mark("end_head", end_head)

    css_base = f"/assets/readium-css/{readium_css_path(content_layout)}"
    begin_includes = [
        VIEWPORT_META,
        html_link(f"{css_base}ReadiumCSS-before.css"),
    ]
    end_includes = [html_link(f"{css_base}ReadiumCSS-after.css")]
    end_includes.extend(html_script(f"/assets/scripts/{name}") for name in READER_SCRIPTS)
    end_includes.extend(_custom_resource_includes(custom_resources))

    for element in begin_includes:
        doc.insert("head", element)
    for element in end_includes:
        doc.insert("end_head", element)
    doc.insert("end_head", html_font_face(FALLBACK_FONT_FAMILY, FALLBACK_FONT_HREF), advance=False)
    doc.insert("end_head", FONT_IMPORT, advance=False)

    text = doc.text
    if style_properties:
        text = _inject_style_properties(text, style_properties)
    return apply_direction_attribute(text, css_style)


def inject_fixed_layout_html(html: str) -> str | None:
    doc = TextCursor(html)
    end_head = doc.find("</head>")
    if end_head == -1:
        return None
    doc.mark("end_head", end_head)
    for name in BASELINE_SCRIPTS:
        doc.insert("end_head", html_script(f"/assets/scripts/{name}"))
    return doc.text
