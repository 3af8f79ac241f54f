from __future__ import annotations

import zipfile
from pathlib import Path

import pytest

from folio.config import FilterConfig
from folio.containers import ContainerError, ZipContainer
from folio.decoders import IDPF_OBFUSCATION
from folio.parsers import open_publication, parse_cbz, parse_epub
from folio.publication import LAYOUT_FIXED, LAYOUT_REFLOWABLE, Encryption

FONT_BYTES = bytes(range(256)) * 8


def test_parse_epub_reading_order_and_metadata(sample_epub: Path) -> None:
    publication = parse_epub(ZipContainer(sample_epub, kind="epub"))
    meta = publication.metadata

    assert meta.identifier == "urn:uuid:12345678-1234-1234-1234-123456789abc"
    assert meta.title == "Sample Book"
    assert meta.languages == ["en"]
    assert meta.layout == LAYOUT_REFLOWABLE
    assert meta.reading_progression == "rtl"
    assert publication.content_layout == "rtl"

    assert [link.href for link in publication.reading_order] == [
        "OEBPS/text/ch1.xhtml",
        "OEBPS/text/ch2.xhtml",
    ]
    assert [link.title for link in publication.reading_order] == ["Chapter One", "Chapter Two"]
    assert [link.layout for link in publication.reading_order] == [None, LAYOUT_FIXED]
    assert {link.href for link in publication.resources} == {
        "OEBPS/nav.xhtml",
        "OEBPS/fonts/body.otf",
        "OEBPS/styles/book.css",
    }


def test_parse_epub_reads_encryption(sample_epub: Path) -> None:
    publication = parse_epub(ZipContainer(sample_epub, kind="epub"))
    font = publication.link_with_href("/OEBPS/fonts/body.otf")
    assert font is not None
    assert font.encryption == Encryption(algorithm=IDPF_OBFUSCATION)
    css = publication.link_with_href("OEBPS/styles/book.css")
    assert css is not None and css.encryption is None


def test_open_epub_serves_filtered_resources(sample_epub: Path) -> None:
    opened = open_publication(sample_epub)
    assert opened.kind == "epub"

    chapter = opened.read_resource("OEBPS/text/ch1.xhtml").decode("utf-8")
    assert chapter.startswith('<?xml version="1.0" encoding="utf-8"?>')
    assert '<html dir="rtl" xmlns="http://www.w3.org/1999/xhtml">' in chapter
    assert "/assets/readium-css/rtl/ReadiumCSS-before.css" in chapter
    assert '<body dir="rtl">' in chapter

    fixed = opened.read_resource("OEBPS/text/ch2.xhtml").decode("utf-8")
    assert "readium-css" not in fixed
    assert "/assets/scripts/utils.js" in fixed

    assert opened.read_resource("OEBPS/fonts/body.otf") == FONT_BYTES
    assert opened.read_resource("OEBPS/styles/book.css") == b"p { margin: 0; }"


def test_open_epub_applies_presets(sample_epub: Path, tmp_path: Path) -> None:
    props = tmp_path / "props.json"
    props.write_text('[{"name": "--USER__scroll", "value": "manual"}]', encoding="utf-8")
    opened = open_publication(sample_epub)
    config = FilterConfig(user_properties_path=props, presets={"scroll": True})

    chapter = opened.read_resource("OEBPS/text/ch1.xhtml", config).decode("utf-8")

    assert 'style=" --USER__scroll: readium-scroll-on;"' in chapter


def test_epub_positions_are_one_per_resource(sample_epub: Path) -> None:
    locators = open_publication(sample_epub).positions()
    assert [(loc.href, loc.locations.position, loc.locations.total_progression) for loc in locators] == [
        ("OEBPS/text/ch1.xhtml", 1, 0.0),
        ("OEBPS/text/ch2.xhtml", 2, 0.5),
    ]
    assert locators[0].title == "Chapter One"


def test_cbz_reading_order_and_positions(sample_cbz: Path) -> None:
    opened = open_publication(sample_cbz)
    assert opened.kind == "cbz"
    publication = parse_cbz(opened.container)
    assert publication.metadata.title == "comic"
    assert [link.href for link in publication.reading_order] == [
        "pages/001.jpg",
        "pages/002.png",
        "pages/003.png",
    ]

    locators = opened.positions()
    assert [loc.type for loc in locators] == ["image/jpeg", "image/png", "image/png"]
    assert [loc.locations.total_progression for loc in locators] == [0.0, 1 / 3, 2 / 3]
    assert opened.read_resource("pages/002.png") == b"\x89PNG second"


def test_lcpdf_positions_follow_page_counts(sample_lcpdf: Path) -> None:
    opened = open_publication(sample_lcpdf)
    assert opened.kind == "lcpdf"
    assert opened.publication.metadata.title == "Report"

    locators = opened.positions()

    assert [(loc.href, loc.locations.fragments[0]) for loc in locators] == [
        ("part1.pdf", "page=1"),
        ("part1.pdf", "page=2"),
        ("part2.pdf", "page=1"),
        ("part2.pdf", "page=2"),
        ("part2.pdf", "page=3"),
    ]
    assert [loc.locations.position for loc in locators] == [1, 2, 3, 4, 5]
    assert locators[2].locations.total_progression == 2 / 5
    assert locators[3].locations.progression == 1 / 3
    assert all(loc.type == "application/pdf" for loc in locators)


def test_unrecognized_archive_is_rejected(tmp_path: Path) -> None:
    path = tmp_path / "notes.zip"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("notes.txt", "hello")
    with pytest.raises(ContainerError):
        open_publication(path)
    with pytest.raises(ContainerError):
        open_publication(tmp_path / "missing.epub")


def test_missing_entry_raises_container_error(sample_epub: Path) -> None:
    container = ZipContainer(sample_epub, kind="epub")
    assert container.exists("/OEBPS/content.opf")
    with pytest.raises(ContainerError):
        container.read("OEBPS/absent.xhtml")
