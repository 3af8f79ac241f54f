from __future__ import annotations

import hashlib
import json
import zipfile
from pathlib import Path

import pytest

BOOK_IDENTIFIER = "urn:uuid:12345678-1234-1234-1234-123456789abc"
FONT_BYTES = bytes(range(256)) * 8

CONTAINER_XML = """<?xml version="1.0"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

CONTENT_OPF = f"""<?xml version="1.0" encoding="utf-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="bookid">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
    <dc:identifier id="isbn">urn:isbn:9780000000000</dc:identifier>
    <dc:identifier id="bookid">{BOOK_IDENTIFIER}</dc:identifier>
    <dc:title>Sample Book</dc:title>
    <dc:language>en</dc:language>
  </metadata>
  <manifest>
    <item id="nav" href="nav.xhtml" media-type="application/xhtml+xml" properties="nav"/>
    <item id="ch1" href="text/ch1.xhtml" media-type="application/xhtml+xml"/>
    <item id="ch2" href="text/ch2.xhtml" media-type="application/xhtml+xml"/>
    <item id="font" href="fonts/body.otf" media-type="font/otf"/>
    <item id="css" href="styles/book.css" media-type="text/css"/>
  </manifest>
  <spine page-progression-direction="rtl">
    <itemref idref="ch1"/>
    <itemref idref="ch2" properties="rendition:layout-pre-paginated"/>
  </spine>
</package>
"""

NAV_XHTML = """<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops">
<head><title>Contents</title></head>
<body>
<nav epub:type="toc"><ol>
<li><a href="text/ch1.xhtml">Chapter One</a></li>
<li><a href="text/ch2.xhtml#start">Chapter Two</a></li>
</ol></nav>
</body>
</html>
"""

ENCRYPTION_XML = """<?xml version="1.0" encoding="utf-8"?>
<encryption xmlns="urn:oasis:names:tc:opendocument:xmlns:container"
            xmlns:enc="http://www.w3.org/2001/04/xmlenc#">
  <enc:EncryptedData>
    <enc:EncryptionMethod Algorithm="http://www.idpf.org/2008/embedding"/>
    <enc:CipherData><enc:CipherReference URI="OEBPS/fonts/body.otf"/></enc:CipherData>
  </enc:EncryptedData>
</encryption>
"""

CHAPTER_ONE = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<html xmlns="http://www.w3.org/1999/xhtml"><head><title>One</title></head>'
    "<body><p>Hello</p></body></html>"
)
CHAPTER_TWO = (
    '<html xmlns="http://www.w3.org/1999/xhtml"><head><title>Two</title></head>'
    '<body><p id="start">Fixed page</p></body></html>'
)


def idpf_obfuscate(data: bytes, identifier: str) -> bytes:
    key = hashlib.sha1("".join(identifier.split()).encode("utf-8")).digest()
    out = bytearray(data)
    for index in range(min(1040, len(out))):
        out[index] ^= key[index % len(key)]
    return bytes(out)


def build_pdf(page_count: int) -> bytes:
    fitz = pytest.importorskip("fitz")
    document = fitz.open()
    for _ in range(page_count):
        document.new_page()
    data = document.tobytes()
    document.close()
    return data


@pytest.fixture
def sample_epub(tmp_path: Path) -> Path:
    path = tmp_path / "sample.epub"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("mimetype", "application/epub+zip")
        zf.writestr("META-INF/container.xml", CONTAINER_XML)
        zf.writestr("META-INF/encryption.xml", ENCRYPTION_XML)
        zf.writestr("OEBPS/content.opf", CONTENT_OPF)
        zf.writestr("OEBPS/nav.xhtml", NAV_XHTML)
        zf.writestr("OEBPS/text/ch1.xhtml", CHAPTER_ONE)
        zf.writestr("OEBPS/text/ch2.xhtml", CHAPTER_TWO)
        zf.writestr("OEBPS/styles/book.css", "p { margin: 0; }")
        zf.writestr("OEBPS/fonts/body.otf", idpf_obfuscate(FONT_BYTES, BOOK_IDENTIFIER))
    return path


@pytest.fixture
def sample_cbz(tmp_path: Path) -> Path:
    path = tmp_path / "comic.cbz"
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("pages/002.png", b"\x89PNG second")
        zf.writestr("pages/001.jpg", b"\xff\xd8\xff first")
        zf.writestr("pages/003.png", b"\x89PNG third")
        zf.writestr("ComicInfo.xml", "<ComicInfo/>")
    return path


@pytest.fixture
def sample_lcpdf(tmp_path: Path) -> Path:
    path = tmp_path / "report.lcpdf"
    manifest = {
        "metadata": {"identifier": "urn:isbn:1", "title": "Report", "language": "en"},
        "readingOrder": [
            {"href": "part1.pdf", "type": "application/pdf", "title": "Part 1"},
            {"href": "broken.pdf", "type": "application/pdf"},
            {"href": "part2.pdf"},
        ],
    }
    with zipfile.ZipFile(path, "w") as zf:
        zf.writestr("manifest.json", json.dumps(manifest))
        zf.writestr("part1.pdf", build_pdf(2))
        zf.writestr("broken.pdf", b"not a pdf")
        zf.writestr("part2.pdf", build_pdf(3))
    return path
