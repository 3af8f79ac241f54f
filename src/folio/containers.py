from __future__ import annotations

import io
import zipfile
from pathlib import Path
from typing import BinaryIO

from .decoders import DrmContext
from .publication import normalize_href

__all__ = ["ContainerError", "ZipContainer"]


class ContainerError(RuntimeError):
    """Raised when a publication archive or one of its entries cannot be read."""


class ZipContainer:
    """Random access to the entries of a zipped publication (EPUB, CBZ, LCPDF)."""

    def __init__(self, path: Path, *, kind: str, drm: DrmContext | None = None) -> None:
        self.path = path
        self.kind = kind
        self.drm = drm
        try:
            with zipfile.ZipFile(path, "r") as zf:
                self._names = zf.namelist()
        except (OSError, zipfile.BadZipFile) as exc:
            raise ContainerError(f"Cannot open publication archive: {path}") from exc
        self._lookup = {normalize_href(name): name for name in self._names}

    def namelist(self) -> list[str]:
        return list(self._names)

    def exists(self, href: str) -> bool:
        return normalize_href(href) in self._lookup

    def read(self, href: str) -> bytes:
        name = self._lookup.get(normalize_href(href))
        if name is None:
            raise ContainerError(f"{href} not found in {self.path.name}")
        try:
            with zipfile.ZipFile(self.path, "r") as zf:
                with zf.open(name, "r") as handle:
                    return handle.read()
        except (OSError, zipfile.BadZipFile, KeyError) as exc:
            raise ContainerError(f"Failed to read {href} from {self.path.name}") from exc

    def read_text(self, href: str) -> str:
        raw = self.read(href)
        for enc in ("utf-8", "utf-16"):
            try:
                return raw.decode(enc)
            except UnicodeDecodeError:
                continue
        return raw.decode("utf-8", errors="ignore")

    def open(self, href: str) -> BinaryIO:
        return io.BytesIO(self.read(href))
