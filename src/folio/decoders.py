from __future__ import annotations

import hashlib
import io
import re
import zlib
from dataclasses import dataclass
from typing import BinaryIO, Callable

from .logging_utils import debug_log
from .publication import Link, Publication

__all__ = [
    "ADOBE_OBFUSCATION",
    "IDPF_OBFUSCATION",
    "LCP_SCHEME",
    "DecryptionError",
    "Decipher",
    "DrmContext",
    "DrmDecoder",
    "FontDecoder",
]

LCP_SCHEME = "http://readium.org/2014/01/lcp"
IDPF_OBFUSCATION = "http://www.idpf.org/2008/embedding"
ADOBE_OBFUSCATION = "http://ns.adobe.com/pdf/enc#RC"

_IDPF_OBFUSCATED_LENGTH = 1040
_ADOBE_OBFUSCATED_LENGTH = 1024

Decipher = Callable[[bytes], bytes]


class DecryptionError(RuntimeError):
    """Raised when protected content cannot be deciphered or inflated."""


@dataclass(frozen=True)
class DrmContext:
    """
    Handle on an unlocked DRM license.

    ``decipher`` receives the raw ciphertext of one resource and returns the
    plaintext; key management stays with the caller.
    """

    scheme: str
    decipher: Decipher


class DrmDecoder:
    def decoding(self, stream: BinaryIO, link: Link, drm: DrmContext | None) -> BinaryIO:
        encryption = link.encryption
        if drm is None or encryption is None or encryption.scheme != drm.scheme:
            return stream
        ciphertext = stream.read()
        try:
            data = drm.decipher(ciphertext)
        except Exception as exc:
            raise DecryptionError(f"Failed to decipher {link.href}") from exc
        if encryption.compression == "deflate":
            try:
                data = zlib.decompress(data, -zlib.MAX_WBITS)
            except zlib.error as exc:
                raise DecryptionError(f"Failed to inflate {link.href}") from exc
        if encryption.original_length is not None and len(data) > encryption.original_length:
            data = data[: encryption.original_length]
        return io.BytesIO(data)


class FontDecoder:
    """Reverse the IDPF and Adobe font obfuscation schemes."""

    def decoding(self, stream: BinaryIO, publication: Publication, link: Link) -> BinaryIO:
        encryption = link.encryption
        if encryption is None or not link.is_font:
            return stream
        identifier = publication.metadata.identifier
        if not identifier:
            debug_log(f"Cannot deobfuscate {link.href}: publication has no identifier")
            return stream
        if encryption.algorithm == IDPF_OBFUSCATION:
            key = _idpf_key(identifier)
            length = _IDPF_OBFUSCATED_LENGTH
        elif encryption.algorithm == ADOBE_OBFUSCATION:
            key = _adobe_key(identifier)
            if key is None:
                debug_log(f"Cannot deobfuscate {link.href}: identifier is not a UUID")
                return stream
            length = _ADOBE_OBFUSCATED_LENGTH
        else:
            return stream
        data = bytearray(stream.read())
        for index in range(min(length, len(data))):
            data[index] ^= key[index % len(key)]
        return io.BytesIO(bytes(data))


def _idpf_key(identifier: str) -> bytes:
    normalized = "".join(identifier.split())
    return hashlib.sha1(normalized.encode("utf-8")).digest()


def _adobe_key(identifier: str) -> bytes | None:
    hex_digits = re.sub(r"^urn:uuid:", "", identifier.strip(), flags=re.IGNORECASE).replace("-", "")
    if len(hex_digits) != 32:
        return None
    try:
        return bytes.fromhex(hex_digits)
    except ValueError:
        return None
