from __future__ import annotations

"""Recovery of the audio key and the metadata text from their obfuscated blobs.

Both blobs go through the same shape of pipeline::

    unmask (XOR with a one-byte mask)
      -> base64 decode           (metadata only)
      -> AES-128-ECB decrypt     (fixed key per blob, via PyCryptodomex)
      -> PKCS#7 unpad
      -> strip a fixed literal prefix

Failures on the key blob raise ``CorruptKeyError``; failures on the metadata
blob raise ``MetadataParseError`` so that callers can degrade gracefully.
"""

import base64
import binascii
import json
from typing import Any, Dict, Optional

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import unpad
from Cryptodome.Util.strxor import strxor_c

from .constants import (
    AES_BLOCK_SIZE,
    KEY_AES_KEY,
    KEY_MASK,
    KEY_PREFIX,
    META_AES_KEY,
    META_MARKER,
    META_MASK,
    META_PREFIX,
)
from .errors import CorruptKeyError, MetadataParseError


def unmask(blob: bytes, mask: int) -> bytes:
    if not blob:
        return b""
    return strxor_c(bytes(blob), mask)


def _aes_ecb_decrypt(key: bytes, data: bytes) -> bytes:
    cipher = AES.new(key, AES.MODE_ECB)
    return unpad(cipher.decrypt(data), AES_BLOCK_SIZE, style="pkcs7")


class KeyRecoveryEngine:
    def __init__(self, key_offset: Optional[int] = None, meta_offset: Optional[int] = None):
        # Offsets are only used to annotate errors.
        self.key_offset = key_offset
        self.meta_offset = meta_offset

    def recover_key(self, blob: bytes) -> bytes:
        """Return the RecoveredKey carried by an obfuscated key blob."""
        if not blob:
            raise CorruptKeyError("Key blob is empty", offset=self.key_offset)
        try:
            plain = _aes_ecb_decrypt(KEY_AES_KEY, unmask(blob, KEY_MASK))
        except ValueError as exc:
            raise CorruptKeyError(f"Key blob does not decrypt: {exc}", offset=self.key_offset)
        if not plain.startswith(KEY_PREFIX):
            raise CorruptKeyError("Key blob prefix mismatch", offset=self.key_offset)
        key = plain[len(KEY_PREFIX):]
        if not key:
            raise CorruptKeyError("Recovered key is empty", offset=self.key_offset)
        return key

    def recover_identifier(self, blob: bytes) -> str:
        """Return the unmasked metadata blob as text (the identifier comment)."""
        try:
            return unmask(blob, META_MASK).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MetadataParseError(f"Identifier is not valid UTF-8: {exc}", offset=self.meta_offset)

    def recover_metadata_text(self, blob: bytes) -> str:
        text = unmask(blob, META_MASK)
        if not text.startswith(META_MARKER):
            raise MetadataParseError("Metadata marker missing", offset=self.meta_offset)
        try:
            encrypted = base64.b64decode(text[len(META_MARKER):], validate=True)
        except (binascii.Error, ValueError) as exc:
            raise MetadataParseError(f"Metadata is not valid base64: {exc}", offset=self.meta_offset)
        try:
            plain = _aes_ecb_decrypt(META_AES_KEY, encrypted)
        except ValueError as exc:
            raise MetadataParseError(f"Metadata does not decrypt: {exc}", offset=self.meta_offset)
        if not plain.startswith(META_PREFIX):
            raise MetadataParseError("Metadata prefix mismatch", offset=self.meta_offset)
        try:
            return plain[len(META_PREFIX):].decode("utf-8")
        except UnicodeDecodeError as exc:
            raise MetadataParseError(f"Metadata is not valid UTF-8: {exc}", offset=self.meta_offset)

    def recover_metadata(self, blob: bytes) -> Dict[str, Any]:
        """Decrypt a metadata blob and parse its JSON body into a mapping."""
        text = self.recover_metadata_text(blob)
        try:
            obj = json.loads(text)
        except ValueError as exc:
            raise MetadataParseError(f"Metadata is not valid JSON: {exc}", offset=self.meta_offset)
        if not isinstance(obj, dict):
            raise MetadataParseError("Metadata JSON is not an object", offset=self.meta_offset)
        return obj
