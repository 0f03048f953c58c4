from __future__ import annotations

"""Synthetic container builder for the test suite (tests only)."""

import base64
import json
import struct
from typing import Any, Dict, Optional

from Cryptodome.Cipher import AES
from Cryptodome.Util.Padding import pad

from ncmdump.constants import (
    AES_BLOCK_SIZE,
    KEY_AES_KEY,
    KEY_MASK,
    KEY_PREFIX,
    MAGIC,
    META_AES_KEY,
    META_MARKER,
    META_MASK,
    META_PREFIX,
)


SAMPLE_KEY = bytes(range(1, 17))

SAMPLE_META: Dict[str, Any] = {
    "musicId": 1234567,
    "musicName": "Test Song",
    "artist": [["Alice", 11], ["Bob", 12]],
    "albumId": 42,
    "album": "Test Album",
    "albumPic": "https://example.invalid/pic.jpg",
    "bitrate": 320000,
    "duration": 215000,
    "mvId": 0,
    "alias": ["Alias"],
    "transNames": [],
    "format": "mp3",
}

PNG_COVER = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


def mask(data: bytes, m: int) -> bytes:
    return bytes(b ^ m for b in data)


def aes_ecb_encrypt(key: bytes, data: bytes) -> bytes:
    return AES.new(key, AES.MODE_ECB).encrypt(pad(data, AES_BLOCK_SIZE, style="pkcs7"))


def make_key_blob(key: bytes = SAMPLE_KEY, *, prefix: bytes = KEY_PREFIX) -> bytes:
    return mask(aes_ecb_encrypt(KEY_AES_KEY, prefix + key), KEY_MASK)


def make_meta_blob(meta: Optional[Dict[str, Any]] = None, *, body: Optional[bytes] = None) -> bytes:
    if body is None:
        body = json.dumps(SAMPLE_META if meta is None else meta).encode("utf-8")
    encoded = base64.b64encode(aes_ecb_encrypt(META_AES_KEY, META_PREFIX + body))
    return mask(META_MARKER + encoded, META_MASK)


def reference_keystream(key: bytes) -> bytes:
    box = list(range(256))
    j = 0
    for i in range(256):
        j = (box[i] + key[i % len(key)] + j) % 256
        box[i], box[j] = box[j], box[i]
    return bytes(box[(box[i] + box[(i + 1) % 256]) % 256] for i in range(256))


def encrypt_audio(key: bytes, plain: bytes) -> bytes:
    ks = reference_keystream(key)
    return bytes(b ^ ks[i % 256] for i, b in enumerate(plain))


def build_container(
    *,
    key_blob: Optional[bytes] = None,
    meta_blob: Optional[bytes] = None,
    cover: bytes = b"",
    audio: bytes = b"",
    magic: bytes = MAGIC,
    crc: int = 0,
) -> bytes:
    """Assemble a container; ``audio`` is the already-encrypted payload."""
    if key_blob is None:
        key_blob = make_key_blob()
    if meta_blob is None:
        meta_blob = make_meta_blob()
    out = bytearray()
    out += magic
    out += b"\x00\x00"
    out += struct.pack("<I", len(key_blob)) + key_blob
    out += struct.pack("<I", len(meta_blob)) + meta_blob
    out += struct.pack("<I", crc)
    out += b"\x00" * 5
    out += struct.pack("<I", len(cover)) + cover
    out += audio
    return bytes(out)


def build_sample(plain_audio: bytes, *, key: bytes = SAMPLE_KEY, **kw) -> bytes:
    return build_container(key_blob=make_key_blob(key), audio=encrypt_audio(key, plain_audio), **kw)
