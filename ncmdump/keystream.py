from __future__ import annotations

from .constants import KEYSTREAM_SIZE


def _schedule(key: bytes) -> bytearray:
    # RC4-style key scheduling over the identity permutation
    box = bytearray(range(KEYSTREAM_SIZE))
    klen = len(key)
    j = 0
    for i in range(KEYSTREAM_SIZE):
        j = (box[i] + key[i % klen] + j) & 0xFF
        box[i], box[j] = box[j], box[i]
    return box


def _derive(box: bytearray) -> bytes:
    out = bytearray(KEYSTREAM_SIZE)
    for i in range(KEYSTREAM_SIZE):
        out[i] = box[(box[i] + box[(i + 1) % KEYSTREAM_SIZE]) % KEYSTREAM_SIZE]
    return bytes(out)


class KeystreamTable:
    """The 256-byte keystream, addressed by ``offset mod 256``.

    Instances are read-only once built and can be shared between threads.
    """

    __slots__ = ("_table",)

    def __init__(self, table: bytes):
        if len(table) != KEYSTREAM_SIZE:
            raise ValueError(f"Keystream table must be {KEYSTREAM_SIZE} bytes")
        self._table = bytes(table)

    @property
    def table(self) -> bytes:
        return self._table

    def byte_at(self, offset: int) -> int:
        return self._table[offset % KEYSTREAM_SIZE]

    def window(self, offset: int, length: int) -> bytes:
        """Return the keystream bytes covering ``[offset, offset + length)``."""
        if length <= 0:
            return b""
        start = offset % KEYSTREAM_SIZE
        rotated = self._table[start:] + self._table[:start]
        reps = length // KEYSTREAM_SIZE + 1
        return (rotated * reps)[:length]

    def __len__(self) -> int:
        return KEYSTREAM_SIZE

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, KeystreamTable):
            return NotImplemented
        return self._table == other._table

    def __hash__(self) -> int:
        return hash(self._table)


class KeyStreamGenerator:
    @staticmethod
    def build(key: bytes) -> KeystreamTable:
        """Derive the keystream table from a recovered key."""
        if not key:
            raise ValueError("Keystream key must not be empty")
        return KeystreamTable(_derive(_schedule(key)))
