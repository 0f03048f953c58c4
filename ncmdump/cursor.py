from __future__ import annotations

import io
import os
import struct
from typing import BinaryIO, Tuple, Union

from .constants import MAGIC
from .errors import FormatError, TruncatedContainerError


_U32 = struct.Struct("<I")


class ByteCursor:
    """Sequential reader over a container with random access for the payload.

    The cursor keeps its own position, so ``read_at`` can be mixed with the
    sequential reads without disturbing them.
    """

    def __init__(self, source: Union[BinaryIO, bytes, bytearray, memoryview]):
        if isinstance(source, (bytes, bytearray, memoryview)):
            source = io.BytesIO(bytes(source))
        self.f: BinaryIO = source
        self.size = self._measure()
        self.pos = 0

    def _measure(self) -> int:
        try:
            return os.fstat(self.f.fileno()).st_size
        except (AttributeError, OSError, io.UnsupportedOperation):
            cur = self.f.tell()
            end = self.f.seek(0, io.SEEK_END)
            self.f.seek(cur)
            return end

    def tell(self) -> int:
        return self.pos

    def left(self) -> int:
        return max(0, self.size - self.pos)

    def read(self, n: int) -> bytes:
        if n > self.left():
            raise TruncatedContainerError(
                f"Block declares {n} bytes but only {self.left()} remain", offset=self.pos
            )
        self.f.seek(self.pos)
        data = self.f.read(n)
        if len(data) != n:
            raise TruncatedContainerError(
                f"Short read: wanted {n} bytes, got {len(data)}", offset=self.pos
            )
        self.pos += n
        return data

    def read_magic(self) -> bytes:
        if self.size < len(MAGIC):
            raise FormatError("Container too short for header", offset=0)
        self.f.seek(self.pos)
        raw = self.f.read(len(MAGIC))
        if raw != MAGIC:
            raise FormatError("Bad container magic", offset=self.pos)
        self.pos += len(MAGIC)
        return raw

    def read_u32(self) -> int:
        start = self.pos
        try:
            raw = self.read(_U32.size)
        except TruncatedContainerError:
            raise FormatError("Container ends inside a length field", offset=start)
        return _U32.unpack(raw)[0]

    def read_length_prefixed_block(self) -> bytes:
        length = self.read_u32()
        return self.read(length)

    def skip(self, n: int) -> None:
        if n > self.left():
            raise FormatError(f"Cannot skip {n} bytes past end of container", offset=self.pos)
        self.pos += n

    def remaining(self) -> Tuple[int, int]:
        """Return ``(offset, length)`` of everything after the current position."""
        return self.pos, self.left()

    def read_at(self, offset: int, length: int) -> bytes:
        # May return fewer bytes than asked when the source shrank underneath us.
        self.f.seek(offset)
        return self.f.read(length)
