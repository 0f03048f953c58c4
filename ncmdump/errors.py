from __future__ import annotations

from typing import Optional


class NcmError(Exception):
    """Base class for container decoding errors.

    ``offset`` is the byte position in the container where the problem was
    detected, when one is known.
    """

    def __init__(self, message: str, offset: Optional[int] = None):
        super().__init__(message)
        self.offset = offset

    def __str__(self) -> str:
        msg = super().__str__()
        if self.offset is None:
            return msg
        return f"{msg} (at offset {self.offset})"


# Layout
class FormatError(NcmError):
    pass


class TruncatedContainerError(NcmError):
    pass


# Key material
class CorruptKeyError(NcmError):
    pass


class MetadataParseError(NcmError):
    pass
