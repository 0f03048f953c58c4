from __future__ import annotations

import concurrent.futures as _fut
import enum
from collections import deque
from typing import Deque, Iterable, Iterator, Tuple

from Cryptodome.Util.strxor import strxor

from .constants import SIG_FLAC, SIG_ID3
from .keystream import KeystreamTable


class AudioFormat(enum.Enum):
    FLAC = "flac"
    MP3 = "mp3"
    UNKNOWN = ""

    @property
    def extension(self) -> str:
        return self.value

    @classmethod
    def from_name(cls, name: str) -> "AudioFormat":
        for fmt in cls:
            if fmt is not cls.UNKNOWN and fmt.value == (name or "").strip().lower():
                return fmt
        return cls.UNKNOWN


def detect_format(head: bytes) -> AudioFormat:
    """Best-effort guess of the audio container from its first bytes."""
    if head.startswith(SIG_FLAC):
        return AudioFormat.FLAC
    if head.startswith(SIG_ID3):
        return AudioFormat.MP3
    # Bare MPEG audio frame: 11-bit sync, layer bits non-zero
    if len(head) >= 2 and head[0] == 0xFF and (head[1] & 0xE0) == 0xE0 and (head[1] & 0x06):
        return AudioFormat.MP3
    return AudioFormat.UNKNOWN


class PayloadDecryptor:
    """XOR audio bytes against the positional keystream.

    Stateless apart from the shared, read-only keystream table: any range can
    be decrypted independently, in any order, from any thread.
    """

    def __init__(self, keystream: KeystreamTable):
        self.keystream = keystream

    def decrypt(self, offset: int, data: bytes) -> bytes:
        if offset < 0:
            raise ValueError("Payload offset must be non-negative")
        if not data:
            return b""
        return strxor(bytes(data), self.keystream.window(offset, len(data)))

    def decrypt_chunks(self, chunks: Iterable[Tuple[int, bytes]], *, jobs: int = 1) -> Iterator[bytes]:
        """Decrypt ``(offset, data)`` pairs, yielding results in input order."""
        if jobs <= 1:
            for offset, data in chunks:
                yield self.decrypt(offset, data)
            return
        # Executor.map would drain ``chunks`` up front; keep a bounded window instead.
        window = max(2, int(jobs) * 2)
        pending: Deque[_fut.Future] = deque()
        with _fut.ThreadPoolExecutor(max_workers=int(jobs)) as ex:
            for offset, data in chunks:
                pending.append(ex.submit(self.decrypt, offset, data))
                if len(pending) >= window:
                    yield pending.popleft().result()
            while pending:
                yield pending.popleft().result()
