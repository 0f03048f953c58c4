from __future__ import annotations

import os
from typing import BinaryIO, Iterator, List, Optional, Tuple

from .constants import (
    COVER_GAP_SIZE,
    DEFAULT_CHUNK_SIZE,
    HEADER_GAP_SIZE,
    LENGTH_PREFIX_SIZE,
    MAGIC,
)
from .cursor import ByteCursor
from .errors import MetadataParseError, NcmError
from .keyrecovery import KeyRecoveryEngine
from .keystream import KeyStreamGenerator, KeystreamTable
from .metadata import ArtworkExtractor, MetadataExtractor, MetadataRecord
from .payload import AudioFormat, PayloadDecryptor, detect_format


_HINT_PROBE_SIZE = 16


def probe(source) -> bool:
    """Return True when ``source`` (a path or binary file object) starts with the container magic."""
    if isinstance(source, (str, os.PathLike)):
        with open(source, "rb") as fh:
            return fh.read(len(MAGIC)) == MAGIC
    pos = source.tell()
    try:
        source.seek(0)
        return source.read(len(MAGIC)) == MAGIC
    finally:
        source.seek(pos)


class NcmReader:
    """Open one container and expose its key, metadata, cover and audio.

    Use either a filesystem ``path`` or an already-open seekable ``fileobj``
    (which is left open on close)::

        with NcmReader("song.ncm") as r:
            r.extract("song." + r.output_format().extension)
    """

    def __init__(self, path: Optional[str] = None, *, fileobj: Optional[BinaryIO] = None):
        if (path is None) == (fileobj is None):
            raise ValueError("Provide exactly one of path or fileobj")
        self.path = path
        self.f: Optional[BinaryIO] = fileobj
        self._owns_file = fileobj is None
        self.cursor: Optional[ByteCursor] = None
        self.key: Optional[bytes] = None
        self.keystream: Optional[KeystreamTable] = None
        self.decryptor: Optional[PayloadDecryptor] = None
        self.metadata: MetadataRecord = MetadataRecord()
        self.cover: Optional[bytes] = None
        self.crc32: int = 0
        self.audio_offset: int = 0
        self.audio_length: int = 0
        # Non-fatal diagnostics (metadata degradation, short payload reads)
        self.warnings: List[str] = []

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def open(self):
        if self.cursor is not None:
            return
        if self.f is None:
            self.f = open(self.path, "rb")
        try:
            self._load_sections()
        except (NcmError, OSError, ValueError) as exc:
            self.close()
            raise exc

    def close(self):
        self.cursor = None
        if self.f is not None and self._owns_file:
            self.f.close()
            self.f = None

    # internals
    def _load_sections(self):
        cursor = ByteCursor(self.f)
        cursor.read_magic()
        cursor.skip(HEADER_GAP_SIZE)
        key_offset = cursor.tell() + LENGTH_PREFIX_SIZE
        key_blob = cursor.read_length_prefixed_block()
        meta_offset = cursor.tell() + LENGTH_PREFIX_SIZE
        meta_blob = cursor.read_length_prefixed_block()
        self.crc32 = cursor.read_u32()
        cursor.skip(COVER_GAP_SIZE)
        cover_block = cursor.read_length_prefixed_block()
        self.audio_offset, self.audio_length = cursor.remaining()

        engine = KeyRecoveryEngine(key_offset=key_offset, meta_offset=meta_offset)
        self.key = engine.recover_key(key_blob)
        self.keystream = KeyStreamGenerator.build(self.key)
        self.decryptor = PayloadDecryptor(self.keystream)
        self.metadata = self._load_metadata(engine, meta_blob)
        self.cover = ArtworkExtractor.extract(cover_block)
        self.cursor = cursor

    def _load_metadata(self, engine: KeyRecoveryEngine, blob: bytes) -> MetadataRecord:
        if not blob:
            return MetadataRecord()
        try:
            identifier = engine.recover_identifier(blob)
        except MetadataParseError:
            identifier = ""
        try:
            obj = engine.recover_metadata(blob)
        except MetadataParseError as exc:
            self.warnings.append(f"metadata unavailable: {exc}")
            return MetadataExtractor.extract(None, identifier)
        return MetadataExtractor.extract(obj, identifier)

    def _require_open(self):
        if self.cursor is None or self.decryptor is None:
            raise RuntimeError("Container not open")

    def _source_chunks(self, offset: int, length: int, chunk_size: int) -> Iterator[Tuple[int, bytes]]:
        end = offset + length
        pos = offset
        while pos < end:
            want = min(chunk_size, end - pos)
            data = self.cursor.read_at(self.audio_offset + pos, want)
            if data:
                yield pos, data
            if len(data) < want:
                self.warnings.append(
                    f"audio payload truncated: expected {length} bytes from offset {offset}, "
                    f"got {pos - offset + len(data)}"
                )
                return
            pos += len(data)

    # public API
    def read_audio(self, offset: int = 0, length: Optional[int] = None) -> bytes:
        """Decrypt ``length`` payload bytes starting ``offset`` bytes into the audio."""
        self._require_open()
        if offset < 0:
            raise ValueError("Audio offset must be non-negative")
        avail = max(0, self.audio_length - offset)
        length = avail if length is None else min(length, avail)
        if length <= 0:
            return b""
        return b"".join(
            self.decryptor.decrypt(pos, data)
            for pos, data in self._source_chunks(offset, length, length)
        )

    def iter_audio(self, chunk_size: int = DEFAULT_CHUNK_SIZE, *, jobs: int = 1) -> Iterator[bytes]:
        """Yield the decrypted audio in order, decrypting up to ``jobs`` chunks at once."""
        self._require_open()
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        chunks = self._source_chunks(0, self.audio_length, chunk_size)
        return self.decryptor.decrypt_chunks(chunks, jobs=jobs)

    def extract(self, out_path: str, *, jobs: int = 1, chunk_size: int = DEFAULT_CHUNK_SIZE, progress=None) -> int:
        """Write the decrypted audio to ``out_path`` and return the byte count.

        Data goes to ``out_path + ".part"`` first and is renamed into place only
        once the whole payload is written; on failure nothing is left behind.
        ``progress`` is called with ``(done, total)`` after each chunk.
        """
        self._require_open()
        os.makedirs(os.path.dirname(out_path) or ".", exist_ok=True)
        tmp_path = out_path + ".part"
        written = 0
        try:
            with open(tmp_path, "wb") as wf:
                for chunk in self.iter_audio(chunk_size, jobs=jobs):
                    wf.write(chunk)
                    written += len(chunk)
                    if progress is not None:
                        progress(written, self.audio_length)
            os.replace(tmp_path, out_path)
        except BaseException:
            try:
                os.unlink(tmp_path)
            except FileNotFoundError:
                pass
            raise
        return written

    def format_hint(self) -> AudioFormat:
        return detect_format(self.read_audio(0, _HINT_PROBE_SIZE))

    def output_format(self) -> AudioFormat:
        """Format hint from the audio bytes, falling back to the metadata record."""
        fmt = self.format_hint()
        if fmt is AudioFormat.UNKNOWN:
            fmt = AudioFormat.from_name(self.metadata.format)
        return fmt
