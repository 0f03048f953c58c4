from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .constants import SIG_JPEG, SIG_PNG


@dataclass(frozen=True)
class MetadataRecord:
    title: str = ""
    artists: Tuple[str, ...] = ()
    album: str = ""
    duration: int = 0  # milliseconds
    bitrate: int = 0
    format: str = ""
    source_id: str = ""
    album_id: str = ""
    album_pic_url: str = ""
    aliases: Tuple[str, ...] = ()
    trans_names: Tuple[str, ...] = ()
    identifier: str = ""
    raw: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}), compare=False, hash=False)

    def is_empty(self) -> bool:
        return not self.raw

    def to_dict(self) -> Dict[str, Any]:
        return {
            "title": self.title,
            "artists": list(self.artists),
            "album": self.album,
            "duration": self.duration,
            "bitrate": self.bitrate,
            "format": self.format,
            "source_id": self.source_id,
            "album_id": self.album_id,
            "album_pic_url": self.album_pic_url,
            "aliases": list(self.aliases),
            "trans_names": list(self.trans_names),
        }


def _as_str(value: Any) -> str:
    if value is None or isinstance(value, (dict, list, bool)):
        return ""
    return str(value)


def _as_int(value: Any) -> int:
    if isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _as_str_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int)) and not isinstance(v, bool)]


def _artist_names(value: Any) -> List[str]:
    # Entries are usually [name, id] pairs; plain strings also occur.
    names: List[str] = []
    if not isinstance(value, list):
        return names
    for item in value:
        if isinstance(item, list) and item:
            name = _as_str(item[0])
        elif isinstance(item, dict):
            name = _as_str(item.get("name"))
        else:
            name = _as_str(item)
        if name:
            names.append(name)
    return names


class MetadataExtractor:
    @staticmethod
    def extract(obj: Optional[Dict[str, Any]], identifier: str = "") -> MetadataRecord:
        """Project a decrypted metadata mapping onto a MetadataRecord.

        Missing or wrongly-typed fields fall back to empty/zero values.
        """
        if not obj:
            return MetadataRecord(identifier=identifier)
        return MetadataRecord(
            title=_as_str(obj.get("musicName")),
            artists=tuple(_artist_names(obj.get("artist"))),
            album=_as_str(obj.get("album")),
            duration=_as_int(obj.get("duration")),
            bitrate=_as_int(obj.get("bitrate")),
            format=_as_str(obj.get("format")).lower(),
            source_id=_as_str(obj.get("musicId")),
            album_id=_as_str(obj.get("albumId")),
            album_pic_url=_as_str(obj.get("albumPic")),
            aliases=tuple(_as_str_list(obj.get("alias"))),
            trans_names=tuple(_as_str_list(obj.get("transNames"))),
            identifier=identifier,
            raw=MappingProxyType(dict(obj)),
        )


class ArtworkExtractor:
    @staticmethod
    def extract(block: bytes) -> Optional[bytes]:
        """Return the cover image bytes verbatim, or None for an empty block."""
        if not block:
            return None
        return bytes(block)

    @staticmethod
    def mime_type(image: Optional[bytes]) -> Optional[str]:
        if not image:
            return None
        if image.startswith(SIG_PNG):
            return "image/png"
        if image.startswith(SIG_JPEG):
            return "image/jpeg"
        return None

    @staticmethod
    def extension(image: Optional[bytes]) -> Optional[str]:
        mime = ArtworkExtractor.mime_type(image)
        if mime == "image/png":
            return "png"
        if mime == "image/jpeg":
            return "jpg"
        return None
