from dataclasses import dataclass, field
from datetime import datetime, UTC
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from . import config


class TagKind(str, Enum):
    SIMPLE = "simple"
    KEY_VALUE = "keyvalue"


class MediaType(str, Enum):
    IMAGE = "image"
    GIF = "gif"
    VIDEO = "video"
    AUDIO = "audio"
    PDF = "pdf"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Tag:
    """
    One normalized token extracted from a filename.
    `normalized` is derived from (kind, name, value) and never passed in.
    """
    raw_token: str
    kind: TagKind
    name: str
    value: Optional[str] = None
    normalized: str = field(init=False)

    def __post_init__(self):
        if self.kind == TagKind.KEY_VALUE:
            normalized = f"{self.name}={self.value}"
        else:
            normalized = self.name
        object.__setattr__(self, "normalized", normalized)

    @classmethod
    def simple(cls, raw_token: str, name: str) -> "Tag":
        return cls(raw_token, TagKind.SIMPLE, name.strip().lower())

    @classmethod
    def key_value(cls, raw_token: str, key: str, value: str) -> "Tag":
        return cls(raw_token, TagKind.KEY_VALUE, key.strip().lower(), value.strip().lower())

    def to_dict(self) -> Dict[str, Any]:
        data = {
            "rawToken": self.raw_token,
            "type": self.kind.value,
            "name": self.name,
        }
        if self.value is not None:
            data["value"] = self.value
        data["normalized"] = self.normalized
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Tag":
        return cls(
            raw_token=data["rawToken"],
            kind=TagKind(data["type"]),
            name=data["name"],
            value=data.get("value"),
        )


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int


@dataclass(frozen=True)
class MediaRecord:
    """
    One catalog entry. Rebuilt from disk on every scan pass.
    """
    id: str
    relative_path: str
    media_type: MediaType
    tags: Tuple[Tag, ...] = ()
    attributes: Dict[str, str] = field(default_factory=dict)
    filesize: int = 0
    dimensions: Optional[Dimensions] = None
    duration_ms: Optional[int] = None
    thumbnail_path: Optional[str] = None
    hash: Optional[str] = None
    indexed_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "relativePath": self.relative_path,
            "mediaType": self.media_type.value,
            "tags": [tag.to_dict() for tag in self.tags],
            "attributes": dict(self.attributes),
            "filesize": self.filesize,
        }
        # Optional fields are omitted rather than written as null
        if self.dimensions is not None:
            data["dimensions"] = {"width": self.dimensions.width, "height": self.dimensions.height}
        if self.duration_ms is not None:
            data["durationMs"] = self.duration_ms
        if self.thumbnail_path is not None:
            data["thumbnailPath"] = self.thumbnail_path
        if self.hash is not None:
            data["hash"] = self.hash
        data["indexedAt"] = self.indexed_at.isoformat()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MediaRecord":
        dims = data.get("dimensions")
        return cls(
            id=data["id"],
            relative_path=data["relativePath"],
            media_type=MediaType(data.get("mediaType", MediaType.UNKNOWN.value)),
            tags=tuple(Tag.from_dict(t) for t in data.get("tags", [])),
            attributes=dict(data.get("attributes", {})),
            filesize=int(data.get("filesize", 0)),
            dimensions=Dimensions(int(dims["width"]), int(dims["height"])) if dims else None,
            duration_ms=data.get("durationMs"),
            thumbnail_path=data.get("thumbnailPath"),
            hash=data.get("hash"),
            indexed_at=datetime.fromisoformat(data["indexedAt"]),
        )


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable, versioned bundle of records. Superseded, never mutated.
    """
    version: str
    generated_at: datetime
    media: Tuple[MediaRecord, ...]

    @classmethod
    def create(cls, media) -> "Snapshot":
        return cls(
            version=config.CACHE_VERSION,
            generated_at=datetime.now(UTC),
            media=tuple(media),
        )

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls.create(())

    def __len__(self) -> int:
        return len(self.media)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "generatedAt": self.generated_at.isoformat(),
            "media": [rec.to_dict() for rec in self.media],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Snapshot":
        return cls(
            version=data["version"],
            generated_at=datetime.fromisoformat(data["generatedAt"]),
            media=tuple(MediaRecord.from_dict(m) for m in data.get("media", [])),
        )
