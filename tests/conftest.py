import pytest
from datetime import datetime, UTC

from media_catalog.cache.store import SnapshotStore
from media_catalog.models import MediaRecord, MediaType, Snapshot, Tag
from media_catalog.tags.parser import fold_attributes

INDEXED_AT = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)


def simple_tag(name):
    return Tag.simple(name, name)


def kv_tag(key, value):
    return Tag.key_value(f"{key}-{value}", key, value)


def make_media(record_id, tags, media_type=MediaType.IMAGE):
    """A record with attributes folded from its tags, like the scanner builds."""
    return MediaRecord(
        id=record_id,
        relative_path=f"{record_id}.png",
        media_type=media_type,
        tags=tuple(tags),
        attributes=fold_attributes(tags),
        filesize=0,
        thumbnail_path=f"/api/v1/media/{record_id}/thumbnail",
        indexed_at=INDEXED_AT,
    )


@pytest.fixture
def fixture_snapshot():
    """Four records; three carry rating 4/4/3, one rating 5."""
    return Snapshot.create([
        make_media("sunset_A", [simple_tag("sunset"), simple_tag("coast"), kv_tag("rating", "5")]),
        make_media("sunset_B", [simple_tag("sunset"), kv_tag("rating", "4")]),
        make_media("macro_B", [simple_tag("macro"), kv_tag("rating", "4"), kv_tag("subject", "leaf")]),
        make_media("video_C", [simple_tag("video"), kv_tag("rating", "3"), kv_tag("type", "skate")],
                   media_type=MediaType.VIDEO),
    ])


@pytest.fixture
def media_root(tmp_path):
    """A small tagged media tree."""
    root = tmp_path / "media"
    (root / "nested").mkdir(parents=True)
    (root / "sunset_coast+location-okinawa_rating-5.png").write_bytes(b"png")
    (root / "nested" / "macro_rating-4.jpg").write_bytes(b"jpeg")
    (root / "clip_type-skate.MP4").write_bytes(b"video")
    (root / "notes.txt").write_text("text")
    return root


@pytest.fixture
def store(tmp_path):
    """Returns a SnapshotStore rooted in a fresh cache dir."""
    return SnapshotStore(tmp_path / "cache")
