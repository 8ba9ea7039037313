"""
Versioned JSON snapshot persistence.

The canonical file is only ever replaced by an atomic rename of a fully
written sibling, so readers see either the old snapshot or the new one.
"""
import contextlib
import json
import logging
import os
import uuid
from pathlib import Path
from typing import Callable, Iterable, Optional

from .. import config
from ..exceptions import CorruptCache, PersistFailure, SchemaMismatch
from ..models import MediaRecord, Snapshot


class SnapshotStore:
    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self._path = self.cache_dir / config.CACHE_FILENAME

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[Snapshot]:
        """
        Returns the persisted snapshot, or None if there is none.

        Raises CorruptCache if the file cannot be parsed and SchemaMismatch
        if it was written by another schema version. Callers rebuild on both.
        """
        try:
            contents = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CorruptCache(f"failed to read cache {self._path}: {e}") from e
        except UnicodeDecodeError as e:
            raise CorruptCache(f"cache {self._path} is not valid UTF-8: {e}") from e

        try:
            data = json.loads(contents)
        except json.JSONDecodeError as e:
            raise CorruptCache(f"failed to parse cache json: {e}") from e

        if not isinstance(data, dict):
            raise CorruptCache("cache root is not a JSON object")

        version = data.get("version")
        if version != config.CACHE_VERSION:
            raise SchemaMismatch(str(version), config.CACHE_VERSION)

        try:
            return Snapshot.from_dict(data)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise CorruptCache(f"malformed cache entry: {e!r}") from e

    def persist(self, records: Iterable[MediaRecord]) -> Snapshot:
        """Wraps records in a fresh snapshot, writes it, returns what was written."""
        snapshot = Snapshot.create(records)
        self._write_snapshot(snapshot)
        logging.info(f"Persisted {len(snapshot)} records to {self._path}")
        return snapshot

    def load_or_rebuild(self, rebuild: Callable[[], Iterable[MediaRecord]]) -> Snapshot:
        """
        A good cached snapshot, or a freshly rebuilt and persisted one.
        `rebuild` is not called when a valid cache exists.
        """
        try:
            snapshot = self.load()
        except CorruptCache as e:
            logging.warning(f"Failed to read cache, rebuilding: {e}")
            snapshot = None
        else:
            if snapshot is None:
                logging.info("Cache missing, triggering rebuild")

        if snapshot is not None:
            return snapshot

        return self.persist(rebuild())

    def _write_snapshot(self, snapshot: Snapshot):
        tmp_path = self._path.with_name(f"{self._path.name}.{uuid.uuid4().hex}.tmp")
        try:
            self.cache_dir.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(snapshot.to_dict(), indent=2)
            with open(tmp_path, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
        except OSError as e:
            with contextlib.suppress(OSError):
                tmp_path.unlink(missing_ok=True)
            raise PersistFailure(f"failed to write cache {self._path}: {e}") from e
