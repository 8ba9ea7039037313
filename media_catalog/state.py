"""
Catalog State: the one shared, swappable reference to the current snapshot.

Readers take the reference and work on it without locking; snapshots are
immutable, so a swap can never expose a half-updated record list. The event
consumer and manual rebuilds are the only writers.
"""
import asyncio
import logging
import threading
from pathlib import Path
from typing import Optional

from .cache.store import SnapshotStore
from .exceptions import MediaCatalogError
from .indexer import ErrorEvent, EventChannel, Indexer, SnapshotEvent
from .models import Snapshot
from .scanning.filesystem import DiskScanner


class CatalogState:
    def __init__(self, initial: Optional[Snapshot] = None):
        self._snapshot = initial if initial is not None else Snapshot.empty()
        self._generation = 0
        self._write_lock = threading.Lock()

    def current(self) -> Snapshot:
        return self._snapshot

    @property
    def generation(self) -> int:
        """Number of swaps since creation."""
        return self._generation

    def swap(self, snapshot: Snapshot) -> Snapshot:
        """Installs `snapshot` and returns the one it replaced."""
        with self._write_lock:
            previous = self._snapshot
            self._snapshot = snapshot
            self._generation += 1
        return previous


async def consume_events(channel: EventChannel, store: SnapshotStore, state: CatalogState):
    """
    Applies indexer events until the channel closes.
    A snapshot event is persisted first and only then swapped in; errors keep
    the current snapshot.
    """
    async for event in channel:
        if isinstance(event, SnapshotEvent):
            logging.info(
                f"Filesystem scan complete: {len(event.records)} files in {event.duration * 1000:.0f} ms"
            )
            try:
                snapshot = await asyncio.to_thread(store.persist, event.records)
            except MediaCatalogError as e:
                logging.error(f"Failed to persist snapshot, keeping previous catalog: {e}")
                continue
            state.swap(snapshot)
        elif isinstance(event, ErrorEvent):
            logging.warning(f"Indexer error: {event.message}")


def rebuild_catalog(root: Path,
                    store: SnapshotStore,
                    state: CatalogState,
                    scanner: Optional[DiskScanner] = None) -> Snapshot:
    """
    Manual rebuild: scan, persist, swap.
    On any failure the state is left untouched and the error propagates.
    """
    records = Indexer.scan_once(root, scanner)
    snapshot = store.persist(records)
    state.swap(snapshot)
    logging.info(f"Manual index rebuild completed: {len(snapshot)} records")
    return snapshot


async def rebuild_catalog_async(root: Path,
                                store: SnapshotStore,
                                state: CatalogState,
                                scanner: Optional[DiskScanner] = None) -> Snapshot:
    """rebuild_catalog on a worker thread, keeping the event loop free for queries."""
    return await asyncio.to_thread(rebuild_catalog, root, store, state, scanner)
