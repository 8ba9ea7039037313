import asyncio
import logging
import time
from datetime import datetime, UTC
from typing import Any, Dict, Mapping, Optional

from .cache.store import SnapshotStore
from .config import AppConfig
from .indexer import Indexer, IndexerConfig
from .models import Snapshot
from .scanning.filesystem import DiskScanner
from .search.engine import SearchResult, search
from .search.params import parse_search_params
from .state import CatalogState, consume_events, rebuild_catalog, rebuild_catalog_async


class CatalogApp:
    """
    Wires the catalog pipeline together:
    Scanner -> Snapshot Store -> Catalog State -> Search.
    """

    def __init__(self, app_config: AppConfig, scanner: Optional[DiskScanner] = None):
        self.config = app_config
        self.store = SnapshotStore(app_config.cache_dir)
        self.state = CatalogState()
        self.scanner = scanner or DiskScanner.from_config(app_config)
        self.boot_instant = time.monotonic()

    def boot(self) -> Snapshot:
        """
        Installs the cached snapshot, or scans when there is none.
        With no usable cache and a missing media root this raises RootNotFound.
        """
        root = self.config.media_root
        if not root.is_dir():
            logging.warning(f"Media root {root} is not accessible; only a cached catalog can be served")

        snapshot = self.store.load_or_rebuild(lambda: self.scanner.scan(root))
        self.state.swap(snapshot)
        logging.info(f"Catalog ready: {len(snapshot)} records (generated {snapshot.generated_at.isoformat()})")
        return snapshot

    def rebuild(self) -> Snapshot:
        return rebuild_catalog(self.config.media_root, self.store, self.state, self.scanner)

    async def rebuild_async(self) -> Snapshot:
        return await rebuild_catalog_async(self.config.media_root, self.store, self.state, self.scanner)

    def search(self, params: Mapping[str, str]) -> SearchResult:
        """Validates request parameters and runs them against the current snapshot."""
        query = parse_search_params(params)
        return search(self.state.current(), query)

    async def watch(self, duration: Optional[float] = None):
        """
        Runs the indexer and its consumer until cancelled, or for `duration` seconds.
        """
        handle, channel = Indexer.spawn(IndexerConfig(
            root=self.config.media_root,
            poll_interval=self.config.poll_interval,
            scanner=self.scanner,
        ))
        consumer = asyncio.create_task(consume_events(channel, self.store, self.state))

        try:
            if duration is None:
                await consumer
            else:
                await asyncio.sleep(duration)
        finally:
            # The indexer closes the channel on exit, which ends the consumer
            await handle.shutdown()
            await consumer

    def health(self) -> Dict[str, Any]:
        snapshot = self.state.current()
        return {
            "status": "ok",
            "mediaRoot": str(self.config.media_root),
            "cacheDir": str(self.config.cache_dir),
            "uptimeSeconds": time.monotonic() - self.boot_instant,
            "cacheItems": len(snapshot),
            "cacheGeneratedAt": snapshot.generated_at.isoformat(),
            "checkedAt": datetime.now(UTC).isoformat(),
        }
