"""
Background polling indexer.

Scans the media root immediately and then once per poll interval, emitting
exactly one event per scan attempt over a bounded channel. A failed scan is
reported as an ErrorEvent and polling carries on.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, UTC
from pathlib import Path
from typing import List, Optional, Tuple, Union

from . import config
from .models import MediaRecord
from .scanning.filesystem import DiskScanner


@dataclass
class SnapshotEvent:
    records: List[MediaRecord]
    scanned_at: datetime
    duration: float  # seconds


@dataclass
class ErrorEvent:
    message: str


IndexEvent = Union[SnapshotEvent, ErrorEvent]


@dataclass
class IndexerConfig:
    root: Path
    poll_interval: float = config.DEFAULT_POLL_INTERVAL
    channel_capacity: int = config.EVENT_CHANNEL_CAPACITY
    scanner: Optional[DiskScanner] = field(default=None, repr=False)


class EventChannel:
    """
    Bounded single-consumer channel.

    Either side may close it. A closed channel refuses new events instead of
    blocking; the receiver still drains whatever was queued before the close.
    """

    def __init__(self, capacity: int = config.EVENT_CHANNEL_CAPACITY):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=capacity)
        self._closed = asyncio.Event()

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def close(self):
        self._closed.set()

    async def send(self, event: IndexEvent, abort: Optional[asyncio.Event] = None) -> bool:
        """
        Queues an event. Returns False if the channel was closed (or `abort`
        was set) before there was room for it.
        """
        if self.closed or (abort is not None and abort.is_set()):
            return False
        try:
            self._queue.put_nowait(event)
            return True
        except asyncio.QueueFull:
            pass

        put = asyncio.ensure_future(self._queue.put(event))
        waiters = {put, asyncio.ensure_future(self._closed.wait())}
        if abort is not None:
            waiters.add(asyncio.ensure_future(abort.wait()))
        done, pending = await asyncio.wait(waiters, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        return put in done

    async def recv(self) -> Optional[IndexEvent]:
        """Next event, or None once the channel is closed and drained."""
        if not self._queue.empty():
            return self._queue.get_nowait()
        if self.closed:
            return None

        get = asyncio.ensure_future(self._queue.get())
        closed = asyncio.ensure_future(self._closed.wait())
        done, pending = await asyncio.wait({get, closed}, return_when=asyncio.FIRST_COMPLETED)
        for task in pending:
            task.cancel()
        if get in done:
            return get.result()
        return self._queue.get_nowait() if not self._queue.empty() else None

    def __aiter__(self):
        return self

    async def __anext__(self) -> IndexEvent:
        event = await self.recv()
        if event is None:
            raise StopAsyncIteration
        return event


class IndexerHandle:
    """Handle to the background indexer task."""

    def __init__(self, task: asyncio.Task, stop_event: asyncio.Event):
        self._task = task
        self._stop_event = stop_event

    @property
    def done(self) -> bool:
        return self._task.done()

    def stop(self):
        """Requests a stop at the next loop boundary. An in-flight scan finishes first."""
        self._stop_event.set()

    def abort(self):
        """Cancels the task without waiting for it."""
        self._task.cancel()

    async def shutdown(self):
        """Stops the loop and waits for it to finish."""
        self.stop()
        try:
            await self._task
        except asyncio.CancelledError:
            pass


class Indexer:
    """Filesystem indexer that periodically scans the media root."""

    @staticmethod
    def spawn(indexer_config: IndexerConfig) -> Tuple[IndexerHandle, EventChannel]:
        """Starts the polling loop on the running event loop."""
        channel = EventChannel(indexer_config.channel_capacity)
        stop_event = asyncio.Event()
        task = asyncio.create_task(_run_loop(indexer_config, channel, stop_event))
        return IndexerHandle(task, stop_event), channel

    @staticmethod
    def scan_once(root: Path, scanner: Optional[DiskScanner] = None) -> List[MediaRecord]:
        """One-off synchronous scan, for boot and manual rebuilds."""
        scanner = scanner or DiskScanner()
        return scanner.scan(Path(root))


async def _run_loop(indexer_config: IndexerConfig, channel: EventChannel, stop_event: asyncio.Event):
    scanner = indexer_config.scanner or DiskScanner()
    logging.info(f"Indexer started for {indexer_config.root} (poll every {indexer_config.poll_interval}s)")

    try:
        while not stop_event.is_set():
            event = await _scan_event(indexer_config.root, scanner)
            if not await channel.send(event, abort=stop_event):
                if not stop_event.is_set():
                    logging.info("Indexer event receiver closed, stopping")
                break

            try:
                await asyncio.wait_for(stop_event.wait(), timeout=indexer_config.poll_interval)
            except asyncio.TimeoutError:
                pass

            if channel.closed:
                logging.info("Indexer event receiver closed, stopping")
                break
    finally:
        channel.close()
        logging.info("Indexer stopped")


async def _scan_event(root: Path, scanner: DiskScanner) -> IndexEvent:
    started = time.perf_counter()
    try:
        records = await asyncio.to_thread(scanner.scan, root)
    except Exception as e:
        # Any failure is reported for this cycle only; the next tick scans again
        logging.debug(f"Scan of {root} failed: {e}")
        return ErrorEvent(message=str(e))

    return SnapshotEvent(
        records=records,
        scanned_at=datetime.now(UTC),
        duration=time.perf_counter() - started,
    )
