import hashlib
import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime, UTC
from pathlib import Path, PurePath
from typing import Dict, Iterator, List, Optional

from tqdm import tqdm

from .. import config
from ..exceptions import RootNotFound, ScanError
from ..metadata.extract import MetadataExtractor
from ..models import MediaRecord, MediaType
from ..tags.parser import fold_attributes, parse_filename_tokens
from .hasher import ContentHasher


def relative_to_string(path: PurePath) -> str:
    """
    Forward-slash form of a relative path, whatever the host separator.
    Undecodable filename bytes become U+FFFD, so the result is always valid UTF-8.
    """
    return path.as_posix().encode("utf-8", "surrogateescape").decode("utf-8", "replace")


def stable_id(relative_path: str) -> str:
    """SHA-1 of the normalized relative path. Survives rescans, not renames."""
    return hashlib.sha1(relative_path.encode("utf-8")).hexdigest()


def detect_media_type(path: PurePath) -> MediaType:
    ext = path.suffix.lower()
    return MediaType(config.EXT_TO_TYPE.get(ext, MediaType.UNKNOWN.value))


class DiskScanner:
    """
    Builds one MediaRecord per regular file under a root.

    Every pass is a full rebuild; records come back sorted by relative path
    so catalog order does not depend on the filesystem's walk order.
    """

    def __init__(self,
                 parse_tags: bool = True,
                 extract_metadata: bool = False,
                 compute_hash: bool = False,
                 thumbnail_template: Optional[str] = None,
                 max_workers: int = 1):
        self.parse_tags = parse_tags
        self.extract_metadata = extract_metadata
        self.compute_hash = compute_hash
        self.thumbnail_template = thumbnail_template
        self.max_workers = max_workers
        self.metadata = MetadataExtractor()

    @classmethod
    def from_config(cls, app_config: config.AppConfig) -> "DiskScanner":
        return cls(
            extract_metadata=app_config.extract_metadata,
            compute_hash=app_config.compute_hash,
            thumbnail_template=app_config.thumbnail_template,
            max_workers=app_config.max_workers,
        )

    def scan(self, root: Path, progress: bool = False) -> List[MediaRecord]:
        """
        Walks `root` and returns the full record set.

        Raises RootNotFound if root is missing. Entries that fail are logged
        and skipped.
        """
        root = Path(root)
        if not root.is_dir():
            raise RootNotFound(f"media root '{root}' does not exist")

        indexed_at = datetime.now(UTC)
        # Sampled-hash collisions are only tracked within one pass
        hasher = ContentHasher() if self.compute_hash else None
        files = list(self._iter_files(root))
        bar = tqdm(total=len(files), desc="Scanning", unit="file", disable=not progress)

        try:
            if self.max_workers <= 1:
                records = self._scan_sequential(root, files, indexed_at, hasher, bar)
            else:
                records = self._scan_parallel(root, files, indexed_at, hasher, bar)
        finally:
            bar.close()

        records.sort(key=lambda r: r.relative_path)
        logging.debug(f"Scanned {len(records)} of {len(files)} files under {root}")
        return records

    def _scan_sequential(self,
                         root: Path,
                         files: List[Path],
                         indexed_at: datetime,
                         hasher: Optional[ContentHasher],
                         bar: tqdm) -> List[MediaRecord]:
        records = []
        for path in files:
            record = self._process_single_file(root, path, indexed_at, hasher)
            if record:
                records.append(record)
            bar.update(1)
        return records

    def _scan_parallel(self,
                       root: Path,
                       files: List[Path],
                       indexed_at: datetime,
                       hasher: Optional[ContentHasher],
                       bar: tqdm) -> List[MediaRecord]:
        """
        Parallel scanning with directory-level batching.
        Files of one directory are read by one worker to keep disk access sequential.
        """
        dir_batches = self._group_files_by_directory(files)
        logging.info(f"Parallel scan: {len(dir_batches)} directories, {self.max_workers} workers")

        records: List[MediaRecord] = []
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            future_to_batch = {
                executor.submit(self._process_directory_batch, root, batch, indexed_at, hasher): directory
                for directory, batch in dir_batches.items()
            }

            for future in as_completed(future_to_batch):
                directory = future_to_batch[future]
                try:
                    batch_records = future.result()
                except Exception as e:
                    logging.error(f"Failed to process directory {directory}: {e}")
                    continue
                records.extend(batch_records)
                bar.update(len(batch_records))
        return records

    def _group_files_by_directory(self, files: List[Path]) -> Dict[Path, List[Path]]:
        dir_batches: Dict[Path, List[Path]] = {}
        for path in files:
            dir_batches.setdefault(path.parent, []).append(path)
        return dir_batches

    def _process_directory_batch(self,
                                 root: Path,
                                 files: List[Path],
                                 indexed_at: datetime,
                                 hasher: Optional[ContentHasher]) -> List[MediaRecord]:
        records = []
        for path in files:
            record = self._process_single_file(root, path, indexed_at, hasher)
            if record:
                records.append(record)
        return records

    def _process_single_file(self,
                             root: Path,
                             path: Path,
                             indexed_at: datetime,
                             hasher: Optional[ContentHasher] = None) -> Optional[MediaRecord]:
        """Processes a single file and returns a MediaRecord or None on error."""
        try:
            return self.build_record(root, path, indexed_at, hasher)
        except (OSError, ValueError, ScanError) as e:
            # ValueError includes UnicodeError from odd filenames
            logging.warning(f"Skipping {relative_to_string(path)}: {e}")
            return None

    def build_record(self,
                     root: Path,
                     path: Path,
                     indexed_at: datetime,
                     hasher: Optional[ContentHasher] = None) -> MediaRecord:
        try:
            relative = path.relative_to(root)
        except ValueError as e:
            raise ScanError(f"{path} is not under media root {root}") from e

        relative_path = relative_to_string(relative)
        record_id = stable_id(relative_path)
        size_bytes = path.stat().st_size

        # 1. Classify
        media_type = detect_media_type(path)

        # 2. Tags from the (decoded) filename
        tags = ()
        attributes = {}
        if self.parse_tags:
            parsed = parse_filename_tokens(relative_path.rsplit("/", 1)[-1])
            if parsed.invalid_tokens:
                logging.debug(f"Ignoring invalid tag tokens in {relative_path}: {parsed.invalid_tokens}")
            tags = tuple(parsed.tags)
            attributes = fold_attributes(parsed.tags)

        # 3. Optional enrichment
        dimensions = None
        duration_ms = None
        if self.extract_metadata:
            details = self.metadata.extract(path, media_type)
            dimensions = details.dimensions
            duration_ms = details.duration_ms

        content_hash = None
        if self.compute_hash:
            content_hash = (hasher or ContentHasher()).fingerprint(path)

        thumbnail_path = None
        if self.thumbnail_template and media_type.value in config.PREVIEWABLE_TYPES:
            thumbnail_path = self.thumbnail_template.format(id=record_id)

        return MediaRecord(
            id=record_id,
            relative_path=relative_path,
            media_type=media_type,
            tags=tags,
            attributes=attributes,
            filesize=size_bytes,
            dimensions=dimensions,
            duration_ms=duration_ms,
            thumbnail_path=thumbnail_path,
            hash=content_hash,
            indexed_at=indexed_at,
        )

    def _iter_files(self, root: Path) -> Iterator[Path]:
        """Depth-first walker using os.scandir. Symlinks are not followed."""
        stack = [root]
        while stack:
            current = stack.pop()
            try:
                with os.scandir(current) as it:
                    entries = list(it)
            except OSError as e:
                logging.warning(f"Cannot read directory {current}: {e}")
                continue

            # Sort for stable traversal order
            entries.sort(key=lambda e: e.name)

            dirs = []
            for e in entries:
                try:
                    if e.is_dir(follow_symlinks=False):
                        dirs.append(Path(e.path))
                    elif e.is_file(follow_symlinks=False):
                        yield Path(e.path)
                except OSError as err:
                    logging.warning(f"Cannot stat {e.path}: {err}")

            # Push dirs to stack (reversed so we process A before Z)
            for d in reversed(dirs):
                stack.append(d)
