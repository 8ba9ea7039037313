import hashlib
import threading
from pathlib import Path
from typing import Iterator, Set

from .. import config
from ..exceptions import ScanError

SPARSE_PREFIX = "s-"
SAMPLE_SIZE = 4096


class ContentHasher:
    """
    Content fingerprints for MediaRecord.hash, scoped to a single scan.

    Small files get a full SHA-256. Large files are sampled at the head,
    middle and tail; when a sample fingerprint repeats within the same scan
    the later file is read in full so two distinct files never share a hash
    just because their samples agree. Record ids never depend on this.

    One instance is shared by all scan workers; only the seen-set is locked,
    file reads run concurrently.
    """

    def __init__(self):
        self._seen_samples: Set[str] = set()
        self._lock = threading.Lock()

    def fingerprint(self, path: Path) -> str:
        try:
            size = path.stat().st_size
        except FileNotFoundError as e:
            raise ScanError(f"{path} disappeared before hashing") from e

        if size < config.SPARSE_HASH_THRESHOLD:
            return full_digest(path)

        sampled = sample_digest(path, size)
        with self._lock:
            repeated = sampled in self._seen_samples
            self._seen_samples.add(sampled)
        return full_digest(path) if repeated else sampled


def full_digest(path: Path) -> str:
    h = hashlib.sha256()
    with open(path, "rb") as f:
        while chunk := f.read(config.HASH_CHUNK_SIZE):
            h.update(chunk)
    return h.hexdigest()


def sample_digest(path: Path, size: int) -> str:
    """Size plus head/middle/tail samples, prefixed so it never looks like a full digest."""
    h = hashlib.sha256(str(size).encode("ascii"))
    with open(path, "rb") as f:
        for offset in _sample_offsets(size):
            f.seek(offset)
            # A file shrinking under us yields short reads, not an error
            h.update(f.read(SAMPLE_SIZE))
    return f"{SPARSE_PREFIX}{h.hexdigest()}"


def _sample_offsets(size: int) -> Iterator[int]:
    seen = set()
    for offset in (0, size // 2, max(size - SAMPLE_SIZE, 0)):
        if offset not in seen:
            seen.add(offset)
            yield offset
