"""
Configuration constants and runtime settings for the media catalog.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from .exceptions import RootNotFound, ValidationFailed

# --- File Type Definitions ---
IMAGE_EXTS = {'.jpg', '.jpeg', '.png', '.webp', '.bmp', '.heic', '.tiff'}
GIF_EXTS = {'.gif'}
VIDEO_EXTS = {'.mp4', '.mov', '.mkv', '.webm', '.avi'}
AUDIO_EXTS = {'.mp3', '.wav', '.flac', '.aac', '.ogg'}
PDF_EXTS = {'.pdf'}

# Extension to Type Mapping
# Values are MediaType values; anything missing is 'unknown'
EXT_TO_TYPE = {}
for ext in IMAGE_EXTS: EXT_TO_TYPE[ext] = 'image'
for ext in GIF_EXTS: EXT_TO_TYPE[ext] = 'gif'
for ext in VIDEO_EXTS: EXT_TO_TYPE[ext] = 'video'
for ext in AUDIO_EXTS: EXT_TO_TYPE[ext] = 'audio'
for ext in PDF_EXTS: EXT_TO_TYPE[ext] = 'pdf'

# Media types that get a thumbnail reference when a template is configured
PREVIEWABLE_TYPES = {'image', 'gif', 'video', 'pdf'}
DEFAULT_THUMBNAIL_TEMPLATE = "/api/v1/media/{id}/thumbnail"

# --- Snapshot Cache ---
CACHE_VERSION = "1.0.0"
CACHE_FILENAME = "index.json"

# --- Search ---
DEFAULT_PAGE_SIZE = 60
MAX_PAGE_SIZE = 200

# --- Indexer ---
DEFAULT_POLL_INTERVAL = 30.0  # seconds
EVENT_CHANNEL_CAPACITY = 4

# --- Hashing & Performance ---
# Files smaller than this are hashed fully. Larger ones get Sparse Hash first.
SPARSE_HASH_THRESHOLD = 5 * 1024 * 1024  # 5 MB
HASH_CHUNK_SIZE = 64 * 1024  # 64 KB chunks for reading

# --- Environment ---
ENV_MEDIA_ROOT = "MEDIA_CATALOG_ROOT"
ENV_CACHE_DIR = "MEDIA_CATALOG_CACHE_DIR"
ENV_POLL_INTERVAL = "MEDIA_CATALOG_POLL_INTERVAL"
ENV_LOG_LEVEL = "LOG_LEVEL"
DEFAULT_CACHE_DIR = Path("./.cache")


@dataclass
class AppConfig:
    """
    Fully resolved settings shared by the CLI and the catalog app.
    """
    media_root: Path
    cache_dir: Path
    poll_interval: float = DEFAULT_POLL_INTERVAL
    log_level: str = "info"
    log_file: Optional[Path] = None
    extract_metadata: bool = False
    compute_hash: bool = False
    thumbnail_template: Optional[str] = DEFAULT_THUMBNAIL_TEMPLATE
    max_workers: int = 1

    @classmethod
    def from_args(cls, args, environ: Optional[Mapping[str, str]] = None) -> "AppConfig":
        """
        Builds a config from parsed CLI arguments.
        Priority: CLI flag -> environment variable -> default.
        """
        env = os.environ if environ is None else environ

        root_value = getattr(args, "media_root", None) or env.get(ENV_MEDIA_ROOT)
        if not root_value:
            raise RootNotFound(f"media root not configured (use --media-root or {ENV_MEDIA_ROOT})")

        cache_value = getattr(args, "cache_dir", None) or env.get(ENV_CACHE_DIR) or DEFAULT_CACHE_DIR

        poll_interval = getattr(args, "poll_interval", None)
        if poll_interval is None:
            raw_interval = env.get(ENV_POLL_INTERVAL, DEFAULT_POLL_INTERVAL)
            try:
                poll_interval = float(raw_interval)
            except ValueError:
                raise ValidationFailed(f"{ENV_POLL_INTERVAL} must be a number of seconds, got {raw_interval!r}")

        log_level = getattr(args, "log_level", None) or env.get(ENV_LOG_LEVEL, "info")

        return cls(
            media_root=Path(root_value).expanduser(),
            cache_dir=Path(cache_value).expanduser(),
            poll_interval=poll_interval,
            log_level=log_level,
            log_file=getattr(args, "log_file", None),
            extract_metadata=bool(getattr(args, "metadata", False)),
            compute_hash=bool(getattr(args, "hash", False)),
            max_workers=getattr(args, "workers", None) or 1,
        )

    def validate(self, require_root: bool = True):
        """Creates the cache dir; a missing media root is fatal when required."""
        if require_root and not self.media_root.is_dir():
            raise RootNotFound(f"media root '{self.media_root}' does not exist or is not accessible")
        self.cache_dir.mkdir(parents=True, exist_ok=True)
