import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

from PIL import Image, UnidentifiedImageError
from pymediainfo import MediaInfo

from ..exceptions import MetadataExtractionError
from ..models import Dimensions, MediaType


@dataclass
class MediaDetails:
    dimensions: Optional[Dimensions] = None
    duration_ms: Optional[int] = None


class MetadataExtractor:
    """
    Unified interface for the optional per-file details of a MediaRecord.

    Strategies:
      - Images/GIFs: Pillow (reads the header only, no full decode).
      - Video/Audio: pymediainfo (duration, plus frame size for video).
    """

    def extract(self, path: Path, media_type: MediaType) -> MediaDetails:
        """Never raises; a file we cannot read simply has no details."""
        if media_type in (MediaType.IMAGE, MediaType.GIF):
            return MediaDetails(dimensions=self.get_image_dimensions(path))
        if media_type in (MediaType.VIDEO, MediaType.AUDIO):
            try:
                return self._extract_mediainfo(path, media_type)
            except MetadataExtractionError as e:
                logging.debug(f"MediaInfo failed for {path}: {e}")
        return MediaDetails()

    def get_image_dimensions(self, path: Path) -> Optional[Dimensions]:
        try:
            with Image.open(path) as im:
                width, height = im.size
            return Dimensions(width=width, height=height)
        except (UnidentifiedImageError, OSError) as e:
            logging.warning(f"Pillow could not read {path}: {e}")
            return None

    def _extract_mediainfo(self, path: Path, media_type: MediaType) -> MediaDetails:
        try:
            mi = MediaInfo.parse(str(path))
        except Exception as e:
            raise MetadataExtractionError(str(e)) from e

        details = MediaDetails()
        for track in mi.tracks:
            if track.track_type == "General":
                # MediaInfo duration is in milliseconds
                duration = self._as_number(getattr(track, "duration", None))
                if duration is not None:
                    details.duration_ms = int(duration)
            elif track.track_type == "Video" and media_type == MediaType.VIDEO:
                width = self._as_number(getattr(track, "width", None))
                height = self._as_number(getattr(track, "height", None))
                if width and height and details.dimensions is None:
                    details.dimensions = Dimensions(width=int(width), height=int(height))
        return details

    def _as_number(self, value: Any) -> Optional[float]:
        if value is None:
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            return None
