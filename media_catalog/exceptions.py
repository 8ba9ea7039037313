"""
Custom exception hierarchy for the media catalog.

Scanner and cache failures are recovered locally wherever a usable snapshot
exists; these types let callers tell the cases apart.
"""


class MediaCatalogError(Exception):
    """Base exception for all media catalog errors."""
    pass


class RootNotFound(MediaCatalogError):
    """Raised when the media root does not exist."""
    pass


class ScanError(MediaCatalogError):
    """Raised when a single directory entry cannot be cataloged."""
    pass


class MetadataExtractionError(MediaCatalogError):
    """Raised when metadata cannot be extracted from a file."""
    pass


class CorruptCache(MediaCatalogError):
    """Raised when the snapshot file exists but cannot be parsed."""
    pass


class SchemaMismatch(CorruptCache):
    """Raised when the snapshot was written by a different schema version."""

    def __init__(self, found: str, expected: str):
        super().__init__(f"cache schema mismatch (found {found}, expected {expected})")
        self.found = found
        self.expected = expected


class PersistFailure(MediaCatalogError):
    """Raised when the snapshot cannot be written to disk."""
    pass


class ValidationFailed(MediaCatalogError):
    """Raised when search parameters are malformed."""
    pass
