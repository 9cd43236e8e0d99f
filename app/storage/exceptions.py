class ArtifactStoreError(Exception):
    """Base exception for all artifact storage errors."""


class ArtifactNotFoundError(ArtifactStoreError):
    """Raised when an artifact does not exist at the resolved path."""


class ArtifactStorageError(ArtifactStoreError):
    """Raised when an artifact cannot be read, written or deleted."""


class UnsupportedStorageDiskError(ArtifactStoreError):
    """Raised when settings name an unsupported storage disk type."""
