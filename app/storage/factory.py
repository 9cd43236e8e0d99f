from typing import ClassVar

from app.config.settings import Settings
from app.storage.base import BaseArtifactStore
from app.storage.exceptions import UnsupportedStorageDiskError
from app.storage.local_store import LocalArtifactStore


class ArtifactStoreFactory:
    """Creates the artifact store for the configured storage disk."""

    DISKS: ClassVar[tuple[str, ...]] = ("local",)

    @classmethod
    def create(cls, settings: Settings) -> BaseArtifactStore:
        disk = settings.artifact_storage_disk.lower()
        if disk == "local":
            return LocalArtifactStore(settings.artifacts_root)
        raise UnsupportedStorageDiskError(
            f"storage disk '{disk}' is not supported. Choose from: {list(cls.DISKS)}"
        )
