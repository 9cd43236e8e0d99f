from abc import ABC, abstractmethod


class BaseArtifactStore(ABC):
    """Contract for blob storage holding source datasets and generated files."""

    @abstractmethod
    async def read_text(self, path: str) -> str:
        """Read a UTF-8 text artifact.

        Raises:
            ArtifactNotFoundError: if nothing is stored at ``path``.
            ArtifactStorageError: on any other read failure.
        """

    @abstractmethod
    async def write_blob(self, path: str, data: bytes, content_type: str) -> str:
        """Store ``data`` at ``path``, replacing any existing blob.

        Returns:
            The locator of the stored blob.

        Raises:
            ArtifactStorageError: if the write fails.
        """

    @abstractmethod
    async def delete(self, path: str) -> None:
        """Delete the blob at ``path``. Deleting a missing blob is not an error."""
