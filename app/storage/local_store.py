import asyncio
import os
from pathlib import Path

from app.logging.logger import Log
from app.storage.base import BaseArtifactStore
from app.storage.exceptions import ArtifactNotFoundError, ArtifactStorageError


class LocalArtifactStore(BaseArtifactStore):
    """Stores artifacts as files under a root directory.

    Locators are paths relative to the root. Blocking file I/O runs in a
    worker thread.
    """

    def __init__(self, root: Path) -> None:
        self._root = root.resolve()

    @property
    def root(self) -> Path:
        return self._root

    async def read_text(self, path: str) -> str:
        return await asyncio.to_thread(self._read_text, path)

    async def write_blob(self, path: str, data: bytes, content_type: str) -> str:
        await asyncio.to_thread(self._write_blob, path, data)
        Log.debug(f"Stored {len(data)} bytes ({content_type}) at {path}")
        return path

    async def delete(self, path: str) -> None:
        await asyncio.to_thread(self._delete, path)

    def _read_text(self, path: str) -> str:
        target = self._resolve(path)
        if not target.is_file():
            raise ArtifactNotFoundError(f"Artifact not found: {path}")
        try:
            return target.read_bytes().decode("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise ArtifactStorageError(f"Failed to read artifact {path}: {exc}") from exc

    def _write_blob(self, path: str, data: bytes) -> None:
        target = self._resolve(path)
        tmp = target.with_name(f".{target.name}.tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, target)
        except OSError as exc:
            raise ArtifactStorageError(f"Failed to write artifact {path}: {exc}") from exc

    def _delete(self, path: str) -> None:
        target = self._resolve(path)
        try:
            target.unlink(missing_ok=True)
        except OSError as exc:
            raise ArtifactStorageError(f"Failed to delete artifact {path}: {exc}") from exc

    def _resolve(self, path: str) -> Path:
        if not path or not path.strip():
            raise ArtifactStorageError("Artifact path must not be empty")
        target = (self._root / path.lstrip("/")).resolve()
        if target == self._root or not target.is_relative_to(self._root):
            raise ArtifactStorageError(f"Artifact path escapes storage root: {path}")
        return target
