from app.config.settings import Settings
from app.database.repositories.base import BasePipelineStore
from app.logging.logger import Log
from app.pipeline.exceptions import RecordNotFoundError
from app.pipeline.models import PipelineRecord, Stage, StageArtifacts, truncate_error_message
from app.storage.base import BaseArtifactStore

DELETED_MESSAGE = "Analysis and associated files were deleted."


class DeletionHandler:
    """Carries out a deletion request: removes blobs, clears artifacts, marks Deleted.

    The record itself is kept as a soft-deleted row.
    """

    def __init__(
        self,
        store: BasePipelineStore,
        artifact_store: BaseArtifactStore,
        max_error_message_length: int,
    ) -> None:
        self._store = store
        self._artifact_store = artifact_store
        self._max_error_message_length = max_error_message_length

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        store: BasePipelineStore,
        artifact_store: BaseArtifactStore,
    ) -> "DeletionHandler":
        return cls(store, artifact_store, settings.max_error_message_length)

    async def handle(self, record_id: str) -> None:
        """Delete the record's files if it is still pending deletion."""
        try:
            record = await self._store.get(record_id)
        except RecordNotFoundError:
            Log.warning(f"Pipeline {record_id} vanished before deletion")
            return
        if record.stage is not Stage.PENDING_DELETION:
            Log.debug(f"Pipeline {record_id} is '{record.stage.value}', deletion skipped")
            return

        try:
            paths = self._artifact_paths(record)
            for path in paths:
                await self._artifact_store.delete(path)
            await self._store.update(
                record_id,
                {
                    "stage": Stage.DELETED,
                    "stage_artifacts": StageArtifacts(),
                    "report_artifact_ref": None,
                    "error_message": DELETED_MESSAGE,
                },
            )
            Log.info(f"Pipeline {record_id} deleted ({len(paths)} files removed)")
        except Exception as exc:
            await self._fail(record_id, exc)

    async def _fail(self, record_id: str, exc: Exception) -> None:
        message = truncate_error_message(
            f"Deletion failed: {exc}", self._max_error_message_length
        )
        Log.error(f"Pipeline {record_id}: {message}")
        try:
            await self._store.update(
                record_id, {"stage": Stage.ERROR, "error_message": message}
            )
        except Exception as write_exc:
            Log.critical(
                f"Pipeline {record_id}: could not persist deletion failure "
                f"({write_exc}); record left pending deletion"
            )

    @staticmethod
    def _artifact_paths(record: PipelineRecord) -> list[str]:
        paths = [
            record.source_artifact_ref,
            record.report_artifact_ref,
            *record.stage_artifacts.chart_refs.values(),
        ]
        return [path for path in paths if path]
