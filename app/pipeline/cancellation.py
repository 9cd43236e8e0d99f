from app.database.repositories.base import BasePipelineStore
from app.logging.logger import Log
from app.pipeline.models import CancellationStatus, PipelineRecord, Stage

CANCELLED_MESSAGE = "Analysis cancelled by user request."


class CancellationMonitor:
    """Polls the persisted record for a pending cancellation request.

    There is no interrupt: callers check at their checkpoints and abort
    further work when a request is seen. Progress is never touched, so the
    cancelled record keeps its last value.
    """

    def __init__(self, store: BasePipelineStore) -> None:
        self._store = store

    async def check(self, record_id: str) -> CancellationStatus:
        """Re-read the record and act on any cancellation request.

        Raises:
            RecordNotFoundError: if the record no longer exists.
        """
        record = await self._store.get(record_id)
        return await self.check_record(record)

    async def check_record(self, record: PipelineRecord) -> CancellationStatus:
        """Act on a record the caller has just re-read."""
        if record.stage is Stage.CANCELLED:
            return CancellationStatus.ALREADY_CANCELLED
        if record.stage is not Stage.CANCELLING:
            return CancellationStatus.NONE

        await self._store.update(
            record.id,
            {"stage": Stage.CANCELLED, "error_message": CANCELLED_MESSAGE},
        )
        Log.info(f"Pipeline {record.id} cancelled at {record.overall_progress}%")
        return CancellationStatus.REQUESTED
