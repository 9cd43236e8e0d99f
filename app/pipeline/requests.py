"""Writes made on behalf of users and the upload service.

These are the only ways a record enters the pipeline or leaves a sink.
Each refuses an origin stage it does not apply to.
"""

import uuid

from app.database.repositories.base import BasePipelineStore
from app.logging.logger import Log
from app.pipeline.exceptions import InvalidRequestError
from app.pipeline.models import PipelineRecord, Stage, truncate_error_message
from app.pipeline.progress import ProgressMapper
from app.pipeline.stages import ACTIVE_STAGES, RETRYABLE_STAGES, first_stage

_CANCELLABLE = ACTIVE_STAGES | {Stage.UPLOADING}
_UNDELETABLE = frozenset({Stage.DELETED, Stage.PENDING_DELETION})


class PipelineRequests:
    """External requests translated into record writes."""

    def __init__(
        self,
        store: BasePipelineStore,
        mapper: ProgressMapper,
        max_error_message_length: int = 1000,
    ) -> None:
        self._store = store
        self._mapper = mapper
        self._max_error_message_length = max_error_message_length

    async def create_pipeline(
        self,
        *,
        owner_id: str,
        file_name: str,
        language_code: str,
        record_id: str | None = None,
    ) -> PipelineRecord:
        """Create a record for an upload that is about to start."""
        record = PipelineRecord(
            id=record_id or str(uuid.uuid4()),
            owner_id=owner_id,
            stage=Stage.UPLOADING,
            file_name=file_name,
            language_code=language_code,
            overall_progress=0,
        )
        created = await self._store.create(record)
        Log.info(f"Pipeline {created.id} created for '{file_name}'")
        return created

    async def report_upload_progress(self, record_id: str, fraction: float) -> PipelineRecord:
        record = await self._require(record_id, {Stage.UPLOADING}, "report upload progress")
        progress = self._mapper.map(Stage.UPLOADING, fraction)
        if progress <= record.overall_progress:
            return record
        return await self._store.update(record_id, {"overall_progress": progress})

    async def complete_upload(self, record_id: str, source_artifact_ref: str) -> PipelineRecord:
        """Hand an uploaded dataset to the pipeline."""
        record = await self._require(record_id, {Stage.UPLOADING}, "complete upload")
        updated = await self._store.update(
            record_id,
            {
                "stage": first_stage(),
                "source_artifact_ref": source_artifact_ref,
                "overall_progress": max(
                    record.overall_progress, self._mapper.upload_complete_progress
                ),
                "error_message": None,
            },
        )
        Log.info(f"Pipeline {record_id}: upload complete, processing queued")
        return updated

    async def mark_upload_failed(self, record_id: str, reason: str) -> PipelineRecord:
        """Record an upload the upload service gave up on as Error."""
        await self._require(record_id, {Stage.UPLOADING}, "fail upload")
        message = truncate_error_message(
            f"Upload failed: {reason}", self._max_error_message_length
        )
        updated = await self._store.update(
            record_id, {"stage": Stage.ERROR, "error_message": message}
        )
        Log.warning(f"Pipeline {record_id}: {message}")
        return updated

    async def request_retry(self, record_id: str) -> PipelineRecord:
        """Re-enter the first stage from Error or Cancelled.

        Progress resets to the upload baseline. Completed chunks stay
        checkpointed, so summarization resumes where it stopped.
        """
        await self._require(record_id, RETRYABLE_STAGES, "retry")
        updated = await self._store.update(
            record_id,
            {
                "stage": first_stage(),
                "overall_progress": self._mapper.upload_complete_progress,
                "error_message": None,
                "completed_at": None,
            },
        )
        Log.info(f"Pipeline {record_id}: retry requested")
        return updated

    async def request_cancel(self, record_id: str) -> PipelineRecord:
        await self._require(record_id, _CANCELLABLE, "cancel")
        updated = await self._store.update(record_id, {"stage": Stage.CANCELLING})
        Log.info(f"Pipeline {record_id}: cancellation requested")
        return updated

    async def request_deletion(self, record_id: str) -> PipelineRecord:
        await self._require(record_id, None, "delete")
        updated = await self._store.update(record_id, {"stage": Stage.PENDING_DELETION})
        Log.info(f"Pipeline {record_id}: deletion requested")
        return updated

    async def _require(
        self, record_id: str, allowed: set[Stage] | frozenset[Stage] | None, action: str
    ) -> PipelineRecord:
        record = await self._store.get(record_id)
        refused = (
            record.stage in _UNDELETABLE
            if allowed is None
            else record.stage not in allowed
        )
        if refused:
            raise InvalidRequestError(
                f"Cannot {action} pipeline {record_id} in stage '{record.stage.value}'"
            )
        return record
