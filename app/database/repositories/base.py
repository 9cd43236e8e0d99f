from abc import ABC, abstractmethod
from typing import Any

from app.pipeline.models import PipelineRecord

# Record fields a caller may pass to ``update``. ``id``, ``owner_id``,
# ``revision`` and ``created_at`` are owned by the store.
UPDATABLE_FIELDS: frozenset[str] = frozenset(
    {
        "stage",
        "file_name",
        "language_code",
        "overall_progress",
        "source_artifact_ref",
        "is_chunked",
        "chunk_count",
        "chunks_completed",
        "stage_artifacts",
        "report_artifact_ref",
        "error_message",
        "completed_at",
    }
)


class BasePipelineStore(ABC):
    """Contract for durable pipeline record storage."""

    @abstractmethod
    async def get(self, record_id: str) -> PipelineRecord:
        """Return the current record.

        Raises:
            RecordNotFoundError: if no record with this ID exists.
        """

    @abstractmethod
    async def update(self, record_id: str, fields: dict[str, Any]) -> PipelineRecord:
        """Apply a partial update and return the record as written.

        Untouched fields keep their values. Every successful update bumps
        ``revision`` and publishes a before/after change event.

        Raises:
            RecordNotFoundError: if no record with this ID exists.
            ValueError: if ``fields`` names a field outside ``UPDATABLE_FIELDS``.
        """

    @abstractmethod
    async def create(self, record: PipelineRecord) -> PipelineRecord:
        """Insert a new record without publishing a change event."""


def check_update_fields(fields: dict[str, Any]) -> None:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
    if not fields:
        raise ValueError("No fields to update")
