from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass
class PipelineEvent:
    """Represents a row from the pipeline_events table."""

    id: int
    pipeline_id: str
    before_snapshot: dict[str, Any]
    after_snapshot: dict[str, Any]
    status: str
    attempts: int
    error_message: str | None = None
    locked_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
