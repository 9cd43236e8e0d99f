from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum

from app.analysis.models import StructuredReport


class Stage(str, Enum):
    """Lifecycle stage of a pipeline record, persisted by value."""

    UPLOADING = "uploading"
    SUMMARIZING = "summarizing"
    IDENTIFYING_RULES = "identifying_rules"
    ASSESSING_COMPLIANCE = "assessing_compliance"
    REVIEWING_REPORT = "reviewing_report"
    GENERATING_CHARTS = "generating_charts"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLING = "cancelling"
    CANCELLED = "cancelled"
    DELETED = "deleted"
    PENDING_DELETION = "pending_deletion"


class CancellationStatus(str, Enum):
    """Outcome of a cancellation checkpoint."""

    NONE = "none"
    REQUESTED = "requested"
    ALREADY_CANCELLED = "already_cancelled"


@dataclass
class StageArtifacts:
    """Per-stage outputs. Each field is owned by exactly one stage executor."""

    summary_text: str = ""
    identified_rules: list[str] = field(default_factory=list)
    structured_report: StructuredReport | None = None
    reviewed_report: StructuredReport | None = None
    chart_refs: dict[str, str] = field(default_factory=dict)


@dataclass
class PipelineRecord:
    """One submitted dataset and its progress through the pipeline."""

    id: str
    owner_id: str
    stage: Stage
    file_name: str = ""
    language_code: str = ""
    overall_progress: int = 0
    source_artifact_ref: str | None = None
    is_chunked: bool = False
    chunk_count: int = 0
    chunks_completed: int = 0
    stage_artifacts: StageArtifacts = field(default_factory=StageArtifacts)
    report_artifact_ref: str | None = None
    error_message: str | None = None
    revision: int = 0
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def cancellation_requested(self) -> bool:
        return self.stage in (Stage.CANCELLING, Stage.CANCELLED)


def truncate_error_message(message: str, max_length: int) -> str:
    """Bound an error message before it is persisted."""
    if max_length <= 0:
        return ""
    if len(message) <= max_length:
        return message
    if max_length <= 3:
        return message[:max_length]
    return message[: max_length - 3] + "..."
