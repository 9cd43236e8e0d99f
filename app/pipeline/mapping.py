"""Conversions between pipeline records and their persisted JSON forms."""

from dataclasses import asdict
from datetime import datetime
from typing import Any

from app.analysis.models import StructuredReport
from app.analysis.validator import validate_and_build_report
from app.pipeline.models import PipelineRecord, Stage, StageArtifacts


def report_to_dict(report: StructuredReport | None) -> dict[str, Any] | None:
    if report is None:
        return None
    return asdict(report)


def report_from_dict(data: dict[str, Any] | None) -> StructuredReport | None:
    if not data:
        return None
    return validate_and_build_report(data)


def artifacts_to_dict(artifacts: StageArtifacts) -> dict[str, Any]:
    return {
        "summary_text": artifacts.summary_text,
        "identified_rules": list(artifacts.identified_rules),
        "structured_report": report_to_dict(artifacts.structured_report),
        "reviewed_report": report_to_dict(artifacts.reviewed_report),
        "chart_refs": dict(artifacts.chart_refs),
    }


def artifacts_from_dict(data: dict[str, Any] | None) -> StageArtifacts:
    if not data:
        return StageArtifacts()
    return StageArtifacts(
        summary_text=data.get("summary_text") or "",
        identified_rules=list(data.get("identified_rules") or []),
        structured_report=report_from_dict(data.get("structured_report")),
        reviewed_report=report_from_dict(data.get("reviewed_report")),
        chart_refs=dict(data.get("chart_refs") or {}),
    )


def record_to_snapshot(record: PipelineRecord) -> dict[str, Any]:
    """Serialize a record into the JSON snapshot carried by change events."""
    return {
        "id": record.id,
        "owner_id": record.owner_id,
        "stage": record.stage.value,
        "file_name": record.file_name,
        "language_code": record.language_code,
        "overall_progress": record.overall_progress,
        "source_artifact_ref": record.source_artifact_ref,
        "is_chunked": record.is_chunked,
        "chunk_count": record.chunk_count,
        "chunks_completed": record.chunks_completed,
        "stage_artifacts": artifacts_to_dict(record.stage_artifacts),
        "report_artifact_ref": record.report_artifact_ref,
        "error_message": record.error_message,
        "revision": record.revision,
        "created_at": _format_datetime(record.created_at),
        "completed_at": _format_datetime(record.completed_at),
    }


def record_from_snapshot(data: dict[str, Any]) -> PipelineRecord:
    """Build a record from a change-event snapshot or a database row.

    Rows carry native datetimes and JSONB already decoded to dicts, so both
    shapes are accepted.
    """
    return PipelineRecord(
        id=str(data["id"]),
        owner_id=str(data["owner_id"]),
        stage=Stage(data["stage"]),
        file_name=data.get("file_name") or "",
        language_code=data.get("language_code") or "",
        overall_progress=int(data.get("overall_progress") or 0),
        source_artifact_ref=data.get("source_artifact_ref"),
        is_chunked=bool(data.get("is_chunked")),
        chunk_count=int(data.get("chunk_count") or 0),
        chunks_completed=int(data.get("chunks_completed") or 0),
        stage_artifacts=artifacts_from_dict(data.get("stage_artifacts")),
        report_artifact_ref=data.get("report_artifact_ref"),
        error_message=data.get("error_message"),
        revision=int(data.get("revision") or 0),
        created_at=_parse_datetime(data.get("created_at")),
        completed_at=_parse_datetime(data.get("completed_at")),
    )


def _format_datetime(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _parse_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))
