"""Validates raw parsed JSON from the AI stages against domain invariants."""

from typing import Any

from app.analysis.exceptions import AnalysisValidationError
from app.analysis.models import (
    BibliographyItem,
    ChartSpec,
    ReportIntroduction,
    ReportMetadata,
    ReportSection,
    StructuredReport,
)

_MAX_RULES = 200
_MAX_SECTIONS = 50
_VALID_CHART_TYPES = frozenset({"bar", "line"})


def validate_summary(data: dict[str, Any]) -> str:
    """Return the chunk summary text.

    Raises:
        AnalysisValidationError: if the summary is missing or blank.
    """
    summary = data.get("summary")
    if not isinstance(summary, str) or not summary.strip():
        raise AnalysisValidationError("'summary' must be a non-empty string")
    return summary.strip()


def validate_rules(data: dict[str, Any]) -> list[str]:
    """Return the identified rule designations, deduplicated in order.

    Raises:
        AnalysisValidationError: if the list is missing, malformed or empty.
    """
    raw = data.get("rules")
    if not isinstance(raw, list):
        raise AnalysisValidationError("'rules' must be a list")
    if len(raw) > _MAX_RULES:
        raise AnalysisValidationError(f"Too many rules: {len(raw)} (max {_MAX_RULES})")
    rules: list[str] = []
    seen: set[str] = set()
    for i, item in enumerate(raw):
        if not isinstance(item, str) or not item.strip():
            raise AnalysisValidationError(f"Rule at index {i} must be a non-empty string")
        rule = item.strip()
        if rule.casefold() in seen:
            continue
        seen.add(rule.casefold())
        rules.append(rule)
    if not rules:
        raise AnalysisValidationError("AI identified no applicable rules")
    return rules


def validate_and_build_report(data: dict[str, Any]) -> StructuredReport:
    """Validate raw parsed JSON and build a StructuredReport.

    Also used to rebuild reports loaded from the persisted record.

    Raises:
        AnalysisValidationError: on any validation failure.
    """
    for name in ("metadata", "introduction", "sections"):
        if name not in data:
            raise AnalysisValidationError(f"Missing required top-level field: {name}")
    return StructuredReport(
        metadata=_build_metadata(data["metadata"]),
        introduction=_build_introduction(data["introduction"]),
        sections=_build_sections(data["sections"]),
        final_considerations=_optional_str(
            data.get("final_considerations"), "final_considerations"
        ) or "",
        table_of_contents=_str_list(data.get("table_of_contents") or [], "table_of_contents"),
        bibliography=_build_bibliography(data.get("bibliography") or []),
    )


def validate_chart_spec(data: dict[str, Any]) -> ChartSpec:
    """Validate chart data returned by the AI.

    Raises:
        AnalysisValidationError: on any validation failure.
    """
    chart_type = data.get("chart_type")
    if chart_type not in _VALID_CHART_TYPES:
        raise AnalysisValidationError(
            f"'chart_type' must be one of {sorted(_VALID_CHART_TYPES)}, got {chart_type!r}"
        )
    title = _require_str(data.get("title"), "title")
    labels = _str_list(data.get("labels"), "labels")
    raw_values = data.get("values")
    if not isinstance(raw_values, list) or not all(
        isinstance(v, (int, float)) and not isinstance(v, bool) for v in raw_values
    ):
        raise AnalysisValidationError("'values' must be a list of numbers")
    if not labels:
        raise AnalysisValidationError("'labels' must not be empty")
    if len(labels) != len(raw_values):
        raise AnalysisValidationError(
            f"'labels' and 'values' differ in length ({len(labels)} != {len(raw_values)})"
        )
    unit = data.get("unit", "")
    if not isinstance(unit, str):
        raise AnalysisValidationError("'unit' must be a string")
    threshold = data.get("threshold")
    if threshold is not None and (
        not isinstance(threshold, (int, float)) or isinstance(threshold, bool)
    ):
        raise AnalysisValidationError("'threshold' must be a number or null")
    return ChartSpec(
        chart_type=chart_type,
        title=title,
        labels=labels,
        values=[float(v) for v in raw_values],
        unit=unit,
        threshold=float(threshold) if threshold is not None else None,
    )


def _build_metadata(raw: Any) -> ReportMetadata:
    if not isinstance(raw, dict):
        raise AnalysisValidationError("'metadata' must be an object")
    return ReportMetadata(
        title=_require_str(raw.get("title"), "metadata.title"),
        author=_require_str(raw.get("author"), "metadata.author"),
        generated_date=_require_str(raw.get("generated_date"), "metadata.generated_date"),
        subtitle=_optional_str(raw.get("subtitle"), "metadata.subtitle"),
    )


def _build_introduction(raw: Any) -> ReportIntroduction:
    if not isinstance(raw, dict):
        raise AnalysisValidationError("'introduction' must be an object")
    return ReportIntroduction(
        objective=_require_str(raw.get("objective"), "introduction.objective"),
        overall_results_summary=_require_str(
            raw.get("overall_results_summary"), "introduction.overall_results_summary"
        ),
        used_norms_overview=_require_str(
            raw.get("used_norms_overview"), "introduction.used_norms_overview"
        ),
    )


def _build_sections(raw: Any) -> list[ReportSection]:
    if not isinstance(raw, list):
        raise AnalysisValidationError("'sections' must be a list")
    if len(raw) > _MAX_SECTIONS:
        raise AnalysisValidationError(
            f"Too many sections: {len(raw)} (max {_MAX_SECTIONS})"
        )
    return [_build_section(item, i) for i, item in enumerate(raw)]


def _build_section(raw: Any, index: int) -> ReportSection:
    if not isinstance(raw, dict):
        raise AnalysisValidationError(f"Section at index {index} must be an object")
    suggestion = _optional_str(raw.get("chart_suggestion"), f"sections[{index}].chart_suggestion")
    return ReportSection(
        title=_require_str(raw.get("title"), f"sections[{index}].title"),
        content=_require_str(raw.get("content"), f"sections[{index}].content"),
        insights=_str_list(raw.get("insights") or [], f"sections[{index}].insights"),
        relevant_norms_cited=_str_list(
            raw.get("relevant_norms_cited") or [], f"sections[{index}].relevant_norms_cited"
        ),
        chart_suggestion=suggestion.strip() if suggestion and suggestion.strip() else None,
    )


def _build_bibliography(raw: Any) -> list[BibliographyItem]:
    if not isinstance(raw, list):
        raise AnalysisValidationError("'bibliography' must be a list")
    items: list[BibliographyItem] = []
    for i, item in enumerate(raw):
        if not isinstance(item, dict):
            raise AnalysisValidationError(f"Bibliography item at index {i} must be an object")
        items.append(
            BibliographyItem(
                text=_require_str(item.get("text"), f"bibliography[{i}].text"),
                link=_optional_str(item.get("link"), f"bibliography[{i}].link"),
            )
        )
    return items


def _require_str(raw: Any, name: str) -> str:
    if not raw or not isinstance(raw, str):
        raise AnalysisValidationError(f"'{name}' must be a non-empty string")
    return raw


def _optional_str(raw: Any, name: str) -> str | None:
    if raw is None:
        return None
    if not isinstance(raw, str):
        raise AnalysisValidationError(f"'{name}' must be a string or null")
    return raw


def _str_list(raw: Any, name: str) -> list[str]:
    if not isinstance(raw, list) or not all(isinstance(item, str) for item in raw):
        raise AnalysisValidationError(f"'{name}' must be a list of strings")
    return list(raw)
