"""Stage executor registry.

Each processing stage maps to one async function with a declared set of
input and output artifacts. Adding a stage means writing its function and
registering it here; the state machine only looks executors up by stage.
"""

import asyncio
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from functools import partial
from typing import Any

from app.analysis.agent import ComplianceAgent
from app.analysis.exceptions import AnalysisError
from app.analysis.models import StructuredReport
from app.charts.base import BaseChartRenderer
from app.logging.logger import Log
from app.pipeline.exceptions import StageInputError, UnknownStageError
from app.pipeline.models import Stage
from app.reporting.markdown import render_markdown_report
from app.storage.base import BaseArtifactStore

ProgressCallback = Callable[[float], Awaitable[None]]


@dataclass(frozen=True)
class StageRequest:
    """Input handed to a stage executor for one invocation."""

    record_id: str
    stage: Stage
    inputs: dict[str, Any]
    language_code: str
    report_progress: ProgressCallback


@dataclass(frozen=True)
class StageServices:
    """Collaborators shared by the default executors."""

    agent: ComplianceAgent
    artifact_store: BaseArtifactStore
    chart_renderer: BaseChartRenderer


@dataclass(frozen=True)
class StageExecutor:
    """One stage's transformation and its declared contract.

    ``inputs`` must be present and non-empty; ``optional_inputs`` are passed
    through when available. ``outputs`` names every key the function must
    return.
    """

    stage: Stage
    run: Callable[[StageRequest], Awaitable[dict[str, Any]]]
    inputs: tuple[str, ...] = ()
    optional_inputs: tuple[str, ...] = ()
    outputs: tuple[str, ...] = ()
    chunked: bool = False

    def select_inputs(self, available: dict[str, Any]) -> dict[str, Any]:
        """Pick this executor's declared inputs out of ``available``.

        Raises:
            StageInputError: if a required input is missing or empty.
        """
        selected: dict[str, Any] = {}
        for name in self.inputs:
            value = available.get(name)
            if _is_empty(value):
                raise StageInputError(
                    f"Missing required input '{name}' for stage '{self.stage.value}'"
                )
            selected[name] = value
        for name in self.optional_inputs:
            if name in available:
                selected[name] = available[name]
        return selected

    def missing_outputs(self, produced: dict[str, Any]) -> list[str]:
        return [name for name in self.outputs if _is_missing(produced.get(name))]


@dataclass
class ExecutorRegistry:
    """Lookup table from stage to executor."""

    _executors: dict[Stage, StageExecutor] = field(default_factory=dict)

    def register(self, executor: StageExecutor) -> None:
        if executor.stage in self._executors:
            raise ValueError(f"Executor already registered for '{executor.stage.value}'")
        self._executors[executor.stage] = executor

    def resolve(self, stage: Stage) -> StageExecutor:
        """Return the executor for ``stage``.

        Raises:
            UnknownStageError: if no executor is registered for ``stage``.
        """
        executor = self._executors.get(stage)
        if executor is None:
            raise UnknownStageError(f"No executor registered for stage '{stage.value}'")
        return executor

    def stages(self) -> Iterable[Stage]:
        return tuple(self._executors)


def chart_path(record_id: str, stage: Stage, section_index: int) -> str:
    return f"charts/{record_id}/{stage.value}/{section_index}.png"


def report_path(record_id: str, stage: Stage) -> str:
    return f"reports/{record_id}/{stage.value}/report.md"


def fold_summaries(previous: str, summary: str) -> str:
    if not previous:
        return summary
    return f"{previous}\n\n{summary}"


async def summarize_chunk(request: StageRequest, services: StageServices) -> dict[str, Any]:
    """Summarize one chunk and fold it into the partial summary."""
    chunk_text: str = request.inputs.get("chunk_text") or ""
    chunk_index: int = request.inputs.get("chunk_index") or 0
    # The first chunk starts a fresh summary, so a re-run overwrites.
    previous = (request.inputs.get("summary_text") or "") if chunk_index > 0 else ""

    if not chunk_text.strip():
        Log.info(f"Pipeline {request.record_id}: chunk {chunk_index} is blank, skipped")
        return {"summary_text": previous}

    summary = await services.agent.summarize_chunk(chunk_text, request.language_code)
    return {"summary_text": fold_summaries(previous, summary)}


async def identify_rules(request: StageRequest, services: StageServices) -> dict[str, Any]:
    rules = await services.agent.identify_rules(
        request.inputs["summary_text"], request.language_code
    )
    return {"identified_rules": rules}


async def assess_compliance(request: StageRequest, services: StageServices) -> dict[str, Any]:
    report = await services.agent.assess_compliance(
        request.inputs["summary_text"],
        request.inputs["identified_rules"],
        request.inputs["file_name"],
        request.language_code,
    )
    return {"structured_report": report}


async def review_report(request: StageRequest, services: StageServices) -> dict[str, Any]:
    """Review the report, keeping the unreviewed one when the review is unusable."""
    report: StructuredReport = request.inputs["structured_report"]
    try:
        reviewed = await services.agent.review_report(report, request.language_code)
    except AnalysisError as exc:
        Log.warning(
            f"Pipeline {request.record_id}: review failed, using pre-review report: {exc}"
        )
        reviewed = report
    return {"reviewed_report": reviewed}


async def generate_charts(request: StageRequest, services: StageServices) -> dict[str, Any]:
    """Render a chart for every section that asks for one, then the report."""
    report: StructuredReport = request.inputs["reviewed_report"]
    summary_text: str = request.inputs["summary_text"]
    wanted = [
        (index, section)
        for index, section in enumerate(report.sections)
        if section.chart_suggestion
    ]

    chart_refs: dict[str, str] = {}
    for done, (index, section) in enumerate(wanted, start=1):
        spec = await services.agent.design_chart(section, summary_text, request.language_code)
        image = await asyncio.to_thread(services.chart_renderer.render, spec)
        chart_refs[str(index)] = await services.artifact_store.write_blob(
            chart_path(request.record_id, request.stage, index),
            image,
            services.chart_renderer.content_type,
        )
        Log.info(
            f"Pipeline {request.record_id}: chart {done}/{len(wanted)} stored "
            f"for section '{section.title}'"
        )
        await request.report_progress(done / (len(wanted) + 1))

    path = report_path(request.record_id, request.stage)
    markdown = render_markdown_report(
        report, request.inputs["file_name"], chart_refs, report_path=path
    )
    report_ref = await services.artifact_store.write_blob(
        path, markdown.encode("utf-8"), "text/markdown; charset=utf-8"
    )
    return {"chart_refs": chart_refs, "report_artifact_ref": report_ref}


def build_default_registry(services: StageServices) -> ExecutorRegistry:
    """Register the five compliance pipeline stages."""
    registry = ExecutorRegistry()
    registry.register(
        StageExecutor(
            stage=Stage.SUMMARIZING,
            run=partial(summarize_chunk, services=services),
            optional_inputs=("chunk_text", "chunk_index", "chunk_count", "summary_text"),
            outputs=("summary_text",),
            chunked=True,
        )
    )
    registry.register(
        StageExecutor(
            stage=Stage.IDENTIFYING_RULES,
            run=partial(identify_rules, services=services),
            inputs=("summary_text",),
            outputs=("identified_rules",),
        )
    )
    registry.register(
        StageExecutor(
            stage=Stage.ASSESSING_COMPLIANCE,
            run=partial(assess_compliance, services=services),
            inputs=("summary_text", "identified_rules", "file_name"),
            outputs=("structured_report",),
        )
    )
    registry.register(
        StageExecutor(
            stage=Stage.REVIEWING_REPORT,
            run=partial(review_report, services=services),
            inputs=("structured_report",),
            outputs=("reviewed_report",),
        )
    )
    registry.register(
        StageExecutor(
            stage=Stage.GENERATING_CHARTS,
            run=partial(generate_charts, services=services),
            inputs=("reviewed_report", "summary_text", "file_name"),
            outputs=("chart_refs", "report_artifact_ref"),
        )
    )
    return registry


def _is_empty(value: Any) -> bool:
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, dict)):
        return not value
    return value is None


def _is_missing(value: Any) -> bool:
    # Empty collections are valid outputs (a report may ask for no charts).
    if isinstance(value, str):
        return not value.strip()
    return value is None
