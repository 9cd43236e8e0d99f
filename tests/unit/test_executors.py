import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.analysis.exceptions import AnalysisError
from app.analysis.models import (
    ChartSpec,
    ReportIntroduction,
    ReportMetadata,
    ReportSection,
    StructuredReport,
)
from app.pipeline.exceptions import StageInputError, UnknownStageError
from app.pipeline.executors import (
    ExecutorRegistry,
    StageExecutor,
    StageRequest,
    StageServices,
    build_default_registry,
    chart_path,
    fold_summaries,
    generate_charts,
    report_path,
    review_report,
    summarize_chunk,
)
from app.pipeline.models import Stage
from tests.doubles import InMemoryArtifactStore

REPORT = StructuredReport(
    metadata=ReportMetadata(title="Report", author="Pipeline", generated_date="2024-01-01"),
    introduction=ReportIntroduction(
        objective="Assess", overall_results_summary="Fine", used_norms_overview="Rules"
    ),
    sections=[
        ReportSection(title="Voltage", content="Ok", chart_suggestion="Voltage per phase"),
        ReportSection(title="Frequency", content="Ok"),
        ReportSection(title="Flicker", content="Ok", chart_suggestion="Pst per day"),
    ],
)


def _make_services(artifact_store: InMemoryArtifactStore | None = None) -> StageServices:
    agent = MagicMock()
    agent.summarize_chunk = AsyncMock(return_value="chunk summary")
    agent.identify_rules = AsyncMock(return_value=["Rule A"])
    agent.assess_compliance = AsyncMock(return_value=REPORT)
    agent.review_report = AsyncMock(return_value=REPORT)
    agent.design_chart = AsyncMock(
        return_value=ChartSpec(chart_type="bar", title="c", labels=["a"], values=[1.0])
    )
    renderer = MagicMock()
    renderer.content_type = "image/png"
    renderer.render.return_value = b"\x89PNG"
    return StageServices(
        agent=agent,
        artifact_store=artifact_store or InMemoryArtifactStore(),
        chart_renderer=renderer,
    )


def _make_request(stage: Stage, inputs: dict[str, Any], progress: list[float] | None = None) -> StageRequest:
    async def report_progress(fraction: float) -> None:
        if progress is not None:
            progress.append(fraction)

    return StageRequest(
        record_id="rec-1",
        stage=stage,
        inputs=inputs,
        language_code="en",
        report_progress=report_progress,
    )


async def _noop(request: StageRequest) -> dict[str, Any]:
    return {}


class TestStageExecutorContract:
    def test_select_inputs_picks_declared_names(self) -> None:
        executor = StageExecutor(
            stage=Stage.IDENTIFYING_RULES,
            run=_noop,
            inputs=("summary_text",),
            optional_inputs=("chunk_index",),
        )
        selected = executor.select_inputs(
            {"summary_text": "s", "chunk_index": 0, "file_name": "f.csv"}
        )
        assert selected == {"summary_text": "s", "chunk_index": 0}

    @pytest.mark.parametrize("value", [None, "", "   ", []])
    def test_select_inputs_rejects_empty_required(self, value: Any) -> None:
        executor = StageExecutor(stage=Stage.IDENTIFYING_RULES, run=_noop, inputs=("summary_text",))
        with pytest.raises(StageInputError, match="summary_text"):
            executor.select_inputs({"summary_text": value})

    def test_missing_outputs_allows_empty_collections(self) -> None:
        executor = StageExecutor(
            stage=Stage.GENERATING_CHARTS,
            run=_noop,
            outputs=("chart_refs", "report_artifact_ref"),
        )
        assert executor.missing_outputs({"chart_refs": {}, "report_artifact_ref": "r.md"}) == []
        assert executor.missing_outputs({"chart_refs": {}, "report_artifact_ref": " "}) == [
            "report_artifact_ref"
        ]
        assert executor.missing_outputs({}) == ["chart_refs", "report_artifact_ref"]


class TestExecutorRegistry:
    def test_resolve_registered(self) -> None:
        registry = ExecutorRegistry()
        executor = StageExecutor(stage=Stage.REVIEWING_REPORT, run=_noop)
        registry.register(executor)
        assert registry.resolve(Stage.REVIEWING_REPORT) is executor
        assert tuple(registry.stages()) == (Stage.REVIEWING_REPORT,)

    def test_resolve_unknown_raises(self) -> None:
        with pytest.raises(UnknownStageError, match="summarizing"):
            ExecutorRegistry().resolve(Stage.SUMMARIZING)

    def test_duplicate_registration_raises(self) -> None:
        registry = ExecutorRegistry()
        registry.register(StageExecutor(stage=Stage.REVIEWING_REPORT, run=_noop))
        with pytest.raises(ValueError, match="already registered"):
            registry.register(StageExecutor(stage=Stage.REVIEWING_REPORT, run=_noop))

    def test_default_registry_covers_every_processing_stage(self) -> None:
        registry = build_default_registry(_make_services())
        assert set(registry.stages()) == {
            Stage.SUMMARIZING,
            Stage.IDENTIFYING_RULES,
            Stage.ASSESSING_COMPLIANCE,
            Stage.REVIEWING_REPORT,
            Stage.GENERATING_CHARTS,
        }
        assert registry.resolve(Stage.SUMMARIZING).chunked
        assert not registry.resolve(Stage.IDENTIFYING_RULES).chunked


class TestSummarizeChunk:
    def test_first_chunk_starts_fresh(self) -> None:
        services = _make_services()
        request = _make_request(
            Stage.SUMMARIZING,
            {"chunk_text": "a,b", "chunk_index": 0, "summary_text": "stale"},
        )
        result = asyncio.run(summarize_chunk(request, services))
        assert result == {"summary_text": "chunk summary"}

    def test_later_chunk_appends(self) -> None:
        services = _make_services()
        request = _make_request(
            Stage.SUMMARIZING,
            {"chunk_text": "a,b", "chunk_index": 2, "summary_text": "earlier"},
        )
        result = asyncio.run(summarize_chunk(request, services))
        assert result == {"summary_text": "earlier\n\nchunk summary"}
        services.agent.summarize_chunk.assert_awaited_once_with("a,b", "en")

    def test_blank_chunk_is_skipped(self) -> None:
        services = _make_services()
        request = _make_request(
            Stage.SUMMARIZING,
            {"chunk_text": "  \n", "chunk_index": 1, "summary_text": "earlier"},
        )
        result = asyncio.run(summarize_chunk(request, services))
        assert result == {"summary_text": "earlier"}
        services.agent.summarize_chunk.assert_not_awaited()

    def test_fold_summaries(self) -> None:
        assert fold_summaries("", "b") == "b"
        assert fold_summaries("a", "b") == "a\n\nb"


class TestReviewReport:
    def test_returns_reviewed_report(self) -> None:
        services = _make_services()
        result = asyncio.run(
            review_report(_make_request(Stage.REVIEWING_REPORT, {"structured_report": REPORT}), services)
        )
        assert result == {"reviewed_report": REPORT}

    def test_falls_back_to_input_on_analysis_error(self) -> None:
        services = _make_services()
        services.agent.review_report = AsyncMock(side_effect=AnalysisError("bad json"))
        result = asyncio.run(
            review_report(_make_request(Stage.REVIEWING_REPORT, {"structured_report": REPORT}), services)
        )
        assert result["reviewed_report"] is REPORT

    def test_other_errors_propagate(self) -> None:
        services = _make_services()
        services.agent.review_report = AsyncMock(side_effect=RuntimeError("boom"))
        with pytest.raises(RuntimeError):
            asyncio.run(
                review_report(
                    _make_request(Stage.REVIEWING_REPORT, {"structured_report": REPORT}), services
                )
            )


class TestGenerateCharts:
    def _run(self, progress: list[float]) -> tuple[dict[str, Any], StageServices, InMemoryArtifactStore]:
        artifact_store = InMemoryArtifactStore()
        services = _make_services(artifact_store)
        request = _make_request(
            Stage.GENERATING_CHARTS,
            {"reviewed_report": REPORT, "summary_text": "s", "file_name": "m.csv"},
            progress,
        )
        return asyncio.run(generate_charts(request, services)), services, artifact_store

    def test_charts_only_for_sections_with_suggestion(self) -> None:
        result, services, artifact_store = self._run([])

        assert result["chart_refs"] == {
            "0": chart_path("rec-1", Stage.GENERATING_CHARTS, 0),
            "2": chart_path("rec-1", Stage.GENERATING_CHARTS, 2),
        }
        assert services.agent.design_chart.await_count == 2
        assert artifact_store.content_types[result["chart_refs"]["0"]] == "image/png"

    def test_writes_markdown_report(self) -> None:
        result, _, artifact_store = self._run([])

        path = report_path("rec-1", Stage.GENERATING_CHARTS)
        assert result["report_artifact_ref"] == path
        assert artifact_store.content_types[path] == "text/markdown; charset=utf-8"
        markdown = artifact_store.blobs[path].decode("utf-8")
        assert "# Report" in markdown
        assert "../../../charts/rec-1/generating_charts/0.png" in markdown

    def test_reports_sub_step_progress(self) -> None:
        progress: list[float] = []
        self._run(progress)
        assert progress == pytest.approx([1 / 3, 2 / 3])

    def test_report_without_charts(self) -> None:
        artifact_store = InMemoryArtifactStore()
        services = _make_services(artifact_store)
        plain = StructuredReport(
            metadata=REPORT.metadata,
            introduction=REPORT.introduction,
            sections=[ReportSection(title="Only text", content="Ok")],
        )
        request = _make_request(
            Stage.GENERATING_CHARTS,
            {"reviewed_report": plain, "summary_text": "s", "file_name": "m.csv"},
        )
        result = asyncio.run(generate_charts(request, services))
        assert result["chart_refs"] == {}
        assert result["report_artifact_ref"] in artifact_store.blobs
