import pytest

from app.pipeline.models import Stage
from app.pipeline.progress import ProgressMapper
from tests.doubles import DEFAULT_SPANS


class TestFloors:
    def test_floors_are_cumulative(self, progress_mapper: ProgressMapper) -> None:
        assert progress_mapper.floor(Stage.UPLOADING) == 0
        assert progress_mapper.floor(Stage.SUMMARIZING) == 15
        assert progress_mapper.floor(Stage.IDENTIFYING_RULES) == 50
        assert progress_mapper.floor(Stage.ASSESSING_COMPLIANCE) == 65
        assert progress_mapper.floor(Stage.REVIEWING_REPORT) == 80
        assert progress_mapper.floor(Stage.GENERATING_CHARTS) == 90
        assert progress_mapper.floor(Stage.COMPLETED) == 100

    def test_completion_floor_is_next_floor(self, progress_mapper: ProgressMapper) -> None:
        assert progress_mapper.completion_floor(Stage.SUMMARIZING) == 50
        assert progress_mapper.completion_floor(Stage.GENERATING_CHARTS) == 100

    def test_sink_stage_has_no_range(self, progress_mapper: ProgressMapper) -> None:
        with pytest.raises(ValueError):
            progress_mapper.floor(Stage.ERROR)


class TestMap:
    def test_summarizing_fraction(self, progress_mapper: ProgressMapper) -> None:
        assert progress_mapper.map(Stage.SUMMARIZING, 0.4) == 29

    def test_rounds_half_up(self, progress_mapper: ProgressMapper) -> None:
        # 0.5 * 15 = 7.5
        assert progress_mapper.map(Stage.IDENTIFYING_RULES, 0.5) == 58

    def test_fraction_is_clamped(self, progress_mapper: ProgressMapper) -> None:
        assert progress_mapper.map(Stage.SUMMARIZING, -1.0) == 15
        assert progress_mapper.map(Stage.SUMMARIZING, 2.0) == 50

    def test_upload_is_capped_below_first_stage(
        self, progress_mapper: ProgressMapper
    ) -> None:
        assert progress_mapper.map(Stage.UPLOADING, 1.0) == 14
        assert progress_mapper.map(Stage.UPLOADING, 0.5) == 8

    def test_never_leaves_stage_range(self, progress_mapper: ProgressMapper) -> None:
        for stage in (Stage.SUMMARIZING, Stage.REVIEWING_REPORT):
            floor = progress_mapper.floor(stage)
            ceiling = progress_mapper.completion_floor(stage)
            for step in range(101):
                assert floor <= progress_mapper.map(stage, step / 100) <= ceiling

    def test_monotonic_in_fraction(self, progress_mapper: ProgressMapper) -> None:
        values = [progress_mapper.map(Stage.SUMMARIZING, i / 7) for i in range(8)]
        assert values == sorted(values)


class TestConfiguration:
    def test_spans_must_sum_to_100(self) -> None:
        spans = {**DEFAULT_SPANS, "generating_charts": 11}
        with pytest.raises(ValueError, match="sum to 100"):
            ProgressMapper(spans, upload_complete_progress=10)

    def test_missing_span_rejected(self) -> None:
        spans = {k: v for k, v in DEFAULT_SPANS.items() if k != "reviewing_report"}
        with pytest.raises(ValueError, match="reviewing_report"):
            ProgressMapper(spans, upload_complete_progress=10)

    def test_upload_baseline_must_fit_upload_range(self) -> None:
        with pytest.raises(ValueError, match="upload_complete_progress"):
            ProgressMapper(DEFAULT_SPANS, upload_complete_progress=15)

    def test_exposes_upload_baseline(self, progress_mapper: ProgressMapper) -> None:
        assert progress_mapper.upload_complete_progress == 10
