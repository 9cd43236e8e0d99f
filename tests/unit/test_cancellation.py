import asyncio

import pytest

from app.pipeline.cancellation import CANCELLED_MESSAGE, CancellationMonitor
from app.pipeline.exceptions import RecordNotFoundError
from app.pipeline.models import CancellationStatus, Stage
from tests.doubles import InMemoryPipelineStore, make_record


class TestCancellationMonitor:
    def test_no_request(self, pipeline_store: InMemoryPipelineStore) -> None:
        pipeline_store.put(make_record())
        status = asyncio.run(CancellationMonitor(pipeline_store).check("rec-1"))
        assert status is CancellationStatus.NONE
        assert pipeline_store.events == []

    def test_pending_request_is_finalized(self, pipeline_store: InMemoryPipelineStore) -> None:
        pipeline_store.put(make_record(stage=Stage.CANCELLING, overall_progress=29))
        status = asyncio.run(CancellationMonitor(pipeline_store).check("rec-1"))

        assert status is CancellationStatus.REQUESTED
        record = pipeline_store.records["rec-1"]
        assert record.stage is Stage.CANCELLED
        assert record.error_message == CANCELLED_MESSAGE
        assert record.overall_progress == 29

    def test_already_cancelled_is_not_rewritten(self, pipeline_store: InMemoryPipelineStore) -> None:
        pipeline_store.put(make_record(stage=Stage.CANCELLED))
        status = asyncio.run(CancellationMonitor(pipeline_store).check("rec-1"))
        assert status is CancellationStatus.ALREADY_CANCELLED
        assert pipeline_store.events == []

    def test_missing_record_raises(self, pipeline_store: InMemoryPipelineStore) -> None:
        with pytest.raises(RecordNotFoundError):
            asyncio.run(CancellationMonitor(pipeline_store).check("nope"))

    def test_check_record_uses_given_snapshot(self, pipeline_store: InMemoryPipelineStore) -> None:
        pipeline_store.put(make_record(stage=Stage.CANCELLING))
        monitor = CancellationMonitor(pipeline_store)
        status = asyncio.run(monitor.check_record(make_record(stage=Stage.CANCELLING)))
        assert status is CancellationStatus.REQUESTED
        assert pipeline_store.get_calls == 0
