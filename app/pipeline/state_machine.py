"""Pipeline controller reacting to record change events.

Every write made here is itself a change event. The eligibility rule is what
keeps the machine from reacting to its own progress writes, while still
letting a stage completion (or a chunk checkpoint) start the next step.
"""

from dataclasses import dataclass, fields, replace
from datetime import datetime, timezone
from typing import Any

from app.analysis.factory import ComplianceAgentFactory
from app.charts.renderer import MatplotlibChartRenderer
from app.config.settings import Settings
from app.database.connection import Database
from app.database.repositories.base import BasePipelineStore
from app.database.repositories.pipeline_repository import PipelineRepository
from app.logging.logger import Log
from app.pipeline.cancellation import CancellationMonitor
from app.pipeline.chunking import ChunkSplitter
from app.pipeline.deletion import DeletionHandler
from app.pipeline.exceptions import (
    ExecutorError,
    IllegalTransitionError,
    RecordNotFoundError,
    StageCancelled,
    StageInputError,
    StageSuperseded,
    UnknownStageError,
)
from app.pipeline.executors import (
    ExecutorRegistry,
    StageExecutor,
    StageRequest,
    StageServices,
    build_default_registry,
)
from app.pipeline.models import (
    CancellationStatus,
    PipelineRecord,
    Stage,
    StageArtifacts,
    truncate_error_message,
)
from app.pipeline.progress import ProgressMapper
from app.pipeline.stages import (
    entry_predecessors,
    is_active,
    is_sink,
    machine_transitions,
    next_stage,
)
from app.storage.base import BaseArtifactStore
from app.storage.exceptions import ArtifactNotFoundError
from app.storage.factory import ArtifactStoreFactory

_ARTIFACT_FIELDS = frozenset(f.name for f in fields(StageArtifacts))


@dataclass
class _StageRun:
    """The latest record state this invocation has read or written."""

    record: PipelineRecord
    stage: Stage


class PipelineStateMachine:
    """Decides whether a change event needs work and runs one step of it."""

    def __init__(
        self,
        *,
        store: BasePipelineStore,
        artifact_store: BaseArtifactStore,
        registry: ExecutorRegistry,
        monitor: CancellationMonitor,
        mapper: ProgressMapper,
        splitter: ChunkSplitter,
        deletion_handler: DeletionHandler,
        max_error_message_length: int = 1000,
        default_language_code: str = "pt-BR",
    ) -> None:
        self._store = store
        self._artifact_store = artifact_store
        self._registry = registry
        self._monitor = monitor
        self._mapper = mapper
        self._splitter = splitter
        self._deletion_handler = deletion_handler
        self._max_error_message_length = max_error_message_length
        self._default_language_code = default_language_code

    def is_eligible(self, before: PipelineRecord, after: PipelineRecord) -> bool:
        """Return True when ``after`` represents work this machine must start.

        Either the record just entered an active stage from that stage's
        predecessor, or a chunked stage just checkpointed another chunk.
        """
        if not is_active(after.stage):
            return False
        if before.stage in entry_predecessors(after.stage):
            return True
        return (
            before.stage is after.stage
            and self._is_chunked(after.stage)
            and after.chunks_completed > before.chunks_completed
        )

    async def on_record_changed(self, before: PipelineRecord, after: PipelineRecord) -> None:
        """Handle one change event. Never raises."""
        try:
            if after.stage is Stage.CANCELLING:
                await self._monitor.check(after.id)
                return
            if after.stage is Stage.PENDING_DELETION:
                await self._deletion_handler.handle(after.id)
                return
            if not self.is_eligible(before, after):
                Log.debug(
                    f"Pipeline {after.id}: ignoring change "
                    f"{before.stage.value} -> {after.stage.value}"
                )
                return
            await self._process(after)
        except RecordNotFoundError as exc:
            Log.warning(f"Pipeline {after.id}: {exc}")
        except Exception as exc:
            Log.critical(f"Pipeline {after.id}: unhandled error outside stage boundary: {exc}")

    async def _process(self, after: PipelineRecord) -> None:
        current = await self._store.get(after.id)
        status = await self._monitor.check_record(current)
        if status is not CancellationStatus.NONE:
            Log.info(f"Pipeline {after.id}: cancellation observed ({status.value}), stopping")
            return
        if current.revision != after.revision:
            Log.debug(
                f"Pipeline {after.id}: stale event (revision {after.revision}, "
                f"current {current.revision})"
            )
            return
        if is_sink(current.stage):
            Log.debug(f"Pipeline {after.id} is in sink '{current.stage.value}'")
            return

        run = _StageRun(record=current, stage=current.stage)
        try:
            executor = self._registry.resolve(run.stage)
            if executor.chunked:
                await self._run_chunk(executor, run)
            else:
                await self._run_stage(executor, run)
        except StageCancelled as exc:
            Log.info(f"Pipeline {after.id}: {exc}")
        except StageSuperseded as exc:
            Log.info(f"Pipeline {after.id}: {exc}, result discarded")
        except Exception as exc:
            await self._fail(run, exc)

    async def _run_stage(self, executor: StageExecutor, run: _StageRun) -> None:
        inputs = executor.select_inputs(self._available_inputs(run.record))
        Log.info(f"Pipeline {run.record.id}: running stage '{run.stage.value}'")
        outputs = await executor.run(self._request(executor, run, inputs))
        await self._complete_stage(executor, run, outputs)

    async def _run_chunk(self, executor: StageExecutor, run: _StageRun) -> None:
        """Run the next chunk of a chunked stage, or finish the stage."""
        record = run.record
        chunks = await self._load_chunks(record)
        count = len(chunks)
        index = record.chunks_completed
        cursor = {"chunk_count": count, "is_chunked": count > 1}

        if index >= count:
            Log.info(
                f"Pipeline {record.id}: all {count} chunks already summarized, "
                f"completing '{run.stage.value}'"
            )
            await self._complete_stage(
                executor,
                run,
                {"summary_text": record.stage_artifacts.summary_text},
                cursor,
            )
            return

        inputs = executor.select_inputs(
            self._available_inputs(
                record,
                chunk_text=chunks[index],
                chunk_index=index,
                chunk_count=count,
            )
        )
        Log.info(
            f"Pipeline {record.id}: processing chunk {index + 1}/{count}",
            stage=run.stage.value,
        )
        outputs = await executor.run(self._request(executor, run, inputs))

        done = index + 1
        cursor["chunks_completed"] = done
        if done >= count:
            await self._complete_stage(executor, run, outputs, cursor)
            return

        # A blank leading chunk leaves the partial summary empty; only the
        # final step requires the stage output.
        await self._write(
            run,
            {
                **cursor,
                "stage": run.stage,
                "stage_artifacts": self._merge_artifacts(run.record, outputs),
                "overall_progress": self._mapper.map(run.stage, done / count),
            },
        )

    async def _complete_stage(
        self,
        executor: StageExecutor,
        run: _StageRun,
        outputs: dict[str, Any],
        extra: dict[str, Any] | None = None,
    ) -> None:
        missing = executor.missing_outputs(outputs)
        if missing:
            raise ExecutorError(f"incomplete output, missing {missing}")

        target = next_stage(run.stage)
        update: dict[str, Any] = {
            **(extra or {}),
            "stage": target,
            "overall_progress": self._mapper.floor(target),
            "stage_artifacts": self._merge_artifacts(run.record, outputs),
            "error_message": None,
        }
        if "report_artifact_ref" in outputs:
            update["report_artifact_ref"] = outputs["report_artifact_ref"]
        if target is Stage.COMPLETED:
            update["completed_at"] = datetime.now(timezone.utc)

        await self._write(run, update)
        Log.info(
            f"Pipeline {run.record.id}: '{run.stage.value}' done, now "
            f"'{target.value}' at {run.record.overall_progress}%"
        )

    def _request(
        self, executor: StageExecutor, run: _StageRun, inputs: dict[str, Any]
    ) -> StageRequest:
        async def report_progress(fraction: float) -> None:
            current = await self._reread_for_write(run)
            progress = self._mapper.map(executor.stage, fraction)
            if progress > current.overall_progress:
                await self._apply(
                    run, current, {"stage": run.stage, "overall_progress": progress}
                )

        return StageRequest(
            record_id=run.record.id,
            stage=executor.stage,
            inputs=inputs,
            language_code=run.record.language_code or self._default_language_code,
            report_progress=report_progress,
        )

    async def _reread_for_write(self, run: _StageRun) -> PipelineRecord:
        """Re-read the record immediately before a write.

        Raises:
            StageCancelled: if a cancellation request is pending or done.
            StageSuperseded: if someone else wrote the record since we did.
        """
        current = await self._store.get(run.record.id)
        status = await self._monitor.check_record(current)
        if status is not CancellationStatus.NONE:
            raise StageCancelled(
                f"cancellation observed during '{run.stage.value}' ({status.value})"
            )
        if current.revision != run.record.revision:
            raise StageSuperseded(
                f"record changed during '{run.stage.value}' "
                f"(revision {run.record.revision} -> {current.revision})"
            )
        return current

    async def _write(self, run: _StageRun, update: dict[str, Any]) -> None:
        current = await self._reread_for_write(run)
        await self._apply(run, current, update)

    async def _apply(
        self, run: _StageRun, current: PipelineRecord, update: dict[str, Any]
    ) -> None:
        target = update.get("stage", current.stage)
        allowed = machine_transitions(current.stage)
        if is_active(current.stage):
            allowed |= {current.stage}
        if target not in allowed:
            raise IllegalTransitionError(
                f"'{current.stage.value}' cannot move to '{target.value}'"
            )
        if "overall_progress" in update:
            update = {
                **update,
                "overall_progress": max(current.overall_progress, update["overall_progress"]),
            }
        run.record = await self._store.update(current.id, update)

    async def _fail(self, run: _StageRun, exc: Exception) -> None:
        """Persist Error with the progress frozen. Logs CRITICAL if that fails too."""
        record_id = run.record.id
        message = truncate_error_message(
            f"{run.stage.value} failed: {exc}", self._max_error_message_length
        )
        Log.error(f"Pipeline {record_id}: {message}", stage=run.stage.value)
        try:
            current = await self._store.get(record_id)
            if current.cancellation_requested:
                await self._monitor.check_record(current)
                return
            if current.revision != run.record.revision:
                Log.warning(
                    f"Pipeline {record_id} changed since the failed step, "
                    f"error not recorded over '{current.stage.value}'"
                )
                return
            if Stage.ERROR not in machine_transitions(current.stage):
                Log.warning(
                    f"Pipeline {record_id} is in '{current.stage.value}', "
                    f"error not recorded"
                )
                return
            await self._store.update(
                record_id, {"stage": Stage.ERROR, "error_message": message}
            )
        except Exception as write_exc:
            Log.critical(
                f"Pipeline {record_id}: could not persist failure of "
                f"'{run.stage.value}' ({write_exc}); record left in last persisted state"
            )

    async def _load_chunks(self, record: PipelineRecord) -> list[str]:
        if not record.source_artifact_ref:
            raise StageInputError("No source dataset reference on record")
        try:
            content = await self._artifact_store.read_text(record.source_artifact_ref)
        except ArtifactNotFoundError as exc:
            raise StageInputError(
                f"Source dataset not found: {record.source_artifact_ref}"
            ) from exc
        return self._splitter.split_text(content)

    @staticmethod
    def _available_inputs(record: PipelineRecord, **extra: Any) -> dict[str, Any]:
        artifacts = record.stage_artifacts
        return {
            "summary_text": artifacts.summary_text,
            "identified_rules": artifacts.identified_rules,
            "structured_report": artifacts.structured_report,
            "reviewed_report": artifacts.reviewed_report,
            "chart_refs": artifacts.chart_refs,
            "file_name": record.file_name,
            **extra,
        }

    @staticmethod
    def _merge_artifacts(record: PipelineRecord, outputs: dict[str, Any]) -> StageArtifacts:
        owned = {name: value for name, value in outputs.items() if name in _ARTIFACT_FIELDS}
        return replace(record.stage_artifacts, **owned)

    def _is_chunked(self, stage: Stage) -> bool:
        try:
            return self._registry.resolve(stage).chunked
        except UnknownStageError:
            return False


def build_state_machine(settings: Settings, database: Database) -> PipelineStateMachine:
    """Wire the state machine and its collaborators from settings."""
    store = PipelineRepository(database)
    artifact_store = ArtifactStoreFactory.create(settings)
    services = StageServices(
        agent=ComplianceAgentFactory.create(settings),
        artifact_store=artifact_store,
        chart_renderer=MatplotlibChartRenderer(),
    )
    return PipelineStateMachine(
        store=store,
        artifact_store=artifact_store,
        registry=build_default_registry(services),
        monitor=CancellationMonitor(store),
        mapper=ProgressMapper(settings.progress_spans, settings.upload_complete_progress),
        splitter=ChunkSplitter(settings.chunk_size_bytes, settings.chunk_overlap_bytes),
        deletion_handler=DeletionHandler.from_settings(settings, store, artifact_store),
        max_error_message_length=settings.max_error_message_length,
        default_language_code=settings.default_language_code,
    )
