from app.config.settings import Settings
from app.database.models import PipelineEvent
from app.database.repositories.event_repository import EventRepository
from app.logging.logger import Log
from app.pipeline.mapping import record_from_snapshot
from app.pipeline.state_machine import PipelineStateMachine


class EventRunner:
    """Run one change event, catch exceptions, and apply retry logic."""

    def __init__(
        self,
        state_machine: PipelineStateMachine,
        event_repo: EventRepository,
        settings: Settings,
    ) -> None:
        self._state_machine = state_machine
        self._event_repo = event_repo
        self._settings = settings

    async def run(self, event: PipelineEvent) -> None:
        """Deliver a single event to the state machine with error handling."""
        Log.debug(
            f"Running event {event.id} for pipeline {event.pipeline_id} "
            f"(attempt {event.attempts + 1})"
        )
        try:
            before = record_from_snapshot(event.before_snapshot)
            after = record_from_snapshot(event.after_snapshot)
            await self._state_machine.on_record_changed(before, after)
            await self._event_repo.mark_done(event.id)
        except Exception as exc:
            await self._handle_failure(event, exc)

    async def _handle_failure(self, event: PipelineEvent, exc: Exception) -> None:
        """Increment attempts; mark failed if at max, otherwise back to pending."""
        Log.error(f"Event {event.id} failed: {exc}", pipeline_id=event.pipeline_id)
        if event.attempts + 1 >= self._settings.max_event_attempts:
            await self._event_repo.mark_failed(event.id, str(exc))
            Log.error(
                f"Event {event.id} permanently failed after {event.attempts + 1} attempts"
            )
        else:
            await self._event_repo.increment_attempts(event.id)
            Log.warning(f"Event {event.id} will be retried (attempt {event.attempts + 1})")
