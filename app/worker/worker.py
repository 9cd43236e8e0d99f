import asyncio

from app.config.settings import Settings
from app.database.models import PipelineEvent
from app.database.repositories.event_repository import EventRepository
from app.logging.logger import Log
from app.worker.event_runner import EventRunner


class Worker:
    """Poll loop: claim -> dispatch -> sleep when idle, on several consumers."""

    def __init__(
        self,
        event_repo: EventRepository,
        event_runner: EventRunner,
        settings: Settings,
    ) -> None:
        self._event_repo = event_repo
        self._event_runner = event_runner
        self._settings = settings
        self._stopping = asyncio.Event()
        self._events_done = 0

    @property
    def events_done(self) -> int:
        return self._events_done

    def stop(self) -> None:
        """Ask every consumer to exit after its current event."""
        self._stopping.set()

    async def run(self, max_events: int | None = None) -> None:
        """Main poll loop. Runs until stopped or cancelled.

        If max_events is set, stop after processing that many events (for testing).
        """
        concurrency = max(1, self._settings.worker_concurrency)
        Log.info(f"Worker started with {concurrency} consumers, polling for events")
        consumers = [
            asyncio.create_task(self._consume(index, max_events))
            for index in range(concurrency)
        ]
        try:
            await asyncio.gather(*consumers)
        finally:
            for task in consumers:
                task.cancel()
            await asyncio.gather(*consumers, return_exceptions=True)
            Log.info(f"Worker stopped after {self._events_done} events")

    async def _consume(self, index: int, max_events: int | None) -> None:
        while not self._stopping.is_set():
            if max_events is not None and self._events_done >= max_events:
                self.stop()
                break
            event = await self._try_claim_event()
            if event is None:
                Log.debug(f"Consumer {index}: no events available, sleeping")
                await self._sleep()
                continue
            await self._event_runner.run(event)
            self._events_done += 1

    async def _try_claim_event(self) -> PipelineEvent | None:
        """Attempt to claim the next pending event. Gracefully handle DB errors."""
        try:
            return await self._event_repo.claim_next_event()
        except Exception as exc:
            Log.warning(f"Database error, will retry: {exc}")
            return None

    async def _sleep(self) -> None:
        try:
            await asyncio.wait_for(
                self._stopping.wait(),
                timeout=self._settings.event_poll_interval_seconds,
            )
        except asyncio.TimeoutError:
            pass
