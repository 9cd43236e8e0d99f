import asyncio

from app.config.settings import Settings
from app.database.connection import Database
from app.database.repositories.event_repository import EventRepository
from app.logging.logger import Log
from app.pipeline.state_machine import build_state_machine
from app.worker.event_runner import EventRunner
from app.worker.worker import Worker


async def run(settings: Settings) -> None:
    """Open the pool -> build dependencies -> run the worker loop."""
    database = Database.from_settings(settings)
    await database.open()
    try:
        state_machine = build_state_machine(settings, database)
        event_repo = EventRepository(
            database,
            settings.max_event_attempts,
            settings.event_lock_timeout_seconds,
        )
        event_runner = EventRunner(state_machine, event_repo, settings)
        worker = Worker(event_repo, event_runner, settings)
        await worker.run()
    finally:
        await database.close()


def main() -> None:
    """Entry point."""
    settings = Settings()
    Log.configure(settings.log_level)
    try:
        asyncio.run(run(settings))
    except KeyboardInterrupt:
        Log.info("Worker shutting down gracefully")


if __name__ == "__main__":
    main()
