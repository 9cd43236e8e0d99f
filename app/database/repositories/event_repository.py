from typing import Any

from psycopg import AsyncCursor
from psycopg.rows import dict_row

from app.database.connection import Database
from app.database.models import PipelineEvent
from app.logging.logger import Log

# An event is claimable when it is pending, or processing under a lock older
# than the lock timeout. It is held back while its pipeline has a fresh claim
# or an older unfinished event.
_CLAIMABLE = """
    e.attempts < %(max_attempts)s
    AND (
        e.status = 'pending'
        OR (
            e.status = 'processing'
            AND e.locked_at < NOW() - %(lock_timeout)s * INTERVAL '1 second'
        )
    )
    AND NOT EXISTS (
        SELECT 1 FROM pipeline_events p
        WHERE p.pipeline_id = e.pipeline_id
          AND p.id <> e.id
          AND (
              (
                  p.status = 'processing'
                  AND p.locked_at >= NOW() - %(lock_timeout)s * INTERVAL '1 second'
              )
              OR (
                  p.status IN ('pending', 'processing')
                  AND p.attempts < %(max_attempts)s
                  AND (p.created_at, p.id) < (e.created_at, e.id)
              )
          )
    )
"""


class EventRepository:
    """Database operations for the pipeline_events work queue."""

    def __init__(
        self, database: Database, max_attempts: int, lock_timeout_seconds: int = 900
    ) -> None:
        self._database = database
        self._max_attempts = max_attempts
        self._lock_timeout_seconds = lock_timeout_seconds

    async def claim_next_event(self) -> PipelineEvent | None:
        """Claim the oldest claimable event using SELECT FOR UPDATE SKIP LOCKED.

        Claims are serialized per pipeline with a transaction-scoped advisory
        lock, and eligibility is checked again once that lock is held, so one
        record's events are consumed one at a time and in order. A processing
        event whose lock has expired is reclaimed and counts as a new attempt.
        """
        async with self._database.connection() as conn:
            async with conn.transaction():
                async with conn.cursor(row_factory=dict_row) as cur:
                    busy: list[str] = []
                    while True:
                        row = await self._next_candidate(cur, busy)
                        if row is None:
                            return None
                        pipeline_id = str(row["pipeline_id"])
                        if await self._lock_pipeline(cur, pipeline_id) and (
                            await self._still_claimable(cur, row["id"])
                        ):
                            break
                        busy.append(pipeline_id)

                    await cur.execute(
                        """
                        UPDATE pipeline_events
                        SET status = 'processing',
                            attempts = attempts
                                + CASE WHEN status = 'processing' THEN 1 ELSE 0 END,
                            locked_at = NOW(), updated_at = NOW()
                        WHERE id = %s
                        """,
                        (row["id"],),
                    )

        attempts = row["attempts"]
        if row["status"] == "processing":
            attempts += 1
            Log.warning(
                f"Reclaimed event {row['id']} after its lock expired",
                pipeline_id=pipeline_id,
            )

        return PipelineEvent(
            id=row["id"],
            pipeline_id=pipeline_id,
            before_snapshot=row["before_snapshot"],
            after_snapshot=row["after_snapshot"],
            status="processing",
            attempts=attempts,
        )

    async def _next_candidate(
        self, cur: AsyncCursor[dict[str, Any]], busy: list[str]
    ) -> dict[str, Any] | None:
        await cur.execute(
            """
            SELECT id, pipeline_id, before_snapshot, after_snapshot,
                   status, attempts
            FROM pipeline_events e
            WHERE NOT (e.pipeline_id::text = ANY(%(busy)s))
              AND """
            + _CLAIMABLE
            + """
            ORDER BY created_at, id
            LIMIT 1
            FOR UPDATE SKIP LOCKED
            """,
            self._params(busy=busy),
        )
        return await cur.fetchone()

    async def _lock_pipeline(
        self, cur: AsyncCursor[dict[str, Any]], pipeline_id: str
    ) -> bool:
        await cur.execute(
            "SELECT pg_try_advisory_xact_lock(hashtext(%s)) AS locked",
            (pipeline_id,),
        )
        row = await cur.fetchone()
        return bool(row and row["locked"])

    async def _still_claimable(
        self, cur: AsyncCursor[dict[str, Any]], event_id: object
    ) -> bool:
        """Re-check eligibility in a fresh snapshot taken under the pipeline lock."""
        await cur.execute(
            "SELECT 1 AS claimable FROM pipeline_events e WHERE e.id = %(id)s AND "
            + _CLAIMABLE,
            self._params(id=event_id),
        )
        return await cur.fetchone() is not None

    def _params(self, **extra: object) -> dict[str, object]:
        return {
            "max_attempts": self._max_attempts,
            "lock_timeout": self._lock_timeout_seconds,
            **extra,
        }

    async def mark_done(self, event_id: int) -> None:
        """Mark an event as done."""
        await self._execute(
            """
            UPDATE pipeline_events
            SET status = 'done', updated_at = NOW()
            WHERE id = %s
            """,
            (event_id,),
        )

    async def mark_failed(self, event_id: int, error: str) -> None:
        """Mark an event as permanently failed."""
        await self._execute(
            """
            UPDATE pipeline_events
            SET status = 'failed', error_message = %s, updated_at = NOW()
            WHERE id = %s
            """,
            (error, event_id),
        )

    async def increment_attempts(self, event_id: int) -> None:
        """Increment attempt count and return the event to pending."""
        await self._execute(
            """
            UPDATE pipeline_events
            SET attempts = attempts + 1, status = 'pending',
                locked_at = NULL, updated_at = NOW()
            WHERE id = %s
            """,
            (event_id,),
        )

    async def find_by_id(self, event_id: int) -> PipelineEvent | None:
        """Find an event by ID. Useful for tests."""
        async with self._database.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    """
                    SELECT id, pipeline_id, before_snapshot, after_snapshot,
                           status, attempts, error_message, locked_at,
                           created_at, updated_at
                    FROM pipeline_events
                    WHERE id = %s
                    """,
                    (event_id,),
                )
                row = await cur.fetchone()

        if row is None:
            return None

        return PipelineEvent(
            id=row["id"],
            pipeline_id=str(row["pipeline_id"]),
            before_snapshot=row["before_snapshot"],
            after_snapshot=row["after_snapshot"],
            status=row["status"],
            attempts=row["attempts"],
            error_message=row["error_message"],
            locked_at=row["locked_at"],
            created_at=row["created_at"],
            updated_at=row["updated_at"],
        )

    async def _execute(self, query: str, params: tuple[object, ...]) -> None:
        async with self._database.connection() as conn:
            await conn.execute(query, params)
            await conn.commit()
