from typing import Any

import psycopg
from psycopg import sql
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from app.database.connection import Database
from app.database.repositories.base import BasePipelineStore, check_update_fields
from app.pipeline.exceptions import RecordNotFoundError
from app.pipeline.mapping import (
    artifacts_to_dict,
    record_from_snapshot,
    record_to_snapshot,
)
from app.pipeline.models import PipelineRecord, Stage, StageArtifacts

_COLUMNS = (
    "id, owner_id, file_name, language_code, stage, overall_progress, "
    "source_artifact_ref, is_chunked, chunk_count, chunks_completed, "
    "stage_artifacts, report_artifact_ref, error_message, revision, "
    "created_at, completed_at"
)


class PipelineRepository(BasePipelineStore):
    """Database operations for the pipelines table.

    Every update is written together with a pipeline_events row holding the
    before/after snapshots, in one transaction.
    """

    def __init__(self, database: Database) -> None:
        self._database = database

    async def get(self, record_id: str) -> PipelineRecord:
        async with self._database.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"SELECT {_COLUMNS} FROM pipelines WHERE id = %s",
                    (record_id,),
                )
                row = await cur.fetchone()

        if row is None:
            raise RecordNotFoundError(f"Pipeline {record_id} not found")
        return record_from_snapshot(row)

    async def update(self, record_id: str, fields: dict[str, Any]) -> PipelineRecord:
        check_update_fields(fields)
        assignments = [
            sql.SQL("{} = %s").format(sql.Identifier(name)) for name in fields
        ]
        query = sql.SQL(
            "UPDATE pipelines SET {assignments}, revision = revision + 1, "
            "updated_at = NOW() WHERE id = %s RETURNING {columns}"
        ).format(
            assignments=sql.SQL(", ").join(assignments),
            columns=sql.SQL(_COLUMNS),
        )
        params = [_to_db_value(value) for value in fields.values()]

        async with self._database.connection() as conn:
            async with conn.transaction():
                before = await self._lock_row(conn, record_id)
                async with conn.cursor(row_factory=dict_row) as cur:
                    await cur.execute(query, (*params, record_id))
                    row = await cur.fetchone()
                if row is None:
                    raise RecordNotFoundError(f"Pipeline {record_id} not found")
                after = record_from_snapshot(row)
                await conn.execute(
                    """
                    INSERT INTO pipeline_events
                        (pipeline_id, before_snapshot, after_snapshot)
                    VALUES (%s, %s, %s)
                    """,
                    (
                        record_id,
                        Jsonb(record_to_snapshot(before)),
                        Jsonb(record_to_snapshot(after)),
                    ),
                )
        return after

    async def create(self, record: PipelineRecord) -> PipelineRecord:
        async with self._database.connection() as conn:
            async with conn.cursor(row_factory=dict_row) as cur:
                await cur.execute(
                    f"""
                    INSERT INTO pipelines
                        (id, owner_id, file_name, language_code, stage,
                         overall_progress, source_artifact_ref, is_chunked,
                         chunk_count, chunks_completed, stage_artifacts,
                         report_artifact_ref, error_message)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                    RETURNING {_COLUMNS}
                    """,
                    (
                        record.id,
                        record.owner_id,
                        record.file_name,
                        record.language_code,
                        record.stage.value,
                        record.overall_progress,
                        record.source_artifact_ref,
                        record.is_chunked,
                        record.chunk_count,
                        record.chunks_completed,
                        Jsonb(artifacts_to_dict(record.stage_artifacts)),
                        record.report_artifact_ref,
                        record.error_message,
                    ),
                )
                row = await cur.fetchone()
            await conn.commit()
        return record_from_snapshot(row)

    async def _lock_row(
        self, conn: psycopg.AsyncConnection[Any], record_id: str
    ) -> PipelineRecord:
        async with conn.cursor(row_factory=dict_row) as cur:
            await cur.execute(
                f"SELECT {_COLUMNS} FROM pipelines WHERE id = %s FOR UPDATE",
                (record_id,),
            )
            row = await cur.fetchone()
        if row is None:
            raise RecordNotFoundError(f"Pipeline {record_id} not found")
        return record_from_snapshot(row)


def _to_db_value(value: Any) -> Any:
    if isinstance(value, Stage):
        return value.value
    if isinstance(value, StageArtifacts):
        return Jsonb(artifacts_to_dict(value))
    return value
