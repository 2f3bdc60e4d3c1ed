"""
PostgreSQL score record store.

Each record is stored as a JSONB document alongside the columns used for
lookups. A partial unique index on (teacher, period type, period start) for
non-superseded rows enforces one live record per key; upserts take an
advisory lock on the key, archive the live row and insert the replacement in
one transaction.
"""

import logging
from contextlib import asynccontextmanager
from typing import Dict, List, Optional

import asyncpg

from models import COHORT_STATUSES, LIVE_STATUSES, RankingInfo, ScoreRecord
from teacher_scoring.errors import PersistenceError, ScoreNotFoundError, StoreUnavailableError
from .connection import DatabaseConnectionError, DatabasePool, get_database_pool
from .store import ScoreRecordStore, ranking_audit, supersede


logger = logging.getLogger(__name__)


SCHEMA = """
CREATE TABLE IF NOT EXISTS public.teacher_scores (
    score_id TEXT PRIMARY KEY,
    teacher_id TEXT NOT NULL,
    period_type TEXT NOT NULL,
    period_start TIMESTAMP NOT NULL,
    period_end TIMESTAMP NOT NULL,
    overall_score INTEGER NOT NULL,
    status TEXT NOT NULL,
    superseded_by TEXT,
    generated_at TIMESTAMP NOT NULL,
    document JSONB NOT NULL
);

CREATE UNIQUE INDEX IF NOT EXISTS teacher_scores_live_key
    ON public.teacher_scores (teacher_id, period_type, period_start)
    WHERE superseded_by IS NULL AND status <> 'archived';

CREATE INDEX IF NOT EXISTS teacher_scores_cohort
    ON public.teacher_scores (period_type, period_start, status);
"""

INSERT_SQL = """
INSERT INTO public.teacher_scores (
    score_id, teacher_id, period_type, period_start, period_end,
    overall_score, status, superseded_by, generated_at, document
) VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10::jsonb)
"""

UPDATE_SQL = """
UPDATE public.teacher_scores
SET overall_score = $2, status = $3, superseded_by = $4, document = $5::jsonb
WHERE score_id = $1
"""

# Serializes upserts of one key, including the first insert when no live row exists to lock
KEY_LOCK_SQL = """
SELECT pg_advisory_xact_lock(hashtext($1::text || '|' || $2::text || '|' || $3::timestamp::text))
"""

LIVE_FOR_KEY_SQL = """
SELECT document FROM public.teacher_scores
WHERE teacher_id = $1 AND period_type = $2 AND period_start = $3
  AND superseded_by IS NULL AND status = ANY($4::text[])
FOR UPDATE
"""


def _values(statuses) -> List[str]:
    return [getattr(s, "value", s) for s in statuses]


def _load(row) -> ScoreRecord:
    return ScoreRecord.model_validate_json(row["document"])


class PostgresScoreStore(ScoreRecordStore):
    """Score store backed by the ``teacher_scores`` table."""

    def __init__(self, pool: Optional[DatabasePool] = None):
        self._pool = pool

    async def _get_pool(self) -> DatabasePool:
        if self._pool is None:
            self._pool = await get_database_pool()
        return self._pool

    @asynccontextmanager
    async def _connection(self, operation: str):
        """Acquire a connection and translate driver failures into store errors."""
        try:
            pool = await self._get_pool()
            async with pool.acquire_connection() as conn:
                yield conn
        except (DatabaseConnectionError, OSError, asyncpg.PostgresConnectionError, asyncpg.InterfaceError) as e:
            logger.error(f"Score store unavailable during {operation}: {e}", extra={"operation": operation})
            raise StoreUnavailableError(f"Score store unavailable during {operation}: {e}") from e
        except asyncpg.UniqueViolationError as e:
            logger.error(f"Conflicting write during {operation}: {e}", extra={"operation": operation})
            raise PersistenceError(f"Conflicting score write during {operation}: {e}") from e
        except asyncpg.PostgresError as e:
            logger.error(f"Score store {operation} failed: {e}", extra={"operation": operation})
            raise PersistenceError(f"Score store {operation} failed: {e}") from e

    async def ensure_schema(self) -> None:
        async with self._connection("ensure_schema") as conn:
            await conn.execute(SCHEMA)

    async def upsert(self, record: ScoreRecord) -> Optional[ScoreRecord]:
        async with self._connection("upsert") as conn:
            async with conn.transaction():
                await conn.execute(
                    KEY_LOCK_SQL, record.teacher_id, record.period_type.value, record.period_start
                )
                row = await conn.fetchrow(
                    LIVE_FOR_KEY_SQL,
                    record.teacher_id, record.period_type.value, record.period_start, _values(LIVE_STATUSES)
                )
                previous = _load(row) if row else None
                if previous is not None:
                    supersede(previous, record)
                    await self._update(conn, previous)

                await conn.execute(
                    INSERT_SQL,
                    record.score_id,
                    record.teacher_id,
                    record.period_type.value,
                    record.period_start,
                    record.period_end,
                    record.overall_score,
                    record.status.value,
                    record.superseded_by,
                    record.generated_at,
                    record.model_dump_json()
                )
        return previous

    async def get(self, score_id: str) -> Optional[ScoreRecord]:
        async with self._connection("get") as conn:
            row = await conn.fetchrow(
                "SELECT document FROM public.teacher_scores WHERE score_id = $1", score_id
            )
        return _load(row) if row else None

    async def save(self, record: ScoreRecord) -> None:
        async with self._connection("save") as conn:
            status = await self._update(conn, record)
        if status.endswith(" 0"):
            raise ScoreNotFoundError(f"Score {record.score_id} not found")

    async def update_rankings(self, rankings: Dict[str, RankingInfo]) -> int:
        if not rankings:
            return 0
        updated = 0
        async with self._connection("update_rankings") as conn:
            async with conn.transaction():
                rows = await conn.fetch(
                    "SELECT document FROM public.teacher_scores WHERE score_id = ANY($1::text[]) FOR UPDATE",
                    list(rankings)
                )
                for row in rows:
                    record = _load(row)
                    ranking_audit(record, rankings[record.score_id])
                    await self._update(conn, record)
                    updated += 1
        return updated

    async def find_latest(self, teacher_id, period_type, before=None):
        query = """
        SELECT document FROM public.teacher_scores
        WHERE teacher_id = $1 AND period_type = $2
          AND superseded_by IS NULL AND status = ANY($3::text[])
          AND ($4::timestamp IS NULL OR period_end < $4::timestamp)
        ORDER BY period_end DESC, generated_at DESC
        LIMIT 1
        """
        async with self._connection("find_latest") as conn:
            row = await conn.fetchrow(query, teacher_id, period_type.value, _values(LIVE_STATUSES), before)
        return _load(row) if row else None

    async def find_cohort(self, period_type, period_start):
        query = """
        SELECT document FROM public.teacher_scores
        WHERE period_type = $1 AND period_start = $2
          AND superseded_by IS NULL AND status = ANY($3::text[])
        ORDER BY generated_at, score_id
        """
        async with self._connection("find_cohort") as conn:
            rows = await conn.fetch(query, period_type.value, period_start, _values(COHORT_STATUSES))
        return [_load(row) for row in rows]

    async def list_records(self, period_type=None, statuses=LIVE_STATUSES):
        query = """
        SELECT document FROM public.teacher_scores
        WHERE superseded_by IS NULL AND status = ANY($1::text[])
          AND ($2::text IS NULL OR period_type = $2::text)
        ORDER BY generated_at
        """
        async with self._connection("list_records") as conn:
            rows = await conn.fetch(
                query, _values(statuses), period_type.value if period_type is not None else None
            )
        return [_load(row) for row in rows]

    async def find_by_teacher(self, teacher_id, period_type=None):
        query = """
        SELECT document FROM public.teacher_scores
        WHERE teacher_id = $1 AND ($2::text IS NULL OR period_type = $2::text)
        ORDER BY period_start DESC, generated_at DESC
        """
        async with self._connection("find_by_teacher") as conn:
            rows = await conn.fetch(query, teacher_id, period_type.value if period_type is not None else None)
        return [_load(row) for row in rows]

    @staticmethod
    async def _update(conn, record: ScoreRecord) -> str:
        return await conn.execute(
            UPDATE_SQL,
            record.score_id,
            record.overall_score,
            record.status.value,
            record.superseded_by,
            record.model_dump_json()
        )
