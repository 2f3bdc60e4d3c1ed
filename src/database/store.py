"""
Durable storage interface for teacher score records.

The store is the only shared resource of a batch run. Writes are keyed by
(teacher, period type, period start): an upsert supersedes the live record for
that key instead of duplicating it. Records are never deleted; superseded
records are archived and keep a pointer to their replacement.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from models import COHORT_STATUSES, LIVE_STATUSES, PeriodType, RankingInfo, ScoreRecord, ScoreStatus
from teacher_scoring.errors import PersistenceError, ScoreNotFoundError


logger = logging.getLogger(__name__)


class ScoreRecordStore(ABC):
    """Abstract interface for score record persistence."""

    @abstractmethod
    async def upsert(self, record: ScoreRecord) -> Optional[ScoreRecord]:
        """
        Atomically store a new record, superseding any live record with the same key.

        Returns the superseded record, or None if there was none.
        """
        pass

    @abstractmethod
    async def get(self, score_id: str) -> Optional[ScoreRecord]:
        """Fetch a record by score id."""
        pass

    @abstractmethod
    async def save(self, record: ScoreRecord) -> None:
        """Replace an existing record (review and goal updates)."""
        pass

    @abstractmethod
    async def update_rankings(self, rankings: Dict[str, RankingInfo]) -> int:
        """Write ranking blocks by score id. Returns the number of records updated."""
        pass

    @abstractmethod
    async def find_latest(
        self,
        teacher_id: str,
        period_type: PeriodType,
        before: Optional[datetime] = None
    ) -> Optional[ScoreRecord]:
        """Most recent live record of the period type, optionally ending before a date."""
        pass

    @abstractmethod
    async def find_cohort(self, period_type: PeriodType, period_start: datetime) -> List[ScoreRecord]:
        """Active and final records for one exact period, oldest generation first."""
        pass

    @abstractmethod
    async def list_records(
        self,
        period_type: Optional[PeriodType] = None,
        statuses: Sequence[ScoreStatus] = LIVE_STATUSES
    ) -> List[ScoreRecord]:
        """Non-superseded records filtered by period type and status."""
        pass

    @abstractmethod
    async def find_by_teacher(
        self,
        teacher_id: str,
        period_type: Optional[PeriodType] = None
    ) -> List[ScoreRecord]:
        """Full history for one teacher, newest period first."""
        pass


def supersede(previous: ScoreRecord, replacement: ScoreRecord) -> None:
    """Archive a record in favour of its replacement."""
    previous.add_audit_entry(
        action="superseded",
        actor="system",
        details=f"Superseded by {replacement.score_id}",
        previous_values={"status": previous.status.value},
        new_values={"status": ScoreStatus.ARCHIVED.value, "superseded_by": replacement.score_id}
    )
    previous.status = ScoreStatus.ARCHIVED
    previous.superseded_by = replacement.score_id


def ranking_audit(record: ScoreRecord, ranking: RankingInfo) -> None:
    """Apply a ranking block and record the change."""
    before = record.analytics.ranking.model_dump()
    record.update_ranking(ranking)
    record.add_audit_entry(
        action="ranking_updated",
        actor="system",
        details=f"Ranked {ranking.overall_rank} of {ranking.total_teachers}",
        previous_values=before,
        new_values=ranking.model_dump()
    )


class InMemoryScoreStore(ScoreRecordStore):
    """
    In-memory score store.

    Features:
    - Upsert keyed on (teacher, period type, period start)
    - Copy-in/copy-out so callers never share mutable state with the store
    - A single asyncio lock makes every write atomic
    """

    def __init__(self):
        self._records: Dict[str, ScoreRecord] = {}
        self._lock = asyncio.Lock()

    async def upsert(self, record: ScoreRecord) -> Optional[ScoreRecord]:
        async with self._lock:
            if record.score_id in self._records:
                raise PersistenceError(f"Score id {record.score_id} already exists")

            previous = self._live_for_key(record)
            if previous is not None:
                supersede(previous, record)
                logger.debug(f"Superseded score {previous.score_id} with {record.score_id}")

            self._records[record.score_id] = record.model_copy(deep=True)
            return previous.model_copy(deep=True) if previous else None

    async def get(self, score_id: str) -> Optional[ScoreRecord]:
        async with self._lock:
            record = self._records.get(score_id)
            return record.model_copy(deep=True) if record else None

    async def save(self, record: ScoreRecord) -> None:
        async with self._lock:
            if record.score_id not in self._records:
                raise ScoreNotFoundError(f"Score {record.score_id} not found")
            self._records[record.score_id] = record.model_copy(deep=True)

    async def update_rankings(self, rankings: Dict[str, RankingInfo]) -> int:
        async with self._lock:
            updated = 0
            for score_id, ranking in rankings.items():
                record = self._records.get(score_id)
                if record is None:
                    continue
                ranking_audit(record, ranking)
                updated += 1
            return updated

    async def find_latest(self, teacher_id, period_type, before=None):
        async with self._lock:
            candidates = [
                r for r in self._records.values()
                if r.teacher_id == teacher_id
                and r.period_type == period_type
                and r.is_live
                and (before is None or r.period_end < before)
            ]
            if not candidates:
                return None
            latest = max(candidates, key=lambda r: (r.period_end, r.generated_at))
            return latest.model_copy(deep=True)

    async def find_cohort(self, period_type, period_start):
        async with self._lock:
            cohort = [
                r for r in self._records.values()
                if r.period_type == period_type
                and r.period_start == period_start
                and r.superseded_by is None
                and r.status in COHORT_STATUSES
            ]
            # sorted() is stable, so equal timestamps keep insertion order
            cohort = sorted(cohort, key=lambda r: r.generated_at)
            return [r.model_copy(deep=True) for r in cohort]

    async def list_records(self, period_type=None, statuses=LIVE_STATUSES):
        async with self._lock:
            return [
                r.model_copy(deep=True) for r in self._records.values()
                if r.superseded_by is None
                and r.status in statuses
                and (period_type is None or r.period_type == period_type)
            ]

    async def find_by_teacher(self, teacher_id, period_type=None):
        async with self._lock:
            history = [
                r for r in self._records.values()
                if r.teacher_id == teacher_id
                and (period_type is None or r.period_type == period_type)
            ]
            history.sort(key=lambda r: (r.period_start, r.generated_at), reverse=True)
            return [r.model_copy(deep=True) for r in history]

    def _live_for_key(self, record: ScoreRecord) -> Optional[ScoreRecord]:
        for existing in self._records.values():
            if existing.key == record.key and existing.is_live:
                return existing
        return None

    def __len__(self) -> int:
        return len(self._records)

