"""
Cohort ranking.

Ranking reads the whole cohort for one exact period, sorts it and writes the
ranking block back. It must only run once every per-teacher write of a batch
is visible; callers pass the score ids they wrote so a partial cohort is
detected instead of silently ranked.
"""

import logging
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, Optional, Sequence, Set

from database.store import ScoreRecordStore
from models import PeriodType, RankingInfo, ScoreRecord
from teacher_scoring.errors import RankingBarrierViolation


logger = logging.getLogger(__name__)


def compute_rankings(cohort: Sequence[ScoreRecord]) -> Dict[str, RankingInfo]:
    """
    Rank a cohort by overall score.

    Ties go to the earlier generation; records generated at the same instant
    keep their input order. Department and category ranks are positions
    among members sharing the same department or category.
    """
    ordered = sorted(cohort, key=lambda r: (-r.overall_score, r.generated_at))
    total = len(ordered)

    department_positions: Dict[Optional[str], int] = defaultdict(int)
    category_positions: Dict[Optional[str], int] = defaultdict(int)

    rankings: Dict[str, RankingInfo] = {}
    for position, record in enumerate(ordered, start=1):
        department_positions[record.department] += 1
        category_positions[record.category] += 1

        rankings[record.score_id] = RankingInfo.for_position(
            overall_rank=position,
            total_teachers=total,
            department_rank=department_positions[record.department] if record.department else None,
            category_rank=category_positions[record.category] if record.category else None
        )
    return rankings


class RankingEngine:
    """Ranks a period cohort and persists the ranking blocks."""

    def __init__(self, store: ScoreRecordStore, strict_barrier: bool = True):
        self.store = store
        self.strict_barrier = strict_barrier

    async def rank(
        self,
        period_type: PeriodType,
        period_start: datetime,
        expected_score_ids: Optional[Iterable[str]] = None
    ) -> int:
        """
        Rank every active or final record of the period.

        Returns the number of records ranked; zero for an empty cohort or when
        a barrier violation is tolerated.

        Raises:
            RankingBarrierViolation: records written by the batch are missing
                from the cohort and the barrier is strict
        """
        cohort = await self.store.find_cohort(period_type, period_start)
        expected = set(expected_score_ids or [])

        if expected:
            observed = {r.score_id for r in cohort}
            missing = await self._unaccounted(expected - observed)
            if missing:
                violation = RankingBarrierViolation(expected, expected - missing)
                logger.error(
                    f"Ranking barrier violated for {period_type.value} period "
                    f"starting {period_start.isoformat()}: {violation}",
                    extra={"barrier_violation": True, "missing": violation.missing}
                )
                if self.strict_barrier:
                    raise violation
                return 0

        if not cohort:
            logger.info(
                f"No records to rank for {period_type.value} period starting {period_start.isoformat()}",
                extra={"empty_cohort": True}
            )
            return 0

        rankings = compute_rankings(cohort)
        updated = await self.store.update_rankings(rankings)

        logger.info(
            f"Ranked {updated} teachers for {period_type.value} period starting {period_start.isoformat()}",
            extra={"period_type": period_type.value, "cohort_size": len(cohort)}
        )
        return updated

    async def _unaccounted(self, score_ids: Set[str]) -> Set[str]:
        """Ids absent from the cohort that were not replaced by a later record."""
        unaccounted = set()
        for score_id in score_ids:
            record = await self.store.get(score_id)
            # A concurrent upsert for the same key supersedes rather than loses the write
            if record is None or record.superseded_by is None:
                unaccounted.add(score_id)
        return unaccounted
