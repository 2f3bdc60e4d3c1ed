"""Leaderboard and aggregate statistics over stored score records."""

import statistics
from collections import Counter
from typing import Dict, List, Sequence

from pydantic import BaseModel

from database.store import ScoreRecordStore
from models import COHORT_STATUSES, PeriodType, ScoreRecord, ScoreStatus
from models.utils import round2

SCORE_BUCKETS = [0, 40, 60, 70, 80, 90, 101]
HIGH_PERFORMER_THRESHOLD = 80
LOW_PERFORMER_THRESHOLD = 60


class ScoreStatistics(BaseModel):
    """Aggregate view of one period type."""
    period_type: PeriodType
    total_teachers: int = 0
    average_score: float = 0.0
    high_performers: int = 0
    low_performers: int = 0
    total_students_impacted: int = 0
    total_active_courses: int = 0
    grade_distribution: Dict[str, int] = {}
    score_distribution: Dict[str, int] = {}


def bucket_label(score: int) -> str:
    for low, high in zip(SCORE_BUCKETS, SCORE_BUCKETS[1:]):
        if low <= score < high:
            return f"{low}-{high - 1}"
    raise ValueError(f"Score {score} outside 0-100")


async def leaderboard(
    store: ScoreRecordStore,
    period_type: PeriodType,
    limit: int = 10,
    statuses: Sequence[ScoreStatus] = COHORT_STATUSES
) -> List[ScoreRecord]:
    """Top records by overall score; ties go to the earlier generation."""
    records = await store.list_records(period_type, statuses)
    records.sort(key=lambda r: (-r.overall_score, r.generated_at))
    return records[:limit]


async def score_statistics(store: ScoreRecordStore, period_type: PeriodType) -> ScoreStatistics:
    records = await store.list_records(period_type, COHORT_STATUSES)
    if not records:
        return ScoreStatistics(period_type=period_type)

    scores = [r.overall_score for r in records]
    grades = Counter(r.score_grade.value for r in records)
    buckets = Counter(bucket_label(s) for s in scores)

    return ScoreStatistics(
        period_type=period_type,
        total_teachers=len(records),
        average_score=round2(statistics.mean(scores)),
        high_performers=sum(1 for s in scores if s >= HIGH_PERFORMER_THRESHOLD),
        low_performers=sum(1 for s in scores if s < LOW_PERFORMER_THRESHOLD),
        total_students_impacted=sum(r.analytics.total_students for r in records),
        total_active_courses=sum(r.analytics.courses_active for r in records),
        grade_distribution=dict(grades),
        score_distribution={
            f"{low}-{high - 1}": buckets.get(f"{low}-{high - 1}", 0)
            for low, high in zip(SCORE_BUCKETS, SCORE_BUCKETS[1:])
        }
    )
