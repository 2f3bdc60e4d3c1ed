"""
Batch orchestration of score generation.

Runs the per-teacher pipeline (metrics, composition, goals, achievements,
persistence) for one teacher or for the whole active roster, then ranks the
period cohort. In the batch path, ranking runs once after the worker pool has
drained, and only over a cohort that contains every record the batch wrote.
"""

import asyncio
import logging
import time
from collections import Counter
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel

from database.sources import EngagementSource, MetricSource
from database.store import ScoreRecordStore
from models import (
    GeneratedBy,
    PeriodType,
    ScoreMetadata,
    ScoreRecord,
    TeacherProfile,
)
from models.utils import generate_score_id, resolve_period, to_naive_utc
from scoring.achievements import AchievementEvaluator
from scoring.composer import ScoreComposer, confidence_level
from scoring.goals import GoalPlanner
from scoring.metrics import MetricCalculator
from scoring.ranking import RankingEngine
from teacher_scoring.config import ScoringConfig
from teacher_scoring.errors import InsufficientDataError, StoreUnavailableError


logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


class TeacherOutcome(BaseModel):
    """Result of one teacher's generation within a batch."""
    teacher_id: str
    success: bool
    status: str  # saved, baseline, skipped, failed, cancelled
    score_id: Optional[str] = None
    error: Optional[str] = None
    error_type: Optional[str] = None


class BatchReport(BaseModel):
    """Results from a batch generation run."""

    period_type: PeriodType
    period_start: datetime
    period_end: datetime
    outcomes: List[TeacherOutcome] = []

    ranked_count: int = 0
    cancelled: bool = False
    aborted: bool = False

    started_at: datetime
    finished_at: Optional[datetime] = None
    execution_time_ms: float = 0.0

    @property
    def status_counts(self) -> Dict[str, int]:
        return dict(Counter(o.status for o in self.outcomes))

    @property
    def saved_score_ids(self) -> List[str]:
        return [o.score_id for o in self.outcomes if o.success and o.score_id]

    @property
    def failures(self) -> List[TeacherOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]


class BatchOrchestrator:
    """
    Coordinates score generation for one teacher or a whole cohort.

    Collaborators are injected so the pipeline can run against in-memory
    sources in tests and PostgreSQL in deployment.
    """

    def __init__(
        self,
        metric_source: MetricSource,
        store: ScoreRecordStore,
        engagement_source: Optional[EngagementSource] = None,
        config: Optional[ScoringConfig] = None,
        achievement_evaluator: Optional[AchievementEvaluator] = None,
        clock: Optional[Callable[[], datetime]] = None,
        logger_instance: Optional[logging.Logger] = None
    ):
        self.metric_source = metric_source
        self.store = store
        self.config = config or ScoringConfig()
        self.clock = clock or datetime.now
        self.logger = logger_instance or logger

        self.calculator = MetricCalculator(metric_source, engagement_source, self.logger)
        self.composer = ScoreComposer(self.config.weights)
        self.planner = GoalPlanner()
        self.achievements = achievement_evaluator or AchievementEvaluator.from_file(
            self.config.achievement_rules_file
        )
        self.ranking = RankingEngine(store, strict_barrier=self.config.strict_ranking_barrier)

    def resolve_bounds(
        self,
        period_type: PeriodType,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None
    ) -> Tuple[datetime, datetime]:
        """Explicit bounds win; otherwise the calendar period containing now."""
        if period_start is not None and period_end is not None:
            period_start, period_end = to_naive_utc(period_start), to_naive_utc(period_end)
            if period_end < period_start:
                raise ValueError("period_end must not precede period_start")
            return period_start, period_end
        if period_start is not None or period_end is not None:
            raise ValueError("period_start and period_end must be given together")
        return resolve_period(period_type, self.clock())

    async def generate_one(
        self,
        teacher_id: str,
        period_type: PeriodType,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        actor: str = SYSTEM_ACTOR
    ) -> ScoreRecord:
        """
        Generate, persist and rank one teacher's score for the period.

        The cohort is re-ranked immediately, since a new record changes every
        member's position. Errors propagate to the caller.

        Raises:
            InsufficientDataError: no data and the policy is ``skip``
            InvalidWeightsError: the configured weights are invalid
            PersistenceError: the store rejected the write
            RankingBarrierViolation: the new record is not visible to ranking
        """
        period_type = PeriodType(period_type)
        start, end = self.resolve_bounds(period_type, period_start, period_end)
        profile = await self.metric_source.get_teacher(teacher_id) or TeacherProfile(teacher_id=teacher_id)

        record, _ = await self._generate_and_save(profile, period_type, start, end, actor)
        await self.ranking.rank(period_type, start, expected_score_ids=[record.score_id])

        return await self.store.get(record.score_id) or record

    async def generate_all(
        self,
        period_type: PeriodType,
        teacher_ids: Optional[Sequence[str]] = None,
        period_start: Optional[datetime] = None,
        period_end: Optional[datetime] = None,
        cancel_event: Optional[asyncio.Event] = None
    ) -> BatchReport:
        """
        Generate scores for every active teacher (or the given ids), then rank once.

        Per-teacher failures are captured in the report. A StoreUnavailableError
        aborts the batch: teachers not yet started are reported cancelled and
        ranking is not attempted.
        """
        period_type = PeriodType(period_type)
        start, end = self.resolve_bounds(period_type, period_start, period_end)

        report = BatchReport(period_type=period_type, period_start=start, period_end=end, started_at=self.clock())
        execution_start = time.time()

        profiles = await self._select_teachers(teacher_ids)
        self.logger.info(
            f"Starting {period_type.value} score generation for {len(profiles)} teachers",
            extra={"period_type": period_type.value, "period_start": start.isoformat(), "teachers": len(profiles)}
        )

        semaphore = asyncio.Semaphore(self.config.max_concurrent_teachers)
        abort = asyncio.Event()

        async def process_single_teacher(profile: TeacherProfile) -> TeacherOutcome:
            async with semaphore:
                if abort.is_set() or (cancel_event is not None and cancel_event.is_set()):
                    return TeacherOutcome(teacher_id=profile.teacher_id, success=False, status="cancelled")
                return await self._process_teacher(profile, period_type, start, end, abort)

        tasks = [process_single_teacher(profile) for profile in profiles]
        results = await asyncio.gather(*tasks, return_exceptions=True)

        for profile, result in zip(profiles, results):
            if isinstance(result, BaseException):
                self.logger.warning(f"Teacher processing task failed: {result}")
                result = TeacherOutcome(
                    teacher_id=profile.teacher_id,
                    success=False,
                    status="failed",
                    error=str(result),
                    error_type=type(result).__name__
                )
            report.outcomes.append(result)

        report.aborted = abort.is_set()
        report.cancelled = cancel_event is not None and cancel_event.is_set()

        if report.aborted:
            self.logger.error(
                f"Batch aborted after store failure; ranking skipped for {period_type.value} period",
                extra={"operation": "generate_all", "status_counts": report.status_counts}
            )
        else:
            # Barrier: every worker has finished, so the cohort must hold every saved id
            report.ranked_count = await self.ranking.rank(
                period_type, start, expected_score_ids=report.saved_score_ids
            )

        report.finished_at = self.clock()
        report.execution_time_ms = (time.time() - execution_start) * 1000

        self.logger.info(
            f"Finished {period_type.value} score generation",
            extra={
                "status_counts": report.status_counts,
                "ranked_count": report.ranked_count,
                "execution_time_ms": report.execution_time_ms
            }
        )
        return report

    async def _select_teachers(self, teacher_ids: Optional[Sequence[str]]) -> List[TeacherProfile]:
        active = await self.metric_source.list_active_teachers()
        if teacher_ids is None:
            return list(active)

        by_id = {t.teacher_id: t for t in active}
        seen = set()
        selected = []
        for teacher_id in teacher_ids:
            if teacher_id in seen:
                continue
            seen.add(teacher_id)
            selected.append(by_id.get(teacher_id) or TeacherProfile(teacher_id=teacher_id))
        return selected

    async def _process_teacher(
        self,
        profile: TeacherProfile,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
        abort: asyncio.Event
    ) -> TeacherOutcome:
        teacher_id = profile.teacher_id
        try:
            record, baseline = await self._generate_and_save(profile, period_type, start, end, SYSTEM_ACTOR)
        except InsufficientDataError as e:
            self.logger.info(f"Skipped teacher {teacher_id}: {e}", extra={"teacher_id": teacher_id})
            return TeacherOutcome(
                teacher_id=teacher_id, success=False, status="skipped",
                error=str(e), error_type=type(e).__name__
            )
        except StoreUnavailableError as e:
            abort.set()
            self.logger.error(
                f"Score store unavailable while saving teacher {teacher_id}: {e}",
                extra={"teacher_id": teacher_id, "operation": "upsert"}
            )
            return TeacherOutcome(
                teacher_id=teacher_id, success=False, status="failed",
                error=str(e), error_type=type(e).__name__
            )
        except Exception as e:
            self.logger.warning(
                f"Score generation failed for teacher {teacher_id}: {e}",
                extra={"teacher_id": teacher_id, "error_type": type(e).__name__}
            )
            return TeacherOutcome(
                teacher_id=teacher_id, success=False, status="failed",
                error=str(e), error_type=type(e).__name__
            )

        status = "baseline" if baseline else "saved"
        self.logger.info(
            f"Saved score {record.score_id} for teacher {teacher_id}",
            extra={"teacher_id": teacher_id, "score_id": record.score_id, "status": status}
        )
        return TeacherOutcome(teacher_id=teacher_id, success=True, status=status, score_id=record.score_id)

    async def _generate_and_save(
        self,
        profile: TeacherProfile,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
        actor: str
    ) -> Tuple[ScoreRecord, bool]:
        record, baseline = await self.build_record(profile, period_type, start, end, actor)
        await self.store.upsert(record)
        return record, baseline

    async def build_record(
        self,
        profile: TeacherProfile,
        period_type: PeriodType,
        start: datetime,
        end: datetime,
        actor: str = SYSTEM_ACTOR
    ) -> Tuple[ScoreRecord, bool]:
        """Run metrics through achievements for one teacher without persisting."""
        teacher_id = profile.teacher_id
        previous = await self.store.find_latest(teacher_id, period_type, before=start)
        previous_score = previous.overall_score if previous else None

        snapshot = await self.calculator.compute_snapshot(
            teacher_id, start, end,
            previous=previous,
            allow_baseline=self.config.insufficient_data_policy == "baseline"
        )
        composite = self.composer.compose(snapshot.metrics, previous_score)
        goals = self.planner.plan(snapshot.metrics, composite.overall_score, previous_score, end, period_type)
        achievements = self.achievements.evaluate(snapshot.metrics, snapshot.analytics)

        now = self.clock()
        generated_by = GeneratedBy.SYSTEM if actor == SYSTEM_ACTOR else GeneratedBy.ADMIN

        record = ScoreRecord(
            score_id=generate_score_id(now),
            teacher_id=teacher_id,
            department=profile.department,
            category=profile.category,
            period_type=period_type,
            period_start=start,
            period_end=end,
            generated_at=now,
            overall_score=composite.overall_score,
            previous_score=composite.previous_score,
            score_change=composite.score_change,
            score_grade=composite.score_grade,
            metrics=snapshot.metrics,
            analytics=snapshot.analytics,
            goals=goals,
            achievements=achievements,
            metadata=ScoreMetadata(
                generated_by=generated_by,
                calculation_method="baseline" if snapshot.baseline else "weighted_average",
                data_sources=snapshot.data_sources,
                confidence_level=0 if snapshot.baseline else confidence_level(snapshot.analytics)
            )
        )
        record.add_audit_entry(
            action="generated" if generated_by == GeneratedBy.SYSTEM else "manual_generation",
            actor=actor,
            details=f"Performance score generated for {period_type.value} period",
            new_values={"overall_score": record.overall_score, "score_grade": record.score_grade.value}
        )
        return record, snapshot.baseline
