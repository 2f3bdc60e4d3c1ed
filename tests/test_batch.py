"""
Tests for the batch orchestrator.

Covers single-teacher generation, per-teacher failure isolation, the
insufficient-data policies, cancellation, store outages and the ranking
barrier over a completed batch.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from database import InMemoryMetricSource, InMemoryScoreStore
from models import EnrollmentStatus, GeneratedBy, PeriodType, ScoreStatus, TeacherProfile
from orchestration import BatchOrchestrator, BatchReport
from teacher_scoring.config import ScoringConfig
from teacher_scoring.errors import InsufficientDataError, InvalidWeightsError, StoreUnavailableError

from conftest import NOW, PERIOD_END, PERIOD_START, make_course, make_enrollment, make_rating, seed_teacher


class FailingMetricSource(InMemoryMetricSource):
    """Raises an unexpected error for one teacher."""

    def __init__(self, failing_teacher: str, **kwargs):
        super().__init__(**kwargs)
        self.failing_teacher = failing_teacher

    async def get_ratings(self, teacher_id, start, end):
        if teacher_id == self.failing_teacher:
            raise RuntimeError("ratings service timed out")
        return await super().get_ratings(teacher_id, start, end)


class UnavailableStore(InMemoryScoreStore):
    """Store that is unreachable for writes."""

    async def upsert(self, record):
        raise StoreUnavailableError("connection refused")


def make_orchestrator(source, store, clock, **config):
    return BatchOrchestrator(source, store, config=ScoringConfig(**config), clock=clock)


class TestGenerateOne:

    @pytest.mark.asyncio
    async def test_generates_saves_and_ranks(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        record = await orchestrator.generate_one("T-high", PeriodType.MONTHLY)

        assert record.period_start == PERIOD_START
        assert record.period_end == PERIOD_END
        assert record.score_id.startswith("SCORE-2024-")
        assert record.department == "science"
        assert record.analytics.ranking.overall_rank == 1
        assert record.analytics.ranking.total_teachers == 1
        assert record.metadata.generated_by == GeneratedBy.SYSTEM
        assert record.metadata.calculation_method == "weighted_average"
        assert [entry.action for entry in record.audit_log] == ["generated", "ranking_updated"]

    @pytest.mark.asyncio
    async def test_rerun_supersedes(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        first = await orchestrator.generate_one("T-high", PeriodType.MONTHLY)
        second = await orchestrator.generate_one("T-high", PeriodType.MONTHLY)

        active = await store.list_records(PeriodType.MONTHLY, statuses=[ScoreStatus.ACTIVE])
        assert [r.score_id for r in active] == [second.score_id]
        assert (await store.get(first.score_id)).superseded_by == second.score_id

    @pytest.mark.asyncio
    async def test_new_record_reranks_cohort(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        low = await orchestrator.generate_one("T-low", PeriodType.MONTHLY)
        await orchestrator.generate_one("T-high", PeriodType.MONTHLY)

        reranked = await store.get(low.score_id)
        assert reranked.analytics.ranking.overall_rank == 2
        assert reranked.analytics.ranking.total_teachers == 2

    @pytest.mark.asyncio
    async def test_previous_period_feeds_change_and_goals(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)
        february = await orchestrator.generate_one(
            "T-high", PeriodType.MONTHLY,
            period_start=datetime(2024, 2, 1), period_end=datetime(2024, 2, 29, 23, 59, 59, 999999)
        )

        march = await orchestrator.generate_one("T-high", PeriodType.MONTHLY)

        assert march.previous_score == february.overall_score
        assert march.score_change == march.overall_score - february.overall_score
        assert march.goals.target_score == min(100, march.overall_score + 5)

    @pytest.mark.asyncio
    async def test_admin_actor_marks_manual_generation(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        record = await orchestrator.generate_one("T-mid", PeriodType.MONTHLY, actor="admin-7")

        assert record.metadata.generated_by == GeneratedBy.ADMIN
        assert record.audit_log[0].action == "manual_generation"
        assert record.audit_log[0].actor == "admin-7"

    @pytest.mark.asyncio
    async def test_baseline_for_teacher_without_data(self, store, clock):
        orchestrator = make_orchestrator(InMemoryMetricSource(), store, clock)

        record = await orchestrator.generate_one("T-new", PeriodType.MONTHLY)

        assert record.metadata.calculation_method == "baseline"
        assert record.metadata.confidence_level == 0
        # Only the neutral engagement score contributes: 50 * 0.2
        assert record.overall_score == 10

    @pytest.mark.asyncio
    async def test_skip_policy_raises(self, store, clock):
        orchestrator = make_orchestrator(InMemoryMetricSource(), store, clock, insufficient_data_policy="skip")

        with pytest.raises(InsufficientDataError):
            await orchestrator.generate_one("T-new", PeriodType.MONTHLY)
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_invalid_weights_propagate(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock, development_weight=0.5)

        with pytest.raises(InvalidWeightsError):
            await orchestrator.generate_one("T-high", PeriodType.MONTHLY)

    @pytest.mark.asyncio
    async def test_custom_period_requires_bounds(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        with pytest.raises(ValueError, match="explicit period bounds"):
            await orchestrator.generate_one("T-high", PeriodType.CUSTOM)


class TestGenerateAll:

    @pytest.mark.asyncio
    async def test_ranks_whole_cohort_once(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        report = await orchestrator.generate_all(PeriodType.MONTHLY)

        assert isinstance(report, BatchReport)
        assert report.status_counts == {"saved": 3}
        assert report.ranked_count == 3
        assert not report.aborted

        cohort = await store.find_cohort(PeriodType.MONTHLY, PERIOD_START)
        ranks = {r.teacher_id: r.analytics.ranking.overall_rank for r in cohort}
        assert ranks == {"T-high": 1, "T-mid": 2, "T-low": 3}
        # Ranked exactly once per record
        assert all(
            sum(1 for e in r.audit_log if e.action == "ranking_updated") == 1 for r in cohort
        )

    @pytest.mark.asyncio
    async def test_one_failure_does_not_abort_batch(self, store, clock):
        source = FailingMetricSource("T-broken")
        seed_teacher(source, "T-a", rating=5, completed=5, total=5)
        seed_teacher(source, "T-broken", rating=4, completed=5, total=5)
        seed_teacher(source, "T-b", rating=3, completed=5, total=5)
        orchestrator = make_orchestrator(source, store, clock)

        report = await orchestrator.generate_all(PeriodType.MONTHLY)

        outcomes = {o.teacher_id: o for o in report.outcomes}
        assert outcomes["T-broken"].success is False
        assert outcomes["T-broken"].status == "failed"
        assert outcomes["T-broken"].error_type == "RuntimeError"
        assert outcomes["T-a"].success and outcomes["T-b"].success

        cohort = await store.find_cohort(PeriodType.MONTHLY, PERIOD_START)
        assert sorted(r.teacher_id for r in cohort) == ["T-a", "T-b"]
        assert report.ranked_count == 2
        assert all(r.analytics.ranking.total_teachers == 2 for r in cohort)

    @pytest.mark.asyncio
    async def test_outcome_statuses_distinguish_baseline_and_skip(self, populated_source, store, clock):
        populated_source.add_teacher(TeacherProfile(teacher_id="T-new"))

        baseline = await make_orchestrator(populated_source, store, clock).generate_all(PeriodType.MONTHLY)
        skipped = await make_orchestrator(
            populated_source, InMemoryScoreStore(), clock, insufficient_data_policy="skip"
        ).generate_all(PeriodType.MONTHLY)

        assert {o.teacher_id: o.status for o in baseline.outcomes}["T-new"] == "baseline"
        assert {o.teacher_id: o.success for o in baseline.outcomes}["T-new"] is True
        assert baseline.ranked_count == 4

        assert {o.teacher_id: o.status for o in skipped.outcomes}["T-new"] == "skipped"
        assert skipped.ranked_count == 3

    @pytest.mark.asyncio
    async def test_explicit_teacher_ids(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        report = await orchestrator.generate_all(PeriodType.MONTHLY, teacher_ids=["T-mid", "T-mid", "T-low"])

        assert [o.teacher_id for o in report.outcomes] == ["T-mid", "T-low"]
        assert report.ranked_count == 2

    @pytest.mark.asyncio
    async def test_cancelled_before_start(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)
        cancel = asyncio.Event()
        cancel.set()

        report = await orchestrator.generate_all(PeriodType.MONTHLY, cancel_event=cancel)

        assert report.cancelled is True
        assert report.status_counts == {"cancelled": 3}
        assert report.ranked_count == 0
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_cancel_midway_keeps_written_records_ranked(self, populated_source, clock):
        cancel = asyncio.Event()

        class CancellingStore(InMemoryScoreStore):
            async def upsert(self, record):
                previous = await super().upsert(record)
                cancel.set()
                return previous

        store = CancellingStore()
        orchestrator = make_orchestrator(populated_source, store, clock, max_concurrent_teachers=1)

        report = await orchestrator.generate_all(PeriodType.MONTHLY, cancel_event=cancel)

        assert report.cancelled is True
        assert report.status_counts == {"saved": 1, "cancelled": 2}
        assert report.ranked_count == 1
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_store_outage_aborts_batch(self, populated_source, clock):
        store = UnavailableStore()
        orchestrator = make_orchestrator(populated_source, store, clock, max_concurrent_teachers=1)

        report = await orchestrator.generate_all(PeriodType.MONTHLY)

        assert report.aborted is True
        assert report.status_counts == {"failed": 1, "cancelled": 2}
        assert report.failures[0].error_type == "StoreUnavailableError"
        assert report.ranked_count == 0

    @pytest.mark.asyncio
    async def test_report_timing(self, populated_source, store, clock):
        report = await make_orchestrator(populated_source, store, clock).generate_all(PeriodType.MONTHLY)

        assert report.started_at == NOW
        assert report.finished_at == NOW
        assert report.execution_time_ms >= 0

    @pytest.mark.asyncio
    async def test_timezone_aware_source_records(self, store, clock):
        utc = timezone.utc
        source = InMemoryMetricSource()
        source.add_teacher(TeacherProfile(teacher_id="T-utc"))
        course = make_course("T-utc", created_at=datetime(2024, 1, 10, tzinfo=utc))
        source.add_course(course)
        source.add_enrollment(make_enrollment(
            course.course_id, EnrollmentStatus.COMPLETED,
            enrolled_at=datetime(2024, 3, 2, tzinfo=utc),
            completed_at=datetime(2024, 3, 20, 9, tzinfo=utc),
            final_grade=90
        ))
        source.add_rating(make_rating("T-utc", 5, rating_date=datetime(2024, 3, 10, tzinfo=utc)))
        # 01:00 on April 1st at UTC+2 is still March 31st in UTC
        source.add_rating(make_rating(
            "T-utc", 3, rating_date=datetime(2024, 4, 1, 1, 0, tzinfo=timezone(timedelta(hours=2)))
        ))

        report = await make_orchestrator(source, store, clock).generate_all(PeriodType.MONTHLY)

        assert report.status_counts == {"saved": 1}
        ratings = await source.get_ratings("T-utc", PERIOD_START, PERIOD_END)
        assert sorted(r.rating_date for r in ratings) == [datetime(2024, 3, 10), datetime(2024, 3, 31, 23, 0)]

    @pytest.mark.asyncio
    async def test_aware_explicit_bounds_are_normalized(self, populated_source, store, clock):
        orchestrator = make_orchestrator(populated_source, store, clock)

        record = await orchestrator.generate_one(
            "T-high", PeriodType.MONTHLY,
            period_start=datetime(2024, 3, 1, tzinfo=timezone.utc),
            period_end=datetime(2024, 3, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)
        )

        assert record.period_start == PERIOD_START
        assert record.period_start.tzinfo is None


class SlowStore(InMemoryScoreStore):
    """Store whose writes yield to the event loop before landing."""

    async def upsert(self, record):
        await asyncio.sleep(0.01)
        return await super().upsert(record)


class TestConcurrentGeneration:

    @pytest.mark.asyncio
    async def test_overlapping_runs_for_same_key_supersede(self, populated_source, clock):
        store = SlowStore()
        orchestrator = make_orchestrator(populated_source, store, clock)

        first, second = await asyncio.gather(
            orchestrator.generate_one("T-high", PeriodType.MONTHLY),
            orchestrator.generate_one("T-high", PeriodType.MONTHLY),
        )

        assert first.score_id != second.score_id
        active = await store.list_records(PeriodType.MONTHLY, statuses=[ScoreStatus.ACTIVE])
        assert len(active) == 1
        assert active[0].score_id in (first.score_id, second.score_id)
        assert active[0].analytics.ranking.overall_rank == 1
        replaced = first if active[0].score_id == second.score_id else second
        assert (await store.get(replaced.score_id)).superseded_by == active[0].score_id
