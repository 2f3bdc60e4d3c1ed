"""
Metric calculation for teacher performance scoring.

Turns raw ratings, enrollments, courses and telemetry for one teacher and one
window into the four independently scored categories plus the
cohort-independent analytics stored on the score record.

All arithmetic here is deterministic; the only I/O is the initial fetch,
which runs the source calls concurrently.
"""

import asyncio
import logging
import statistics
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from pydantic import BaseModel

from database.sources import EngagementSource, MetricSource, NeutralEngagementSource
from models import (
    CourseRecord,
    CourseStatus,
    CoursePerformanceMetrics,
    DevelopmentMetrics,
    DevelopmentSnapshot,
    EngagementMetrics,
    EngagementSnapshot,
    EnrollmentRecord,
    EnrollmentStatus,
    FeedbackSummary,
    PerformanceMetrics,
    RatingRecord,
    RatingStatus,
    ScoreRecord,
    StudentRatingMetrics,
    TeacherAnalytics,
    TrendDirection,
    TrendSummary,
    VolumeTrend,
    EMPTY_DEVELOPMENT,
    NEUTRAL_ENGAGEMENT,
)
from models.utils import classify_change, extract_common_terms, in_window, round2, round_half_up
from teacher_scoring.errors import InsufficientDataError


logger = logging.getLogger(__name__)

PASSING_GRADE = 60.0


@dataclass
class RawInputs:
    """Everything fetched for one teacher and one window."""
    ratings: Sequence[RatingRecord]
    enrollments: Sequence[EnrollmentRecord]
    courses: Sequence[CourseRecord]
    engagement: Optional[EngagementSnapshot]
    development: Optional[DevelopmentSnapshot]

    @property
    def has_signal(self) -> bool:
        return bool(self.ratings) or bool(self.enrollments)


class MetricSnapshot(BaseModel):
    """Computed metrics and analytics for one teacher and one window."""
    teacher_id: str
    period_start: datetime
    period_end: datetime
    metrics: PerformanceMetrics
    analytics: TeacherAnalytics
    data_sources: List[str] = []
    baseline: bool = False


class MetricCalculator:
    """
    Computes the four category scores for a teacher.

    Categories and default weights:
    - Student rating (40%): moderated ratings, response rate and volume
    - Course performance (30%): completion, grades, retention and pass rate
    - Engagement (20%): response time, forum, feedback quality, availability
    - Development (10%): new courses, content updates, skills, certifications
    """

    def __init__(
        self,
        metric_source: MetricSource,
        engagement_source: Optional[EngagementSource] = None,
        logger_instance: Optional[logging.Logger] = None
    ):
        self.metric_source = metric_source
        self.engagement_source = engagement_source or NeutralEngagementSource()
        self.logger = logger_instance or logger

    async def compute(self, teacher_id: str, period_start: datetime, period_end: datetime) -> PerformanceMetrics:
        """
        Compute category metrics for the window.

        Raises:
            InsufficientDataError: the teacher has no ratings and no enrollments in the window
        """
        raw = await self._fetch(teacher_id, period_start, period_end)
        if not raw.has_signal:
            raise InsufficientDataError(teacher_id, period_start, period_end)
        return self._compute_metrics(raw, period_start, period_end)

    async def compute_snapshot(
        self,
        teacher_id: str,
        period_start: datetime,
        period_end: datetime,
        previous: Optional[ScoreRecord] = None,
        allow_baseline: bool = False
    ) -> MetricSnapshot:
        """
        Compute metrics plus analytics, comparing trends against ``previous``.

        With ``allow_baseline`` a teacher without data is zero-filled for the
        rating and course categories instead of raising InsufficientDataError;
        engagement and development still use whatever telemetry exists.
        """
        raw = await self._fetch(teacher_id, period_start, period_end)

        baseline = not raw.has_signal
        if baseline and not allow_baseline:
            raise InsufficientDataError(teacher_id, period_start, period_end)

        if baseline:
            metrics = self._baseline_metrics(raw, period_start, period_end)
        else:
            metrics = self._compute_metrics(raw, period_start, period_end)

        analytics = self._compute_analytics(raw, metrics, period_start, period_end, previous)

        data_sources = ["student_ratings", "course_performance"]
        data_sources.append("engagement_metrics" if raw.engagement is not None else "engagement_baseline")
        data_sources.append("development_data")

        self.logger.debug(
            f"Computed metrics for teacher {teacher_id}",
            extra={
                "teacher_id": teacher_id,
                "ratings": len(raw.ratings),
                "enrollments": len(raw.enrollments),
                "courses": len(raw.courses),
                "baseline": baseline
            }
        )

        return MetricSnapshot(
            teacher_id=teacher_id,
            period_start=period_start,
            period_end=period_end,
            metrics=metrics,
            analytics=analytics,
            data_sources=data_sources,
            baseline=baseline
        )

    async def _fetch(self, teacher_id: str, start: datetime, end: datetime) -> RawInputs:
        ratings, enrollments, courses, engagement, development = await asyncio.gather(
            self.metric_source.get_ratings(teacher_id, start, end),
            self.metric_source.get_enrollments(teacher_id, start, end),
            self.metric_source.get_courses(teacher_id),
            self.engagement_source.get_engagement(teacher_id, start, end),
            self.engagement_source.get_development_activity(teacher_id, start, end),
        )

        # Sources may hand back lazy iterables; materialize once per computation
        return RawInputs(
            ratings=[r for r in ratings if in_window(r.rating_date, start, end)],
            enrollments=list(enrollments),
            courses=list(courses),
            engagement=engagement,
            development=development
        )

    def _compute_metrics(self, raw: RawInputs, start: datetime, end: datetime) -> PerformanceMetrics:
        return PerformanceMetrics(
            student_rating=self._compute_student_rating(raw.ratings, raw.enrollments, start, end),
            course_performance=self._compute_course_performance(raw.enrollments, start, end),
            engagement=self._compute_engagement(raw.engagement),
            development=self._compute_development(raw.courses, raw.development, start, end)
        )

    def _baseline_metrics(self, raw: RawInputs, start: datetime, end: datetime) -> PerformanceMetrics:
        return PerformanceMetrics(
            student_rating=StudentRatingMetrics(score=0),
            course_performance=CoursePerformanceMetrics(score=0),
            engagement=self._compute_engagement(raw.engagement),
            development=self._compute_development(raw.courses, raw.development, start, end)
        )

    def _compute_student_rating(
        self,
        ratings: Sequence[RatingRecord],
        enrollments: Sequence[EnrollmentRecord],
        start: datetime,
        end: datetime
    ) -> StudentRatingMetrics:
        """Rating average rescaled to 0-70, response-rate bonus 0-20, volume bonus 0-10."""
        counted = [r for r in ratings if r.counts_toward_score]
        total_ratings = len(counted)
        average_rating = statistics.mean(r.overall_rating for r in counted) if counted else 0.0

        completed_in_window = sum(
            1 for e in enrollments
            if e.status == EnrollmentStatus.COMPLETED and in_window(e.completed_at, start, end)
        )
        response_rate = (total_ratings / completed_in_window * 100) if completed_in_window else 0.0
        response_rate = min(100.0, response_rate)

        base = average_rating / 5 * 70
        response_bonus = min(20.0, response_rate / 100 * 20)
        volume_bonus = min(total_ratings, 10)

        return StudentRatingMetrics(
            score=min(100, round_half_up(base + response_bonus + volume_bonus)),
            average_rating=round2(average_rating),
            total_ratings=total_ratings,
            response_rate=round2(response_rate)
        )

    def _compute_course_performance(
        self,
        enrollments: Sequence[EnrollmentRecord],
        start: datetime,
        end: datetime
    ) -> CoursePerformanceMetrics:
        """
        completion*0.4 + average grade*0.3 + retention*0.2 + pass rate*0.1.

        Completed enrollments without a final grade are treated as ungraded:
        they count toward completion but are excluded from both the average
        grade and the pass rate.
        """
        in_period = [e for e in enrollments if in_window(e.enrolled_at, start, end)]
        total = len(in_period)

        completed = [e for e in in_period if e.status == EnrollmentStatus.COMPLETED]
        dropped = [e for e in in_period if e.status == EnrollmentStatus.DROPPED]
        graded = [e for e in completed if e.final_grade is not None]
        passed = [e for e in graded if e.final_grade >= PASSING_GRADE]

        completion_rate = len(completed) / total * 100 if total else 0.0
        dropout_rate = len(dropped) / total * 100 if total else 0.0
        pass_rate = len(passed) / len(graded) * 100 if graded else 0.0
        average_grade = statistics.mean(e.final_grade for e in graded) if graded else 0.0

        score = round_half_up(
            completion_rate * 0.4
            + average_grade * 0.3
            + (100 - dropout_rate) * 0.2
            + pass_rate * 0.1
        )

        return CoursePerformanceMetrics(
            score=min(100, score),
            completion_rate=round2(completion_rate),
            average_grade=round2(average_grade),
            dropout_rate=round2(dropout_rate),
            pass_rate=round2(pass_rate)
        )

    def _compute_engagement(self, snapshot: Optional[EngagementSnapshot]) -> EngagementMetrics:
        """Response time 30%, forum 30%, feedback quality 20%, availability 20%."""
        telemetry_available = snapshot is not None
        snapshot = snapshot or NEUTRAL_ENGAGEMENT

        response_time_score = max(0.0, 100 - snapshot.response_time_hours * 4)
        participation_score = snapshot.forum_participation
        feedback_score = snapshot.assignment_feedback_quality
        availability_score = min(100.0, snapshot.availability_hours / 60 * 100)

        score = round_half_up(
            response_time_score * 0.3
            + participation_score * 0.3
            + feedback_score * 0.2
            + availability_score * 0.2
        )

        return EngagementMetrics(
            score=max(0, min(100, score)),
            response_time=round2(snapshot.response_time_hours),
            forum_participation=round2(snapshot.forum_participation),
            assignment_feedback_quality=round2(snapshot.assignment_feedback_quality),
            availability_hours=round2(snapshot.availability_hours),
            telemetry_available=telemetry_available
        )

    def _compute_development(
        self,
        courses: Sequence[CourseRecord],
        activity: Optional[DevelopmentSnapshot],
        start: datetime,
        end: datetime
    ) -> DevelopmentMetrics:
        """courses created*20 + content updates*2 + skills*0.4 + certifications*10, capped at 100."""
        activity = activity or EMPTY_DEVELOPMENT
        courses_created = sum(1 for c in courses if in_window(c.created_at, start, end))

        score = round_half_up(
            courses_created * 20
            + activity.content_updates * 2
            + activity.skills_improvement * 0.4
            + activity.certifications_earned * 10
        )

        return DevelopmentMetrics(
            score=min(100, score),
            courses_created=courses_created,
            content_updates=activity.content_updates,
            skills_improvement=round2(activity.skills_improvement),
            certifications_earned=activity.certifications_earned
        )

    def _compute_analytics(
        self,
        raw: RawInputs,
        metrics: PerformanceMetrics,
        start: datetime,
        end: datetime,
        previous: Optional[ScoreRecord]
    ) -> TeacherAnalytics:
        in_period = [e for e in raw.enrollments if in_window(e.enrolled_at, start, end)]
        course_sizes: Dict[str, int] = {c.course_id: c.enrollment_count for c in raw.courses}

        class_sizes = [course_sizes.get(e.course_id, e.course_enrollment_count) for e in in_period]
        average_class_size = statistics.mean(class_sizes) if class_sizes else 0.0

        analytics = TeacherAnalytics(
            courses_active=sum(
                1 for c in raw.courses if c.status == CourseStatus.PUBLISHED and c.is_active
            ),
            courses_completed=sum(1 for c in raw.courses if c.status == CourseStatus.COMPLETED),
            total_students=len({e.student_id for e in in_period}),
            total_enrollments=len(in_period),
            average_class_size=round2(average_class_size),
            feedback=self._analyze_feedback(raw.ratings)
        )
        analytics.trends = self._analyze_trends(analytics, metrics, previous)
        return analytics

    def _analyze_feedback(self, ratings: Sequence[RatingRecord]) -> FeedbackSummary:
        """Sentiment tally over visible ratings, regardless of moderation state."""
        visible = [r for r in ratings if r.status == RatingStatus.ACTIVE]

        summary = FeedbackSummary()
        for rating in visible:
            if rating.overall_rating >= 4:
                summary.positive += 1
            elif rating.overall_rating >= 3:
                summary.neutral += 1
            else:
                summary.negative += 1

        summary.common_compliments = extract_common_terms(r.positive_aspects for r in visible)
        summary.common_complaints = extract_common_terms(r.improvement_areas for r in visible)
        summary.improvement_suggestions = extract_common_terms(r.additional_comments for r in visible)
        return summary

    def _analyze_trends(
        self,
        analytics: TeacherAnalytics,
        metrics: PerformanceMetrics,
        previous: Optional[ScoreRecord]
    ) -> TrendSummary:
        """Compare this period with the previous record of the same period type."""
        if previous is None:
            return TrendSummary()

        volume = {1: VolumeTrend.INCREASING, 0: VolumeTrend.STABLE, -1: VolumeTrend.DECREASING}
        quality = {1: TrendDirection.IMPROVING, 0: TrendDirection.STABLE, -1: TrendDirection.DECLINING}

        return TrendSummary(
            enrollment_trend=volume[classify_change(
                analytics.total_enrollments, previous.analytics.total_enrollments, 0.05, relative=True
            )],
            rating_trend=quality[classify_change(
                metrics.student_rating.average_rating, previous.metrics.student_rating.average_rating, 0.1
            )],
            completion_trend=quality[classify_change(
                metrics.course_performance.completion_rate, previous.metrics.course_performance.completion_rate, 2
            )],
            engagement_trend=volume[classify_change(
                metrics.engagement.score, previous.metrics.engagement.score, 2
            )]
        )
