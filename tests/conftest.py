"""Shared builders and fixtures for the teacher scoring tests."""

from datetime import datetime
from typing import Optional

import pytest

from database import InMemoryMetricSource, InMemoryScoreStore
from models import (
    CourseRecord,
    CourseStatus,
    CoursePerformanceMetrics,
    DevelopmentMetrics,
    EngagementMetrics,
    EnrollmentRecord,
    EnrollmentStatus,
    Goals,
    ModerationStatus,
    PerformanceMetrics,
    PeriodType,
    RatingRecord,
    RatingStatus,
    ScoreGrade,
    ScoreRecord,
    StudentRatingMetrics,
    TeacherProfile,
)
from models.utils import score_to_grade


PERIOD_START = datetime(2024, 3, 1)
PERIOD_END = datetime(2024, 3, 31, 23, 59, 59, 999999)
NOW = datetime(2024, 3, 15, 12, 0)

_counter = {"value": 0}


def _next_id(prefix: str) -> str:
    _counter["value"] += 1
    return f"{prefix}-{_counter['value']}"


def make_rating(
    teacher_id: str,
    overall_rating: float,
    rating_date: datetime = datetime(2024, 3, 10),
    moderation_status: ModerationStatus = ModerationStatus.APPROVED,
    status: RatingStatus = RatingStatus.ACTIVE,
    **kwargs
) -> RatingRecord:
    return RatingRecord(
        rating_id=_next_id("R"),
        teacher_id=teacher_id,
        student_id=_next_id("S"),
        overall_rating=overall_rating,
        rating_date=rating_date,
        moderation_status=moderation_status,
        status=status,
        **kwargs
    )


def make_course(
    teacher_id: str,
    course_id: Optional[str] = None,
    created_at: datetime = datetime(2024, 1, 10),
    status: CourseStatus = CourseStatus.PUBLISHED,
    enrollment_count: int = 40
) -> CourseRecord:
    return CourseRecord(
        course_id=course_id or _next_id("C"),
        instructor_id=teacher_id,
        status=status,
        created_at=created_at,
        enrollment_count=enrollment_count
    )


def make_enrollment(
    course_id: str,
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE,
    enrolled_at: datetime = datetime(2024, 3, 2),
    completed_at: Optional[datetime] = None,
    final_grade: Optional[float] = None
) -> EnrollmentRecord:
    if status == EnrollmentStatus.COMPLETED and completed_at is None:
        completed_at = datetime(2024, 3, 20)
    return EnrollmentRecord(
        enrollment_id=_next_id("E"),
        course_id=course_id,
        student_id=_next_id("S"),
        status=status,
        enrolled_at=enrolled_at,
        completed_at=completed_at,
        final_grade=final_grade
    )


def make_metrics(
    student_rating: int = 80,
    course_performance: int = 80,
    engagement: int = 80,
    development: int = 80
) -> PerformanceMetrics:
    return PerformanceMetrics(
        student_rating=StudentRatingMetrics(score=student_rating),
        course_performance=CoursePerformanceMetrics(score=course_performance),
        engagement=EngagementMetrics(score=engagement),
        development=DevelopmentMetrics(score=development)
    )


def make_record(
    teacher_id: str,
    overall_score: int,
    period_start: datetime = PERIOD_START,
    period_end: datetime = PERIOD_END,
    period_type: PeriodType = PeriodType.MONTHLY,
    generated_at: datetime = NOW,
    score_id: Optional[str] = None,
    **kwargs
) -> ScoreRecord:
    return ScoreRecord(
        score_id=score_id or _next_id("SCORE-2024"),
        teacher_id=teacher_id,
        period_type=period_type,
        period_start=period_start,
        period_end=period_end,
        generated_at=generated_at,
        overall_score=overall_score,
        score_grade=ScoreGrade(score_to_grade(overall_score)),
        metrics=make_metrics(overall_score, overall_score, overall_score, overall_score),
        goals=Goals(target_score=min(100, overall_score + 10)),
        **kwargs
    )


def seed_teacher(source: InMemoryMetricSource, teacher_id: str, rating: float, completed: int, total: int,
                 grade: float = 80.0, department: Optional[str] = None) -> None:
    """Give a teacher one course, ``total`` enrollments (``completed`` of them graded) and two ratings."""
    source.add_teacher(TeacherProfile(teacher_id=teacher_id, name=teacher_id, department=department))
    course = make_course(teacher_id)
    source.add_course(course)
    for i in range(total):
        if i < completed:
            source.add_enrollment(make_enrollment(course.course_id, EnrollmentStatus.COMPLETED, final_grade=grade))
        else:
            source.add_enrollment(make_enrollment(course.course_id))
    source.add_rating(make_rating(teacher_id, rating))
    source.add_rating(make_rating(teacher_id, rating))


@pytest.fixture
def store():
    return InMemoryScoreStore()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def populated_source():
    """Three teachers with different performance profiles."""
    source = InMemoryMetricSource()
    seed_teacher(source, "T-high", rating=5, completed=9, total=10, grade=95, department="science")
    seed_teacher(source, "T-mid", rating=4, completed=6, total=10, grade=75, department="science")
    seed_teacher(source, "T-low", rating=2, completed=3, total=10, grade=55, department="arts")
    return source


