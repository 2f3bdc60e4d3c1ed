"""
PostgreSQL metric source.

Reads teachers, ratings, enrollments and courses from the platform tables
and maps rows onto the plain source records the calculator consumes.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from models import CourseRecord, EnrollmentRecord, RatingRecord, TeacherProfile
from .connection import DatabasePool, get_database_pool
from .sources import MetricSource


logger = logging.getLogger(__name__)


TEACHERS_QUERY = """
SELECT
    t.id AS teacher_id,
    t.name,
    t.department,
    t.category,
    t.is_active AS active
FROM public.teachers t
WHERE t.is_active = true AND t.deleted_at IS NULL
ORDER BY t.id
"""

RATINGS_QUERY = """
SELECT
    r.id AS rating_id,
    r.teacher_id,
    r.student_id,
    r.course_id,
    r.overall_rating,
    r.created_at AS rating_date,
    r.status,
    r.moderation_status,
    r.positive_aspects,
    r.improvement_areas,
    r.additional_comments
FROM public.teacher_ratings r
WHERE r.teacher_id = $1
  AND r.created_at >= $2
  AND r.created_at <= $3
ORDER BY r.created_at
"""

ENROLLMENTS_QUERY = """
SELECT
    e.id AS enrollment_id,
    e.course_id,
    e.student_id,
    e.status,
    e.enrolled_at,
    e.completed_at,
    e.final_grade,
    c.enrollment_count AS course_enrollment_count
FROM public.enrollments e
JOIN public.courses c ON c.id = e.course_id
WHERE c.instructor_id = $1
  AND (
        (e.enrolled_at >= $2 AND e.enrolled_at <= $3)
     OR (e.completed_at >= $2 AND e.completed_at <= $3)
  )
ORDER BY e.enrolled_at
"""

COURSES_QUERY = """
SELECT
    c.id AS course_id,
    c.instructor_id,
    c.title,
    c.status,
    c.is_active,
    c.created_at,
    c.enrollment_count
FROM public.courses c
WHERE c.instructor_id = $1
ORDER BY c.created_at
"""


def _row(record) -> Dict[str, Any]:
    """asyncpg record to a plain dict with ids as strings."""
    data = dict(record)
    for key, value in data.items():
        if key.endswith("_id") and value is not None:
            data[key] = str(value)
    return data


class PostgresMetricSource(MetricSource):
    """Metric source backed by the platform's PostgreSQL tables."""

    def __init__(self, pool: Optional[DatabasePool] = None):
        self._pool = pool

    async def _get_pool(self) -> DatabasePool:
        if self._pool is None:
            self._pool = await get_database_pool()
        return self._pool

    async def list_active_teachers(self) -> List[TeacherProfile]:
        pool = await self._get_pool()
        rows = await pool.execute_query(TEACHERS_QUERY)
        return [TeacherProfile(**_row(row)) for row in rows]

    async def get_ratings(self, teacher_id: str, start: datetime, end: datetime) -> List[RatingRecord]:
        pool = await self._get_pool()
        rows = await pool.execute_query(RATINGS_QUERY, teacher_id, start, end)
        return [RatingRecord(**_row(row)) for row in rows]

    async def get_enrollments(self, teacher_id: str, start: datetime, end: datetime) -> List[EnrollmentRecord]:
        pool = await self._get_pool()
        rows = await pool.execute_query(ENROLLMENTS_QUERY, teacher_id, start, end)

        enrollments = []
        for row in rows:
            data = _row(row)
            if data.get("final_grade") is not None:
                data["final_grade"] = float(data["final_grade"])
            data["course_enrollment_count"] = data.get("course_enrollment_count") or 0
            enrollments.append(EnrollmentRecord(**data))
        return enrollments

    async def get_courses(self, teacher_id: str) -> List[CourseRecord]:
        pool = await self._get_pool()
        rows = await pool.execute_query(COURSES_QUERY, teacher_id)
        courses = []
        for row in rows:
            data = _row(row)
            data["enrollment_count"] = data.get("enrollment_count") or 0
            courses.append(CourseRecord(**data))
        logger.debug(f"Loaded {len(courses)} courses for teacher {teacher_id}")
        return courses
