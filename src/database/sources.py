"""
Read interfaces for the raw data the scoring engine consumes.

MetricSource supplies ratings, enrollments and courses for a teacher within a
time window. EngagementSource supplies engagement and development telemetry,
which may be unavailable; callers fall back to neutral values in that case.

Absence of records is valid input, never an error. Every call returns a fresh,
finite sequence so callers can iterate it more than once.
"""

import logging
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from models import (
    CourseRecord,
    DevelopmentSnapshot,
    EngagementSnapshot,
    EnrollmentRecord,
    RatingRecord,
    TeacherProfile,
)
from models.utils import in_window


logger = logging.getLogger(__name__)


class MetricSource(ABC):
    """Read-only access to ratings, enrollments and courses."""

    @abstractmethod
    async def list_active_teachers(self) -> Sequence[TeacherProfile]:
        """All teachers eligible for scoring."""
        pass

    @abstractmethod
    async def get_ratings(self, teacher_id: str, start: datetime, end: datetime) -> Sequence[RatingRecord]:
        """Ratings of the teacher dated inside [start, end], any moderation state."""
        pass

    @abstractmethod
    async def get_enrollments(self, teacher_id: str, start: datetime, end: datetime) -> Sequence[EnrollmentRecord]:
        """Enrollments in the teacher's courses enrolled or completed inside [start, end]."""
        pass

    @abstractmethod
    async def get_courses(self, teacher_id: str) -> Sequence[CourseRecord]:
        """All courses owned by the teacher."""
        pass

    async def get_teacher(self, teacher_id: str) -> Optional[TeacherProfile]:
        """Profile of one teacher, or None if unknown or inactive."""
        for teacher in await self.list_active_teachers():
            if teacher.teacher_id == teacher_id:
                return teacher
        return None


class EngagementSource(ABC):
    """Engagement and development telemetry. ``None`` means no data."""

    @abstractmethod
    async def get_engagement(
        self, teacher_id: str, start: datetime, end: datetime
    ) -> Optional[EngagementSnapshot]:
        pass

    @abstractmethod
    async def get_development_activity(
        self, teacher_id: str, start: datetime, end: datetime
    ) -> Optional[DevelopmentSnapshot]:
        pass


class NeutralEngagementSource(EngagementSource):
    """Telemetry source used until real engagement data is wired in."""

    async def get_engagement(self, teacher_id, start, end):
        return None

    async def get_development_activity(self, teacher_id, start, end):
        return None


class InMemoryMetricSource(MetricSource):
    """
    In-memory metric source.

    Used by tests and by callers that already hold the platform records in
    memory. Records are grouped by teacher on insertion.
    """

    def __init__(
        self,
        teachers: Optional[Iterable[TeacherProfile]] = None,
        ratings: Optional[Iterable[RatingRecord]] = None,
        enrollments: Optional[Iterable[EnrollmentRecord]] = None,
        courses: Optional[Iterable[CourseRecord]] = None
    ):
        self._teachers: Dict[str, TeacherProfile] = {}
        self._ratings: Dict[str, List[RatingRecord]] = defaultdict(list)
        self._courses: Dict[str, List[CourseRecord]] = defaultdict(list)
        self._enrollments_by_course: Dict[str, List[EnrollmentRecord]] = defaultdict(list)

        for teacher in teachers or []:
            self.add_teacher(teacher)
        for course in courses or []:
            self.add_course(course)
        for rating in ratings or []:
            self.add_rating(rating)
        for enrollment in enrollments or []:
            self.add_enrollment(enrollment)

    def add_teacher(self, teacher: TeacherProfile) -> None:
        self._teachers[teacher.teacher_id] = teacher

    def add_rating(self, rating: RatingRecord) -> None:
        self._ratings[rating.teacher_id].append(rating)

    def add_course(self, course: CourseRecord) -> None:
        self._courses[course.instructor_id].append(course)

    def add_enrollment(self, enrollment: EnrollmentRecord) -> None:
        self._enrollments_by_course[enrollment.course_id].append(enrollment)

    async def list_active_teachers(self) -> List[TeacherProfile]:
        return [teacher for teacher in self._teachers.values() if teacher.active]

    async def get_ratings(self, teacher_id: str, start: datetime, end: datetime) -> List[RatingRecord]:
        return [r for r in self._ratings.get(teacher_id, []) if in_window(r.rating_date, start, end)]

    async def get_enrollments(self, teacher_id: str, start: datetime, end: datetime) -> List[EnrollmentRecord]:
        results = []
        for course in self._courses.get(teacher_id, []):
            for enrollment in self._enrollments_by_course.get(course.course_id, []):
                if in_window(enrollment.enrolled_at, start, end) or in_window(enrollment.completed_at, start, end):
                    results.append(enrollment)
        return results

    async def get_courses(self, teacher_id: str) -> List[CourseRecord]:
        return list(self._courses.get(teacher_id, []))


class InMemoryEngagementSource(EngagementSource):
    """Telemetry snapshots keyed by teacher, independent of the window."""

    def __init__(
        self,
        engagement: Optional[Dict[str, EngagementSnapshot]] = None,
        development: Optional[Dict[str, DevelopmentSnapshot]] = None
    ):
        self._engagement = dict(engagement or {})
        self._development = dict(development or {})

    async def get_engagement(self, teacher_id, start, end):
        return self._engagement.get(teacher_id)

    async def get_development_activity(self, teacher_id, start, end):
        return self._development.get(teacher_id)
