"""
Plain records supplied by the platform's data sources.

These Pydantic models describe what the scoring engine reads:
- teacher ratings (moderated student feedback)
- enrollments in a teacher's courses
- course records
- engagement and development telemetry snapshots

Any backing store can produce them; the PostgreSQL source maps rows
directly onto these fields.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, validator

from .utils import to_naive_utc


class ModerationStatus(str, Enum):
    """Moderation state of a student rating."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    FLAGGED = "flagged"


class RatingStatus(str, Enum):
    """Visibility state of a student rating."""
    ACTIVE = "active"
    HIDDEN = "hidden"
    FLAGGED = "flagged"
    REMOVED = "removed"


class EnrollmentStatus(str, Enum):
    """Lifecycle state of an enrollment."""
    ACTIVE = "active"
    COMPLETED = "completed"
    DROPPED = "dropped"
    SUSPENDED = "suspended"


class CourseStatus(str, Enum):
    """Publication state of a course."""
    DRAFT = "draft"
    PENDING = "pending"
    PUBLISHED = "published"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class TeacherProfile(BaseModel):
    """An instructor eligible for scoring."""
    teacher_id: str
    name: Optional[str] = None
    department: Optional[str] = None
    category: Optional[str] = None
    active: bool = True

    class Config:
        from_attributes = True


class RatingRecord(BaseModel):
    """A single student rating of a teacher (1-5 scale)."""
    rating_id: str
    teacher_id: str
    student_id: Optional[str] = None
    course_id: Optional[str] = None
    overall_rating: float = Field(..., ge=1, le=5)
    rating_date: datetime
    status: RatingStatus = RatingStatus.ACTIVE
    moderation_status: ModerationStatus = ModerationStatus.PENDING

    # Free-text feedback
    positive_aspects: Optional[str] = None
    improvement_areas: Optional[str] = None
    additional_comments: Optional[str] = None

    class Config:
        from_attributes = True

    @validator("rating_date")
    def normalize_rating_date(cls, v):
        return to_naive_utc(v)

    @property
    def counts_toward_score(self) -> bool:
        """Only approved, visible ratings feed the student rating score."""
        return (
            self.status == RatingStatus.ACTIVE
            and self.moderation_status == ModerationStatus.APPROVED
        )


class EnrollmentRecord(BaseModel):
    """An enrollment in one of the teacher's courses."""
    enrollment_id: str
    course_id: str
    student_id: str
    status: EnrollmentStatus = EnrollmentStatus.ACTIVE
    enrolled_at: datetime
    completed_at: Optional[datetime] = None
    final_grade: Optional[float] = Field(None, ge=0, le=100)
    course_enrollment_count: int = 0  # Denormalized size of the course

    class Config:
        from_attributes = True

    @validator("enrolled_at", "completed_at")
    def normalize_timestamps(cls, v):
        """Aware timestamps (timestamptz columns) are stored as naive UTC."""
        return to_naive_utc(v)


class CourseRecord(BaseModel):
    """A course owned by the teacher."""
    course_id: str
    instructor_id: str
    title: Optional[str] = None
    status: CourseStatus = CourseStatus.DRAFT
    is_active: bool = True
    created_at: datetime
    enrollment_count: int = 0

    class Config:
        from_attributes = True

    @validator("created_at")
    def normalize_created_at(cls, v):
        return to_naive_utc(v)


class EngagementSnapshot(BaseModel):
    """Engagement telemetry for one teacher over one window."""
    response_time_hours: float = Field(..., ge=0)
    forum_participation: float = Field(..., ge=0, le=100)
    assignment_feedback_quality: float = Field(..., ge=0, le=100)
    availability_hours: float = Field(..., ge=0, le=168)  # Per week


class DevelopmentSnapshot(BaseModel):
    """Professional development activity for one teacher over one window."""
    content_updates: int = Field(0, ge=0)
    skills_improvement: float = Field(0.0, ge=0, le=100)
    certifications_earned: int = Field(0, ge=0)


# Neutral engagement telemetry: every engagement sub-score evaluates to 50.
NEUTRAL_ENGAGEMENT = EngagementSnapshot(
    response_time_hours=12.5,
    forum_participation=50.0,
    assignment_feedback_quality=50.0,
    availability_hours=30.0,
)

EMPTY_DEVELOPMENT = DevelopmentSnapshot()
