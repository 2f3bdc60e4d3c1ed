"""
Achievement evaluation.

Rules are threshold checks over a small set of named measures. The default
rule set can be replaced from a YAML file of the form::

    rules:
      - kind: badge
        label: Top Rated Instructor
        measure: average_rating
        threshold: 4.5
"""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, validator

from models import Achievements, AchievementKind, PerformanceMetrics, TeacherAnalytics


logger = logging.getLogger(__name__)

MEASURES = (
    "average_rating",
    "completion_rate",
    "total_students",
    "courses_active",
    "total_enrollments",
)


class AchievementRule(BaseModel):
    """Award ``label`` when ``measure`` is at least ``threshold``."""
    kind: AchievementKind
    label: str
    measure: str
    threshold: float

    @validator("measure")
    def validate_measure(cls, v):
        if v not in MEASURES:
            raise ValueError(f"Unknown measure '{v}'; expected one of {', '.join(MEASURES)}")
        return v


DEFAULT_RULES: List[AchievementRule] = [
    AchievementRule(kind=AchievementKind.BADGE, label="Top Rated Instructor", measure="average_rating", threshold=4.5),
    AchievementRule(kind=AchievementKind.BADGE, label="High Completion Rate", measure="completion_rate", threshold=90),
    AchievementRule(kind=AchievementKind.BADGE, label="Popular Instructor", measure="total_students", threshold=1000),
    AchievementRule(kind=AchievementKind.MILESTONE, label="10 Active Courses", measure="courses_active", threshold=10),
    AchievementRule(kind=AchievementKind.MILESTONE, label="5000 Total Enrollments", measure="total_enrollments", threshold=5000),
]


def load_rules(path: Union[str, Path]) -> List[AchievementRule]:
    """Load achievement rules from a YAML file."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    rules = [AchievementRule(**entry) for entry in data.get("rules", [])]
    logger.info(f"Loaded {len(rules)} achievement rules from {path}")
    return rules


class AchievementEvaluator:
    """Pure mapping from (metrics, analytics) to a deduplicated achievement set."""

    def __init__(self, rules: Optional[Sequence[AchievementRule]] = None):
        self.rules = list(rules) if rules is not None else list(DEFAULT_RULES)

    @classmethod
    def from_file(cls, path: Optional[Union[str, Path]]) -> "AchievementEvaluator":
        return cls(load_rules(path)) if path else cls()

    def evaluate(
        self,
        metrics: PerformanceMetrics,
        analytics: TeacherAnalytics,
        existing: Optional[Achievements] = None
    ) -> Achievements:
        """Return ``existing`` (copied) plus every rule that fires, without duplicates."""
        achievements = existing.model_copy(deep=True) if existing else Achievements()
        values = self._measures(metrics, analytics)

        for rule in self.rules:
            if values[rule.measure] >= rule.threshold:
                achievements.add(rule.kind, rule.label)

        return achievements

    @staticmethod
    def _measures(metrics: PerformanceMetrics, analytics: TeacherAnalytics) -> Dict[str, float]:
        return {
            "average_rating": metrics.student_rating.average_rating,
            "completion_rate": metrics.course_performance.completion_rate,
            "total_students": analytics.total_students,
            "courses_active": analytics.courses_active,
            "total_enrollments": analytics.total_enrollments,
        }
