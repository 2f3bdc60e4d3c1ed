"""
Weighted composition of category scores into the overall score and grade.
"""

import logging
import math
from typing import Dict, Mapping, Optional

from pydantic import BaseModel, Field

from models import Category, PerformanceMetrics, ScoreGrade, TeacherAnalytics
from models.utils import round_half_up, score_to_grade
from teacher_scoring.errors import InvalidWeightsError


logger = logging.getLogger(__name__)

DEFAULT_WEIGHTS: Dict[str, float] = {
    Category.STUDENT_RATING.value: 0.40,
    Category.COURSE_PERFORMANCE.value: 0.30,
    Category.ENGAGEMENT.value: 0.20,
    Category.DEVELOPMENT.value: 0.10,
}

WEIGHT_TOLERANCE = 1e-6


class CompositeScore(BaseModel):
    """Result of composing one teacher's category scores."""
    overall_score: int = Field(..., ge=0, le=100)
    previous_score: Optional[int] = None
    score_change: int = 0
    score_grade: ScoreGrade


def validate_weights(weights: Mapping[str, float]) -> Dict[Category, float]:
    """
    Check a weight set and key it by Category.

    Raises:
        InvalidWeightsError: unknown or missing categories, negative weights,
            or weights that do not sum to 1.0
    """
    weights = {getattr(k, "value", k): v for k, v in weights.items()}
    expected = {c.value for c in Category}

    unknown = set(weights) - expected
    missing = expected - set(weights)
    total = sum(weights.values())

    if unknown:
        raise InvalidWeightsError(weights, total, f"Unknown weight categories: {', '.join(sorted(unknown))}")
    if missing:
        raise InvalidWeightsError(weights, total, f"Missing weight categories: {', '.join(sorted(missing))}")
    if any(w < 0 for w in weights.values()):
        raise InvalidWeightsError(weights, total, "Category weights must be non-negative")
    if not math.isclose(total, 1.0, abs_tol=WEIGHT_TOLERANCE):
        raise InvalidWeightsError(weights, total)

    return {Category(k): float(v) for k, v in weights.items()}


def confidence_level(analytics: TeacherAnalytics) -> int:
    """Data-volume confidence: 50 base, up to 30 for students and 20 for active courses."""
    value = 50 + min(30.0, analytics.total_students / 10) + min(20, analytics.courses_active * 5)
    return min(100, round_half_up(value))


class ScoreComposer:
    """Combines the four category scores using validated weights."""

    def __init__(self, weights: Optional[Mapping[str, float]] = None):
        self.raw_weights = dict(weights or DEFAULT_WEIGHTS)

    def compose(self, metrics: PerformanceMetrics, previous_score: Optional[int] = None) -> CompositeScore:
        """
        Compute overall score, change versus the previous period and grade.

        Weights are validated on every call so a bad configuration fails the
        computation it belongs to.
        """
        weights = validate_weights(self.raw_weights)

        weighted = sum(score * weights[category] for category, score in metrics.category_scores().items())
        overall = max(0, min(100, round_half_up(weighted)))
        change = overall - previous_score if previous_score is not None else 0

        return CompositeScore(
            overall_score=overall,
            previous_score=previous_score,
            score_change=change,
            score_grade=ScoreGrade(score_to_grade(overall))
        )
