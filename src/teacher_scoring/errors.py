"""Error taxonomy for score generation, ranking and review."""

from datetime import datetime
from typing import Any, Dict, Iterable, Optional


class ScoringError(Exception):
    """Base class for all scoring errors."""
    pass


class InsufficientDataError(ScoringError):
    """Raised when a teacher has no ratings and no enrollments in the window."""

    def __init__(self, teacher_id: str, period_start: datetime, period_end: datetime):
        self.teacher_id = teacher_id
        self.period_start = period_start
        self.period_end = period_end
        super().__init__(
            f"No ratings or enrollments for teacher {teacher_id} "
            f"between {period_start.isoformat()} and {period_end.isoformat()}"
        )


class InvalidWeightsError(ScoringError):
    """Raised when category weights are negative or do not sum to 1.0."""

    def __init__(self, weights: Dict[str, Any], total: float, reason: Optional[str] = None):
        self.weights = weights
        self.total = total
        super().__init__(reason or f"Category weights must sum to 1.0 (got {total:.4f})")


class PersistenceError(ScoringError):
    """Raised when the score store rejects or fails a write or read."""
    pass


class StoreUnavailableError(PersistenceError):
    """Infrastructure-level store failure; batches abort instead of retrying per teacher."""
    pass


class RankingBarrierViolation(ScoringError):
    """Raised when ranking observes a cohort missing records written by the batch."""

    def __init__(self, expected: Iterable[str], observed: Iterable[str]):
        self.missing = sorted(set(expected) - set(observed))
        super().__init__(
            f"Ranking cohort is missing {len(self.missing)} record(s) written by this batch: "
            f"{', '.join(self.missing[:10])}"
        )


class ScoreNotFoundError(ScoringError):
    """Raised when a score record cannot be found."""
    pass


class InvalidStatusTransitionError(ScoringError):
    """Raised when a review requests a status change the lifecycle forbids."""
    pass


class ScoreLockedError(ScoringError):
    """Raised when goals are edited on a final or archived record."""
    pass
