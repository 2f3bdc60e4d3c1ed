"""
Admin review and teacher goal updates on stored score records.

Every change appends an audit entry with before/after values of the fields
it touched.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

from database.store import ScoreRecordStore
from models import LIVE_STATUSES, PeriodType, ScoreRecord, ScoreStatus
from teacher_scoring.errors import InvalidStatusTransitionError, ScoreLockedError, ScoreNotFoundError


logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    ScoreStatus.ACTIVE: {ScoreStatus.UNDER_REVIEW, ScoreStatus.FINAL, ScoreStatus.ARCHIVED},
    ScoreStatus.UNDER_REVIEW: {ScoreStatus.ACTIVE, ScoreStatus.FINAL, ScoreStatus.ARCHIVED},
    ScoreStatus.FINAL: {ScoreStatus.ARCHIVED},
    ScoreStatus.ARCHIVED: set(),
}

LOCKED_STATUSES = (ScoreStatus.FINAL, ScoreStatus.ARCHIVED)


def check_transition(current: ScoreStatus, requested: ScoreStatus) -> None:
    if requested == current:
        return
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(
            f"Cannot move score from '{current.value}' to '{requested.value}'"
        )


class ScoreReviewService:
    """Applies review decisions and goal edits to persisted records."""

    def __init__(self, store: ScoreRecordStore, clock: Optional[Callable[[], datetime]] = None):
        self.store = store
        self.clock = clock or datetime.now

    async def review_score(
        self,
        score_id: str,
        actor: str,
        status: Optional[ScoreStatus] = None,
        review_notes: Optional[str] = None,
        target_score: Optional[int] = None,
        action_plan: Optional[List[str]] = None
    ) -> ScoreRecord:
        """
        Record an admin review.

        Raises:
            ScoreNotFoundError: no record with ``score_id``
            InvalidStatusTransitionError: the lifecycle forbids the status change
        """
        record = await self.store.get(score_id)
        if record is None:
            raise ScoreNotFoundError(f"Score {score_id} not found")

        before: Dict[str, Any] = {}
        after: Dict[str, Any] = {}

        if status is not None:
            status = ScoreStatus(status)
            check_transition(record.status, status)
            if status != record.status:
                before["status"], after["status"] = record.status.value, status.value
                record.status = status

        if review_notes is not None:
            before["review_notes"], after["review_notes"] = record.review_notes, review_notes
            record.review_notes = review_notes

        if target_score is not None or action_plan is not None:
            before["goals"] = record.goals.model_dump(mode="json")
            record.set_target_score(
                target_score if target_score is not None else record.goals.target_score,
                action_plan=action_plan
            )
            after["goals"] = record.goals.model_dump(mode="json")

        record.reviewed_by = actor
        record.reviewed_at = self.clock()
        record.add_audit_entry(
            action="score_updated",
            actor=actor,
            details="Score reviewed and updated",
            previous_values=before,
            new_values=after
        )

        await self.store.save(record)
        logger.info(f"Score {score_id} reviewed by {actor}", extra={"score_id": score_id, "changes": list(after)})
        return record

    async def update_goals(
        self,
        teacher_id: str,
        actor: str,
        target_score: Optional[int] = None,
        action_plan: Optional[List[str]] = None,
        period_type: Optional[PeriodType] = None
    ) -> ScoreRecord:
        """
        Let a teacher edit goals on their latest live record.

        Raises:
            ScoreNotFoundError: the teacher has no live record
            ScoreLockedError: the latest record is final
        """
        history = await self.store.find_by_teacher(teacher_id, period_type)
        live = [r for r in history if r.superseded_by is None and r.status in LIVE_STATUSES]
        if not live:
            raise ScoreNotFoundError(f"No score found for teacher {teacher_id}")

        record = live[0]
        if record.status in LOCKED_STATUSES:
            raise ScoreLockedError(f"Score {record.score_id} is {record.status.value} and can no longer be edited")

        before = record.goals.model_dump(mode="json")
        record.set_target_score(
            target_score if target_score is not None else record.goals.target_score,
            action_plan=action_plan
        )
        record.add_audit_entry(
            action="goals_updated",
            actor=actor,
            details="Teacher updated performance goals",
            previous_values=before,
            new_values=record.goals.model_dump(mode="json")
        )

        await self.store.save(record)
        logger.info(f"Goals updated for teacher {teacher_id}", extra={"score_id": record.score_id})
        return record
