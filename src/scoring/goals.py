"""Goal planning for the next review period."""

from datetime import datetime
from typing import Dict, List, Optional

from models import Category, Goals, PerformanceMetrics, PeriodType
from models.utils import next_review_date


IMPROVEMENT_THRESHOLD = 70
STRENGTH_THRESHOLD = 80

ACTION_PLANS: Dict[Category, List[str]] = {
    Category.STUDENT_RATING: [
        "Improve response time to student questions",
        "Enhance course content clarity",
    ],
    Category.COURSE_PERFORMANCE: [
        "Review course structure and pacing",
        "Implement additional student support measures",
    ],
    Category.ENGAGEMENT: [
        "Increase forum participation",
        "Improve assignment feedback quality",
    ],
    Category.DEVELOPMENT: [
        "Attend professional development workshops",
        "Update course content regularly",
    ],
}


def target_score_for(overall_score: int, previous_score: Optional[int]) -> int:
    """Next target; never below the previous period's score."""
    if previous_score is None:
        return min(100, overall_score + 10)
    if overall_score >= previous_score:
        return min(100, overall_score + 5)
    return min(100, previous_score)


class GoalPlanner:
    """Derives targets, focus areas and an action plan from category scores."""

    def plan(
        self,
        metrics: PerformanceMetrics,
        overall_score: int,
        previous_score: Optional[int],
        period_end: datetime,
        period_type: PeriodType
    ) -> Goals:
        scores = metrics.category_scores()

        improvement = [c for c, score in scores.items() if score < IMPROVEMENT_THRESHOLD]
        strengths = [c for c, score in scores.items() if score >= STRENGTH_THRESHOLD]

        action_plan: List[str] = []
        for category in improvement:
            action_plan.extend(ACTION_PLANS[category])

        target = target_score_for(overall_score, previous_score)
        return Goals(
            target_score=target,
            target_achieved=overall_score >= target,
            improvement_areas=[c.display_name for c in improvement],
            strength_areas=[c.display_name for c in strengths],
            action_plan=action_plan,
            next_review_date=next_review_date(period_end, period_type)
        )
