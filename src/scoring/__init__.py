"""
Scoring engine for teacher performance.

Main components:
- MetricCalculator: four category scores and analytics for one teacher
- ScoreComposer: weighted overall score, change and letter grade
- GoalPlanner: next targets and action plan
- AchievementEvaluator: threshold badges and milestones
- RankingEngine: cohort ranking behind the batch barrier
- ScoreReviewService: admin review and teacher goal updates
- leaderboard / score_statistics: read-side reporting
"""

from .metrics import MetricCalculator, MetricSnapshot
from .composer import ScoreComposer, CompositeScore, DEFAULT_WEIGHTS, validate_weights, confidence_level
from .goals import GoalPlanner, ACTION_PLANS
from .achievements import AchievementEvaluator, AchievementRule, DEFAULT_RULES, load_rules
from .ranking import RankingEngine, compute_rankings
from .review import ScoreReviewService
from .reporting import ScoreStatistics, leaderboard, score_statistics

__all__ = [
    # Calculation
    'MetricCalculator',
    'MetricSnapshot',
    'ScoreComposer',
    'CompositeScore',
    'DEFAULT_WEIGHTS',
    'validate_weights',
    'confidence_level',

    # Goals and achievements
    'GoalPlanner',
    'ACTION_PLANS',
    'AchievementEvaluator',
    'AchievementRule',
    'DEFAULT_RULES',
    'load_rules',

    # Ranking and review
    'RankingEngine',
    'compute_rankings',
    'ScoreReviewService',

    # Reporting
    'ScoreStatistics',
    'leaderboard',
    'score_statistics',
]
