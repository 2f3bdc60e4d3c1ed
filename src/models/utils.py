"""
Utility functions for working with score records.

Provides helper functions for:
- Half-up rounding used for every stored integer score
- Grade and category classification
- Percentile calculation
- Reporting period resolution and review date arithmetic
- Trend classification between consecutive periods
- Free-text term extraction for feedback summaries
"""

import calendar
import math
import re
import uuid
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, Tuple, Union


GRADE_THRESHOLDS: List[Tuple[int, str]] = [
    (97, "A+"),
    (93, "A"),
    (87, "B+"),
    (83, "B"),
    (77, "C+"),
    (73, "C"),
    (60, "D"),
]

CATEGORY_THRESHOLDS: List[Tuple[int, str]] = [
    (90, "Excellent"),
    (80, "Good"),
    (70, "Satisfactory"),
    (60, "Needs Improvement"),
]

PERIOD_MONTHS = {
    "monthly": 1,
    "quarterly": 3,
    "yearly": 12,
    "custom": 1,
}

_STOPWORDS = {
    "about", "after", "also", "been", "being", "could", "does", "from", "have",
    "into", "just", "more", "most", "much", "only", "other", "some", "such",
    "than", "that", "their", "them", "then", "there", "these", "they", "this",
    "very", "were", "what", "when", "which", "while", "will", "with", "would",
    "your",
}


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def round2(value: float) -> float:
    """Round a displayed statistic to 2 decimals."""
    return round(float(value), 2)


def score_to_grade(score: Union[int, float]) -> str:
    """Map an overall score to its letter grade (inclusive lower bounds)."""
    for threshold, grade in GRADE_THRESHOLDS:
        if score >= threshold:
            return grade
    return "F"


def score_category(score: Union[int, float]) -> str:
    """Coarse descriptive category for an overall score."""
    for threshold, label in CATEGORY_THRESHOLDS:
        if score >= threshold:
            return label
    return "Poor"


def percentile_for_rank(rank: int, total: int) -> int:
    """Percentile of a 1-based rank in a cohort; 100 is the top performer."""
    if total <= 0 or rank <= 0:
        return 0
    return round_half_up((total - rank + 1) / total * 100)


def generate_score_id(now: Optional[datetime] = None) -> str:
    """Generate a score identifier of the form SCORE-YYYY-XXXXXX."""
    year = (now or datetime.now()).year
    return f"SCORE-{year}-{uuid.uuid4().hex[:6].upper()}"


def _period_value(period_type) -> str:
    return getattr(period_type, "value", period_type)


def add_months(moment: datetime, months: int) -> datetime:
    """Shift a datetime by whole months, clamping the day to the month length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def resolve_period(period_type, now: Optional[datetime] = None) -> Tuple[datetime, datetime]:
    """
    Resolve the calendar period containing ``now``.

    Returns (start, end) where start is midnight of the first day and end is
    the last microsecond of the last day. Custom periods have no calendar
    definition and must be given explicit bounds.
    """
    now = to_naive_utc(now or datetime.now())
    value = _period_value(period_type)

    if value == "monthly":
        start_month, span = now.month, 1
    elif value == "quarterly":
        start_month, span = (now.month - 1) // 3 * 3 + 1, 3
    elif value == "yearly":
        start_month, span = 1, 12
    else:
        raise ValueError(f"Period type '{value}' requires explicit period bounds")

    start = datetime(now.year, start_month, 1)
    end = add_months(start, span) - timedelta(microseconds=1)
    return start, end


def next_review_date(period_end: datetime, period_type) -> datetime:
    """The review date one period after the period end."""
    return add_months(period_end, PERIOD_MONTHS.get(_period_value(period_type), 1))


def to_naive_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Convert an aware datetime to naive UTC; naive values pass through unchanged."""
    if moment is None or moment.tzinfo is None:
        return moment
    return moment.astimezone(timezone.utc).replace(tzinfo=None)


def in_window(moment: Optional[datetime], start: datetime, end: datetime) -> bool:
    """Inclusive window membership. Aware datetimes compare as naive UTC."""
    if moment is None:
        return False
    return to_naive_utc(start) <= to_naive_utc(moment) <= to_naive_utc(end)


def classify_change(
    current: float,
    previous: Optional[float],
    threshold: float,
    relative: bool = False
) -> int:
    """
    Classify a period-over-period change as -1, 0 or 1.

    With ``relative`` the change is measured as a fraction of the previous
    value; a previous value of zero counts any positive current value as growth.
    """
    if previous is None:
        return 0

    if relative:
        if previous == 0:
            return 1 if current > 0 else 0
        diff = (current - previous) / previous
    else:
        diff = current - previous

    if diff > threshold:
        return 1
    if diff < -threshold:
        return -1
    return 0


def extract_common_terms(texts: Iterable[Optional[str]], limit: int = 3) -> List[str]:
    """Most frequent meaningful words across free-text feedback."""
    counts: Counter = Counter()
    for text in texts:
        if not text:
            continue
        words = re.findall(r"[a-zA-Z]{4,}", text.lower())
        counts.update(word for word in words if word not in _STOPWORDS)

    # Ties resolve alphabetically so the result is deterministic
    ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [word for word, _ in ranked[:limit]]
