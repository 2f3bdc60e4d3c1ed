"""
Teacher Scoring

Per-period instructor performance scoring and ranking for the learning
platform back office: weighted category metrics, letter grades, cohort
ranking, goals, achievements and auditable score records.
"""

__version__ = "0.1.0"
