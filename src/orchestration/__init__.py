"""
Orchestration package for score generation.

This package provides:
- BatchOrchestrator for single-teacher and whole-cohort generation
- Bounded worker pool with per-teacher failure isolation
- Batch reports distinguishing saved, baseline, skipped, failed and cancelled teachers
"""

from .batch import BatchOrchestrator, BatchReport, TeacherOutcome

__all__ = [
    "BatchOrchestrator",
    "BatchReport",
    "TeacherOutcome"
]
