"""Tests for the command-line interface."""

import os
from datetime import datetime
from unittest.mock import AsyncMock, patch

import pytest
from typer.testing import CliRunner

from database import InMemoryMetricSource, InMemoryScoreStore
from models import EnrollmentStatus, TeacherProfile
from teacher_scoring import __version__
from teacher_scoring.cli import app

from conftest import make_course, make_enrollment, make_rating


runner = CliRunner()


def current_month_source():
    """Data dated today so the CLI's current-period resolution picks it up."""
    today = datetime.now()
    source = InMemoryMetricSource()
    source.add_teacher(TeacherProfile(teacher_id="T1"))
    source.add_teacher(TeacherProfile(teacher_id="T2"))
    for teacher_id in ("T1", "T2"):
        course = make_course(teacher_id)
        source.add_course(course)
        source.add_enrollment(make_enrollment(
            course.course_id, EnrollmentStatus.COMPLETED, enrolled_at=today, completed_at=today, final_grade=88
        ))
        source.add_rating(make_rating(teacher_id, 5 if teacher_id == "T1" else 3, rating_date=today))
    return source


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_generate_all_and_leaderboard():
    backends = (current_month_source(), InMemoryScoreStore())

    with patch("teacher_scoring.cli._build_backends", new=AsyncMock(return_value=backends)):
        result = runner.invoke(app, ["generate-all", "--period", "monthly"])
        assert result.exit_code == 0, result.stdout
        assert "saved" in result.stdout
        assert "Ranked 2 teachers" in result.stdout

        board = runner.invoke(app, ["leaderboard", "--period", "monthly", "--limit", "1"])
        assert board.exit_code == 0, board.stdout
        assert "T1" in board.stdout
        assert "T2" not in board.stdout


def test_generate_skip_policy_exits_nonzero():
    backends = (InMemoryMetricSource(), InMemoryScoreStore())

    with patch.dict("os.environ", {"SCORING_INSUFFICIENT_DATA_POLICY": "skip"}), \
            patch("teacher_scoring.cli._build_backends", new=AsyncMock(return_value=backends)):
        result = runner.invoke(app, ["generate", "T-none", "--period", "monthly"])

    assert result.exit_code == 1
    assert "InsufficientDataError" in result.stdout


@pytest.mark.parametrize("command", [
    ["generate", "T1"],
    ["generate-all"],
    ["leaderboard"],
])
def test_missing_database_url_reports_error(command):
    with patch.dict(os.environ, {}, clear=True):
        result = runner.invoke(app, command)

    assert result.exit_code == 1
    assert "DatabaseConnectionError" in result.stdout
    assert "DATABASE_URL is not set" in result.stdout
