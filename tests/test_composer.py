"""Tests for score composition, weight validation and grading."""

import pytest

from models import ScoreGrade, TeacherAnalytics
from models.utils import score_to_grade
from scoring.composer import DEFAULT_WEIGHTS, ScoreComposer, confidence_level, validate_weights
from teacher_scoring.errors import InvalidWeightsError

from conftest import make_metrics


class TestWeightValidation:

    def test_default_weights_are_valid(self):
        weights = validate_weights(DEFAULT_WEIGHTS)
        assert sum(weights.values()) == pytest.approx(1.0)

    def test_weights_must_sum_to_one(self):
        with pytest.raises(InvalidWeightsError, match="sum to 1.0"):
            validate_weights({
                "student_rating": 0.5,
                "course_performance": 0.3,
                "engagement": 0.2,
                "development": 0.1,
            })

    def test_negative_weight_rejected(self):
        with pytest.raises(InvalidWeightsError, match="non-negative"):
            validate_weights({
                "student_rating": 1.2,
                "course_performance": -0.2,
                "engagement": 0.0,
                "development": 0.0,
            })

    def test_missing_category_rejected(self):
        with pytest.raises(InvalidWeightsError, match="Missing"):
            validate_weights({"student_rating": 0.7, "course_performance": 0.3})

    def test_compose_fails_on_bad_weights(self):
        composer = ScoreComposer({
            "student_rating": 0.25,
            "course_performance": 0.25,
            "engagement": 0.25,
            "development": 0.0,
        })
        with pytest.raises(InvalidWeightsError):
            composer.compose(make_metrics())


class TestComposition:

    def test_default_weighting(self):
        result = ScoreComposer().compose(make_metrics(80, 80, 80, 80))

        assert result.overall_score == 80
        assert result.score_grade == ScoreGrade.C_PLUS
        assert result.score_change == 0
        assert result.previous_score is None

    def test_half_rounds_up(self):
        composer = ScoreComposer({
            "student_rating": 0.5,
            "course_performance": 0.25,
            "engagement": 0.25,
            "development": 0.0,
        })
        # 81*0.5 + 80*0.25 + 80*0.25 = 80.5
        result = composer.compose(make_metrics(81, 80, 80, 0))
        assert result.overall_score == 81

    def test_score_change_against_previous(self):
        result = ScoreComposer().compose(make_metrics(90, 90, 90, 90), previous_score=95)

        assert result.overall_score == 90
        assert result.score_change == -5
        assert result.previous_score == 95

    @pytest.mark.parametrize("weights", [
        DEFAULT_WEIGHTS,
        {"student_rating": 1.0, "course_performance": 0.0, "engagement": 0.0, "development": 0.0},
        {"student_rating": 0.0, "course_performance": 0.0, "engagement": 0.0, "development": 1.0},
        {"student_rating": 0.25, "course_performance": 0.25, "engagement": 0.25, "development": 0.25},
        {"student_rating": 0.1, "course_performance": 0.2, "engagement": 0.3, "development": 0.4},
        {"student_rating": 0.7, "course_performance": 0.15, "engagement": 0.1, "development": 0.05},
    ])
    @pytest.mark.parametrize("scores", [
        (0, 0, 0, 0),
        (100, 100, 100, 100),
        (100, 0, 100, 0),
        (37, 58, 99, 12),
    ])
    def test_overall_in_range(self, weights, scores):
        result = ScoreComposer(weights).compose(make_metrics(*scores))
        assert 0 <= result.overall_score <= 100
        assert isinstance(result.overall_score, int)


class TestGrades:

    @pytest.mark.parametrize("score,grade", [
        (100, "A+"), (97, "A+"), (96, "A"), (93, "A"), (92, "B+"), (87, "B+"),
        (86, "B"), (83, "B"), (82, "C+"), (77, "C+"), (76, "C"), (73, "C"),
        (72, "D"), (60, "D"), (59, "F"), (0, "F"),
    ])
    def test_grade_boundaries(self, score, grade):
        assert score_to_grade(score) == grade

    def test_every_score_has_exactly_one_grade(self):
        grades = {score: score_to_grade(score) for score in range(101)}
        assert set(grades.values()) == {g.value for g in ScoreGrade}


class TestConfidence:

    def test_confidence_level(self):
        analytics = TeacherAnalytics(total_students=150, courses_active=2)
        # 50 + 15 + 10
        assert confidence_level(analytics) == 75

    def test_confidence_caps(self):
        analytics = TeacherAnalytics(total_students=5000, courses_active=40)
        assert confidence_level(analytics) == 100
