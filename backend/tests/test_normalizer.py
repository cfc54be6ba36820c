"""
Test Suite: QA Result Normalizer

The normalizer sits between untrusted game code and the QC pipeline, so it
must be total: every input yields a NormalizedResult and nothing raises.
"""
import math

import pytest

from qc_console.models.qa_models import NormalizedResult
from qc_console.services.qa.normalizer import normalize


class TestWellFormedResults:
    """Results a well-behaved game reports."""

    def test_complete_result(self):
        result = normalize({"score": 80, "maxScore": 100, "completed": True})

        assert result.is_valid is True
        assert result.validation_errors == []
        assert result.score == 80
        assert result.max_score == 100
        assert result.accuracy == pytest.approx(0.8)
        assert result.completion == 1.0

    def test_incomplete_run_has_zero_completion(self):
        result = normalize({"score": 30, "maxScore": 60, "completed": False})

        assert result.is_valid is True
        assert result.accuracy == pytest.approx(0.5)
        assert result.completion == 0.0

    def test_missing_max_score_defaults_to_100(self):
        result = normalize({"score": 25, "completed": True})

        assert result.is_valid is True
        assert result.max_score == 100
        assert result.accuracy == pytest.approx(0.25)

    def test_snake_case_max_score_accepted(self):
        result = normalize({"score": 5, "max_score": 10, "completed": True})

        assert result.max_score == 10
        assert result.accuracy == pytest.approx(0.5)

    def test_accuracy_clamped_above_one(self):
        result = normalize({"score": 250, "maxScore": 100, "completed": True})

        assert result.accuracy == 1.0

    def test_negative_score_clamped_to_zero(self):
        result = normalize({"score": -10, "maxScore": 100, "completed": True})

        assert result.accuracy == 0.0


class TestMalformedResults:
    """Malformed input degrades to is_valid=False with reasons."""

    def test_missing_score(self):
        result = normalize({"maxScore": 100, "completed": True})

        assert result.is_valid is False
        assert result.score == 0
        assert "score is missing" in result.validation_errors

    def test_string_score_is_not_a_number(self):
        result = normalize({"score": "80", "maxScore": 100, "completed": True})

        assert result.is_valid is False
        assert result.score == 0
        assert any("score is not a number" in e for e in result.validation_errors)

    def test_boolean_score_is_not_a_number(self):
        result = normalize({"score": True, "maxScore": 100, "completed": True})

        assert result.is_valid is False
        assert result.score == 0

    def test_nan_score_rejected(self):
        result = normalize({"score": float("nan"), "maxScore": 100, "completed": True})

        assert result.is_valid is False
        assert result.accuracy == 0.0

    def test_zero_max_score_gives_zero_accuracy(self):
        result = normalize({"score": 10, "maxScore": 0, "completed": True})

        assert result.is_valid is False
        assert result.accuracy == 0.0
        assert any("maxScore must be positive" in e for e in result.validation_errors)

    def test_non_numeric_max_score_falls_back_to_default(self):
        result = normalize({"score": 50, "maxScore": "lots", "completed": True})

        assert result.is_valid is False
        assert result.max_score == 100
        assert result.accuracy == pytest.approx(0.5)

    def test_non_boolean_completed_defaults_to_false(self):
        result = normalize({"score": 50, "maxScore": 100, "completed": "yes"})

        assert result.is_valid is False
        assert result.completed is False
        assert result.completion == 0.0

    def test_missing_completed(self):
        result = normalize({"score": 50, "maxScore": 100})

        assert result.is_valid is False
        assert "completed is missing" in result.validation_errors

    @pytest.mark.parametrize("raw", [None, [], [1, 2, 3], "score=80", 42, 3.5, True])
    def test_non_object_input(self, raw):
        result = normalize(raw)

        assert result.is_valid is False
        assert result.validation_errors
        assert result.accuracy == 0.0
        assert result.completion == 0.0


class TestTotality:
    """normalize never raises and always stays in bounds."""

    @pytest.mark.parametrize("raw", [
        None,
        {},
        [],
        "",
        {"score": None, "maxScore": None, "completed": None},
        {"score": float("inf"), "maxScore": 100, "completed": True},
        {"score": 1e308, "maxScore": 1e-308, "completed": True},
        {"score": -1e308, "maxScore": 1, "completed": False},
        {"score": {"nested": 1}, "maxScore": [100], "completed": [True]},
        {"score": 10, "maxScore": -5, "completed": True},
        {"score": 10, "maxScore": float("nan"), "completed": True},
        {"score": 10 ** 400, "maxScore": 100, "completed": True},
        {"score": 50, "maxScore": 10 ** 400, "completed": True},
        {"score": -(10 ** 400), "maxScore": 10 ** 400, "completed": False},
        {"unexpected": "shape"},
    ])
    def test_bounded_for_any_input(self, raw):
        result = normalize(raw)

        assert isinstance(result, NormalizedResult)
        assert 0.0 <= result.accuracy <= 1.0
        assert result.completion in (0.0, 1.0)
        assert not math.isnan(result.accuracy)
        if not result.is_valid:
            assert result.validation_errors

    def test_integer_beyond_float_range_is_a_validation_error(self):
        result = normalize({"score": 10 ** 400, "maxScore": 100, "completed": True})

        assert result.is_valid is False
        assert result.score == 0.0
        assert any(error.startswith("score is not a number") for error in result.validation_errors)
