"""
Test Suite: QC Decision Validator

A fail is always consistent. A pass needs QA-01, QA-02 and QA-04, plus a
fully passing manual checklist when one is supplied.
"""
import itertools

import pytest

from qc_console.models.db_models import QCDecision
from qc_console.models.qa_models import ManualCheck, ManualInput, QATestResults
from qc_console.services.review.decision_validator import apply_manual_input, validate_decision


def evidence(qa01=True, qa02=True, qa04=True, asset_error=False) -> QATestResults:
    results = QATestResults()
    results.qa01.passed = qa01
    results.qa02.passed = qa02
    results.qa04.passed = qa04
    results.qa03.auto.asset_error = asset_error
    return results


ALL_PASS = ManualInput(no_autoplay=True, no_white_screen=True, gesture_ok=True)


class TestFailDecision:
    """Rejecting a build is never blocked by evidence."""

    @pytest.mark.parametrize("qa01,qa02,qa04", list(itertools.product([True, False], repeat=3)))
    def test_fail_always_ok(self, qa01, qa02, qa04):
        verdict = validate_decision(evidence(qa01, qa02, qa04), None, "fail")

        assert verdict.ok is True

    def test_fail_ok_with_failing_manual(self):
        manual = ManualInput(no_autoplay=False, no_white_screen=False, gesture_ok=False)

        assert validate_decision(evidence(), manual, QCDecision.FAIL).ok is True


class TestPassDecision:
    """pass requires every automated gate and a clean checklist."""

    def test_pass_with_all_evidence(self):
        verdict = validate_decision(evidence(), ALL_PASS, "pass")

        assert verdict.ok is True
        assert verdict.reason is None

    def test_pass_without_manual_is_not_blocked(self):
        assert validate_decision(evidence(), None, "pass").ok is True

    @pytest.mark.parametrize("manual", [
        None,
        ALL_PASS,
        ManualInput(no_autoplay=False),
        ManualInput(),
    ])
    def test_qa01_failure_blocks_regardless_of_manual(self, manual):
        verdict = validate_decision(evidence(qa01=False), manual, "pass")

        assert verdict.ok is False
        assert verdict.failed_check == "qa01"
        assert verdict.reason == "Cannot pass QC when QA-01 handshake test failed"

    def test_qa02_failure_blocks(self):
        verdict = validate_decision(evidence(qa02=False), ALL_PASS, "pass")

        assert verdict.ok is False
        assert verdict.failed_check == "qa02"

    def test_qa04_failure_blocks_with_precise_reason(self):
        verdict = validate_decision(evidence(qa04=False), ALL_PASS, "pass")

        assert verdict.ok is False
        assert verdict.failed_check == "qa04"
        assert verdict.reason == "Cannot pass QC when QA-04 idempotency test failed"

    def test_first_failing_check_reported(self):
        verdict = validate_decision(evidence(qa01=False, qa02=False, qa04=False), None, "pass")

        assert verdict.failed_check == "qa01"

    def test_failed_manual_criterion_blocks(self):
        manual = ManualInput(no_autoplay=True, no_white_screen=False, gesture_ok=True)
        verdict = validate_decision(evidence(), manual, "pass")

        assert verdict.ok is False
        assert verdict.failed_check == "qa03.manual.no_white_screen"
        assert "no white screen" in verdict.reason
        assert "fail" in verdict.reason

    def test_unset_manual_criterion_blocks(self):
        manual = ManualInput(no_autoplay=True, no_white_screen=True)
        verdict = validate_decision(evidence(), manual, "pass")

        assert verdict.ok is False
        assert verdict.failed_check == "qa03.manual.gesture_ok"
        assert "unset" in verdict.reason

    def test_asset_error_alone_does_not_block(self):
        assert validate_decision(evidence(asset_error=True), ALL_PASS, "pass").ok is True

    def test_unknown_decision_rejected(self):
        with pytest.raises(ValueError):
            validate_decision(evidence(), None, "maybe")


class TestManualInput:
    """Tri-state checklist and the manual-input path."""

    def test_coerces_bools_and_strings(self):
        manual = ManualInput(no_autoplay=True, no_white_screen="fail", gesture_ok=None)

        assert manual.no_autoplay == ManualCheck.PASS
        assert manual.no_white_screen == ManualCheck.FAIL
        assert manual.gesture_ok == ManualCheck.UNSET

    def test_apply_sets_manual_on_a_copy(self):
        results = evidence()
        updated = apply_manual_input(results, ALL_PASS)

        assert updated.qa03.manual.all_passed is True
        assert results.qa03.manual.all_passed is False
        assert updated.qa01 is results.qa01

    def test_apply_without_manual_is_identity(self):
        results = evidence()

        assert apply_manual_input(results, None) is results

    def test_manual_survives_serialization(self):
        updated = apply_manual_input(evidence(), ManualInput(no_autoplay=True, no_white_screen=False))
        restored = QATestResults.from_dict(updated.to_dict())

        assert restored.qa03.manual.no_autoplay == ManualCheck.PASS
        assert restored.qa03.manual.no_white_screen == ManualCheck.FAIL
        assert restored.qa03.manual.gesture_ok == ManualCheck.UNSET
