"""
QC Decision Validator

Pure gate between the evidence and a reviewer's verdict.

- "fail" is always consistent: no evidence can block rejecting a build.
- "pass" requires QA-01, QA-02 and QA-04 to have passed, and, when the
  reviewer supplied a manual checklist, every criterion to be PASS.
  An absent checklist does not block; a supplied one with any FAIL or
  UNSET criterion does.

Never touches persistence.
"""
from dataclasses import dataclass
from typing import Optional

from ...models.db_models import QCDecision
from ...models.qa_models import ManualInput, QATestResults


MANUAL_LABELS = {
    "no_autoplay": "no autoplay",
    "no_white_screen": "no white screen",
    "gesture_ok": "gesture handling",
}


@dataclass(frozen=True)
class DecisionVerdict:
    """ok=False carries the blocking sub-check and a user-facing reason."""
    ok: bool
    reason: Optional[str] = None
    failed_check: Optional[str] = None

    @classmethod
    def accept(cls) -> "DecisionVerdict":
        return cls(ok=True)

    @classmethod
    def reject(cls, failed_check: str, reason: str) -> "DecisionVerdict":
        return cls(ok=False, reason=reason, failed_check=failed_check)


def validate_decision(
    results: QATestResults,
    manual: Optional[ManualInput],
    decision,
) -> DecisionVerdict:
    """
    Check a proposed verdict against the evidence.

    Args:
        results: Automated QA evidence for the version
        manual: Reviewer's checklist, or None when not supplied
        decision: QCDecision or its string value ("pass" / "fail")

    Returns:
        DecisionVerdict
    """
    decision = QCDecision(decision)

    if decision == QCDecision.FAIL:
        return DecisionVerdict.accept()

    if not results.qa01.passed:
        return DecisionVerdict.reject("qa01", "Cannot pass QC when QA-01 handshake test failed")
    if not results.qa02.passed:
        return DecisionVerdict.reject("qa02", "Cannot pass QC when QA-02 result format test failed")
    if not results.qa04.passed:
        return DecisionVerdict.reject("qa04", "Cannot pass QC when QA-04 idempotency test failed")

    if manual is not None:
        unmet = manual.unmet_criteria()
        if unmet:
            first = unmet[0]
            state = getattr(manual, first).value
            return DecisionVerdict.reject(
                f"qa03.manual.{first}",
                f"Cannot pass QC when QA-03 manual check '{MANUAL_LABELS[first]}' is {state}",
            )

    return DecisionVerdict.accept()


def apply_manual_input(results: QATestResults, manual: Optional[ManualInput]) -> QATestResults:
    """
    Attach the reviewer's checklist to the evidence.

    The only path that sets qa03.manual; returns a new QATestResults.
    """
    if manual is None:
        return results
    return results.with_manual(manual)
