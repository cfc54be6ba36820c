"""
Version State Machine

Single VersionStatus enum is the source of truth.
State transitions:
    draft → uploaded → qc_processing → {qc_passed | qc_failed}
    qc_failed → uploaded (resubmit)
    qc_passed → approved → published ⇄ archived
    qc_passed → qc_failed (reject at approval)

Gating rules:
- every action requires a permission held by the actor
- pass/fail additionally require QA evidence and a consistent verdict
- pass/fail write the QC report BEFORE the status flips
- the status flip is a conditional write; losing a race is an InvalidTransitionError
- sinks fire after commit and can never undo a transition
"""
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, List, Optional
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from ...auth import (
    GAMES_APPROVE,
    GAMES_ARCHIVE,
    GAMES_PUBLISH,
    GAMES_REVIEW,
    GAMES_SUBMIT,
)
from ...models.db_models import (
    GameVersionDB,
    QCDecision,
    QCReportDB,
    VersionHistoryDB,
    VersionStatus,
)
from ...models.qa_models import ManualInput, QATestResults
from .decision_validator import apply_manual_input, validate_decision
from .errors import (
    EvidenceMissingError,
    InconsistentDecisionError,
    InvalidTransitionError,
    PermissionDeniedError,
    VersionNotFoundError,
)
from .ledger import ReviewAttemptLedger
from .sinks import AuditLogger, NotificationService, TransitionEvent
from .version_store import VersionStore

logger = logging.getLogger(__name__)


@dataclass
class TransitionContext:
    """
    Extra input for a transition.

    results: evidence to decide on; defaults to the version's stored QA summary
    manual: reviewer's QA-03 checklist (None = not supplied)
    note: reviewer's note, stored on the QC report
    """
    results: Optional[QATestResults] = None
    manual: Optional[ManualInput] = None
    note: Optional[str] = None


class VersionStateMachine:
    """
    Authoritative lifecycle for game versions.

    Every status write goes through transition().
    """

    # State transition map: (current_state, action) -> new_state
    TRANSITIONS = {
        (VersionStatus.DRAFT, "submit"): VersionStatus.UPLOADED,
        (VersionStatus.UPLOADED, "startReview"): VersionStatus.QC_PROCESSING,
        (VersionStatus.QC_PROCESSING, "pass"): VersionStatus.QC_PASSED,
        (VersionStatus.QC_PROCESSING, "fail"): VersionStatus.QC_FAILED,
        (VersionStatus.QC_FAILED, "resubmit"): VersionStatus.UPLOADED,
        (VersionStatus.QC_PASSED, "approve"): VersionStatus.APPROVED,
        (VersionStatus.QC_PASSED, "reject"): VersionStatus.QC_FAILED,
        (VersionStatus.APPROVED, "publish"): VersionStatus.PUBLISHED,
        (VersionStatus.ARCHIVED, "publish"): VersionStatus.PUBLISHED,
        (VersionStatus.PUBLISHED, "archive"): VersionStatus.ARCHIVED,
    }

    # Permission each action requires
    ACTION_PERMISSIONS = {
        "submit": GAMES_SUBMIT,
        "startReview": GAMES_REVIEW,
        "pass": GAMES_REVIEW,
        "fail": GAMES_REVIEW,
        "resubmit": GAMES_SUBMIT,
        "approve": GAMES_APPROVE,
        "reject": GAMES_APPROVE,
        "publish": GAMES_PUBLISH,
        "archive": GAMES_ARCHIVE,
    }

    # Actions that record a QC report
    QC_DECISIONS = {
        "pass": QCDecision.PASS,
        "fail": QCDecision.FAIL,
    }

    ACTIONS = tuple(ACTION_PERMISSIONS)

    def __init__(
        self,
        store: VersionStore,
        permission_oracle: Callable[[str, str], bool],
        ledger: Optional[ReviewAttemptLedger] = None,
        notifier: Optional[NotificationService] = None,
        auditor: Optional[AuditLogger] = None,
    ):
        self.store = store
        self.permission_oracle = permission_oracle
        self.ledger = ledger or ReviewAttemptLedger(store)
        self.notifier = notifier
        self.auditor = auditor

    # =========================================================================
    # TABLE QUERIES
    # =========================================================================

    @classmethod
    def allowed_actions(cls, status: Optional[VersionStatus]) -> List[str]:
        """Actions listed for `status` in the transition table (permissions not checked)."""
        return [action for (state, action) in cls.TRANSITIONS if state == status]

    @classmethod
    def can_transition(cls, status: VersionStatus, action: str) -> bool:
        return (status, action) in cls.TRANSITIONS

    @classmethod
    def next_status(cls, status: VersionStatus, action: str) -> VersionStatus:
        return cls.TRANSITIONS[(status, action)]

    def get_attempt_count(self, version_id: str) -> int:
        """Number of QC reports recorded for the version so far."""
        return self.ledger.attempt_count(version_id)

    # =========================================================================
    # TRANSITION
    # =========================================================================

    def transition(
        self,
        version_id: str,
        action: str,
        actor_id: str,
        context: Optional[TransitionContext] = None,
    ) -> GameVersionDB:
        """
        Apply `action` to a version on behalf of `actor_id`.

        Returns:
            The updated version

        Raises:
            VersionNotFoundError: no such version
            InvalidTransitionError: action not legal from the current state,
                or another writer changed the state first
            PermissionDeniedError: actor lacks the action's permission
            EvidenceMissingError: pass/fail without QA results
            InconsistentDecisionError: pass contradicts the evidence
        """
        context = context or TransitionContext()

        version = self.store.get_version(version_id)
        if version is None:
            raise VersionNotFoundError(version_id)

        current = version.status
        if action not in self.ACTION_PERMISSIONS or not self.can_transition(current, action):
            raise InvalidTransitionError(current.value, action, self.allowed_actions(current))

        permission = self.ACTION_PERMISSIONS[action]
        if not self.permission_oracle(actor_id, permission):
            raise PermissionDeniedError(actor_id, permission, action)

        next_status = self.next_status(current, action)
        game_id = version.game_id
        version_label = version.version

        report = None
        if action in self.QC_DECISIONS:
            report = self._record_decision(version, action, actor_id, context)

        history = VersionHistoryDB(
            id=str(uuid4()),
            version_id=version_id,
            action=action,
            from_status=current,
            to_status=next_status,
            actor_id=actor_id,
            report_id=report.id if report else None,
            created_at=datetime.utcnow(),
        )
        extra = None
        if action in ("submit", "resubmit"):
            extra = {"submitted_by": actor_id, "submitted_at": datetime.utcnow()}

        if not self.store.write_status(version_id, current, next_status, history, extra):
            latest = self.store.read_status(version_id)
            latest_value = latest.value if latest else None
            logger.warning(
                f"Lost transition race on version {version_id}: {action} expected {current.value}, "
                f"found {latest_value}"
            )
            raise InvalidTransitionError(
                latest_value,
                action,
                self.allowed_actions(latest),
                reason=f"Version {version_id} moved to {latest_value} before {action} could be applied",
            )

        logger.info(
            f"Version {version_id} {current.value} -> {next_status.value} via {action} by {actor_id}"
        )

        self._emit(TransitionEvent(
            version_id=version_id,
            game_id=game_id,
            version=version_label,
            action=action,
            from_status=current,
            to_status=next_status,
            actor_id=actor_id,
            report_id=report.id if report else None,
            attempt_number=report.attempt_number if report else None,
            metadata=self._qa_flags(report),
        ))

        return self.store.get_version(version_id)

    def _record_decision(
        self,
        version: GameVersionDB,
        action: str,
        actor_id: str,
        context: TransitionContext,
    ) -> QCReportDB:
        decision = self.QC_DECISIONS[action]

        results = context.results
        if results is None:
            if not version.qa_summary:
                raise EvidenceMissingError(version.id)
            results = QATestResults.from_dict(version.qa_summary)

        evidence = apply_manual_input(results, context.manual)
        verdict = validate_decision(evidence, context.manual, decision)
        if not verdict.ok:
            logger.info(f"Rejected {action} on version {version.id}: {verdict.reason}")
            raise InconsistentDecisionError(verdict.failed_check, verdict.reason)

        version_id = version.id
        try:
            return self.ledger.append(version, actor_id, decision, evidence, note=context.note)
        except IntegrityError:
            latest = self.store.read_status(version_id)
            latest_value = latest.value if latest else None
            raise InvalidTransitionError(
                latest_value,
                action,
                self.allowed_actions(latest),
                reason=f"Another decision was recorded for version {version_id} first",
            )

    @staticmethod
    def _qa_flags(report: Optional[QCReportDB]) -> dict:
        if report is None:
            return {}
        qa = report.qa_results or {}
        return {
            "decision": report.decision.value,
            "qa01_pass": (qa.get("qa01") or {}).get("pass"),
            "qa02_pass": (qa.get("qa02") or {}).get("pass"),
            "qa03_asset_error": ((qa.get("qa03") or {}).get("auto") or {}).get("asset_error"),
            "qa04_pass": (qa.get("qa04") or {}).get("pass"),
        }

    def _emit(self, event: TransitionEvent) -> None:
        for sink, method in ((self.notifier, "notify"), (self.auditor, "audit")):
            if sink is None:
                continue
            try:
                getattr(sink, method)(event)
            except Exception as e:
                logger.warning(f"{type(sink).__name__} failed after {event.action} on {event.version_id}: {e}")
