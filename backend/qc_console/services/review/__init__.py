"""
QC Review - Service Package

Version lifecycle state machine, QC decision gate, append-only attempt
ledger and the review workflow built on top of them.
"""
from .errors import (
    WorkflowError,
    InvalidTransitionError,
    InconsistentDecisionError,
    EvidenceMissingError,
    PermissionDeniedError,
    VersionNotFoundError,
    InvalidVersionError,
    DuplicateVersionError,
)
from .decision_validator import DecisionVerdict, validate_decision, apply_manual_input
from .version_store import VersionStore
from .ledger import ReviewAttemptLedger
from .sinks import TransitionEvent, NotificationService, AuditLogger
from .state_machine import TransitionContext, VersionStateMachine
from .review_service import ReviewService

__all__ = [
    "WorkflowError",
    "InvalidTransitionError",
    "InconsistentDecisionError",
    "EvidenceMissingError",
    "PermissionDeniedError",
    "VersionNotFoundError",
    "InvalidVersionError",
    "DuplicateVersionError",
    "DecisionVerdict",
    "validate_decision",
    "apply_manual_input",
    "VersionStore",
    "ReviewAttemptLedger",
    "TransitionEvent",
    "NotificationService",
    "AuditLogger",
    "TransitionContext",
    "VersionStateMachine",
    "ReviewService",
]
