"""
Game QC Console - QA Evidence Models

In-memory evidence produced by the automated QA run and consumed by the
decision validator. These are NOT ORM rows: a QATestResults snapshot is
serialized into `game_versions.qa_summary` and `qc_reports.qa_results`.

Separation of machine and human evidence:
- The orchestrator fills qa01, qa02, qa03.auto and qa04.
- qa03.manual starts UNSET and is only ever set through the reviewer's
  manual-input path (see services.review.decision_validator.apply_manual_input).
"""

from __future__ import annotations
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


# =============================================================================
# ENUMS
# =============================================================================

class GameEventType(str, Enum):
    """Events observed from a running game during a QA run."""
    INIT = "INIT"
    READY = "READY"
    ASSETS_LOADED = "ASSETS_LOADED"
    RESULT = "RESULT"
    QUIT = "QUIT"
    COMPLETE = "COMPLETE"
    ERROR = "ERROR"


class ManualCheck(str, Enum):
    """
    Tri-state for a human-reviewed criterion.

    UNSET means "not reviewed yet" and is distinct from FAIL.
    """
    UNSET = "unset"
    PASS = "pass"
    FAIL = "fail"

    @classmethod
    def coerce(cls, value: Any) -> "ManualCheck":
        """Accept a ManualCheck, a bool, None or the enum's string value."""
        if isinstance(value, ManualCheck):
            return value
        if value is None:
            return cls.UNSET
        if isinstance(value, bool):
            return cls.PASS if value else cls.FAIL
        try:
            return cls(str(value).lower())
        except ValueError:
            return cls.UNSET


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str) and value:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


# =============================================================================
# BUILDING BLOCKS
# =============================================================================

@dataclass
class LaunchContext:
    """Identifies one test/play session of one game version."""
    game_id: str
    version_id: str
    user_id: str
    session_id: str
    timestamp: datetime
    entry_url: str = ""


@dataclass
class GameEvent:
    """One entry in a QA run's event timeline."""
    type: GameEventType
    timestamp: datetime
    data: Any = None  # decoded JSON as sent by the game
    duration_ms: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": _iso(self.timestamp),
            "data": self.data,
            "duration_ms": self.duration_ms,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GameEvent":
        try:
            event_type = GameEventType(data.get("type"))
        except ValueError:
            event_type = GameEventType.ERROR
        return cls(
            type=event_type,
            timestamp=_parse_dt(data.get("timestamp")) or datetime.utcnow(),
            data=data.get("data"),
            duration_ms=data.get("duration_ms"),
        )


@dataclass
class Attempt:
    """One result submission, identified by the attempt id the game assigned."""
    attempt_id: str
    submitted_at: Optional[datetime] = None


@dataclass
class ManualInput:
    """Reviewer's QA-03 manual checklist."""
    no_autoplay: ManualCheck = ManualCheck.UNSET
    no_white_screen: ManualCheck = ManualCheck.UNSET
    gesture_ok: ManualCheck = ManualCheck.UNSET

    CRITERIA = ("no_autoplay", "no_white_screen", "gesture_ok")

    def __post_init__(self):
        for name in self.CRITERIA:
            setattr(self, name, ManualCheck.coerce(getattr(self, name)))

    @property
    def all_passed(self) -> bool:
        return not self.unmet_criteria()

    @property
    def is_complete(self) -> bool:
        """True once every criterion has been reviewed (PASS or FAIL)."""
        return all(getattr(self, name) != ManualCheck.UNSET for name in self.CRITERIA)

    def unmet_criteria(self) -> List[str]:
        """Criteria that are not PASS (either FAIL or still UNSET)."""
        return [name for name in self.CRITERIA if getattr(self, name) != ManualCheck.PASS]

    def to_dict(self) -> Dict[str, str]:
        return {name: getattr(self, name).value for name in self.CRITERIA}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ManualInput":
        data = data or {}
        return cls(**{name: data.get(name) for name in cls.CRITERIA})


@dataclass
class NormalizedResult:
    """
    Validated, bounded view of a game's self-reported result.

    Always constructed (never raised); malformed input yields
    is_valid=False with a non-empty validation_errors list.
    """
    is_valid: bool
    score: float = 0.0
    max_score: float = 100.0
    completed: bool = False
    accuracy: float = 0.0
    completion: float = 0.0
    validation_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "score": self.score,
            "max_score": self.max_score,
            "completed": self.completed,
            "accuracy": self.accuracy,
            "completion": self.completion,
            "validation_errors": list(self.validation_errors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "NormalizedResult":
        return cls(
            is_valid=bool(data.get("is_valid", False)),
            score=float(data.get("score", 0.0)),
            max_score=float(data.get("max_score", 100.0)),
            completed=bool(data.get("completed", False)),
            accuracy=float(data.get("accuracy", 0.0)),
            completion=float(data.get("completion", 0.0)),
            validation_errors=list(data.get("validation_errors", [])),
        )


# =============================================================================
# PER-CHECK RESULTS
# =============================================================================

@dataclass
class QA01Result:
    """Handshake timing: INIT→READY and QUIT→COMPLETE."""
    init_to_ready_ms: int = 0
    quit_to_complete_ms: int = 0
    passed: bool = False
    events: List[GameEvent] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "init_to_ready_ms": self.init_to_ready_ms,
            "quit_to_complete_ms": self.quit_to_complete_ms,
            "pass": self.passed,
            "events": [e.to_dict() for e in self.events],
            "error": self.error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QA01Result":
        return cls(
            init_to_ready_ms=int(data.get("init_to_ready_ms", 0)),
            quit_to_complete_ms=int(data.get("quit_to_complete_ms", 0)),
            passed=bool(data.get("pass", False)),
            events=[GameEvent.from_dict(e) for e in data.get("events", [])],
            error=data.get("error"),
        )


@dataclass
class QA02Result:
    """Result-format check through the normalizer."""
    passed: bool = False
    accuracy: float = 0.0
    completion: float = 0.0
    normalized_result: Optional[NormalizedResult] = None
    validation_errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass": self.passed,
            "accuracy": self.accuracy,
            "completion": self.completion,
            "normalized_result": self.normalized_result.to_dict() if self.normalized_result else None,
            "validation_errors": list(self.validation_errors),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QA02Result":
        normalized = data.get("normalized_result")
        return cls(
            passed=bool(data.get("pass", False)),
            accuracy=float(data.get("accuracy", 0.0)),
            completion=float(data.get("completion", 0.0)),
            normalized_result=NormalizedResult.from_dict(normalized) if normalized else None,
            validation_errors=list(data.get("validation_errors", [])),
        )


@dataclass
class QA03Auto:
    """Machine half of QA-03."""
    asset_error: bool = False
    ready_ms: int = 0
    error_details: List[str] = field(default_factory=list)


@dataclass
class QA03Result:
    """Asset/readiness timing (auto) plus the reviewer's checklist (manual)."""
    auto: QA03Auto = field(default_factory=QA03Auto)
    manual: ManualInput = field(default_factory=ManualInput)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "auto": {
                "asset_error": self.auto.asset_error,
                "ready_ms": self.auto.ready_ms,
                "error_details": list(self.auto.error_details),
            },
            "manual": self.manual.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QA03Result":
        auto = data.get("auto") or {}
        return cls(
            auto=QA03Auto(
                asset_error=bool(auto.get("asset_error", False)),
                ready_ms=int(auto.get("ready_ms", 0)),
                error_details=list(auto.get("error_details", [])),
            ),
            manual=ManualInput.from_dict(data.get("manual")),
        )


@dataclass
class IdempotencyResult:
    """Outcome of the duplicate-submission check (QA-04)."""
    passed: bool = False
    duplicate_attempt_id: bool = False
    backend_record_count: int = 0
    consistency_check: bool = False
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pass": self.passed,
            "duplicate_attempt_id": self.duplicate_attempt_id,
            "backend_record_count": self.backend_record_count,
            "consistency_check": self.consistency_check,
            "details": self.details,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "IdempotencyResult":
        return cls(
            passed=bool(data.get("pass", False)),
            duplicate_attempt_id=bool(data.get("duplicate_attempt_id", False)),
            backend_record_count=int(data.get("backend_record_count", 0)),
            consistency_check=bool(data.get("consistency_check", False)),
            details=data.get("details"),
        )


QA04Result = IdempotencyResult


# =============================================================================
# AGGREGATE
# =============================================================================

@dataclass
class QATestResults:
    """
    One QA execution's evidence bundle.

    Every sub-result is always present; a sub-test that could not run is
    present with its failed flags set.
    """
    qa01: QA01Result = field(default_factory=QA01Result)
    qa02: QA02Result = field(default_factory=QA02Result)
    qa03: QA03Result = field(default_factory=QA03Result)
    qa04: IdempotencyResult = field(default_factory=IdempotencyResult)
    raw_result: Dict[str, Any] = field(default_factory=dict)
    events_timeline: List[GameEvent] = field(default_factory=list)
    test_duration_ms: int = 0
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    timed_out: bool = False

    @property
    def automated_checks_passed(self) -> bool:
        return self.qa01.passed and self.qa02.passed and self.qa04.passed and not self.qa03.auto.asset_error

    def with_manual(self, manual: ManualInput) -> "QATestResults":
        """Copy of these results carrying the reviewer's manual checklist."""
        return replace(self, qa03=replace(self.qa03, manual=manual))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "qa01": self.qa01.to_dict(),
            "qa02": self.qa02.to_dict(),
            "qa03": self.qa03.to_dict(),
            "qa04": self.qa04.to_dict(),
            "raw_result": self.raw_result,
            "events_timeline": [e.to_dict() for e in self.events_timeline],
            "test_duration_ms": self.test_duration_ms,
            "started_at": _iso(self.started_at),
            "completed_at": _iso(self.completed_at),
            "timed_out": self.timed_out,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QATestResults":
        return cls(
            qa01=QA01Result.from_dict(data.get("qa01") or {}),
            qa02=QA02Result.from_dict(data.get("qa02") or {}),
            qa03=QA03Result.from_dict(data.get("qa03") or {}),
            qa04=IdempotencyResult.from_dict(data.get("qa04") or {}),
            raw_result=data.get("raw_result") or {},
            events_timeline=[GameEvent.from_dict(e) for e in data.get("events_timeline", [])],
            test_duration_ms=int(data.get("test_duration_ms", 0)),
            started_at=_parse_dt(data.get("started_at")),
            completed_at=_parse_dt(data.get("completed_at")),
            timed_out=bool(data.get("timed_out", False)),
        )
