"""
Review Service

Main orchestrator for the QC console's review workflow.
Coordinates the version state machine, the attempt ledger, the automated
QA orchestrator and the version store.

Key responsibilities:
- Create draft versions (no QA, no review)
- Run automated QA and store the snapshot (no state change)
- Record QC decisions (state change, report first)
- Drive every other lifecycle action through the state machine
- Read models: inbox, reports, history, attempt count
"""
import logging
import time
from datetime import datetime
from typing import Callable, List, Optional, Set
from uuid import uuid4

from sqlalchemy.orm import Session

from ...auth import GAMES_CREATE, GAMES_REVIEW, PermissionOracle
from ...config import QC_RUNNER_TIMEOUT_SECONDS, QC_RUNNER_URL, QAPolicy
from ...database import SessionLocal
from ...models.db_models import (
    GameDB,
    GameVersionDB,
    QCDecision,
    QCReportDB,
    UserDB,
    VersionHistoryDB,
    VersionStatus,
)
from ...models.qa_models import LaunchContext, ManualInput, QATestResults
from ..artifacts import ArtifactStore, storage_path_for
from ..qa.idempotency import IdempotencyChecker, RecordStore, SqlRecordStore
from ..qa.orchestrator import QAOrchestrator
from ..qa.runtime_bridge import HttpRuntimeBridge, RuntimeBridge
from ..versioning import is_valid_semver, next_version
from .errors import (
    DuplicateVersionError,
    InconsistentDecisionError,
    InvalidTransitionError,
    InvalidVersionError,
    PermissionDeniedError,
    VersionNotFoundError,
)
from .ledger import ReviewAttemptLedger
from .sinks import AuditLogger, NotificationService
from .state_machine import TransitionContext, VersionStateMachine
from .version_store import VersionStore

logger = logging.getLogger(__name__)


# Statuses in which automated QA may run
QA_RUNNABLE_STATUSES = (VersionStatus.UPLOADED, VersionStatus.QC_PROCESSING)


class ReviewService:
    """
    Review workflow facade used by the routers.

    The runtime bridge, record store, policy and clock are injectable so tests
    can run the whole workflow against an in-memory game. The clock must be
    the one the bridge's events are timed against.
    """

    def __init__(
        self,
        db: Session,
        bridge: Optional[RuntimeBridge] = None,
        record_store: Optional[RecordStore] = None,
        policy: Optional[QAPolicy] = None,
        artifact_store: Optional[ArtifactStore] = None,
        clock: Optional[Callable[[], float]] = None,
    ):
        self.db = db
        self.store = VersionStore(db)
        self.ledger = ReviewAttemptLedger(self.store)
        self.permission_oracle = PermissionOracle(db)
        self.state_machine = VersionStateMachine(
            self.store,
            self.permission_oracle,
            ledger=self.ledger,
            notifier=NotificationService(db),
            auditor=AuditLogger(db),
        )
        self.bridge = bridge or HttpRuntimeBridge(QC_RUNNER_URL, QC_RUNNER_TIMEOUT_SECONDS)
        self.record_store = record_store or SqlRecordStore(SessionLocal)
        self.policy = policy or QAPolicy.from_env()
        self.artifact_store = artifact_store or ArtifactStore()
        self.clock = clock or time.monotonic

    # =========================================================================
    # VERSIONS
    # =========================================================================

    def create_version(
        self,
        actor: UserDB,
        game_key: str,
        version: Optional[str] = None,
        title: Optional[str] = None,
        build_size: Optional[int] = None,
        entry_file: str = "index.html",
    ) -> GameVersionDB:
        """
        Create a draft version, creating the game on first upload.

        An omitted version number becomes a patch bump of the latest one.
        """
        if not self.permission_oracle(actor.id, GAMES_CREATE):
            raise PermissionDeniedError(actor.id, GAMES_CREATE, "create")
        if not game_key or not game_key.strip():
            raise InvalidVersionError("game_key is required")

        game = self.db.query(GameDB).filter(GameDB.game_key == game_key).first()
        if game is None:
            game = GameDB(id=str(uuid4()), game_key=game_key, title=title or game_key, owner_id=actor.id)
            self.db.add(game)
            self.db.flush()

        existing = [
            v for (v,) in self.db.query(GameVersionDB.version).filter(GameVersionDB.game_id == game.id).all()
        ]
        if version is None:
            version = next_version(existing)
        elif not is_valid_semver(version):
            self.db.rollback()
            raise InvalidVersionError(f"Invalid version format {version!r}. Must be SemVer (X.Y.Z)")
        if version in existing:
            self.db.rollback()
            raise DuplicateVersionError(game_key, version)

        row = GameVersionDB(
            id=str(uuid4()),
            game_id=game.id,
            version=version,
            status=VersionStatus.DRAFT,
            build_size=build_size,
            storage_path=storage_path_for(game_key, version),
            entry_file=entry_file or "index.html",
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)

        logger.info(f"Created draft version {version} of {game_key} ({row.id}) by {actor.id}")
        return row

    def get_version(self, version_id: str) -> GameVersionDB:
        version = self.store.get_version(version_id)
        if version is None:
            raise VersionNotFoundError(version_id)
        return version

    def transition(
        self,
        version_id: str,
        action: str,
        actor: UserDB,
        note: Optional[str] = None,
        manual: Optional[ManualInput] = None,
    ) -> GameVersionDB:
        """Apply a lifecycle action. pass/fail go through decision recording."""
        if action in VersionStateMachine.QC_DECISIONS:
            return self.record_decision(version_id, action, note, manual, actor)
        return self.state_machine.transition(version_id, action, actor.id)

    def allowed_actions(self, version: GameVersionDB) -> List[str]:
        return self.state_machine.allowed_actions(version.status)

    # =========================================================================
    # AUTOMATED QA (NO STATE CHANGE)
    # =========================================================================

    async def run_qa(self, version_id: str, actor: UserDB) -> QATestResults:
        """
        Run automated QA against the version's build and store the snapshot.

        Raises:
            PermissionDeniedError: actor lacks games:review
            VersionNotFoundError: no such version
            InvalidTransitionError: version is not awaiting or in QC
        """
        if not self.permission_oracle(actor.id, GAMES_REVIEW):
            raise PermissionDeniedError(actor.id, GAMES_REVIEW, "runQA")

        version = self.get_version(version_id)
        if version.status not in QA_RUNNABLE_STATUSES:
            raise InvalidTransitionError(
                version.status.value,
                "runQA",
                self.allowed_actions(version),
                reason=f"Automated QA only runs on uploaded or qc_processing versions, not {version.status.value}",
            )

        context = LaunchContext(
            game_id=version.game_id,
            version_id=version.id,
            user_id=actor.id,
            session_id=f"qa-{uuid4().hex}",
            timestamp=datetime.utcnow(),
            entry_url=self.artifact_store.get_entry_url(version.storage_path or "", version.entry_file),
        )

        orchestrator = QAOrchestrator(
            self.bridge, IdempotencyChecker(self.record_store), self.policy, clock=self.clock,
        )
        results = await orchestrator.run_automated_qa(context)

        self.store.save_qa_summary(version_id, results.to_dict())
        return results

    # =========================================================================
    # QC DECISIONS (STATE CHANGE)
    # =========================================================================

    def record_decision(
        self,
        version_id: str,
        decision,
        note: Optional[str],
        manual: Optional[ManualInput],
        actor: UserDB,
    ) -> GameVersionDB:
        """
        Record a QC verdict against the stored QA snapshot.

        A note is mandatory for both pass and fail.
        """
        decision = QCDecision(decision)
        if not note or not note.strip():
            raise InconsistentDecisionError("note", f"A note is required to {decision.value} QC")

        return self.state_machine.transition(
            version_id,
            decision.value,
            actor.id,
            TransitionContext(manual=manual, note=note.strip()),
        )

    # =========================================================================
    # READ MODELS
    # =========================================================================

    def inbox(self) -> List[GameVersionDB]:
        """Versions waiting for or in QC, oldest submission first."""
        return self.store.list_by_status(QA_RUNNABLE_STATUSES)

    def reports(self, version_id: str, include_superseded: bool = False) -> List[QCReportDB]:
        """
        QC reports for a version, oldest attempt first.

        By default only verdicts that moved the version are listed; a report
        left behind by a decision that lost a concurrent status change is
        superseded and only returned with include_superseded=True.
        """
        self.get_version(version_id)
        if include_superseded:
            return self.ledger.history(version_id)
        return self.ledger.decided_history(version_id)

    def superseded_report_ids(self, version_id: str) -> Set[str]:
        self.get_version(version_id)
        return self.ledger.superseded_ids(version_id)

    def history(self, version_id: str) -> List[VersionHistoryDB]:
        self.get_version(version_id)
        return self.store.list_history(version_id)

    def attempt_count(self, version_id: str) -> int:
        self.get_version(version_id)
        return self.state_machine.get_attempt_count(version_id)

    async def aclose(self) -> None:
        """Release the runtime bridge's HTTP client, if any."""
        if isinstance(self.bridge, HttpRuntimeBridge):
            await self.bridge.aclose()
