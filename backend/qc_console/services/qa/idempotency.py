"""
Idempotency Checker (QA-04)

Given the submission attempts observed for one (game, version) pair, decides
whether the game's result submissions are idempotent:

- duplicate_attempt_id: two or more attempts share an attempt id
- backend_record_count: distinct persisted records for (game, version)
- consistency_check: exactly one canonical record AND no duplicate ids
- pass = consistency_check

The record store is an external collaborator. When it cannot be reached the
check degrades to a failed result (fail-closed) rather than raising.

Ordering: callers must invoke check() only after every submission of the
current run has been acknowledged, otherwise the count under-reads.
"""
import logging
from abc import ABC, abstractmethod
from collections import Counter
from typing import Callable, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from ...models.db_models import PlayResultDB
from ...models.qa_models import Attempt, IdempotencyResult

logger = logging.getLogger(__name__)


# =============================================================================
# RECORD STORE
# =============================================================================

class RecordStore(ABC):
    """Read side of wherever games persist their submitted results."""

    @abstractmethod
    def count_records(self, game_id: str, version_id: str, session_id: Optional[str] = None) -> int:
        """Count distinct persisted result records for the pair (optionally one session)."""


class SqlRecordStore(RecordStore):
    """Counts rows in play_results through a fresh session per call."""

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def count_records(self, game_id: str, version_id: str, session_id: Optional[str] = None) -> int:
        db = self.session_factory()
        try:
            query = db.query(func.count(func.distinct(PlayResultDB.id))).filter(
                PlayResultDB.game_id == game_id,
                PlayResultDB.version_id == version_id,
            )
            if session_id is not None:
                query = query.filter(PlayResultDB.session_id == session_id)
            return int(query.scalar() or 0)
        finally:
            db.close()


# =============================================================================
# CHECKER
# =============================================================================

class IdempotencyChecker:
    """Pure decision over attempts plus one read from the record store."""

    def __init__(self, record_store: RecordStore):
        self.record_store = record_store

    @staticmethod
    def find_duplicate_ids(attempts: List[Attempt]) -> List[str]:
        """Attempt ids that occur more than once, in first-seen order."""
        counts = Counter(a.attempt_id for a in attempts)
        seen = []
        for attempt in attempts:
            if counts[attempt.attempt_id] > 1 and attempt.attempt_id not in seen:
                seen.append(attempt.attempt_id)
        return seen

    def check(
        self,
        game_id: str,
        version_id: str,
        attempts: List[Attempt],
        session_id: Optional[str] = None,
    ) -> IdempotencyResult:
        """
        Check idempotency for one submission burst.

        Args:
            game_id: Owning game
            version_id: Version under test
            attempts: Attempts observed during the run (order preserved)
            session_id: Narrow the record count to one launch session

        Returns:
            IdempotencyResult - never raises
        """
        duplicates = self.find_duplicate_ids(attempts)
        duplicate_attempt_id = bool(duplicates)

        try:
            record_count = self.record_store.count_records(game_id, version_id, session_id)
        except Exception as e:
            logger.warning(f"Record store unreachable for version {version_id}: {e}")
            return IdempotencyResult(
                passed=False,
                duplicate_attempt_id=duplicate_attempt_id,
                backend_record_count=0,
                consistency_check=False,
                details=f"Record store unavailable: {e}",
            )

        consistency_check = record_count == 1 and not duplicate_attempt_id

        if duplicate_attempt_id:
            details = f"Duplicate attempt ids: {', '.join(duplicates)}"
        elif record_count != 1:
            details = f"Expected exactly 1 backend record, found {record_count}"
        else:
            details = f"{len(attempts)} attempts reconciled to 1 record"

        return IdempotencyResult(
            passed=consistency_check,
            duplicate_attempt_id=duplicate_attempt_id,
            backend_record_count=record_count,
            consistency_check=consistency_check,
            details=details,
        )


def check_idempotency(
    game_id: str,
    version_id: str,
    attempts: List[Attempt],
    record_store: RecordStore,
    session_id: Optional[str] = None,
) -> IdempotencyResult:
    """Functional entry point for IdempotencyChecker.check."""
    return IdempotencyChecker(record_store).check(game_id, version_id, attempts, session_id)
