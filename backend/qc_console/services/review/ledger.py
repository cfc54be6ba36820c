"""
Review Attempt Ledger

Append-only history of QC decision rounds per game version.

Core Principles:
1. A report is never edited. A reversed verdict is a new report.
2. attempt_number = (prior reports for the version) + 1, computed at write time.
3. History is never reset, including across qc_failed -> uploaded resubmissions.

Two reviewers racing for the same attempt number collide on the
(version_id, attempt_number) unique constraint; the loser gets IntegrityError.

A report whose verdict then loses the status compare-and-swap stays in the
ledger (numbering continues past it) but is superseded: no history row
points at it. Read models hide superseded reports unless asked for them.
"""
from datetime import datetime
from typing import List, Optional, Set
from uuid import uuid4

from ...models.db_models import GameVersionDB, QCDecision, QCReportDB
from ...models.qa_models import QATestResults
from .version_store import VersionStore


class ReviewAttemptLedger:
    """Writes and reads QC reports through the version store."""

    def __init__(self, store: VersionStore):
        self.store = store

    def next_attempt_number(self, version_id: str) -> int:
        return self.store.count_qc_reports(version_id) + 1

    def attempt_count(self, version_id: str) -> int:
        return self.store.count_qc_reports(version_id)

    def append(
        self,
        version: GameVersionDB,
        reviewer_id: str,
        decision: QCDecision,
        results: QATestResults,
        note: Optional[str] = None,
    ) -> QCReportDB:
        """
        Record one review round.

        Args:
            version: Version under review
            reviewer_id: Actor making the decision
            decision: pass / fail
            results: Evidence snapshot at decision time (manual checklist included)
            note: Reviewer's note

        Returns:
            The persisted report
        """
        report = QCReportDB(
            id=str(uuid4()),
            game_id=version.game_id,
            version_id=version.id,
            reviewer_id=reviewer_id,
            qa_results=results.to_dict(),
            decision=decision,
            note=note,
            attempt_number=self.next_attempt_number(version.id),
            test_started_at=results.started_at,
            test_completed_at=results.completed_at,
            created_at=datetime.utcnow(),
        )
        self.store.append_qc_report(report)
        return report

    def history(self, version_id: str) -> List[QCReportDB]:
        """Every report for the version, oldest attempt first."""
        return self.store.list_qc_reports(version_id)

    def decided_history(self, version_id: str) -> List[QCReportDB]:
        """Reports whose verdict actually moved the version, oldest first."""
        committed = self.store.committed_report_ids(version_id)
        return [report for report in self.history(version_id) if report.id in committed]

    def superseded_ids(self, version_id: str) -> Set[str]:
        """Reports written by a decision that lost the race for the status change."""
        committed = self.store.committed_report_ids(version_id)
        return {report.id for report in self.history(version_id) if report.id not in committed}
