"""
Version Store

Persistence for game versions, QC reports and transition history.

The status column is only written through write_status(), a conditional
update that succeeds iff the row still holds the expected prior status.
This is what serializes concurrent transitions across service instances.
"""
import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import (
    GameVersionDB,
    QCReportDB,
    VersionHistoryDB,
    VersionStatus,
)

logger = logging.getLogger(__name__)


class VersionStore:
    """SQLAlchemy-backed reads and conditional writes for the review workflow."""

    def __init__(self, db: Session):
        self.db = db

    # =========================================================================
    # VERSIONS
    # =========================================================================

    def get_version(self, version_id: str) -> Optional[GameVersionDB]:
        return self.db.query(GameVersionDB).filter(GameVersionDB.id == version_id).first()

    def read_status(self, version_id: str) -> Optional[VersionStatus]:
        row = self.db.query(GameVersionDB.status).filter(GameVersionDB.id == version_id).first()
        return row[0] if row else None

    def write_status(
        self,
        version_id: str,
        expected: VersionStatus,
        next_status: VersionStatus,
        history: VersionHistoryDB,
        extra: Optional[Dict[str, Any]] = None,
    ) -> bool:
        """
        Compare-and-swap the status and append the history row in one commit.

        Returns:
            True if this call moved the version, False if the status was no
            longer `expected` (another writer got there first).
        """
        values = {"status": next_status, "updated_at": datetime.utcnow()}
        if extra:
            values.update(extra)
        try:
            updated = (
                self.db.query(GameVersionDB)
                .filter(GameVersionDB.id == version_id, GameVersionDB.status == expected)
                .update(values, synchronize_session=False)
            )
            if updated != 1:
                self.db.rollback()
                return False
            self.db.add(history)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Status write failed for version {version_id} ({expected.value} -> {next_status.value}): {e}")
            raise
        # The bulk update bypassed the identity map.
        self.db.expire_all()
        return True

    def save_qa_summary(self, version_id: str, summary: Dict[str, Any]) -> None:
        """Store the latest QA snapshot. Never touches status."""
        try:
            self.db.query(GameVersionDB).filter(GameVersionDB.id == version_id).update(
                {"qa_summary": summary, "updated_at": datetime.utcnow()},
                synchronize_session=False,
            )
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to store QA summary for version {version_id}: {e}")
            raise
        self.db.expire_all()

    def list_by_status(self, statuses: Iterable[VersionStatus]) -> List[GameVersionDB]:
        """Versions in any of `statuses`, oldest submission first."""
        return (
            self.db.query(GameVersionDB)
            .filter(GameVersionDB.status.in_(list(statuses)))
            .order_by(GameVersionDB.submitted_at.asc(), GameVersionDB.created_at.asc())
            .all()
        )

    # =========================================================================
    # QC REPORTS (append-only)
    # =========================================================================

    def append_qc_report(self, report: QCReportDB) -> str:
        """
        Durably insert a QC report.

        Raises:
            IntegrityError: (version_id, attempt_number) already taken
        """
        try:
            self.db.add(report)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            logger.warning(
                f"QC report attempt {report.attempt_number} for version {report.version_id} already exists"
            )
            raise
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to append QC report for version {report.version_id}: {e}")
            raise
        return report.id

    def count_qc_reports(self, version_id: str) -> int:
        return int(
            self.db.query(func.count(QCReportDB.id)).filter(QCReportDB.version_id == version_id).scalar() or 0
        )

    def list_qc_reports(self, version_id: str) -> List[QCReportDB]:
        return (
            self.db.query(QCReportDB)
            .filter(QCReportDB.version_id == version_id)
            .order_by(QCReportDB.attempt_number.asc())
            .all()
        )

    def committed_report_ids(self, version_id: str) -> Set[str]:
        """Report ids referenced by a pass/fail history row, i.e. verdicts that moved the version."""
        rows = (
            self.db.query(VersionHistoryDB.report_id)
            .filter(VersionHistoryDB.version_id == version_id, VersionHistoryDB.report_id.isnot(None))
            .all()
        )
        return {row[0] for row in rows}

    # =========================================================================
    # HISTORY
    # =========================================================================

    def list_history(self, version_id: str) -> List[VersionHistoryDB]:
        return (
            self.db.query(VersionHistoryDB)
            .filter(VersionHistoryDB.version_id == version_id)
            .order_by(VersionHistoryDB.created_at.asc())
            .all()
        )
