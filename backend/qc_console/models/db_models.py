"""
Game QC Console - SQLAlchemy ORM Models
PostgreSQL database models for persistent storage
"""
from datetime import datetime
from enum import Enum
from sqlalchemy import (
    Column, String, Integer, DateTime, Text, JSON, ForeignKey, Boolean,
    Enum as SQLEnum, UniqueConstraint,
)
from sqlalchemy.orm import relationship
from ..database import Base


# =============================================================================
# ENUMS FOR THE PUBLICATION PIPELINE
# =============================================================================

class VersionStatus(str, Enum):
    """Lifecycle states of a game version."""
    DRAFT = "draft"
    UPLOADED = "uploaded"
    QC_PROCESSING = "qc_processing"
    QC_PASSED = "qc_passed"
    QC_FAILED = "qc_failed"
    APPROVED = "approved"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class QCDecision(str, Enum):
    """Reviewer verdict for one QC round."""
    PASS = "pass"
    FAIL = "fail"


class NotificationType(str, Enum):
    """Kinds of in-console notifications."""
    GAME_SUBMITTED = "game_submitted"
    QC_PASSED = "qc_passed"
    QC_FAILED = "qc_failed"
    GAME_APPROVED = "game_approved"
    GAME_REJECTED = "game_rejected"
    GAME_PUBLISHED = "game_published"


STATUS_LABELS = {
    VersionStatus.DRAFT: "Draft",
    VersionStatus.UPLOADED: "Waiting for QC",
    VersionStatus.QC_PROCESSING: "In QC",
    VersionStatus.QC_FAILED: "Needs fixes",
    VersionStatus.QC_PASSED: "Waiting for approval",
    VersionStatus.APPROVED: "Waiting for publish",
    VersionStatus.PUBLISHED: "Live",
    VersionStatus.ARCHIVED: "Archived",
}


def status_label(status: VersionStatus) -> str:
    """Human-readable label for a version status."""
    return STATUS_LABELS.get(status, status.value)


class UserDB(Base):
    """Console user (developer, QC, CTO, CEO or admin)."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True)  # UUID
    email = Column(String(255), unique=True, nullable=False, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    roles = Column(JSON, nullable=False, default=list)  # ["dev"], ["qc"], ["cto", "admin"] ...
    is_active = Column(Boolean, default=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    games = relationship("GameDB", back_populates="owner")


class GameDB(Base):
    """A mini-game owned by a developer. Builds live in GameVersionDB."""
    __tablename__ = "games"

    id = Column(String(36), primary_key=True)  # UUID
    game_key = Column(String(100), unique=True, nullable=False, index=True)  # e.g. "math-pop"
    title = Column(String(255), nullable=False)
    owner_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    is_deleted = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    owner = relationship("UserDB", back_populates="games")
    versions = relationship("GameVersionDB", back_populates="game", cascade="all, delete-orphan")


class GameVersionDB(Base):
    """
    One uploaded build of one game.

    `status` is written ONLY by the version state machine (conditional update).
    `qa_summary` is the last automated QA snapshot and never touches status.
    """
    __tablename__ = "game_versions"
    __table_args__ = (
        UniqueConstraint("game_id", "version", name="uq_game_versions_game_version"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(String(32), nullable=False)  # SemVer X.Y.Z

    # State Machine
    status = Column(SQLEnum(VersionStatus), nullable=False, default=VersionStatus.DRAFT, index=True)

    # Build artifact
    build_size = Column(Integer, nullable=True)
    storage_path = Column(String(500), nullable=True)
    entry_file = Column(String(255), nullable=True, default="index.html")

    # Evidence
    qa_summary = Column(JSON, nullable=True)

    submitted_by = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    submitted_at = Column(DateTime, nullable=True)

    # Timestamps
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Relationships
    game = relationship("GameDB", back_populates="versions")
    qc_reports = relationship("QCReportDB", back_populates="version", cascade="all, delete-orphan")
    history = relationship("VersionHistoryDB", back_populates="version", cascade="all, delete-orphan")


class QCReportDB(Base):
    """
    Immutable record of a single QC review round.
    Append-only - a reversed verdict is a NEW row, never an edit.
    """
    __tablename__ = "qc_reports"
    __table_args__ = (
        UniqueConstraint("version_id", "attempt_number", name="uq_qc_reports_version_attempt"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    game_id = Column(String(36), ForeignKey("games.id", ondelete="CASCADE"), nullable=False, index=True)
    version_id = Column(String(36), ForeignKey("game_versions.id", ondelete="CASCADE"), nullable=False, index=True)
    reviewer_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True)

    # Evidence snapshot at decision time (QATestResults.to_dict())
    qa_results = Column(JSON, nullable=False)

    # Verdict
    decision = Column(SQLEnum(QCDecision), nullable=False)
    note = Column(Text, nullable=True)
    attempt_number = Column(Integer, nullable=False)  # 1-based, per version

    test_started_at = Column(DateTime, nullable=True)
    test_completed_at = Column(DateTime, nullable=True)

    # Timestamps (immutable)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    version = relationship("GameVersionDB", back_populates="qc_reports")


class VersionHistoryDB(Base):
    """
    Immutable log of state machine transitions.
    Append-only - records every status change.
    """
    __tablename__ = "version_history"

    id = Column(String(36), primary_key=True)  # UUID
    version_id = Column(String(36), ForeignKey("game_versions.id", ondelete="CASCADE"), nullable=False, index=True)

    # State Transition
    action = Column(String(32), nullable=False)
    from_status = Column(SQLEnum(VersionStatus), nullable=False)
    to_status = Column(SQLEnum(VersionStatus), nullable=False)
    actor_id = Column(String(36), nullable=False)

    report_id = Column(String(36), nullable=True)  # set for pass/fail
    event_metadata = Column(JSON, nullable=True)

    # Timestamps (immutable)
    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    version = relationship("GameVersionDB", back_populates="history")


class PlayResultDB(Base):
    """
    A result submitted by a running game.
    Source of truth for QA-04's backend record count.
    One canonical row per (version, session); resubmissions reuse it.
    """
    __tablename__ = "play_results"
    __table_args__ = (
        UniqueConstraint("version_id", "session_id", name="uq_play_results_version_session"),
    )

    id = Column(String(36), primary_key=True)  # UUID
    game_id = Column(String(36), nullable=False, index=True)
    version_id = Column(String(36), nullable=False, index=True)
    session_id = Column(String(64), nullable=True, index=True)
    attempt_id = Column(String(64), nullable=False)
    payload = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow)


class NotificationDB(Base):
    """In-console notification for a single user."""
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True)  # UUID
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(SQLEnum(NotificationType), nullable=False)
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    game_id = Column(String(36), nullable=True)
    is_read = Column(Boolean, default=False)

    created_at = Column(DateTime, default=datetime.utcnow)


class AuditLogDB(Base):
    """Who did what to which entity, and what changed."""
    __tablename__ = "audit_logs"

    id = Column(String(36), primary_key=True)  # UUID
    actor_id = Column(String(36), nullable=False, index=True)
    action = Column(String(64), nullable=False)  # VERSION_PASS, VERSION_PUBLISH ...
    target_entity = Column(String(32), nullable=False)  # GAME_VERSION
    target_id = Column(String(36), nullable=False, index=True)
    changes = Column(JSON, nullable=True)  # [{"field": "status", "old": ..., "new": ...}]
    event_metadata = Column(JSON, nullable=True)

    created_at = Column(DateTime, default=datetime.utcnow, index=True)
