"""
Shared fixtures: in-memory SQLite database, seeded users and versions,
and an in-memory game runtime.
"""
import os

# Point the module-level engine at SQLite before qc_console.database is imported.
os.environ["DATABASE_URL"] = "sqlite://"

from datetime import datetime, timedelta
from typing import Optional
from uuid import uuid4

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from qc_console.database import Base
from qc_console.models import db_models  # noqa: F401
from qc_console.models.db_models import GameDB, GameVersionDB, UserDB, VersionStatus
from qc_console.models.qa_models import LaunchContext
from qc_console.services.qa.idempotency import RecordStore
from qc_console.services.qa.runtime_bridge import InMemoryRuntimeBridge
from qc_console.services.review.version_store import VersionStore


# =============================================================================
# HELPERS
# =============================================================================

class BridgeRecordStore(RecordStore):
    """Record store that reads what the in-memory game persisted."""

    def __init__(self, bridge: InMemoryRuntimeBridge):
        self.bridge = bridge

    def count_records(self, game_id: str, version_id: str, session_id: Optional[str] = None) -> int:
        return self.bridge.records_for(game_id, version_id, session_id)


class UnreachableRecordStore(RecordStore):
    def count_records(self, game_id, version_id, session_id=None):
        raise ConnectionError("record store offline")


class StaleReadStore(VersionStore):
    """
    Sees the version as it was before a competitor committed.

    stale_count pins the report count too; None reads the real count, so the
    stale decision writes its report under the next free attempt number.
    """

    def __init__(self, db, snapshot: GameVersionDB, stale_count: Optional[int] = None):
        super().__init__(db)
        self.snapshot = snapshot
        self.stale_count = stale_count

    def get_version(self, version_id):
        return self.snapshot

    def count_qc_reports(self, version_id):
        if self.stale_count is None:
            return super().count_qc_reports(version_id)
        return self.stale_count


def stale_snapshot(version: GameVersionDB, status: VersionStatus = VersionStatus.QC_PROCESSING) -> GameVersionDB:
    """Detached copy of `version` as a slower reader saw it."""
    return GameVersionDB(
        id=version.id,
        game_id=version.game_id,
        version=version.version,
        status=status,
        qa_summary=version.qa_summary,
    )


def make_launch_context(game_id: str = "game-1", version_id: str = "version-1") -> LaunchContext:
    return LaunchContext(
        game_id=game_id,
        version_id=version_id,
        user_id="qc-1",
        session_id=f"qa-{uuid4().hex}",
        timestamp=datetime.utcnow(),
        entry_url="https://cdn.example.com/games/math-pop/1.0.0/index.html",
    )


# =============================================================================
# DATABASE
# =============================================================================

@pytest.fixture
def engine():
    """Fresh in-memory database shared by every session in the test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_user(db):
    """Factory: make_user("qc") -> persisted UserDB with those roles."""
    def _make(*roles, is_active=True):
        user_id = str(uuid4())
        user = UserDB(
            id=user_id,
            email=f"{user_id[:8]}@studio.dev",
            username=f"user-{user_id[:8]}",
            password_hash="not-a-real-hash",
            roles=list(roles),
            is_active=is_active,
        )
        db.add(user)
        db.commit()
        return user
    return _make


@pytest.fixture
def users(make_user):
    """One user per role."""
    return {
        "dev": make_user("dev"),
        "qc": make_user("qc"),
        "cto": make_user("cto"),
        "ceo": make_user("ceo"),
        "admin": make_user("admin"),
        "nobody": make_user(),
    }


@pytest.fixture
def game(db, users):
    game = GameDB(id=str(uuid4()), game_key="math-pop", title="Math Pop", owner_id=users["dev"].id)
    db.add(game)
    db.commit()
    return game


@pytest.fixture
def make_version(db, game):
    """Factory: make_version(VersionStatus.QC_PROCESSING, qa_summary=...) -> GameVersionDB."""
    counter = {"patch": 0}

    def _make(status: VersionStatus = VersionStatus.DRAFT, qa_summary: Optional[dict] = None, age_minutes: int = 0):
        counter["patch"] += 1
        version = f"1.0.{counter['patch']}"
        submitted = datetime.utcnow() - timedelta(minutes=age_minutes)
        row = GameVersionDB(
            id=str(uuid4()),
            game_id=game.id,
            version=version,
            status=status,
            storage_path=f"games/{game.game_key}/{version}/",
            entry_file="index.html",
            qa_summary=qa_summary,
            submitted_at=submitted if status != VersionStatus.DRAFT else None,
        )
        db.add(row)
        db.commit()
        return row
    return _make


# =============================================================================
# RUNTIME
# =============================================================================

@pytest.fixture
def bridge():
    return InMemoryRuntimeBridge()


@pytest.fixture
def record_store(bridge):
    return BridgeRecordStore(bridge)
