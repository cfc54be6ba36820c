"""
Play Result Recorder

Write side of the play_results table that QA-04 counts.

A running game posts its result once per submission; retries and double
taps land here too. Recording is idempotent:

- with a session id: one canonical row per (version, session); every later
  submission in that session returns the existing row
- without one: one row per (version, attempt id)

The unique constraint on (version_id, session_id) settles concurrent first
submissions; the loser re-reads and returns the winner's row.
"""
import logging
from typing import Any, Dict, Optional, Tuple
from uuid import uuid4

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from ...models.db_models import PlayResultDB

logger = logging.getLogger(__name__)


class PlayResultRecorder:
    """Idempotent insert of game-submitted results."""

    def __init__(self, db: Session):
        self.db = db

    def find_existing(
        self,
        version_id: str,
        attempt_id: str,
        session_id: Optional[str] = None,
    ) -> Optional[PlayResultDB]:
        query = self.db.query(PlayResultDB).filter(PlayResultDB.version_id == version_id)
        if session_id:
            query = query.filter(PlayResultDB.session_id == session_id)
        else:
            query = query.filter(PlayResultDB.session_id.is_(None), PlayResultDB.attempt_id == attempt_id)
        return query.first()

    def record(
        self,
        game_id: str,
        version_id: str,
        attempt_id: str,
        session_id: Optional[str] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> Tuple[PlayResultDB, bool]:
        """
        Persist a submitted result unless it is a resubmission.

        Returns:
            (row, created) - created is False when an existing row was reused

        Raises:
            SQLAlchemyError: the database rejected the write for another reason
        """
        session_id = session_id or None

        existing = self.find_existing(version_id, attempt_id, session_id)
        if existing is not None:
            logger.info(
                f"Resubmission of attempt {attempt_id} for version {version_id} "
                f"reuses result {existing.id}"
            )
            return existing, False

        row = PlayResultDB(
            id=str(uuid4()),
            game_id=game_id,
            version_id=version_id,
            session_id=session_id,
            attempt_id=attempt_id,
            payload=payload,
        )
        try:
            self.db.add(row)
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_existing(version_id, attempt_id, session_id)
            if existing is None:
                raise
            logger.info(f"Concurrent submission for session {session_id} lost to result {existing.id}")
            return existing, False
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error(f"Failed to record result for version {version_id}: {e}")
            raise

        logger.info(f"Recorded result {row.id} for version {version_id} (attempt {attempt_id})")
        return row, True
