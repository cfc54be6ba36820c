"""
Transition Side-Effect Sinks

Notifications and audit entries emitted after a transition has committed.
Fire-and-forget: a sink failure is logged and swallowed, it never rolls
back or fails the transition.
"""
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

from sqlalchemy.orm import Session

from ...auth import APPROVER_ROLES
from ...models.db_models import (
    AuditLogDB,
    GameDB,
    NotificationDB,
    NotificationType,
    UserDB,
    VersionStatus,
)

logger = logging.getLogger(__name__)


@dataclass
class TransitionEvent:
    """A committed status change, as seen by the sinks."""
    version_id: str
    game_id: str
    version: str
    action: str
    from_status: VersionStatus
    to_status: VersionStatus
    actor_id: str
    report_id: Optional[str] = None
    attempt_number: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime = field(default_factory=datetime.utcnow)


def audit_action_name(action: str) -> str:
    """startReview -> VERSION_START_REVIEW"""
    return "VERSION_" + re.sub(r"(?<!^)(?=[A-Z])", "_", action).upper()


# =============================================================================
# NOTIFICATIONS
# =============================================================================

class NotificationService:
    """Writes in-console notifications for the people a transition concerns."""

    def __init__(self, db: Session):
        self.db = db

    def notify(self, event: TransitionEvent) -> None:
        try:
            created = self._notify(event)
            self.db.commit()
            if created:
                logger.info(f"Sent {created} notification(s) for {event.action} on version {event.version_id}")
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Notification sink failed for {event.action} on version {event.version_id}: {e}")

    def _notify(self, event: TransitionEvent) -> int:
        game = self.db.query(GameDB).filter(GameDB.id == event.game_id).first()
        title = game.title if game else event.game_id
        label = f"{title} v{event.version}"
        owner = [game.owner_id] if game and game.owner_id else []

        if event.action == "pass":
            count = self._send(owner, NotificationType.QC_PASSED, "QC passed", f"{label} passed QC review")
            count += self._send(
                self._users_with_roles(APPROVER_ROLES),
                NotificationType.QC_PASSED,
                "Awaiting approval",
                f"{label} passed QC and is waiting for approval",
            )
            return count
        if event.action == "fail":
            return self._send(owner, NotificationType.QC_FAILED, "QC failed", f"{label} failed QC review")
        if event.action in ("submit", "resubmit"):
            verb = "resubmitted" if event.action == "resubmit" else "submitted"
            return self._send(
                self._users_with_roles(("qc",)),
                NotificationType.GAME_SUBMITTED,
                "New build for QC",
                f"{label} was {verb} for QC",
            )
        if event.action == "approve":
            return self._send(owner, NotificationType.GAME_APPROVED, "Approved", f"{label} was approved")
        if event.action == "reject":
            return self._send(owner, NotificationType.GAME_REJECTED, "Rejected", f"{label} was rejected at approval")
        if event.action == "publish":
            return self._send(owner, NotificationType.GAME_PUBLISHED, "Published", f"{label} is live")
        return 0

    def _users_with_roles(self, roles: Iterable[str]) -> List[str]:
        wanted = set(roles)
        users = self.db.query(UserDB).filter(UserDB.is_active.is_(True)).all()
        return [u.id for u in users if wanted.intersection(u.roles or [])]

    def _send(self, user_ids: Iterable[str], kind: NotificationType, title: str, message: str) -> int:
        count = 0
        for user_id in dict.fromkeys(user_ids):
            self.db.add(NotificationDB(
                id=str(uuid4()),
                user_id=user_id,
                type=kind,
                title=title,
                message=message,
                is_read=False,
            ))
            count += 1
        return count


# =============================================================================
# AUDIT LOG
# =============================================================================

class AuditLogger:
    """One audit entry per committed transition."""

    TARGET_ENTITY = "GAME_VERSION"

    def __init__(self, db: Session):
        self.db = db

    def audit(self, event: TransitionEvent) -> None:
        try:
            metadata = dict(event.metadata)
            if event.report_id:
                metadata["report_id"] = event.report_id
            if event.attempt_number is not None:
                metadata["attempt_number"] = event.attempt_number
            self.db.add(AuditLogDB(
                id=str(uuid4()),
                actor_id=event.actor_id,
                action=audit_action_name(event.action),
                target_entity=self.TARGET_ENTITY,
                target_id=event.version_id,
                changes=[{
                    "field": "status",
                    "old": event.from_status.value,
                    "new": event.to_status.value,
                }],
                event_metadata=metadata,
                created_at=event.occurred_at,
            ))
            self.db.commit()
        except Exception as e:
            self.db.rollback()
            logger.warning(f"Audit sink failed for {event.action} on version {event.version_id}: {e}")
