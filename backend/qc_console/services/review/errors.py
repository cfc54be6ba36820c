"""
Review Workflow Errors

Every rejection carries a human-readable `reason` naming the precondition
that failed, so the console can show an actionable message.
"""
from typing import Any, Dict, List, Optional


class WorkflowError(Exception):
    """Base class for rejected review-workflow operations."""

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)

    def to_detail(self) -> Dict[str, Any]:
        """Structured payload for HTTP error responses."""
        return {"error": type(self).__name__, "reason": self.reason}


class InvalidTransitionError(WorkflowError):
    """Action not legal from the current state, or a conditional write lost a race."""

    def __init__(
        self,
        current_state: Optional[str],
        attempted_action: str,
        allowed_actions: List[str],
        reason: Optional[str] = None,
    ):
        self.current_state = current_state
        self.attempted_action = attempted_action
        self.allowed_actions = list(allowed_actions)
        if reason is None:
            allowed = ", ".join(self.allowed_actions) or "none"
            reason = f"Cannot {attempted_action} a version in state {current_state} (allowed: {allowed})"
        super().__init__(reason)

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail.update({
            "current_state": self.current_state,
            "attempted_action": self.attempted_action,
            "allowed_actions": self.allowed_actions,
        })
        return detail


class InconsistentDecisionError(WorkflowError):
    """A QC verdict contradicts the automated/manual evidence."""

    def __init__(self, failed_check: Optional[str], reason: str):
        self.failed_check = failed_check
        super().__init__(reason)

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail["failed_check"] = self.failed_check
        return detail


class EvidenceMissingError(WorkflowError):
    """pass/fail attempted before any QA run produced evidence."""

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"No QA results for version {version_id}; run automated QA first")


class PermissionDeniedError(WorkflowError):
    """Actor lacks the permission an action requires."""

    def __init__(self, actor_id: str, permission: str, action: str):
        self.actor_id = actor_id
        self.permission = permission
        self.action = action
        super().__init__(f"Actor {actor_id} lacks {permission} required for {action}")

    def to_detail(self) -> Dict[str, Any]:
        detail = super().to_detail()
        detail.update({"permission": self.permission, "action": self.action})
        return detail


class VersionNotFoundError(WorkflowError):
    """No game version with this id."""

    def __init__(self, version_id: str):
        self.version_id = version_id
        super().__init__(f"Game version {version_id} not found")


class InvalidVersionError(WorkflowError):
    """Version string is not SemVer X.Y.Z, or a required field is missing."""
    pass


class DuplicateVersionError(WorkflowError):
    """The game already has a version with this number."""

    def __init__(self, game_key: str, version: str):
        self.game_key = game_key
        self.version = version
        super().__init__(f"Version {version} already exists for game {game_key}")
