"""
Game Version API Routes

Draft creation, lifecycle transitions and read models for game versions.
Every status change goes through the version state machine.
"""
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import GAMES_CREATE, GAMES_VIEW, get_current_user, require_permission
from ..database import get_db
from ..models.db_models import GameVersionDB, UserDB, VersionHistoryDB, status_label
from ..models.qa_models import ManualInput
from ..services.review import ReviewService, VersionStateMachine, WorkflowError
from .http_errors import to_http_error


router = APIRouter(prefix="/versions", tags=["versions"])


# =============================================================================
# REQUEST/RESPONSE MODELS
# =============================================================================

class ManualChecklist(BaseModel):
    """Reviewer's QA-03 checklist. Each item: true/false or "pass"/"fail"/"unset"."""
    no_autoplay: Optional[Union[bool, str]] = Field(None, description="Game does not autoplay audio/video")
    no_white_screen: Optional[Union[bool, str]] = Field(None, description="No blank screen during load")
    gesture_ok: Optional[Union[bool, str]] = Field(None, description="Touch/gesture input works")

    def to_manual_input(self) -> ManualInput:
        return ManualInput(**self.model_dump())


class CreateVersionRequest(BaseModel):
    """Request to create a draft version."""
    game_key: str = Field(..., description="Game slug, e.g. math-pop")
    version: Optional[str] = Field(None, description="SemVer X.Y.Z; omitted = patch bump of the latest")
    title: Optional[str] = Field(None, description="Game title when the game is new")
    build_size: Optional[int] = Field(None, ge=0, description="Build size in bytes")
    entry_file: str = Field(default="index.html", description="HTML entry point inside the build")


class TransitionRequest(BaseModel):
    """Request to apply a lifecycle action."""
    action: str = Field(..., description="submit, startReview, pass, fail, resubmit, approve, reject, publish, archive")
    note: Optional[str] = Field(None, description="Required for pass/fail")
    manual: Optional[ManualChecklist] = Field(None, description="QA-03 manual checklist for pass/fail")


class AttemptCountResponse(BaseModel):
    version_id: str
    attempt_count: int


# =============================================================================
# DEPENDENCIES AND SERIALIZERS
# =============================================================================

async def get_review_service(db: Session = Depends(get_db)):
    """Per-request review service."""
    service = ReviewService(db)
    try:
        yield service
    finally:
        await service.aclose()


def _iso(value) -> Optional[str]:
    return value.isoformat() if value else None


def serialize_version(version: GameVersionDB) -> dict:
    return {
        "id": version.id,
        "game_id": version.game_id,
        "version": version.version,
        "status": version.status.value,
        "status_label": status_label(version.status),
        "allowed_actions": VersionStateMachine.allowed_actions(version.status),
        "build_size": version.build_size,
        "storage_path": version.storage_path,
        "entry_file": version.entry_file,
        "qa_summary": version.qa_summary,
        "submitted_by": version.submitted_by,
        "submitted_at": _iso(version.submitted_at),
        "created_at": _iso(version.created_at),
        "updated_at": _iso(version.updated_at),
    }


def serialize_history(entry: VersionHistoryDB) -> dict:
    return {
        "id": entry.id,
        "action": entry.action,
        "from_status": entry.from_status.value,
        "to_status": entry.to_status.value,
        "actor_id": entry.actor_id,
        "report_id": entry.report_id,
        "created_at": _iso(entry.created_at),
    }


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.post("", status_code=status.HTTP_201_CREATED)
async def create_version(
    request: CreateVersionRequest,
    current_user: UserDB = Depends(require_permission(GAMES_CREATE)),
    service: ReviewService = Depends(get_review_service),
):
    """Create a draft version (and the game on first upload)."""
    try:
        version = service.create_version(
            current_user,
            request.game_key,
            version=request.version,
            title=request.title,
            build_size=request.build_size,
            entry_file=request.entry_file,
        )
    except WorkflowError as e:
        raise to_http_error(e)
    return serialize_version(version)


@router.get("/{version_id}")
async def get_version(
    version_id: str,
    current_user: UserDB = Depends(require_permission(GAMES_VIEW)),
    service: ReviewService = Depends(get_review_service),
):
    """Version with its status label, allowed actions and QA summary."""
    try:
        return serialize_version(service.get_version(version_id))
    except WorkflowError as e:
        raise to_http_error(e)


@router.post("/{version_id}/transitions")
async def transition_version(
    version_id: str,
    request: TransitionRequest,
    current_user: UserDB = Depends(get_current_user),
    service: ReviewService = Depends(get_review_service),
):
    """
    Apply a lifecycle action.

    409 when the action is not legal from the current state (or another
    reviewer moved the version first), 400 when a pass contradicts the QA
    evidence, 403 when the actor lacks the action's permission.
    """
    manual = request.manual.to_manual_input() if request.manual else None
    try:
        version = service.transition(version_id, request.action, current_user, note=request.note, manual=manual)
    except WorkflowError as e:
        raise to_http_error(e)
    return serialize_version(version)


@router.get("/{version_id}/attempts", response_model=AttemptCountResponse)
async def get_attempt_count(
    version_id: str,
    current_user: UserDB = Depends(require_permission(GAMES_VIEW)),
    service: ReviewService = Depends(get_review_service),
):
    """Number of QC review rounds recorded for the version."""
    try:
        return AttemptCountResponse(version_id=version_id, attempt_count=service.attempt_count(version_id))
    except WorkflowError as e:
        raise to_http_error(e)


@router.get("/{version_id}/history")
async def get_history(
    version_id: str,
    current_user: UserDB = Depends(require_permission(GAMES_VIEW)),
    service: ReviewService = Depends(get_review_service),
) -> List[dict]:
    """Every committed transition, oldest first."""
    try:
        return [serialize_history(entry) for entry in service.history(version_id)]
    except WorkflowError as e:
        raise to_http_error(e)
