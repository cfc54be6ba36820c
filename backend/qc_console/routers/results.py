"""
Play Result API Routes

Where a running game posts its result. Resubmissions in the same session
return the row already stored (200) instead of creating another (201).
"""
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from ..auth import get_current_user
from ..database import get_db
from ..models.db_models import PlayResultDB, UserDB
from ..services.qa.play_results import PlayResultRecorder
from ..services.review import VersionNotFoundError
from ..services.review.version_store import VersionStore
from .http_errors import to_http_error


router = APIRouter(prefix="/play-results", tags=["play-results"])


class SubmitResultRequest(BaseModel):
    """A result submitted by a running game."""
    game_id: str = Field(..., description="Owning game id")
    version_id: str = Field(..., description="Version the session is playing")
    attempt_id: str = Field(..., min_length=1, max_length=64, description="Client-generated attempt id")
    session_id: Optional[str] = Field(None, max_length=64, description="Launch session; one result per session")
    payload: Optional[Dict[str, Any]] = Field(None, description="Raw result as reported by the game")


def serialize_play_result(row: PlayResultDB, created: bool) -> dict:
    return {
        "id": row.id,
        "game_id": row.game_id,
        "version_id": row.version_id,
        "session_id": row.session_id,
        "attempt_id": row.attempt_id,
        "created": created,
    }


@router.post("", status_code=status.HTTP_201_CREATED)
async def submit_result(
    request: SubmitResultRequest,
    response: Response,
    current_user: UserDB = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Record a play result; idempotent per session."""
    version = VersionStore(db).get_version(request.version_id)
    if version is None or version.game_id != request.game_id:
        raise to_http_error(VersionNotFoundError(request.version_id))

    row, created = PlayResultRecorder(db).record(
        request.game_id,
        request.version_id,
        request.attempt_id,
        session_id=request.session_id,
        payload=request.payload,
    )
    if not created:
        response.status_code = status.HTTP_200_OK
    return serialize_play_result(row, created)
