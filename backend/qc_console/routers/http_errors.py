"""
Workflow error -> HTTP translation shared by the routers.
"""
from fastapi import HTTPException, status

from ..services.review.errors import (
    DuplicateVersionError,
    EvidenceMissingError,
    InconsistentDecisionError,
    InvalidTransitionError,
    InvalidVersionError,
    PermissionDeniedError,
    VersionNotFoundError,
    WorkflowError,
)

STATUS_CODES = (
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (DuplicateVersionError, status.HTTP_409_CONFLICT),
    (InconsistentDecisionError, status.HTTP_400_BAD_REQUEST),
    (EvidenceMissingError, status.HTTP_400_BAD_REQUEST),
    (InvalidVersionError, status.HTTP_400_BAD_REQUEST),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (VersionNotFoundError, status.HTTP_404_NOT_FOUND),
)


def to_http_error(error: WorkflowError) -> HTTPException:
    """HTTPException carrying the error's structured detail."""
    code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped in STATUS_CODES:
        if isinstance(error, error_type):
            code = mapped
            break
    return HTTPException(status_code=code, detail=error.to_detail())
