"""
QC API Routes

Automated QA runs, QC decisions, the reviewer inbox and report history.
"""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from ..auth import GAMES_REVIEW, GAMES_VIEW, require_permission
from ..models.db_models import QCDecision, QCReportDB, UserDB
from ..services.review import ReviewService, WorkflowError
from .http_errors import to_http_error
from .versions import ManualChecklist, get_review_service, serialize_version


router = APIRouter(prefix="/qc", tags=["qc"])


# =============================================================================
# REQUEST MODELS
# =============================================================================

class DecisionRequest(BaseModel):
    """Reviewer verdict for the current QC round."""
    decision: QCDecision = Field(..., description="pass or fail")
    note: str = Field(..., description="Reviewer note (required)")
    manual: Optional[ManualChecklist] = Field(None, description="QA-03 manual checklist")


def serialize_report(report: QCReportDB, superseded: bool = False) -> dict:
    return {
        "id": report.id,
        "version_id": report.version_id,
        "reviewer_id": report.reviewer_id,
        "decision": report.decision.value,
        "note": report.note,
        "attempt_number": report.attempt_number,
        "qa_results": report.qa_results,
        "test_started_at": report.test_started_at.isoformat() if report.test_started_at else None,
        "test_completed_at": report.test_completed_at.isoformat() if report.test_completed_at else None,
        "created_at": report.created_at.isoformat() if report.created_at else None,
        "superseded": superseded,
    }


# =============================================================================
# API ENDPOINTS
# =============================================================================

@router.get("/inbox")
async def get_inbox(
    current_user: UserDB = Depends(require_permission(GAMES_REVIEW)),
    service: ReviewService = Depends(get_review_service),
) -> List[dict]:
    """Versions waiting for or in QC, oldest submission first."""
    return [serialize_version(v) for v in service.inbox()]


@router.post("/versions/{version_id}/run")
async def run_qa(
    version_id: str,
    current_user: UserDB = Depends(require_permission(GAMES_REVIEW)),
    service: ReviewService = Depends(get_review_service),
):
    """Run automated QA (QA-01..QA-04) and store the result as the version's QA summary."""
    try:
        results = await service.run_qa(version_id, current_user)
    except WorkflowError as e:
        raise to_http_error(e)
    return results.to_dict()


@router.post("/versions/{version_id}/decision")
async def record_decision(
    version_id: str,
    request: DecisionRequest,
    current_user: UserDB = Depends(require_permission(GAMES_REVIEW)),
    service: ReviewService = Depends(get_review_service),
):
    """Record pass/fail against the stored QA summary."""
    manual = request.manual.to_manual_input() if request.manual else None
    try:
        version = service.record_decision(version_id, request.decision, request.note, manual, current_user)
    except WorkflowError as e:
        raise to_http_error(e)
    return serialize_version(version)


@router.get("/versions/{version_id}/reports")
async def list_reports(
    version_id: str,
    include_superseded: bool = Query(False, description="Also list reports whose decision lost a concurrent status change"),
    current_user: UserDB = Depends(require_permission(GAMES_VIEW)),
    service: ReviewService = Depends(get_review_service),
) -> List[dict]:
    """QC reports of the version, by attempt number. Superseded reports are flagged."""
    try:
        reports = service.reports(version_id, include_superseded=include_superseded)
        superseded = service.superseded_report_ids(version_id) if include_superseded else set()
    except WorkflowError as e:
        raise to_http_error(e)
    return [serialize_report(r, superseded=r.id in superseded) for r in reports]
