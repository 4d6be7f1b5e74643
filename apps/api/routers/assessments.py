"""
Assessment API Router

Welcome Assessment and the five pillar assessments for the signed-in
client: status, drafts, completion and history.
"""

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.feature_flags import FeatureFlags, get_feature_flags
from models import Profile
from schemas import AssessmentCompleteRequest, AssessmentStatusResponse, DraftResponse, DraftSaveRequest
from services.ai_analysis import StefanAnalysisService, get_analysis_service
from services import assessment_flow
from services.pillars import describe_kinds, parse_assessment_kind

router = APIRouter(prefix="/v1/assessments", tags=["assessments"])


@router.get("/kinds")
def list_assessment_kinds() -> List[Dict[str, Any]]:
    """Question sets, scales and weights for every assessment kind."""
    return describe_kinds()


@router.get("/status")
def get_all_assessment_statuses(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return assessment_flow.get_all_statuses(db, current_user.id)


@router.get("/rounds")
def list_assessment_rounds(
    kind: Optional[str] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    rounds = assessment_flow.list_rounds(db, current_user.id, kind=kind, limit=limit)
    return [assessment_flow.serialize_round(r) for r in rounds]


@router.get("/{kind}/status", response_model=AssessmentStatusResponse)
def get_assessment_status(
    kind: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    parsed = parse_assessment_kind(kind)
    result = assessment_flow.get_status(db, current_user.id, parsed)
    return AssessmentStatusResponse(kind=parsed.value, **result.to_dict())


@router.put("/{kind}/draft", response_model=DraftResponse)
def save_assessment_draft(
    kind: str,
    payload: DraftSaveRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    draft = assessment_flow.save_draft(db, current_user.id, kind, payload.answers)
    return DraftResponse(
        kind=draft.assessment_key,
        answers=dict(draft.form_data or {}),
        last_saved_at=draft.last_saved_at,
    )


@router.delete("/{kind}/draft")
def clear_assessment_draft(
    kind: str,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    removed = assessment_flow.clear_draft(db, current_user.id, kind)
    return {"cleared": removed}


@router.post("/{kind}/complete", status_code=status.HTTP_201_CREATED)
def complete_assessment(
    kind: str,
    payload: AssessmentCompleteRequest,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
    analyzer: StefanAnalysisService = Depends(get_analysis_service),
):
    """
    Store a round and run the follow-up steps.

    The response status is "completed_without_analysis" when Stefan could
    not be reached; the round is kept either way.
    """
    result = assessment_flow.complete_assessment(
        db,
        current_user.id,
        kind,
        payload.answers,
        flags=flags,
        analyzer=analyzer,
    )
    return result.to_dict()
