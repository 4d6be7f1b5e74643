"""
Admin API Router

User and role management, coach assignments, journey resets,
assessment consolidation and system alerts. Admin or superadmin only;
privileged role changes additionally require superadmin (enforced in
services.user_admin).
"""

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
import logging

from core.auth import require_admin
from core.database import get_db
from core.exceptions import NotFoundError
from core.feature_flags import FeatureFlags, get_feature_flags
from models import Profile
from schemas import AdminUserCreate, AssignmentRequest, ConsolidateRequest, SystemAlertRequest
from services import user_admin
from services.ai_analysis import StefanAnalysisService, get_analysis_service
from services.consolidation import consolidate_assessment_systems
from services.journey_progress import reset_welcome_journey, serialize_journey_state

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/admin", tags=["admin"])


def _serialize_assignment(assignment) -> dict:
    return {
        "id": str(assignment.id),
        "coach_id": str(assignment.coach_id),
        "client_id": str(assignment.client_id),
        "is_active": assignment.is_active,
        "assigned_at": assignment.assigned_at,
        "deactivated_at": assignment.deactivated_at,
    }


@router.post("/users", status_code=status.HTTP_201_CREATED)
def create_user(
    payload: AdminUserCreate,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    profile = user_admin.create_user(
        db,
        admin,
        email=payload.email,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        roles=payload.roles,
        send_welcome=payload.send_welcome,
        flags=flags,
    )
    return user_admin.serialize_profile(profile)


@router.post("/users/{user_id}/roles/{role}")
def grant_role(
    user_id: UUID,
    role: str,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_admin.serialize_profile(user_admin.assign_role(db, admin, user_id, role))


@router.delete("/users/{user_id}/roles/{role}")
def revoke_role(
    user_id: UUID,
    role: str,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    return user_admin.serialize_profile(user_admin.remove_role(db, admin, user_id, role))


@router.post("/users/{user_id}/journey/reset")
def reset_journey(
    user_id: UUID,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    if not db.query(Profile.id).filter(Profile.id == user_id).first():
        raise NotFoundError("User", str(user_id))
    logger.info(f"Journey reset requested for {user_id} by {admin.id}")
    return serialize_journey_state(reset_welcome_journey(db, user_id))


@router.post("/assignments", status_code=status.HTTP_201_CREATED)
def assign_coach(
    payload: AssignmentRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    assignment = user_admin.assign_coach(db, admin, payload.coach_id, payload.client_id)
    return _serialize_assignment(assignment)


@router.post("/assignments/deactivate")
def deactivate_assignment(
    payload: AssignmentRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    assignment = user_admin.deactivate_assignment(db, admin, payload.coach_id, payload.client_id)
    return _serialize_assignment(assignment)


@router.post("/consolidate")
def consolidate_assessments(
    payload: ConsolidateRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
    analyzer: StefanAnalysisService = Depends(get_analysis_service),
):
    """Re-request analysis for rounds stored without one. Runs inline."""
    logger.info(f"Assessment consolidation triggered by {admin.id}")
    return consolidate_assessment_systems(db, limit=payload.limit, flags=flags, analyzer=analyzer)


@router.post("/alerts", status_code=status.HTTP_202_ACCEPTED)
def send_alert(
    payload: SystemAlertRequest,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    return user_admin.send_system_alert(
        db,
        admin,
        title=payload.title,
        message=payload.message,
        severity=payload.severity,
        recipients=payload.recipients,
        flags=flags,
    )
