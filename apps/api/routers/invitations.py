"""
Invitations API Router

Admins invite coaches and clients by email; the invitee redeems the token
once to create (or link) their account.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import require_admin
from core.database import get_db
from core.feature_flags import FeatureFlags, get_feature_flags
from core.security import ACCESS_TOKEN_EXPIRE_MINUTES, create_access_token
from models import Profile
from schemas import InvitationCreate, InvitationRedeem, InvitationRevoke
from services import invitation_service
from services.user_admin import serialize_profile

router = APIRouter(prefix="/v1/invitations", tags=["invitations"])


@router.post("", status_code=status.HTTP_201_CREATED)
def create_invitations(
    payload: InvitationCreate,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    return invitation_service.create_invitations(
        db,
        emails=payload.emails,
        role=payload.role,
        invited_by=admin,
        custom_message=payload.custom_message,
        expires_in_days=payload.expires_in_days,
        send_email=payload.send_email,
        flags=flags,
    )


@router.get("")
def list_invitations(
    invitation_status: Optional[str] = Query(None, alias="status"),
    limit: int = Query(200, ge=1, le=1000),
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    rows = invitation_service.list_invitations(db, status=invitation_status, limit=limit)
    return [invitation_service.serialize_invitation(i) for i in rows]


@router.post("/redeem")
def redeem_invitation(
    payload: InvitationRedeem,
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    """Public: consume the token and sign the new member in."""
    result = invitation_service.redeem_invitation(
        db,
        token=payload.token,
        password=payload.password,
        first_name=payload.first_name,
        last_name=payload.last_name,
        flags=flags,
    )
    profile = result["profile"]
    return {
        "access_token": create_access_token(data={"sub": str(profile.id), "email": profile.email}),
        "token_type": "bearer",
        "expires_in": ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        "profile": serialize_profile(profile),
        "invitation": invitation_service.serialize_invitation(result["invitation"]),
        "profile_created": result["profile_created"],
        "role_assigned": result["role_assigned"],
    }


@router.get("/{token}")
def validate_invitation(
    token: str,
    db: Session = Depends(get_db),
):
    """Public: lets the signup page check a link before asking for a password."""
    invitation = invitation_service.validate_invitation(db, token)
    return {
        "valid": True,
        "email": invitation.email,
        "role": invitation.role,
        "custom_message": invitation.custom_message,
        "expires_at": invitation.expires_at,
    }


@router.post("/{invitation_id}/revoke")
def revoke_invitation(
    invitation_id: UUID,
    payload: Optional[InvitationRevoke] = None,
    admin: Profile = Depends(require_admin),
    db: Session = Depends(get_db),
):
    invitation = invitation_service.revoke_invitation(
        db,
        invitation_id=invitation_id,
        revoked_by=admin,
        reason=payload.reason if payload else None,
    )
    return invitation_service.serialize_invitation(invitation)
