"""
Invitation service.

Invitations are first-class, auditable domain objects:
- one pending invitation per email at a time (a live one is reused, stale
  pending rows are replaced);
- the token is single use: pending -> accepted happens exactly once;
- revoked and expired invitations can never be redeemed.
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.config import settings
from core.exceptions import (
    ConflictError,
    ForbiddenError,
    GoneError,
    InvitationAlreadyAcceptedError,
    NotFoundError,
    ValidationError,
)
from core.feature_flags import FeatureFlags
from core.password_policy import ensure_password_policy
from core.security import get_password_hash
from core.timeutil import ensure_utc, utcnow
from models import Invitation, InvitationAuditEvent, Profile, UserRole
from services.access_control import PRIVILEGED_ROLES, ROLE_CLIENT, ROLE_SUPERADMIN, VALID_ROLES, get_role_names
from services.email_service import normalize_recipients
from services.journey_progress import get_or_create_journey_state
from services.notifications import dispatch_notification

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def invitation_url(token: str) -> str:
    return f"{settings.WEB_APP_BASE_URL.rstrip('/')}/invitation-signup?token={token}"


def audit_invitation(
    db: Session,
    *,
    invitation_id: UUID,
    actor_id: Optional[UUID],
    action: str,
    target_email: str,
    metadata: Optional[dict] = None,
) -> None:
    db.add(
        InvitationAuditEvent(
            invitation_id=invitation_id,
            actor_id=actor_id,
            action=action,
            target_email=normalize_email(target_email),
            event_metadata=metadata,
        )
    )


def _is_expired(invitation: Invitation, now: datetime) -> bool:
    return ensure_utc(invitation.expires_at) <= now


def create_invitations(
    db: Session,
    *,
    emails: Iterable[str],
    role: str,
    invited_by: Profile,
    custom_message: Optional[str] = None,
    expires_in_days: Optional[int] = None,
    send_email: bool = True,
    flags: Optional[FeatureFlags] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Create (or reuse) one invitation per address.

    Every address is validated before anything is written.
    """
    now = now or utcnow()
    role = (role or "").strip().lower()
    if role not in VALID_ROLES:
        raise ValidationError(f"Unknown role: {role}", field="role")
    if role in PRIVILEGED_ROLES and ROLE_SUPERADMIN not in get_role_names(db, invited_by.id):
        raise ForbiddenError("Only a superadmin can invite administrators")

    days = settings.INVITATION_EXPIRY_DAYS if expires_in_days is None else expires_in_days
    if days < 1 or days > 90:
        raise ValidationError("expires_in_days must be between 1 and 90", field="expires_in_days")

    addresses: List[str] = []
    for address in normalize_recipients(list(emails or [])):
        if address not in addresses:
            addresses.append(address)

    results: List[Dict[str, Any]] = []
    for email in addresses:
        live = (
            db.query(Invitation)
            .filter(Invitation.email == email, Invitation.status == "pending", Invitation.expires_at > now)
            .order_by(Invitation.created_at.desc())
            .first()
        )
        if live:
            invitation = live
            reused = True
            audit_invitation(
                db, invitation_id=invitation.id, actor_id=invited_by.id,
                action="invitation.reused", target_email=email,
            )
        else:
            stale = db.query(Invitation).filter(Invitation.email == email, Invitation.status == "pending").all()
            for row in stale:
                row.status = "expired"
                audit_invitation(
                    db, invitation_id=row.id, actor_id=invited_by.id,
                    action="invitation.expired", target_email=email,
                    metadata={"replaced": True},
                )

            invitation = Invitation(
                email=email,
                token=secrets.token_urlsafe(32),
                role=role,
                custom_message=custom_message,
                status="pending",
                invited_by=invited_by.id,
                expires_at=now + timedelta(days=days),
            )
            db.add(invitation)
            db.flush()
            reused = False
            audit_invitation(
                db, invitation_id=invitation.id, actor_id=invited_by.id,
                action="invitation.created", target_email=email,
                metadata={"role": role, "expires_in_days": days},
            )

        url = invitation_url(invitation.token)
        email_queued = False
        if send_email:
            email_queued = dispatch_notification(
                "invitation",
                [email],
                {
                    "inviter_name": invited_by.display_name,
                    "role": invitation.role,
                    "custom_message": custom_message,
                    "invitation_url": url,
                    "expires_in_days": days,
                },
                flags,
            )

        results.append({
            "email": email,
            "invitation_id": str(invitation.id),
            "status": invitation.status,
            "reused": reused,
            "invitation_url": url,
            "expires_at": invitation.expires_at,
            "email_queued": email_queued,
        })

    db.flush()
    logger.info(f"Processed {len(results)} invitations for role {role}")
    return {
        "results": results,
        "summary": {
            "total": len(results),
            "created": sum(1 for r in results if not r["reused"]),
            "reused": sum(1 for r in results if r["reused"]),
        },
    }


def _check_redeemable(db: Session, invitation: Optional[Invitation], now: datetime) -> Invitation:
    if invitation is None:
        raise NotFoundError("Invitation", "token")
    if invitation.status == "accepted":
        raise InvitationAlreadyAcceptedError()
    if invitation.status == "revoked":
        raise ForbiddenError("Invitation has been revoked", error_code="INVITATION_REVOKED")
    if invitation.status == "expired" or _is_expired(invitation, now):
        if invitation.status == "pending":
            invitation.status = "expired"
            audit_invitation(
                db, invitation_id=invitation.id, actor_id=None,
                action="invitation.expired", target_email=invitation.email,
            )
            # Persist the transition even though the request fails
            db.commit()
        raise GoneError("Invitation has expired", error_code="INVITATION_EXPIRED")
    return invitation


def validate_invitation(db: Session, token: str, now: Optional[datetime] = None) -> Invitation:
    """Pending and not expired, or the matching error."""
    now = now or utcnow()
    invitation = db.query(Invitation).filter(Invitation.token == token).first()
    return _check_redeemable(db, invitation, now)


def redeem_invitation(
    db: Session,
    *,
    token: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    flags: Optional[FeatureFlags] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    One-time pending -> accepted.

    The row is locked for the duration of the transaction, so two concurrent
    redemptions serialize and the second sees status=accepted.
    """
    ensure_password_policy(password)
    now = now or utcnow()

    invitation = (
        db.query(Invitation)
        .filter(Invitation.token == token)
        .with_for_update()
        .first()
    )
    invitation = _check_redeemable(db, invitation, now)

    profile = db.query(Profile).filter(Profile.email == invitation.email).first()
    created = profile is None
    if created:
        profile = Profile(
            email=invitation.email,
            password_hash=get_password_hash(password),
            first_name=(first_name or "").strip() or None,
            last_name=(last_name or "").strip() or None,
        )
        db.add(profile)
        db.flush()
    else:
        # Existing credentials are kept; an invitation never resets a password
        if not profile.password_hash:
            profile.password_hash = get_password_hash(password)
        profile.first_name = profile.first_name or (first_name or "").strip() or None
        profile.last_name = profile.last_name or (last_name or "").strip() or None

    role_assigned = False
    exists = db.query(UserRole.id).filter(
        UserRole.user_id == profile.id, UserRole.role == invitation.role
    ).first()
    if not exists:
        db.add(UserRole(user_id=profile.id, role=invitation.role))
        role_assigned = True

    invitation.status = "accepted"
    invitation.accepted_at = now
    invitation.accepted_by = profile.id
    audit_invitation(
        db, invitation_id=invitation.id, actor_id=profile.id,
        action="invitation.accepted", target_email=invitation.email,
        metadata={"profile_created": created, "role_assigned": role_assigned},
    )

    if invitation.role == ROLE_CLIENT:
        get_or_create_journey_state(db, profile.id)

    db.flush()
    db.refresh(profile)

    dispatch_notification("welcome", [profile.email], {"first_name": profile.first_name}, flags)

    logger.info(
        "Invitation redeemed",
        extra={"extra_fields": {
            "invitation_id": str(invitation.id),
            "profile_id": str(profile.id),
            "role": invitation.role,
            "role_assigned": role_assigned,
        }},
    )
    return {
        "profile": profile,
        "invitation": invitation,
        "profile_created": created,
        "role_assigned": role_assigned,
    }


def revoke_invitation(
    db: Session,
    *,
    invitation_id: UUID,
    revoked_by: Profile,
    reason: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Invitation:
    invitation = db.query(Invitation).filter(Invitation.id == invitation_id).first()
    if not invitation:
        raise NotFoundError("Invitation", str(invitation_id))
    if invitation.status == "accepted":
        raise ConflictError("Accepted invitations cannot be revoked", error_code="INVITATION_ALREADY_ACCEPTED")
    if invitation.status == "revoked":
        return invitation

    invitation.status = "revoked"
    invitation.revoked_at = now or utcnow()
    invitation.revoked_by = revoked_by.id
    audit_invitation(
        db, invitation_id=invitation.id, actor_id=revoked_by.id,
        action="invitation.revoked", target_email=invitation.email,
        metadata={"reason": reason} if reason else None,
    )
    db.flush()
    return invitation


def list_invitations(db: Session, status: Optional[str] = None, limit: int = 200) -> List[Invitation]:
    q = db.query(Invitation)
    if status:
        q = q.filter(Invitation.status == status)
    return q.order_by(Invitation.created_at.desc()).limit(limit).all()


def serialize_invitation(invitation: Invitation) -> Dict[str, Any]:
    return {
        "id": str(invitation.id),
        "email": invitation.email,
        "role": invitation.role,
        "status": invitation.status,
        "custom_message": invitation.custom_message,
        "expires_at": invitation.expires_at,
        "accepted_at": invitation.accepted_at,
        "created_at": invitation.created_at,
    }
