"""
Admin user management: accounts, roles, coach assignments and alerts.

Only a superadmin may grant or remove the admin and superadmin roles.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional
from uuid import UUID

from email_validator import EmailNotValidError, validate_email
from sqlalchemy.orm import Session

from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from core.feature_flags import FeatureFlags
from core.password_policy import ensure_password_policy
from core.security import get_password_hash
from core.timeutil import utcnow
from models import CoachClientAssignment, Profile, UserRole
from services.access_control import (
    PRIVILEGED_ROLES,
    ROLE_CLIENT,
    ROLE_COACH,
    ROLE_SUPERADMIN,
    ensure_roles_valid,
    get_role_names,
)
from services.email_service import SEVERITIES, normalize_recipients
from services.journey_progress import get_or_create_journey_state
from services.notifications import dispatch_notification

logger = logging.getLogger(__name__)


def _require_superadmin_for(db: Session, actor: Profile, roles: Iterable[str]) -> None:
    if set(roles) & PRIVILEGED_ROLES and ROLE_SUPERADMIN not in get_role_names(db, actor.id):
        raise ForbiddenError("Only a superadmin can manage admin roles")


def _get_profile(db: Session, user_id: UUID) -> Profile:
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    if not profile:
        raise NotFoundError("User", str(user_id))
    return profile


def create_user(
    db: Session,
    actor: Profile,
    *,
    email: str,
    password: str,
    first_name: Optional[str] = None,
    last_name: Optional[str] = None,
    roles: Optional[Iterable[str]] = None,
    send_welcome: bool = True,
    flags: Optional[FeatureFlags] = None,
) -> Profile:
    try:
        normalized = validate_email((email or "").strip(), check_deliverability=False).normalized.lower()
    except EmailNotValidError as e:
        raise ValidationError(f"Invalid email address: {e}", field="email")
    ensure_password_policy(password)
    role_set = ensure_roles_valid(roles or [ROLE_CLIENT])
    _require_superadmin_for(db, actor, role_set)

    if db.query(Profile.id).filter(Profile.email == normalized).first():
        raise ConflictError(f"A user with email {normalized} already exists", error_code="EMAIL_EXISTS")

    profile = Profile(
        email=normalized,
        password_hash=get_password_hash(password),
        first_name=(first_name or "").strip() or None,
        last_name=(last_name or "").strip() or None,
    )
    db.add(profile)
    db.flush()
    for role in sorted(role_set):
        db.add(UserRole(user_id=profile.id, role=role))
    if ROLE_CLIENT in role_set:
        get_or_create_journey_state(db, profile.id)
    db.flush()
    db.refresh(profile)

    logger.info(
        "User created by admin",
        extra={"extra_fields": {"actor_id": str(actor.id), "user_id": str(profile.id), "roles": sorted(role_set)}},
    )
    if send_welcome:
        dispatch_notification("welcome", [profile.email], {"first_name": profile.first_name}, flags)
    return profile


def assign_role(db: Session, actor: Profile, user_id: UUID, role: str) -> Profile:
    (role,) = ensure_roles_valid([role])
    _require_superadmin_for(db, actor, [role])
    profile = _get_profile(db, user_id)

    exists = db.query(UserRole.id).filter(UserRole.user_id == user_id, UserRole.role == role).first()
    if not exists:
        db.add(UserRole(user_id=user_id, role=role))
        if role == ROLE_CLIENT:
            get_or_create_journey_state(db, user_id)
        db.flush()
        logger.info(f"Role {role} granted to {user_id} by {actor.id}")
    db.refresh(profile)
    return profile


def remove_role(db: Session, actor: Profile, user_id: UUID, role: str) -> Profile:
    (role,) = ensure_roles_valid([role])
    _require_superadmin_for(db, actor, [role])
    profile = _get_profile(db, user_id)

    if role == ROLE_SUPERADMIN and user_id == actor.id:
        raise ValidationError("A superadmin cannot remove their own superadmin role", field="role")

    deleted = db.query(UserRole).filter(UserRole.user_id == user_id, UserRole.role == role).delete(
        synchronize_session=False
    )
    if deleted and role == ROLE_COACH:
        # A former coach keeps no access to clients
        db.query(CoachClientAssignment).filter(
            CoachClientAssignment.coach_id == user_id,
            CoachClientAssignment.is_active.is_(True),
        ).update({"is_active": False, "deactivated_at": utcnow()}, synchronize_session=False)
    db.flush()
    db.refresh(profile)
    return profile


def assign_coach(db: Session, actor: Profile, coach_id: UUID, client_id: UUID) -> CoachClientAssignment:
    if coach_id == client_id:
        raise ValidationError("A coach cannot be assigned to themselves", field="client_id")
    _get_profile(db, coach_id)
    _get_profile(db, client_id)
    if ROLE_COACH not in get_role_names(db, coach_id):
        raise ValidationError("User does not have the coach role", field="coach_id")
    if ROLE_CLIENT not in get_role_names(db, client_id):
        raise ValidationError("User does not have the client role", field="client_id")

    assignment = db.query(CoachClientAssignment).filter(
        CoachClientAssignment.coach_id == coach_id,
        CoachClientAssignment.client_id == client_id,
    ).first()
    if assignment:
        if not assignment.is_active:
            assignment.is_active = True
            assignment.deactivated_at = None
            assignment.assigned_by = actor.id
            assignment.assigned_at = utcnow()
    else:
        assignment = CoachClientAssignment(
            coach_id=coach_id,
            client_id=client_id,
            is_active=True,
            assigned_by=actor.id,
        )
        db.add(assignment)
    db.flush()
    logger.info(f"Coach {coach_id} assigned to client {client_id} by {actor.id}")
    return assignment


def deactivate_assignment(db: Session, actor: Profile, coach_id: UUID, client_id: UUID) -> CoachClientAssignment:
    assignment = db.query(CoachClientAssignment).filter(
        CoachClientAssignment.coach_id == coach_id,
        CoachClientAssignment.client_id == client_id,
    ).first()
    if not assignment:
        raise NotFoundError("Assignment", f"{coach_id}->{client_id}")
    if assignment.is_active:
        assignment.is_active = False
        assignment.deactivated_at = utcnow()
        db.flush()
        logger.info(f"Coach {coach_id} unassigned from client {client_id} by {actor.id}")
    return assignment


def send_system_alert(
    db: Session,
    actor: Profile,
    *,
    title: str,
    message: str,
    severity: str = "info",
    recipients: Optional[List[str]] = None,
    flags: Optional[FeatureFlags] = None,
) -> Dict[str, Any]:
    """
    Alert operators. Without explicit recipients, every active admin and
    superadmin is notified.
    """
    if severity not in SEVERITIES:
        raise ValidationError(f"severity must be one of {', '.join(SEVERITIES)}", field="severity")
    if not (title or "").strip() or not (message or "").strip():
        raise ValidationError("title and message are required", field="message")

    if recipients:
        recipients = normalize_recipients(recipients)
    else:
        rows = (
            db.query(Profile.email)
            .join(UserRole, UserRole.user_id == Profile.id)
            .filter(UserRole.role.in_(PRIVILEGED_ROLES), Profile.is_active.is_(True))
            .distinct()
            .all()
        )
        recipients = [r[0] for r in rows]

    queued = dispatch_notification(
        "system-alert",
        recipients,
        {"title": title.strip(), "message": message.strip(), "severity": severity},
        flags,
    )
    logger.warning(
        f"System alert raised: {title}",
        extra={"extra_fields": {"severity": severity, "actor_id": str(actor.id), "recipients": len(recipients)}},
    )
    return {"queued": queued, "recipients": len(recipients)}


def serialize_profile(profile: Profile) -> Dict[str, Any]:
    return {
        "id": str(profile.id),
        "email": profile.email,
        "first_name": profile.first_name,
        "last_name": profile.last_name,
        "is_active": profile.is_active,
        "roles": profile.role_names,
        "created_at": profile.created_at,
    }
