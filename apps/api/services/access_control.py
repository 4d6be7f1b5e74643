"""
Role-scoped data access.

One pure decision function over an explicit RoleSet, called at every
boundary that reads or writes another user's data:

    1. superadmin              -> allow
    2. admin                   -> allow
    3. actor is the target     -> allow
    4. coach with an active assignment to the target -> allow
    5. otherwise               -> deny

Denials raise AuthorizationError. They are never turned into an empty result.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import AuthorizationError, ValidationError
from models import CoachClientAssignment, Profile, UserRole

logger = logging.getLogger(__name__)

ROLE_CLIENT = "client"
ROLE_COACH = "coach"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"

VALID_ROLES = frozenset({ROLE_CLIENT, ROLE_COACH, ROLE_ADMIN, ROLE_SUPERADMIN})
PRIVILEGED_ROLES = frozenset({ROLE_ADMIN, ROLE_SUPERADMIN})


@dataclass(frozen=True)
class RoleSet:
    """Everything the decision needs to know about the actor."""
    user_id: UUID
    roles: FrozenSet[str] = frozenset()
    active_client_ids: FrozenSet[UUID] = field(default_factory=frozenset)

    def has(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_privileged(self) -> bool:
        return bool(self.roles & PRIVILEGED_ROLES)


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    reason: str


def decide_client_access(actor: RoleSet, target_user_id: UUID) -> AccessDecision:
    """Pure. First matching rule wins."""
    if actor.has(ROLE_SUPERADMIN):
        return AccessDecision(True, "superadmin")
    if actor.has(ROLE_ADMIN):
        return AccessDecision(True, "admin")
    if actor.user_id == target_user_id:
        return AccessDecision(True, "self")
    if actor.has(ROLE_COACH) and target_user_id in actor.active_client_ids:
        return AccessDecision(True, "coach_assignment")
    return AccessDecision(False, "denied")


def get_role_names(db: Session, user_id: UUID) -> FrozenSet[str]:
    return frozenset(r[0] for r in db.query(UserRole.role).filter(UserRole.user_id == user_id))


def get_active_client_ids(db: Session, coach_id: UUID) -> FrozenSet[UUID]:
    rows = db.query(CoachClientAssignment.client_id).filter(
        CoachClientAssignment.coach_id == coach_id,
        CoachClientAssignment.is_active.is_(True),
    )
    return frozenset(r[0] for r in rows)


def has_active_assignment(db: Session, coach_id: UUID, client_id: UUID) -> bool:
    return db.query(CoachClientAssignment.id).filter(
        CoachClientAssignment.coach_id == coach_id,
        CoachClientAssignment.client_id == client_id,
        CoachClientAssignment.is_active.is_(True),
    ).first() is not None


def load_role_set(db: Session, user_id: UUID) -> RoleSet:
    """
    Read roles and, for coaches, the active assignments.

    Always read fresh: a deactivated assignment must take effect on the
    very next call.
    """
    roles = get_role_names(db, user_id)
    client_ids: FrozenSet[UUID] = frozenset()
    if ROLE_COACH in roles and not roles & PRIVILEGED_ROLES:
        client_ids = get_active_client_ids(db, user_id)
    return RoleSet(user_id=user_id, roles=roles, active_client_ids=client_ids)


def authorize_client_access(db: Session, actor: Profile, client_id: UUID, action: str = "read") -> RoleSet:
    """Gate for every client-scoped accessor. Returns the actor's RoleSet on success."""
    role_set = load_role_set(db, actor.id)
    decision = decide_client_access(role_set, client_id)
    if not decision.allowed:
        logger.warning(
            "Client data access denied",
            extra={"extra_fields": {
                "actor_id": str(actor.id),
                "client_id": str(client_id),
                "action": action,
            }},
        )
        raise AuthorizationError()
    return role_set


def ensure_roles_valid(roles: Optional[Iterable[str]]) -> FrozenSet[str]:
    normalized = frozenset((r or "").strip().lower() for r in (roles or []))
    unknown = normalized - VALID_ROLES
    if unknown:
        raise ValidationError(f"Unknown role(s): {', '.join(sorted(unknown))}", field="roles")
    return normalized
