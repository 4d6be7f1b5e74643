from sqlalchemy import Column, Integer, Boolean, DateTime, ForeignKey, Text, Index, UniqueConstraint, JSON, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from core.database import Base
from core.timeutil import utcnow
import uuid


class Profile(Base):
    """
    Canonical identity row. Every user-owned table points here.

    Roles live in user_roles (a user may hold several); coach access to a
    client goes through coach_client_assignments.
    """

    __tablename__ = "profiles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, unique=True, nullable=False, index=True)  # stored lowercased
    password_hash = Column(Text, nullable=True)  # null until an invitation is redeemed
    first_name = Column(Text, nullable=True)
    last_name = Column(Text, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)

    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan", lazy="selectin")

    @property
    def role_names(self) -> list:
        return sorted({r.role for r in self.roles})

    @property
    def display_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p) or self.email


class UserRole(Base):
    __tablename__ = "user_roles"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(Text, nullable=False)  # client | coach | admin | superadmin
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    user = relationship("Profile", back_populates="roles")

    __table_args__ = (
        UniqueConstraint("user_id", "role", name="uq_user_roles_user_role"),
    )


class CoachClientAssignment(Base):
    """
    Coach -> client access grant.

    Rows are never deleted; deactivation flips is_active so history survives
    and re-assignment reactivates the same row.
    """

    __tablename__ = "coach_client_assignments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    coach_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    client_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)
    assigned_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    deactivated_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("coach_id", "client_id", name="uq_coach_client_pair"),
    )


class AssessmentRound(Base):
    """
    One completed assessment.

    Append-only per (user, pillar_key). ai_analysis is written at most once;
    a null value means analysis was unavailable at completion time and the
    round is a candidate for consolidation.
    """

    __tablename__ = "assessment_rounds"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    pillar_key = Column(Text, nullable=False)  # AssessmentKind value
    answers = Column(JSON, nullable=False, default=dict)
    scores = Column(JSON, nullable=False, default=dict)
    ai_analysis = Column(Text, nullable=True)
    ai_recommendations = Column(JSON, nullable=True)
    analysis_attached_at = Column(DateTime(timezone=True), nullable=True)
    analysis_attempts = Column(Integer, nullable=False, default=0, server_default="0")
    last_analysis_attempt_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_assessment_rounds_user_pillar_created", "user_id", "pillar_key", "created_at"),
    )


class AssessmentState(Base):
    """
    In-progress draft for one assessment kind. At most one per (user, key).
    """

    __tablename__ = "assessment_states"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    assessment_type = Column(Text, nullable=False)  # welcome | pillar
    assessment_key = Column(Text, nullable=False)  # AssessmentKind value
    form_data = Column(JSON, nullable=False, default=dict)
    last_saved_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    reminder_sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "assessment_key", name="uq_assessment_states_user_key"),
    )


class UserJourneyState(Base):
    """Single row per user; overwritten in place (last write wins)."""

    __tablename__ = "user_journey_states"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, unique=True, index=True)
    current_phase = Column(Text, nullable=False, default="welcome")
    journey_progress = Column(Integer, nullable=False, default=0)  # 0-100
    completed_assessments = Column(JSON, nullable=False, default=list)
    next_recommended_assessment = Column(Text, nullable=True)
    journey_metadata = Column("metadata", JSON, nullable=False, default=dict)
    last_activity_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)


class PathEntry(Base):
    """
    Timeline entry on a client's development path. Append-only.

    entry_type: recommendation | task | event | assessment | milestone | note
    """

    __tablename__ = "path_entries"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)
    entry_type = Column(Text, nullable=False, index=True)
    title = Column(Text, nullable=False)
    details = Column(Text, nullable=True)
    pillar_key = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="active")  # active | completed | archived
    ai_generated = Column(Boolean, default=False, nullable=False)
    visible_to_client = Column(Boolean, default=True, nullable=False)
    round_id = Column(Uuid(as_uuid=True), ForeignKey("assessment_rounds.id"), nullable=True)
    entry_metadata = Column("metadata", JSON, nullable=False, default=dict)
    occurred_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_path_entries_user_occurred", "user_id", "occurred_at"),
    )


class CalendarEvent(Base):
    __tablename__ = "calendar_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(DateTime(timezone=True), nullable=False)
    event_type = Column(Text, nullable=False, default="session")  # session | deadline | reminder | other
    pillar_key = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_calendar_events_user_date", "user_id", "event_date"),
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)
    created_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)
    title = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    pillar_key = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending")  # pending | in_progress | completed
    deadline = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Message(Base):
    __tablename__ = "messages"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    recipient_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=False, index=True)
    subject = Column(Text, nullable=True)
    content = Column(Text, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)


class Invitation(Base):
    """
    Email invitation carrying a single-use token.

    status: pending -> accepted (one time), or pending -> revoked | expired.
    """

    __tablename__ = "invitations"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    email = Column(Text, nullable=False, index=True)  # stored lowercased
    token = Column(Text, nullable=False, unique=True, index=True)
    role = Column(Text, nullable=False, default="client")
    custom_message = Column(Text, nullable=True)
    status = Column(Text, nullable=False, default="pending", index=True)

    invited_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)

    accepted_at = Column(DateTime(timezone=True), nullable=True)
    accepted_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    revoked_by = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow, nullable=False)


class InvitationAuditEvent(Base):
    """
    Audit log for invitation operations.
    """

    __tablename__ = "invitation_audit_events"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    invitation_id = Column(Uuid(as_uuid=True), ForeignKey("invitations.id"), nullable=False, index=True)
    actor_id = Column(Uuid(as_uuid=True), ForeignKey("profiles.id"), nullable=True, index=True)
    action = Column(Text, nullable=False, index=True)  # invitation.created | .reused | .revoked | .accepted | .expired
    target_email = Column(Text, nullable=False, index=True)  # lowercased
    event_metadata = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, server_default=func.now(), nullable=False)
