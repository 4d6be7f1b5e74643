from pydantic import BaseModel, ConfigDict, EmailStr, Field
from datetime import datetime
from uuid import UUID
from typing import Any, Optional, List, Dict


# --- Auth ---

class LoginRequest(BaseModel):
    email: EmailStr
    password: str


class ProfileResponse(BaseModel):
    id: UUID
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    is_active: bool = True
    roles: List[str] = []
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    profile: ProfileResponse


# --- Assessments ---

class DraftSaveRequest(BaseModel):
    """Partial answers; merged into the live draft."""
    answers: Dict[str, Any] = Field(default_factory=dict)


class AssessmentCompleteRequest(BaseModel):
    answers: Dict[str, Any]


class AssessmentStatusResponse(BaseModel):
    kind: str
    state: str
    has_completed: bool
    has_in_progress: bool
    can_start: bool
    can_resume: bool
    should_restart: bool
    status_message: str
    last_score: Optional[float] = None
    draft_saved_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    analysis_pending: bool = False


class DraftResponse(BaseModel):
    kind: str
    answers: Dict[str, Any]
    last_saved_at: datetime


# --- Client data ---

class CalendarEventCreate(BaseModel):
    title: str
    event_date: datetime
    description: Optional[str] = None
    event_type: str = "session"
    pillar_key: Optional[str] = None


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    pillar_key: Optional[str] = None
    deadline: Optional[datetime] = None


class PathEntryCreate(BaseModel):
    entry_type: str
    title: str
    details: Optional[str] = None
    pillar_key: Optional[str] = None
    status: str = "active"
    visible_to_client: bool = True
    metadata: Optional[Dict[str, Any]] = None


# --- Messaging ---

class MessageCreate(BaseModel):
    recipient_id: UUID
    content: str
    subject: Optional[str] = None


# --- Invitations ---

class InvitationCreate(BaseModel):
    emails: List[str] = Field(..., min_length=1, max_length=100)
    role: str = "client"
    custom_message: Optional[str] = Field(None, max_length=2000)
    expires_in_days: Optional[int] = None
    send_email: bool = True


class InvitationRedeem(BaseModel):
    token: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None


class InvitationRevoke(BaseModel):
    reason: Optional[str] = None


# --- Admin ---

class AdminUserCreate(BaseModel):
    email: str
    password: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[str] = Field(default_factory=lambda: ["client"])
    send_welcome: bool = True


class AssignmentRequest(BaseModel):
    coach_id: UUID
    client_id: UUID


class ConsolidateRequest(BaseModel):
    limit: Optional[int] = Field(None, ge=1, le=500)


class SystemAlertRequest(BaseModel):
    title: str
    message: str
    severity: str = "info"
    recipients: Optional[List[str]] = None
