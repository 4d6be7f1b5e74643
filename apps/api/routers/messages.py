"""
Messaging API Router

Coach/client messages. Admins may message anyone.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from core.feature_flags import FeatureFlags, get_feature_flags
from models import Profile
from schemas import MessageCreate
from services import messaging

router = APIRouter(prefix="/v1/messages", tags=["messages"])


@router.post("", status_code=status.HTTP_201_CREATED)
def send_message(
    payload: MessageCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    message = messaging.send_message(
        db,
        current_user,
        payload.recipient_id,
        payload.content,
        subject=payload.subject,
        flags=flags,
    )
    return messaging.serialize_message(message)


@router.get("")
def list_messages(
    unread_only: bool = Query(False),
    limit: int = Query(100, ge=1, le=500),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    messages = messaging.list_messages(db, current_user, unread_only=unread_only, limit=limit)
    return [messaging.serialize_message(m) for m in messages]


@router.post("/{message_id}/read")
def mark_read(
    message_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return messaging.serialize_message(messaging.mark_message_read(db, current_user, message_id))
