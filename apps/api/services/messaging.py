"""
Coach/client messaging.

Admins may message anyone. Otherwise a message needs an active
coach-client assignment between sender and recipient, in either direction.
"""

import logging
from typing import List, Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.orm import Session

from core.exceptions import AuthorizationError, ForbiddenError, NotFoundError, ValidationError
from core.feature_flags import FeatureFlags
from core.timeutil import utcnow
from models import Message, Profile
from services.access_control import has_active_assignment, load_role_set
from services.notifications import dispatch_notification

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 10000


def can_message(db: Session, sender_id: UUID, recipient_id: UUID) -> bool:
    sender_roles = load_role_set(db, sender_id)
    if sender_roles.is_privileged:
        return True
    return has_active_assignment(db, sender_id, recipient_id) or has_active_assignment(db, recipient_id, sender_id)


def send_message(
    db: Session,
    sender: Profile,
    recipient_id: UUID,
    content: str,
    subject: Optional[str] = None,
    flags: Optional[FeatureFlags] = None,
) -> Message:
    content = (content or "").strip()
    if not content:
        raise ValidationError("Message content is required", field="content")
    if len(content) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message must be at most {MAX_MESSAGE_LENGTH} characters", field="content")
    if recipient_id == sender.id:
        raise ValidationError("Cannot send a message to yourself", field="recipient_id")

    recipient = db.query(Profile).filter(Profile.id == recipient_id).first()
    if not recipient:
        raise NotFoundError("User", str(recipient_id))

    if not can_message(db, sender.id, recipient_id):
        raise AuthorizationError("Messaging requires an active coach-client assignment")

    message = Message(
        sender_id=sender.id,
        recipient_id=recipient_id,
        subject=(subject or "").strip() or None,
        content=content,
    )
    db.add(message)
    db.flush()

    dispatch_notification(
        "coach-client-message",
        [recipient.email],
        {
            "sender_name": sender.display_name,
            "subject": message.subject,
            "content": content,
            "first_name": recipient.first_name,
        },
        flags,
    )
    return message


def list_messages(db: Session, user: Profile, unread_only: bool = False, limit: int = 100) -> List[Message]:
    """Inbox and sent messages, newest first."""
    q = db.query(Message).filter(or_(Message.recipient_id == user.id, Message.sender_id == user.id))
    if unread_only:
        q = q.filter(Message.recipient_id == user.id, Message.read_at.is_(None))
    return q.order_by(Message.created_at.desc()).limit(limit).all()


def mark_message_read(db: Session, user: Profile, message_id: UUID) -> Message:
    message = db.query(Message).filter(Message.id == message_id).first()
    if not message:
        raise NotFoundError("Message", str(message_id))
    if message.recipient_id != user.id:
        raise ForbiddenError("Only the recipient can mark a message as read")
    if message.read_at is None:
        message.read_at = utcnow()
        db.flush()
    return message


def serialize_message(message: Message) -> dict:
    return {
        "id": str(message.id),
        "sender_id": str(message.sender_id),
        "recipient_id": str(message.recipient_id),
        "subject": message.subject,
        "content": message.content,
        "read_at": message.read_at,
        "created_at": message.created_at,
    }
