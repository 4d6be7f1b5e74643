"""
Email dispatch task.

Enqueued by services.notifications.dispatch_notification().
"""

from typing import Any, Dict, List
import logging

from celery import Task

from core.exceptions import ValidationError
from services.email_service import email_service
from tasks import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(name="tasks.send_notification", bind=True)
def send_notification_task(self: Task, notification_type: str, recipients: List[str], data: Dict[str, Any]) -> Dict:
    """Render and send one notification. Never retried."""
    try:
        return email_service.send_notification(notification_type, recipients, data)
    except ValidationError as e:
        logger.error(f"Rejected {notification_type} notification: {e.detail}")
        return {"success": False, "error": e.detail}
