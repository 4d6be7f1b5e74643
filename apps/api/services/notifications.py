"""
Fire-and-forget notification dispatch.

Request handlers enqueue tasks.send_notification and move on. Enqueue
failures (broker down) are logged, never raised.
"""

import logging
from typing import Any, Mapping, Optional, Sequence

from core.feature_flags import FeatureFlags

logger = logging.getLogger(__name__)


def dispatch_notification(
    notification_type: str,
    recipients: Sequence[str],
    data: Optional[Mapping[str, Any]] = None,
    flags: Optional[FeatureFlags] = None,
) -> bool:
    """Returns True when the task was enqueued."""
    if flags is not None and not flags.email_notifications:
        logger.info(f"Email notifications disabled, not dispatching {notification_type}")
        return False
    if not recipients:
        return False

    # Imported lazily: tasks imports services, not the other way round
    from tasks.notification_tasks import send_notification_task

    try:
        send_notification_task.delay(notification_type, list(recipients), dict(data or {}))
        return True
    except Exception as e:
        logger.error(
            f"Failed to enqueue {notification_type} notification: {e}",
            extra={"extra_fields": {"notification_type": notification_type}},
        )
        return False
