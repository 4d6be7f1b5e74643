"""
Assessment reminders.

Nudges clients who left a draft untouched for ASSESSMENT_REMINDER_AFTER_HOURS.
Each draft is reminded at most once; expired drafts are left alone.
"""

import logging
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy.orm import Session

from core.config import settings
from core.feature_flags import DEFAULT_FLAGS, FeatureFlags
from core.timeutil import utcnow
from models import AssessmentState, Profile
from services.notifications import dispatch_notification
from services.pillars import get_definition

logger = logging.getLogger(__name__)


def send_assessment_reminders(
    db: Session,
    now: Optional[datetime] = None,
    flags: Optional[FeatureFlags] = None,
    limit: int = 500,
) -> Dict[str, int]:
    flags = flags or DEFAULT_FLAGS
    if not flags.assessment_reminders:
        logger.info("Assessment reminders disabled")
        return {"candidates": 0, "sent": 0}

    now = now or utcnow()
    remind_before = now - timedelta(hours=settings.ASSESSMENT_REMINDER_AFTER_HOURS)
    expired_before = now - timedelta(hours=settings.DRAFT_EXPIRY_HOURS)

    rows = (
        db.query(AssessmentState, Profile)
        .join(Profile, Profile.id == AssessmentState.user_id)
        .filter(
            AssessmentState.completed_at.is_(None),
            AssessmentState.reminder_sent_at.is_(None),
            AssessmentState.last_saved_at <= remind_before,
            AssessmentState.last_saved_at >= expired_before,
            Profile.is_active.is_(True),
        )
        .order_by(AssessmentState.last_saved_at.asc())
        .limit(limit)
        .all()
    )

    sent = 0
    for draft, profile in rows:
        queued = dispatch_notification(
            "assessment-reminder",
            [profile.email],
            {
                "first_name": profile.first_name,
                "assessment_name": get_definition(draft.assessment_key).name,
                "assessment_key": draft.assessment_key,
            },
            flags,
        )
        if queued:
            draft.reminder_sent_at = now
            sent += 1

    db.flush()
    summary = {"candidates": len(rows), "sent": sent}
    logger.info("Assessment reminders processed", extra={"extra_fields": summary})
    return summary
