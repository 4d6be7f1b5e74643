"""
Reminder emails for drafts left untouched.
"""
from datetime import timedelta
from unittest.mock import patch

import pytest

from core.feature_flags import load_feature_flags
from core.timeutil import utcnow
from models import AssessmentState
from services.reminders import send_assessment_reminders


@pytest.fixture
def make_draft(db_session):
    def _make(profile, key="self_care", age_hours=80, **kwargs):
        draft = AssessmentState(
            user_id=profile.id,
            assessment_type="welcome" if key == "welcome" else "pillar",
            assessment_key=key,
            form_data={"q1": 3},
            last_saved_at=utcnow() - timedelta(hours=age_hours),
            **kwargs,
        )
        db_session.add(draft)
        db_session.flush()
        return draft

    return _make


def test_stale_draft_gets_one_reminder(db_session, client_profile, make_draft, flags):
    draft = make_draft(client_profile, age_hours=80)

    with patch("services.reminders.dispatch_notification", return_value=True) as dispatch:
        summary = send_assessment_reminders(db_session, flags=flags)

    assert summary == {"candidates": 1, "sent": 1}
    assert draft.reminder_sent_at is not None
    notification_type, recipients, data, _ = dispatch.call_args.args
    assert notification_type == "assessment-reminder"
    assert recipients == ["client@example.com"]
    assert data["assessment_name"]
    assert data["assessment_key"] == "self_care"

    with patch("services.reminders.dispatch_notification", return_value=True) as dispatch:
        again = send_assessment_reminders(db_session, flags=flags)
    assert again == {"candidates": 0, "sent": 0}
    dispatch.assert_not_called()


def test_fresh_expired_and_completed_drafts_are_skipped(db_session, make_profile, make_draft, flags):
    make_draft(make_profile(), age_hours=10)
    make_draft(make_profile(), age_hours=200)
    make_draft(make_profile(), age_hours=80, completed_at=utcnow())

    with patch("services.reminders.dispatch_notification", return_value=True) as dispatch:
        summary = send_assessment_reminders(db_session, flags=flags)

    assert summary == {"candidates": 0, "sent": 0}
    dispatch.assert_not_called()


def test_inactive_profiles_are_skipped(db_session, make_profile, make_draft, flags):
    make_draft(make_profile(is_active=False), age_hours=80)
    with patch("services.reminders.dispatch_notification", return_value=True):
        assert send_assessment_reminders(db_session, flags=flags)["candidates"] == 0


def test_unqueued_reminder_is_retried_next_run(db_session, client_profile, make_draft, flags):
    draft = make_draft(client_profile, age_hours=80)
    with patch("services.reminders.dispatch_notification", return_value=False):
        summary = send_assessment_reminders(db_session, flags=flags)
    assert summary == {"candidates": 1, "sent": 0}
    assert draft.reminder_sent_at is None


def test_flag_off_sends_nothing(db_session, client_profile, make_draft):
    make_draft(client_profile, age_hours=80)
    off = load_feature_flags({"assessment_reminders": False})
    with patch("services.reminders.dispatch_notification") as dispatch:
        assert send_assessment_reminders(db_session, flags=off) == {"candidates": 0, "sent": 0}
    dispatch.assert_not_called()
