"""
Fire-and-forget dispatch tests.
"""
from unittest.mock import patch

from core.feature_flags import load_feature_flags
from services.notifications import dispatch_notification


def test_enqueues_task():
    with patch("tasks.notification_tasks.send_notification_task.delay") as delay:
        assert dispatch_notification("welcome", ["a@example.com"], {"first_name": "A"}) is True
    delay.assert_called_once_with("welcome", ["a@example.com"], {"first_name": "A"})


def test_flag_off_skips():
    with patch("tasks.notification_tasks.send_notification_task.delay") as delay:
        sent = dispatch_notification("welcome", ["a@example.com"], {}, load_feature_flags({"email_notifications": False}))
    assert sent is False
    delay.assert_not_called()


def test_broker_failure_is_swallowed():
    with patch("tasks.notification_tasks.send_notification_task.delay", side_effect=ConnectionError("broker down")):
        assert dispatch_notification("welcome", ["a@example.com"], {}) is False


def test_no_recipients():
    assert dispatch_notification("system-alert", [], {}) is False


def test_eager_task_runs_email_service():
    with patch("tasks.notification_tasks.email_service.send_notification", return_value={"success": True}) as send:
        assert dispatch_notification("welcome", ["a@example.com"], {"first_name": "A"}) is True
    send.assert_called_once_with("welcome", ["a@example.com"], {"first_name": "A"})
