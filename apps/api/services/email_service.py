"""
Email Service

Transactional email through the Resend HTTP API.

Notification types:
- welcome               first login / invitation redeemed
- assessment-reminder   an assessment draft has been left untouched
- coach-client-message  a new message between coach and client
- system-alert          operator alert to admins
- invitation            signup link for an invited address
"""

from html import escape
from urllib.parse import quote
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging

import requests
from email_validator import EmailNotValidError, validate_email

from core.config import settings
from core.exceptions import ValidationError

logger = logging.getLogger(__name__)

NOTIFICATION_TYPES = (
    "welcome",
    "assessment-reminder",
    "coach-client-message",
    "system-alert",
    "invitation",
)

SEVERITIES = ("info", "warning", "critical")


def normalize_recipients(recipients: Any) -> List[str]:
    """Accept one address or a list; validate and lowercase each."""
    if isinstance(recipients, str):
        recipients = [recipients]
    if not recipients:
        raise ValidationError("At least one recipient is required", field="recipients")

    normalized = []
    for raw in recipients:
        try:
            info = validate_email(str(raw or "").strip(), check_deliverability=False)
        except EmailNotValidError as e:
            raise ValidationError(f"Invalid email address {raw!r}: {e}", field="recipients")
        normalized.append(info.normalized.lower())
    return normalized


def _name(data: Mapping[str, Any], key: str = "first_name") -> str:
    return str(data.get(key) or "there")


def render_notification(notification_type: str, data: Mapping[str, Any]) -> Tuple[str, str, str]:
    """
    Returns (subject, html, text).

    subject and text carry the raw values; only the html part is escaped.
    """
    base_url = settings.WEB_APP_BASE_URL.rstrip("/")

    if notification_type == "welcome":
        name = _name(data)
        subject = "Welcome to SHIMMS"
        body = (
            f"Hi {name}, your account is ready. Start with the Welcome Assessment so Stefan "
            f"can map where you are today."
        )
        link = f"{base_url}/"
    elif notification_type == "assessment-reminder":
        name = _name(data)
        assessment = str(data.get("assessment_name") or "your assessment")
        subject = f"Finish {assessment}"
        body = (
            f"Hi {name}, you started {assessment} but haven't finished it yet. "
            f"Your answers are saved, pick up where you left off."
        )
        link = f"{base_url}/assessments/{quote(str(data.get('assessment_key') or ''))}"
    elif notification_type == "coach-client-message":
        sender = str(data.get("sender_name") or "Your coach")
        subject = str(data.get("subject") or f"New message from {sender}")
        preview = str(data.get("content") or "")[:500]
        body = f"{sender} sent you a message:\n\n{preview}"
        link = f"{base_url}/messages"
    elif notification_type == "system-alert":
        severity = str(data.get("severity") or "info")
        title = str(data.get("title") or "System alert")
        subject = f"[{severity.upper()}] {title}"
        body = str(data.get("message") or "")
        link = f"{base_url}/admin"
    elif notification_type == "invitation":
        inviter = str(data.get("inviter_name") or "SHIMMS")
        subject = "You're invited to SHIMMS"
        body = f"{inviter} has invited you to SHIMMS as {data.get('role') or 'client'}."
        custom = data.get("custom_message")
        if custom:
            body += f"\n\n{custom}"
        body += f"\n\nThe invitation expires in {int(data.get('expires_in_days') or 7)} days."
        link = str(data.get("invitation_url") or base_url)
    else:
        raise ValidationError(f"Unknown notification type: {notification_type}", field="type")

    paragraphs = "".join(f"<p>{escape(p)}</p>" for p in body.split("\n\n"))
    html = (
        f"<h2>{escape(subject)}</h2>{paragraphs}"
        f"<p><a href=\"{escape(link, quote=True)}\">Open SHIMMS</a></p>"
        f"<p>/ Stefan and the SHIMMS team</p>"
    )
    text = f"{subject}\n\n{body}\n\n{link}\n\n/ Stefan and the SHIMMS team"
    return subject, html, text


class EmailService:
    """Service for sending emails"""

    def __init__(self):
        self.api_url = settings.RESEND_API_URL
        self.api_key = settings.RESEND_API_KEY
        self.from_email = settings.FROM_EMAIL
        self.from_name = settings.FROM_NAME
        self.enabled = settings.EMAIL_ENABLED
        self.timeout = settings.EMAIL_REQUEST_TIMEOUT_S

    def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> Optional[str]:
        """
        Send one email.

        Returns the provider message id, or None if nothing was sent.
        """
        if not self.enabled or not self.api_key:
            logger.info(f"Email disabled, would send to {to_email}: {subject}")
            return None

        payload = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [to_email],
            "subject": subject,
            "html": html_content,
        }
        if text_content:
            payload["text"] = text_content

        try:
            resp = requests.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            return resp.json().get("id")
        except requests.RequestException as e:
            logger.error(f"Error sending email to {to_email}: {str(e)}")
            return None
        except ValueError as e:
            logger.error(f"Unreadable email provider response for {to_email}: {e}")
            return None

    def send_notification(
        self,
        notification_type: str,
        recipients: Sequence[str],
        data: Optional[Mapping[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Render and send one notification to every recipient.

        Returns {success, message_id} for a single recipient and
        {success, message_ids} for several. success means every send worked.
        """
        if notification_type not in NOTIFICATION_TYPES:
            raise ValidationError(f"Unknown notification type: {notification_type}", field="type")
        addresses = normalize_recipients(recipients)
        subject, html, text = render_notification(notification_type, data or {})

        if not self.enabled or not self.api_key:
            logger.info(f"Email disabled, skipping {notification_type} to {len(addresses)} recipient(s)")
            return {"success": False, "error": "email_disabled"}

        message_ids: List[str] = []
        failed: List[str] = []
        for address in addresses:
            message_id = self.send_email(address, subject, html, text)
            if message_id:
                message_ids.append(message_id)
            else:
                failed.append(address)

        result: Dict[str, Any] = {"success": not failed}
        if len(addresses) == 1:
            result["message_id"] = message_ids[0] if message_ids else None
        else:
            result["message_ids"] = message_ids
        if failed:
            result["failed"] = failed

        logger.info(
            f"Sent {notification_type} notification",
            extra={"extra_fields": {
                "notification_type": notification_type,
                "sent": len(message_ids),
                "failed": len(failed),
            }},
        )
        return result


# Singleton instance
email_service = EmailService()
