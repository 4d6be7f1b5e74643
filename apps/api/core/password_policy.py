"""
Password policy validation.

Applied wherever a password is set: invitation redemption and admin user
creation.

Requirements:
- 8-72 characters (bcrypt limit)
- At least 1 uppercase, 1 lowercase, 1 digit, 1 special character
- Not in the common password blocklist
- No character repeated 3+ times in a row
"""
import re
from typing import Tuple, List

from core.exceptions import ValidationError

COMMON_PASSWORDS = {
    "password", "password1", "password123", "123456", "12345678", "1234567890",
    "qwerty", "qwerty123", "abc123", "letmein", "welcome", "welcome1", "monkey",
    "dragon", "master", "login", "admin", "admin123", "root", "pass", "test",
    "guest", "iloveyou", "princess", "sunshine", "football", "passw0rd",
    "p@ssw0rd", "p@ssword", "trustno1", "starwars", "whatever", "summer",
    "winter", "spring", "autumn", "shimms", "shimms123", "coaching", "stefan",
}

_SPECIAL = re.compile(r'[!@#$%^&*()_+\-=\[\]{};\':"\\|,.<>\/?`~]')


def validate_password(password: str) -> Tuple[bool, List[str]]:
    """
    Validate password against security policy.

    Returns:
        Tuple of (is_valid, list_of_error_messages)
    """
    password = password or ""
    errors = []

    if len(password) < 8:
        errors.append("Password must be at least 8 characters")
    if len(password) > 72:
        errors.append("Password must not exceed 72 characters (bcrypt limit)")

    if not re.search(r'[A-Z]', password):
        errors.append("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', password):
        errors.append("Password must contain at least one lowercase letter")
    if not re.search(r'\d', password):
        errors.append("Password must contain at least one digit")
    if not _SPECIAL.search(password):
        errors.append("Password must contain at least one special character (!@#$%^&*...)")

    if password.lower() in COMMON_PASSWORDS:
        errors.append("Password is too common, please choose a stronger password")

    if re.search(r'(.)\1{2,}', password):
        errors.append("Password must not contain more than 2 repeated characters in a row")

    return len(errors) == 0, errors


def ensure_password_policy(password: str) -> None:
    """Raise ValidationError listing every failed rule."""
    ok, errors = validate_password(password)
    if not ok:
        raise ValidationError("; ".join(errors), field="password")
