"""
Password policy tests.

The same rules apply to invitation redemption and admin-created accounts.
"""
import pytest

from core.exceptions import ValidationError
from core.password_policy import ensure_password_policy, validate_password


class TestPasswordValidation:
    def test_accepts_strong_password(self):
        valid, errors = validate_password("Wheel-of-Life-8")
        assert valid is True
        assert errors == []

    @pytest.mark.parametrize("password,fragment", [
        ("Ab1@xyz", "at least 8 characters"),
        ("A" * 35 + "b" * 35 + "1@!", "72 characters"),
        ("coach@pillar42", "uppercase"),
        ("COACH@PILLAR42", "lowercase"),
        ("Coach@Pillars", "digit"),
        ("CoachPillar42", "special character"),
        ("Coach@Piiil42", "repeated"),
    ])
    def test_rejects_each_rule(self, password, fragment):
        valid, errors = validate_password(password)
        assert valid is False
        assert any(fragment in e for e in errors)

    def test_common_passwords_rejected_case_insensitively(self):
        valid, errors = validate_password("P@ssw0rd")
        assert valid is False
        assert any("too common" in e for e in errors)

    def test_none_is_invalid(self):
        valid, errors = validate_password(None)
        assert valid is False
        assert errors


def test_ensure_raises_with_every_failure():
    with pytest.raises(ValidationError) as exc:
        ensure_password_policy("short")
    assert exc.value.status_code == 422
    assert exc.value.error_code == "VALIDATION_ERROR_PASSWORD"
    assert "uppercase" in exc.value.detail and "at least 8" in exc.value.detail
