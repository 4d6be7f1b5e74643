"""
Admin user management tests: accounts, roles, coach assignments, alerts.
"""
from unittest.mock import patch

import pytest

from core.exceptions import ConflictError, ForbiddenError, NotFoundError, ValidationError
from models import CoachClientAssignment, UserJourneyState
from services.access_control import get_role_names
from services.user_admin import (
    assign_coach,
    assign_role,
    create_user,
    deactivate_assignment,
    remove_role,
    send_system_alert,
)

PASSWORD = "Strong-Pass-91"


class TestCreateUser:
    def test_client_gets_journey(self, db_session, admin_profile, flags):
        profile = create_user(
            db_session, admin_profile, email=" Lena@Example.com ", password=PASSWORD,
            first_name="Lena", roles=["client"], flags=flags,
        )
        assert profile.email == "lena@example.com"
        assert profile.role_names == ["client"]
        assert db_session.query(UserJourneyState).filter_by(user_id=profile.id).count() == 1

    def test_duplicate_email(self, db_session, admin_profile, client_profile, flags):
        with pytest.raises(ConflictError) as exc:
            create_user(db_session, admin_profile, email="client@example.com", password=PASSWORD, flags=flags)
        assert exc.value.error_code == "EMAIL_EXISTS"

    def test_weak_password(self, db_session, admin_profile, flags):
        with pytest.raises(ValidationError):
            create_user(db_session, admin_profile, email="x@example.com", password="password", flags=flags)

    def test_admin_cannot_create_admin(self, db_session, admin_profile, superadmin_profile, flags):
        with pytest.raises(ForbiddenError):
            create_user(db_session, admin_profile, email="a2@example.com", password=PASSWORD, roles=["admin"], flags=flags)
        created = create_user(
            db_session, superadmin_profile, email="a2@example.com", password=PASSWORD, roles=["admin"], flags=flags,
        )
        assert created.role_names == ["admin"]


class TestRoles:
    def test_assign_is_idempotent(self, db_session, admin_profile, client_profile):
        assign_role(db_session, admin_profile, client_profile.id, "coach")
        profile = assign_role(db_session, admin_profile, client_profile.id, "coach")
        assert profile.role_names == ["client", "coach"]

    def test_removing_coach_role_deactivates_assignments(
        self, db_session, admin_profile, coach_profile, client_profile, assign
    ):
        assignment = assign(coach_profile, client_profile)
        remove_role(db_session, admin_profile, coach_profile.id, "coach")
        db_session.refresh(assignment)
        assert assignment.is_active is False
        assert "coach" not in get_role_names(db_session, coach_profile.id)

    def test_superadmin_keeps_own_role(self, db_session, superadmin_profile):
        with pytest.raises(ValidationError):
            remove_role(db_session, superadmin_profile, superadmin_profile.id, "superadmin")

    def test_unknown_user(self, db_session, admin_profile):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            assign_role(db_session, admin_profile, uuid4(), "client")


class TestAssignments:
    def test_assign_deactivate_reactivate(self, db_session, admin_profile, coach_profile, client_profile):
        first = assign_coach(db_session, admin_profile, coach_profile.id, client_profile.id)
        assert first.is_active

        deactivated = deactivate_assignment(db_session, admin_profile, coach_profile.id, client_profile.id)
        assert deactivated.is_active is False
        assert deactivated.deactivated_at is not None

        again = assign_coach(db_session, admin_profile, coach_profile.id, client_profile.id)
        assert again.id == first.id
        assert again.is_active
        assert db_session.query(CoachClientAssignment).count() == 1

    def test_roles_required(self, db_session, admin_profile, make_profile, client_profile):
        not_a_coach = make_profile("plain@example.com", roles=["client"])
        with pytest.raises(ValidationError):
            assign_coach(db_session, admin_profile, not_a_coach.id, client_profile.id)

    def test_missing_assignment(self, db_session, admin_profile, coach_profile, client_profile):
        with pytest.raises(NotFoundError):
            deactivate_assignment(db_session, admin_profile, coach_profile.id, client_profile.id)


class TestSystemAlert:
    def test_defaults_to_active_admins(self, db_session, admin_profile, superadmin_profile, client_profile, flags):
        with patch("services.user_admin.dispatch_notification", return_value=True) as dispatch:
            result = send_system_alert(
                db_session, admin_profile, title="Queue backlog", message="Workers are behind", severity="warning",
                flags=flags,
            )
        assert result == {"queued": True, "recipients": 2}
        recipients = dispatch.call_args.args[1]
        assert sorted(recipients) == ["admin@example.com", "root@example.com"]

    def test_bad_severity(self, db_session, admin_profile, flags):
        with pytest.raises(ValidationError):
            send_system_alert(db_session, admin_profile, title="t", message="m", severity="panic", flags=flags)
