"""
Invitation lifecycle tests: create/reuse, validate, one-time redemption,
revocation and expiry.
"""
import uuid
from datetime import timedelta

import pytest

from core.exceptions import ConflictError, ForbiddenError, GoneError, NotFoundError, ValidationError
from core.security import verify_password
from core.timeutil import utcnow
from models import Invitation, InvitationAuditEvent, Profile, UserJourneyState, UserRole
from services.invitation_service import (
    create_invitations,
    redeem_invitation,
    revoke_invitation,
    validate_invitation,
)

PASSWORD = "Brand-New-Pass-7"


def _invite(db_session, admin, email="invitee@example.com", role="client", **kwargs):
    result = create_invitations(db_session, emails=[email], role=role, invited_by=admin, **kwargs)
    invitation_id = result["results"][0]["invitation_id"]
    return db_session.query(Invitation).filter(Invitation.id == uuid.UUID(invitation_id)).one()


class TestCreate:
    def test_creates_and_reuses(self, db_session, admin_profile):
        first = create_invitations(
            db_session, emails=["New@Example.com", "new@example.com"], role="client", invited_by=admin_profile,
        )
        assert first["summary"] == {"total": 1, "created": 1, "reused": 0}
        row = first["results"][0]
        assert row["email"] == "new@example.com"
        assert "/invitation-signup?token=" in row["invitation_url"]

        second = create_invitations(db_session, emails=["new@example.com"], role="client", invited_by=admin_profile)
        assert second["summary"]["reused"] == 1
        assert second["results"][0]["invitation_id"] == row["invitation_id"]
        assert db_session.query(Invitation).count() == 1

    def test_stale_pending_replaced(self, db_session, admin_profile):
        old = _invite(db_session, admin_profile, expires_in_days=1)
        old.expires_at = utcnow() - timedelta(hours=1)
        db_session.flush()

        fresh = _invite(db_session, admin_profile)
        assert fresh.id != old.id
        assert fresh.token != old.token
        db_session.refresh(old)
        assert old.status == "expired"

    def test_invalid_email_rejects_whole_batch(self, db_session, admin_profile):
        with pytest.raises(ValidationError):
            create_invitations(
                db_session, emails=["ok@example.com", "not-an-email"], role="client", invited_by=admin_profile,
            )
        assert db_session.query(Invitation).count() == 0

    def test_only_superadmin_invites_admins(self, db_session, admin_profile, superadmin_profile):
        with pytest.raises(ForbiddenError):
            _invite(db_session, admin_profile, role="admin")
        assert _invite(db_session, superadmin_profile, role="admin").role == "admin"

    def test_expiry_bounds(self, db_session, admin_profile):
        with pytest.raises(ValidationError):
            _invite(db_session, admin_profile, expires_in_days=0)
        with pytest.raises(ValidationError):
            _invite(db_session, admin_profile, role="gardener")


class TestRedeem:
    def test_creates_profile_role_and_journey(self, db_session, admin_profile):
        invitation = _invite(db_session, admin_profile)
        result = redeem_invitation(
            db_session, token=invitation.token, password=PASSWORD, first_name="Ida", last_name="Berg",
        )

        profile = result["profile"]
        assert result["profile_created"] is True
        assert result["role_assigned"] is True
        assert profile.role_names == ["client"]
        assert verify_password(PASSWORD, profile.password_hash)
        assert invitation.status == "accepted"
        assert invitation.accepted_by == profile.id
        assert invitation.accepted_at is not None
        assert db_session.query(UserJourneyState).filter_by(user_id=profile.id).count() == 1
        actions = {a for (a,) in db_session.query(InvitationAuditEvent.action)}
        assert {"invitation.created", "invitation.accepted"} <= actions

    def test_second_redeem_is_rejected_without_duplicate_role(self, db_session, admin_profile):
        invitation = _invite(db_session, admin_profile)
        redeem_invitation(db_session, token=invitation.token, password=PASSWORD)

        with pytest.raises(ConflictError) as exc:
            redeem_invitation(db_session, token=invitation.token, password=PASSWORD)
        assert exc.value.status_code == 409
        assert exc.value.detail == "Invitation already accepted"

        profile = db_session.query(Profile).filter_by(email="invitee@example.com").one()
        assert db_session.query(UserRole).filter_by(user_id=profile.id).count() == 1

    def test_existing_profile_is_linked(self, db_session, admin_profile, make_profile):
        existing = make_profile("invitee@example.com", roles=["client"], first_name="Old")
        original_hash = existing.password_hash
        invitation = _invite(db_session, admin_profile, role="coach")

        result = redeem_invitation(db_session, token=invitation.token, password=PASSWORD, first_name="New")
        assert result["profile_created"] is False
        assert result["profile"].id == existing.id
        assert result["profile"].first_name == "Old"
        assert result["profile"].password_hash == original_hash
        assert set(result["profile"].role_names) == {"client", "coach"}

    def test_role_already_held(self, db_session, admin_profile, make_profile):
        make_profile("invitee@example.com", roles=["client"])
        invitation = _invite(db_session, admin_profile, role="client")
        result = redeem_invitation(db_session, token=invitation.token, password=PASSWORD)
        assert result["role_assigned"] is False

    def test_weak_password_rejected_first(self, db_session, admin_profile):
        invitation = _invite(db_session, admin_profile)
        with pytest.raises(ValidationError):
            redeem_invitation(db_session, token=invitation.token, password="short")
        assert invitation.status == "pending"

    def test_unknown_token(self, db_session):
        with pytest.raises(NotFoundError):
            redeem_invitation(db_session, token="nope", password=PASSWORD)

    def test_expired(self, db_session, admin_profile):
        invitation = _invite(db_session, admin_profile)
        invitation.expires_at = utcnow() - timedelta(minutes=1)
        db_session.flush()

        with pytest.raises(GoneError) as exc:
            redeem_invitation(db_session, token=invitation.token, password=PASSWORD)
        assert exc.value.status_code == 410
        db_session.refresh(invitation)
        assert invitation.status == "expired"
        assert db_session.query(Profile).filter_by(email="invitee@example.com").count() == 0


class TestRevoke:
    def test_revoked_cannot_be_redeemed(self, db_session, admin_profile):
        invitation = _invite(db_session, admin_profile)
        revoke_invitation(db_session, invitation_id=invitation.id, revoked_by=admin_profile, reason="typo")
        assert invitation.status == "revoked"
        assert invitation.revoked_by == admin_profile.id

        with pytest.raises(ForbiddenError) as exc:
            validate_invitation(db_session, invitation.token)
        assert exc.value.error_code == "INVITATION_REVOKED"

        # idempotent
        assert revoke_invitation(db_session, invitation_id=invitation.id, revoked_by=admin_profile).status == "revoked"

    def test_accepted_cannot_be_revoked(self, db_session, admin_profile):
        invitation = _invite(db_session, admin_profile)
        redeem_invitation(db_session, token=invitation.token, password=PASSWORD)
        with pytest.raises(ConflictError):
            revoke_invitation(db_session, invitation_id=invitation.id, revoked_by=admin_profile)
