"""
Assessment Flow Tracker tests.

Covers status derivation (including the 168h draft expiry boundary),
draft upserts, and the multi-step completion with and without an AI
analysis.
"""
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from core.exceptions import ConflictError, ValidationError
from core.feature_flags import load_feature_flags
from core.timeutil import utcnow
from models import AssessmentRound, AssessmentState, PathEntry, UserJourneyState
from services.assessment_flow import (
    DraftSnapshot,
    FlowState,
    RoundSnapshot,
    attach_analysis,
    clear_draft,
    complete_assessment,
    derive_status,
    get_status,
    save_draft,
)


NOW = utcnow()


class TestDeriveStatus:
    def test_nothing_yet(self):
        status = derive_status(None, None, NOW)
        assert status.state is FlowState.NOT_STARTED
        assert status.can_start and not status.can_resume

    def test_draft_at_exactly_168h_is_resumable(self):
        status = derive_status(DraftSnapshot(last_saved_at=NOW - timedelta(hours=168)), None, NOW)
        assert status.state is FlowState.IN_PROGRESS
        assert status.can_resume
        assert not status.can_start
        assert not status.should_restart

    def test_draft_older_than_168h_must_restart(self):
        status = derive_status(DraftSnapshot(last_saved_at=NOW - timedelta(hours=168, seconds=1)), None, NOW)
        assert status.state is FlowState.EXPIRED
        assert status.should_restart
        assert status.can_start
        assert not status.can_resume

    def test_completed_with_analysis(self):
        round_ = RoundSnapshot(created_at=NOW - timedelta(days=2), has_analysis=True, overall=6.5)
        status = derive_status(None, round_, NOW)
        assert status.state is FlowState.COMPLETED
        assert status.has_completed
        assert not status.can_start and not status.can_resume
        assert status.last_score == 6.5

    def test_round_without_analysis_is_not_completed(self):
        round_ = RoundSnapshot(created_at=NOW - timedelta(days=2), has_analysis=False, overall=4.0)
        status = derive_status(None, round_, NOW)
        assert status.state is FlowState.NOT_STARTED
        assert status.analysis_pending
        assert status.can_start

    def test_draft_after_round_opens_new_cycle(self):
        round_ = RoundSnapshot(created_at=NOW - timedelta(days=10), has_analysis=True, overall=6.0)
        draft = DraftSnapshot(last_saved_at=NOW - timedelta(hours=1))
        status = derive_status(draft, round_, NOW)
        assert status.state is FlowState.IN_PROGRESS
        assert status.last_score == 6.0

    def test_draft_older_than_round_is_ignored(self):
        round_ = RoundSnapshot(created_at=NOW - timedelta(hours=1), has_analysis=True, overall=6.0)
        draft = DraftSnapshot(last_saved_at=NOW - timedelta(hours=2))
        assert derive_status(draft, round_, NOW).state is FlowState.COMPLETED

    @pytest.mark.parametrize(
        "draft_age_h,round_age_h,has_analysis",
        [
            (None, None, False),
            (1, None, False),
            (200, None, False),
            (None, 5, True),
            (None, 5, False),
            (1, 5, True),
            (200, 300, True),
        ],
    )
    def test_start_and_resume_are_exclusive(self, draft_age_h, round_age_h, has_analysis):
        draft = DraftSnapshot(last_saved_at=NOW - timedelta(hours=draft_age_h)) if draft_age_h is not None else None
        round_ = (
            RoundSnapshot(created_at=NOW - timedelta(hours=round_age_h), has_analysis=has_analysis, overall=5.0)
            if round_age_h is not None else None
        )
        status = derive_status(draft, round_, NOW)
        if status.has_completed:
            assert not status.can_start and not status.can_resume
        else:
            assert status.can_start != status.can_resume


def test_store_failure_gives_conservative_default(client_profile):
    broken = MagicMock()
    broken.query.side_effect = SQLAlchemyError("connection reset")
    status = get_status(broken, client_profile.id, "self_care")
    assert status.state is FlowState.ERROR
    assert status.can_start
    assert not status.can_resume
    assert not status.has_completed


class TestDrafts:
    def test_save_creates_then_merges(self, db_session, client_profile):
        save_draft(db_session, client_profile.id, "self_care", {"sleep_quality": 5})
        draft = save_draft(db_session, client_profile.id, "self-care", {"stress_level": 8})
        assert draft.form_data == {"sleep_quality": 5, "stress_level": 8}
        assert draft.assessment_type == "pillar"
        assert db_session.query(AssessmentState).count() == 1

        status = get_status(db_session, client_profile.id, "self_care")
        assert status.state is FlowState.IN_PROGRESS

    def test_expired_draft_is_replaced(self, db_session, client_profile):
        old = NOW - timedelta(hours=200)
        save_draft(db_session, client_profile.id, "welcome", {"health": 3, "career": 4}, now=old)
        assert get_status(db_session, client_profile.id, "welcome", now=NOW).state is FlowState.EXPIRED

        draft = save_draft(db_session, client_profile.id, "welcome", {"finances": 7}, now=NOW)
        assert draft.form_data == {"finances": 7}
        assert get_status(db_session, client_profile.id, "welcome", now=NOW).state is FlowState.IN_PROGRESS

    def test_invalid_answers_rejected(self, db_session, client_profile):
        with pytest.raises(ValidationError):
            save_draft(db_session, client_profile.id, "self_care", {"sleep_quality": 42})
        assert db_session.query(AssessmentState).count() == 0

    def test_clear_is_idempotent(self, db_session, client_profile):
        save_draft(db_session, client_profile.id, "brand", {"brand_clarity": 50})
        assert clear_draft(db_session, client_profile.id, "brand") is True
        assert clear_draft(db_session, client_profile.id, "brand") is False
        assert get_status(db_session, client_profile.id, "brand").state is FlowState.NOT_STARTED


class TestCompleteAssessment:
    def test_with_analysis(self, db_session, client_profile, fake_analyzer, flags):
        save_draft(db_session, client_profile.id, "self_care", {"sleep_quality": 2})

        result = complete_assessment(
            db_session, client_profile.id, "self_care",
            {"sleep_quality": 2, "stress_level": 4},
            flags=flags, analyzer=fake_analyzer,
        )

        assert result.status == "completed"
        assert result.scores["overall"] == 4.6
        assert result.analysis_attached
        assert result.draft_cleared
        assert result.journey_updated
        assert result.warnings == []
        assert len(fake_analyzer.requests) == 1
        assert fake_analyzer.requests[0].pillar_key == "self_care"

        round_ = db_session.query(AssessmentRound).one()
        assert round_.answers == {"sleep_quality": 2, "stress_level": 4}
        assert round_.ai_analysis == "You are building steady habits."
        assert round_.ai_recommendations == fake_analyzer.recommendations
        assert db_session.query(AssessmentState).count() == 0

        # one assessment entry + one per recommendation
        assert result.actionables_created == 3
        assert db_session.query(PathEntry).filter(PathEntry.ai_generated.is_(True)).count() == 2

        journey = db_session.query(UserJourneyState).filter_by(user_id=client_profile.id).one()
        assert journey.completed_assessments == ["self_care"]
        # 1/6 assessments + 1/5 pillars
        assert journey.journey_progress == 10

        assert result.persona_message["persona"] == "cheerleader"
        assert get_status(db_session, client_profile.id, "self_care").state is FlowState.COMPLETED

    def test_without_analysis_keeps_round(self, db_session, client_profile, failing_analyzer, flags):
        save_draft(db_session, client_profile.id, "self_care", {"sleep_quality": 2})

        result = complete_assessment(
            db_session, client_profile.id, "self_care",
            {"sleep_quality": 2, "stress_level": 4},
            flags=flags, analyzer=failing_analyzer,
        )

        assert result.status == "completed_without_analysis"
        assert result.ai_analysis is None
        assert result.draft_cleared
        round_ = db_session.query(AssessmentRound).one()
        assert round_.ai_analysis is None
        assert db_session.query(AssessmentState).count() == 0

        status = get_status(db_session, client_profile.id, "self_care")
        assert status.state is FlowState.NOT_STARTED
        assert status.analysis_pending

        assert round_.analysis_attempts == 1
        assert round_.last_analysis_attempt_at is not None

    def test_without_analysis_journey_does_not_record_completion(
        self, db_session, client_profile, failing_analyzer, flags
    ):
        result = complete_assessment(
            db_session, client_profile.id, "self_care", {"sleep_quality": 2},
            flags=flags, analyzer=failing_analyzer,
        )
        assert result.journey_updated
        assert result.next_recommended_assessment == "welcome"

        journey = db_session.query(UserJourneyState).filter_by(user_id=client_profile.id).one()
        assert journey.completed_assessments == []
        assert "self_care_completed_at" not in (journey.journey_metadata or {})
        # the stored round still counts towards progress
        assert journey.journey_progress == 10

    def test_ai_flag_off_skips_analyzer(self, db_session, client_profile, fake_analyzer):
        result = complete_assessment(
            db_session, client_profile.id, "welcome", {"health": 7, "career": 5},
            flags=load_feature_flags({"ai_analysis": False}), analyzer=fake_analyzer,
        )
        assert fake_analyzer.requests == []
        assert result.status == "completed_without_analysis"
        assert result.next_recommended_assessment == "welcome"
        round_ = db_session.query(AssessmentRound).one()
        assert round_.analysis_attempts == 0

    def test_invalid_answers_write_nothing(self, db_session, client_profile, fake_analyzer, flags):
        with pytest.raises(ValidationError):
            complete_assessment(db_session, client_profile.id, "self_care", {}, flags=flags, analyzer=fake_analyzer)
        assert db_session.query(AssessmentRound).count() == 0
        assert fake_analyzer.requests == []

    def test_low_score_uses_low_scores_persona(self, db_session, client_profile, fake_analyzer, flags):
        result = complete_assessment(
            db_session, client_profile.id, "self_care", {"sleep_quality": 1, "work_life_balance": 2},
            flags=flags, analyzer=fake_analyzer,
        )
        assert result.persona_message["context"] == "low_scores"
        assert result.persona_message["persona"] == "friend"
        assert "Anna" in result.persona_message["message"]


def test_analysis_is_write_once(db_session, client_profile):
    round_ = AssessmentRound(user_id=client_profile.id, pillar_key="skills", answers={}, scores={"overall": 5})
    db_session.add(round_)
    db_session.flush()

    attach_analysis(db_session, round_, "First take")
    with pytest.raises(ConflictError) as exc:
        attach_analysis(db_session, round_, "Second take")
    assert exc.value.error_code == "ANALYSIS_ALREADY_ATTACHED"
    assert round_.ai_analysis == "First take"
