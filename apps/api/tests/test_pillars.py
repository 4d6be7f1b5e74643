"""
Tests for the assessment kind registry: parsing, validation, scoring,
insights and next-assessment recommendation.
"""
import pytest

from core.exceptions import ValidationError
from services.pillars import (
    ALL_KINDS,
    REGISTRY,
    PILLAR_KINDS,
    AssessmentKind,
    calculate_scores,
    describe_kinds,
    generate_insights,
    parse_assessment_kind,
    recommend_next,
    validate_answers,
)


class TestAssessmentKind:
    def test_closed_set(self):
        assert {k.value for k in ALL_KINDS} == {"welcome", "self_care", "skills", "talent", "brand", "economy"}
        assert AssessmentKind.WELCOME not in PILLAR_KINDS
        assert len(PILLAR_KINDS) == 5

    @pytest.mark.parametrize("raw", ["self_care", "self-care", "Self Care", " SELF_CARE "])
    def test_parse_accepts_loose_spellings(self, raw):
        assert parse_assessment_kind(raw) is AssessmentKind.SELF_CARE

    def test_parse_rejects_unknown(self):
        with pytest.raises(ValidationError) as exc:
            parse_assessment_kind("happiness")
        assert exc.value.status_code == 422

    def test_assessment_type(self):
        assert AssessmentKind.WELCOME.assessment_type == "welcome"
        assert AssessmentKind.BRAND.assessment_type == "pillar"


class TestValidateAnswers:
    def test_unknown_question_rejected(self):
        with pytest.raises(ValidationError):
            validate_answers("self_care", {"mood": 5})

    def test_out_of_range_rejected(self):
        with pytest.raises(ValidationError):
            validate_answers("self_care", {"sleep_quality": 11})
        with pytest.raises(ValidationError):
            validate_answers("skills", {"feedback_quality": 101})

    def test_bool_is_not_a_number(self):
        with pytest.raises(ValidationError):
            validate_answers("self_care", {"sleep_quality": True})

    def test_none_values_dropped(self):
        assert validate_answers("self_care", {"sleep_quality": 5, "stress_level": None}) == {"sleep_quality": 5}

    def test_text_question_needs_text(self):
        with pytest.raises(ValidationError):
            validate_answers("skills", {"skill_improvement_needs": 5})

    def test_complete_needs_one_rated_answer(self):
        assert validate_answers("skills", {"skill_improvement_needs": "mentoring"}, partial=True)
        with pytest.raises(ValidationError):
            validate_answers("skills", {"skill_improvement_needs": "mentoring"}, partial=False)

    def test_answers_must_be_mapping(self):
        with pytest.raises(ValidationError):
            validate_answers("self_care", ["sleep_quality", 5])


class TestCalculateScores:
    def test_self_care_inverts_stress(self):
        scores = calculate_scores("self_care", {"sleep_quality": 2, "stress_level": 4})
        assert scores["sleep_quality"] == 2.0
        assert scores["stress_level"] == 7.0
        # (2 * 1.2 + 7 * 1.3) / 2.5
        assert scores["overall"] == 4.6

    def test_slider_scaled_to_ten(self):
        scores = calculate_scores("skills", {"feedback_quality": 80, "development_feeling": 40})
        assert scores["feedback_quality"] == 8.0
        assert scores["development_feeling"] == 4.0
        assert scores["overall"] == round((8.0 * 1.3 + 4.0 * 1.5) / 2.8, 2)

    def test_welcome_is_plain_mean(self):
        answers = {"health": 4, "career": 6, "finances": 8}
        assert calculate_scores("welcome", answers)["overall"] == 6.0

    def test_nothing_numeric_gives_zero(self):
        assert calculate_scores("talent", {"creativity_usage": "painting"}) == {"overall": 0.0}


def test_generate_insights_levels_and_areas():
    insights = generate_insights("self_care", {"sleep_quality": 2, "exercise_frequency": 9}, overall=5.5)
    assert insights["critical_areas"] == ["sleep_quality"]
    assert insights["strong_areas"] == ["exercise_frequency"]
    assert insights["overall_wellness"] == "moderate"

    low = generate_insights("economy", {"financial_security": 10}, overall=1.0)
    assert low["financial_stability"] == "unstable"
    assert low["priority_areas"] == ["financial_security"]


class TestRecommendNext:
    def test_welcome_first(self):
        assert recommend_next([]) is AssessmentKind.WELCOME
        assert recommend_next(["self_care"]) is AssessmentKind.WELCOME

    def test_weakest_wheel_area_after_welcome(self):
        scores = {"health": 8, "career": 7, "finances": 2, "relationships": 9}
        assert recommend_next(["welcome"], just_completed="welcome", welcome_scores=scores) is AssessmentKind.ECONOMY

    def test_priority_order_otherwise(self):
        assert recommend_next(["welcome"]) is AssessmentKind.SELF_CARE
        assert recommend_next(["welcome", "self_care", "skills"]) is AssessmentKind.TALENT

    def test_none_when_everything_done(self):
        assert recommend_next([k.value for k in ALL_KINDS]) is None


def test_describe_kinds_lists_every_kind():
    described = describe_kinds()
    assert [d["kind"] for d in described] == [k.value for k in REGISTRY]
    welcome = described[0]
    assert welcome["assessment_type"] == "welcome"
    assert len(welcome["questions"]) == 8
