"""
Feature flag resolution: overrides beat environment, environment beats defaults.
"""
import pydantic
import pytest

from core.feature_flags import FeatureFlags, load_feature_flags


def test_defaults_all_enabled(monkeypatch):
    for name in FeatureFlags.model_fields:
        monkeypatch.delenv(f"FEATURE_{name.upper()}", raising=False)
    flags = load_feature_flags()
    assert all(flags.as_dict().values())
    assert set(flags.as_dict()) == {
        "ai_analysis",
        "auto_actionables",
        "email_notifications",
        "stefan_personas",
        "assessment_reminders",
    }


def test_environment_beats_default(monkeypatch):
    monkeypatch.setenv("FEATURE_AI_ANALYSIS", "false")
    assert load_feature_flags().ai_analysis is False


def test_override_beats_environment(monkeypatch):
    monkeypatch.setenv("FEATURE_AI_ANALYSIS", "false")
    assert load_feature_flags({"ai_analysis": True}).ai_analysis is True


def test_flags_are_immutable():
    flags = load_feature_flags()
    with pytest.raises(pydantic.ValidationError):
        flags.ai_analysis = False
