"""
Feature flags as an explicit configuration object.

Flags are resolved once at startup and handed to the services that need
them. Precedence (highest first):

    1. explicit overrides passed to load_feature_flags()
    2. environment variables (FEATURE_AI_ANALYSIS=false, ...)
    3. defaults declared below

Nothing in the codebase reads flags from the environment directly.
"""
from typing import Any, Dict, Optional

from fastapi import Request
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    """Product switches for the coaching platform."""

    model_config = SettingsConfigDict(
        env_prefix="FEATURE_",
        case_sensitive=False,
        extra="ignore",
        frozen=True,
    )

    # Request Stefan AI analysis when an assessment is completed
    ai_analysis: bool = True
    # Turn AI recommendations into timeline entries
    auto_actionables: bool = True
    # Transactional email (welcome, reminders, coach messages, alerts)
    email_notifications: bool = True
    # Persona-specific greetings; off gives the neutral mentor voice
    stefan_personas: bool = True
    # Periodic reminder emails for stale drafts
    assessment_reminders: bool = True

    def as_dict(self) -> Dict[str, bool]:
        return self.model_dump()


def load_feature_flags(overrides: Optional[Dict[str, Any]] = None) -> FeatureFlags:
    """
    Build the flag set for this process.

    Keyword init values beat environment values in pydantic-settings, which is
    exactly the override > environment > default order we want.
    """
    return FeatureFlags(**(overrides or {}))


# Process-wide default, replaced by main.py at startup
DEFAULT_FLAGS = FeatureFlags()


def get_feature_flags(request: Request) -> FeatureFlags:
    """FastAPI dependency: the flag set main.py stored on app.state."""
    return getattr(request.app.state, "feature_flags", DEFAULT_FLAGS)
