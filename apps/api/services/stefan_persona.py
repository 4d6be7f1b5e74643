"""
Stefan persona selector.

Maps an interaction context to one of four personas and a message template.
Static table; unknown contexts get the mentor voice.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional

from core.feature_flags import FeatureFlags


class Persona(str, Enum):
    MENTOR = "mentor"
    CHEERLEADER = "cheerleader"
    STRATEGIST = "strategist"
    FRIEND = "friend"


@dataclass(frozen=True)
class PersonaTemplate:
    persona: Persona
    template: str


PERSONA_TABLE: Dict[str, PersonaTemplate] = {
    "first_login": PersonaTemplate(
        Persona.FRIEND,
        "Hi {first_name}, I'm Stefan. I'll be with you through your whole development journey. "
        "Let's start with a short welcome assessment so I can get to know you.",
    ),
    "welcome": PersonaTemplate(
        Persona.MENTOR,
        "Welcome, {first_name}. The Wheel of Life gives us a map of where you are today. "
        "Take your time and answer honestly.",
    ),
    "assessment_completed": PersonaTemplate(
        Persona.CHEERLEADER,
        "Great work, {first_name}! You finished another assessment. "
        "Your analysis and next steps are waiting on your timeline.",
    ),
    "low_scores": PersonaTemplate(
        Persona.FRIEND,
        "Thank you for being honest, {first_name}. Low scores are a starting point, not a verdict. "
        "We'll take this one small step at a time.",
    ),
    "high_scores": PersonaTemplate(
        Persona.CHEERLEADER,
        "Impressive, {first_name}! You're strong here. Let's use that strength to lift the other pillars.",
    ),
    "milestone_achievement": PersonaTemplate(
        Persona.CHEERLEADER,
        "You reached a milestone, {first_name}! Take a moment to notice how far you've come.",
    ),
    "streak": PersonaTemplate(
        Persona.CHEERLEADER,
        "You're on a roll, {first_name}. Consistency like this is what creates real change.",
    ),
    "inactivity": PersonaTemplate(
        Persona.FRIEND,
        "Hi {first_name}, it's been a while. No pressure, your journey is right where you left it.",
    ),
    "goal_setting": PersonaTemplate(
        Persona.STRATEGIST,
        "Let's make your next goal concrete, {first_name}: what, by when, and how we'll know it's done.",
    ),
    "planning": PersonaTemplate(
        Persona.STRATEGIST,
        "Time to plan, {first_name}. Pick the one pillar that would make everything else easier and start there.",
    ),
}

DEFAULT_TEMPLATE = PersonaTemplate(
    Persona.MENTOR,
    "Hi {first_name}, I'm here whenever you want to talk about your next step.",
)

# Single voice used when personas are switched off
NEUTRAL_TEMPLATE = "Hi {first_name}, here is an update on your development journey."

LOW_SCORE_THRESHOLD = 4.0


def select_persona(context: str) -> PersonaTemplate:
    return PERSONA_TABLE.get((context or "").strip().lower(), DEFAULT_TEMPLATE)


def context_for_score(overall: Optional[float]) -> str:
    if overall is not None and overall < LOW_SCORE_THRESHOLD:
        return "low_scores"
    return "assessment_completed"


def build_persona_message(
    context: str,
    first_name: Optional[str],
    flags: Optional[FeatureFlags] = None,
) -> Dict[str, str]:
    """Returns {persona, context, message}."""
    name = (first_name or "").strip() or "there"
    if flags is not None and not flags.stefan_personas:
        return {
            "persona": Persona.MENTOR.value,
            "context": context,
            "message": NEUTRAL_TEMPLATE.format(first_name=name),
        }

    selected = select_persona(context)
    return {
        "persona": selected.persona.value,
        "context": context,
        "message": selected.template.format(first_name=name),
    }
