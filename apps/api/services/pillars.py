"""
Assessment kinds and pillar registry.

One closed enumeration (AssessmentKind) and one registry that maps every kind
to its display name, question set, scoring rule and insight rule. Everything
that needs to know "which assessments exist" reads it from here.

Scoring:
- scale questions are answered 1-10 and used as-is (some are inverted so
  that a high raw answer means a low score, e.g. stress);
- slider questions are answered 0-100 and scaled to 0-10;
- text questions are carried through to the AI prompt and never scored;
- overall = weighted mean of answered numeric questions, rounded to 2 dp,
  0 when nothing numeric was answered.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from core.exceptions import ValidationError


class AssessmentKind(str, Enum):
    WELCOME = "welcome"
    SELF_CARE = "self_care"
    SKILLS = "skills"
    TALENT = "talent"
    BRAND = "brand"
    ECONOMY = "economy"

    @property
    def is_pillar(self) -> bool:
        return self is not AssessmentKind.WELCOME

    @property
    def assessment_type(self) -> str:
        return "pillar" if self.is_pillar else "welcome"


# Recommendation order once welcome is done
PILLAR_PRIORITY: Tuple[AssessmentKind, ...] = (
    AssessmentKind.SELF_CARE,
    AssessmentKind.SKILLS,
    AssessmentKind.TALENT,
    AssessmentKind.BRAND,
    AssessmentKind.ECONOMY,
)

PILLAR_KINDS = frozenset(PILLAR_PRIORITY)
ALL_KINDS: Tuple[AssessmentKind, ...] = tuple(AssessmentKind)


def parse_assessment_kind(value: Any) -> AssessmentKind:
    """
    Accept "self_care", "self-care", "Self Care" and friends.

    Raises ValidationError for anything outside the closed set.
    """
    if isinstance(value, AssessmentKind):
        return value
    raw = str(value or "").strip().lower().replace("-", "_").replace(" ", "_")
    try:
        return AssessmentKind(raw)
    except ValueError:
        raise ValidationError(f"Unknown assessment kind: {value!r}", field="kind")


@dataclass(frozen=True)
class Question:
    key: str
    text: str
    type: str  # scale | slider | text
    weight: float = 1.0
    min: Optional[int] = None
    max: Optional[int] = None
    inverted: bool = False

    @property
    def is_numeric(self) -> bool:
        return self.type in ("scale", "slider")

    def scaled(self, value: float) -> float:
        """Map a raw answer onto the common 0-10 scale."""
        if self.type == "slider":
            return (value / 100.0) * 10.0
        if self.inverted:
            return (self.max + 1) - value
        return float(value)


def _scale(key: str, text: str, weight: float = 1.0, inverted: bool = False) -> Question:
    return Question(key=key, text=text, type="scale", weight=weight, min=1, max=10, inverted=inverted)


def _slider(key: str, text: str, weight: float) -> Question:
    return Question(key=key, text=text, type="slider", weight=weight, min=0, max=100)


def _text(key: str, text: str) -> Question:
    return Question(key=key, text=text, type="text")


@dataclass(frozen=True)
class InsightRule:
    """
    Thresholds are in raw answer units (1-10 for scale, 0-100 for slider).
    level_bands is a descending list of (min_score, label); the first band the
    overall score reaches wins, the final label is the fallback.
    """
    low_label: str
    low_threshold: float
    high_label: str
    high_threshold: float
    level_label: str
    level_bands: Tuple[Tuple[float, str], ...]
    fallback_level: str


@dataclass(frozen=True)
class PillarDefinition:
    kind: AssessmentKind
    name: str
    description: str
    questions: Tuple[Question, ...]
    insight_rule: InsightRule
    ai_focus: str
    questions_by_key: Dict[str, Question] = field(init=False, repr=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "questions_by_key", {q.key: q for q in self.questions})

    @property
    def numeric_questions(self) -> List[Question]:
        return [q for q in self.questions if q.is_numeric]


WHEEL_OF_LIFE_AREAS = (
    "health",
    "career",
    "finances",
    "relationships",
    "personal_growth",
    "fun_recreation",
    "environment",
    "family_friends",
)

# Lowest Wheel-of-Life area -> first pillar to work on
WHEEL_AREA_TO_PILLAR: Dict[str, AssessmentKind] = {
    "health": AssessmentKind.SELF_CARE,
    "relationships": AssessmentKind.SELF_CARE,
    "fun_recreation": AssessmentKind.SELF_CARE,
    "environment": AssessmentKind.SELF_CARE,
    "family_friends": AssessmentKind.SELF_CARE,
    "career": AssessmentKind.SKILLS,
    "finances": AssessmentKind.ECONOMY,
    "personal_growth": AssessmentKind.TALENT,
}


REGISTRY: Dict[AssessmentKind, PillarDefinition] = {
    AssessmentKind.WELCOME: PillarDefinition(
        kind=AssessmentKind.WELCOME,
        name="Welcome Assessment",
        description="Wheel of Life: how satisfied you are across eight life areas",
        questions=tuple(
            _scale(area, f"How satisfied are you with your {area.replace('_', ' ')}?")
            for area in WHEEL_OF_LIFE_AREAS
        ),
        insight_rule=InsightRule(
            low_label="critical_areas", low_threshold=3,
            high_label="strong_areas", high_threshold=8,
            level_label="life_balance",
            level_bands=((7, "balanced"), (5, "mixed")),
            fallback_level="needs_attention",
        ),
        ai_focus="overall life balance and where to start the development journey",
    ),
    AssessmentKind.SELF_CARE: PillarDefinition(
        kind=AssessmentKind.SELF_CARE,
        name="Self Care",
        description="Physical and mental health, rest and recovery",
        questions=(
            _scale("sleep_quality", "How well do you sleep at night?", 1.2),
            _scale("stress_level", "How stressed do you feel day to day?", 1.3, inverted=True),
            _scale("exercise_frequency", "How often do you exercise per week?", 1.0),
            _scale("nutrition_quality", "How satisfied are you with your eating habits?", 1.0),
            _scale("work_life_balance", "How balanced is your life between work and rest?", 1.5),
        ),
        insight_rule=InsightRule(
            low_label="critical_areas", low_threshold=3,
            high_label="strong_areas", high_threshold=8,
            level_label="overall_wellness",
            level_bands=((7, "strong"), (5, "moderate")),
            fallback_level="needs_attention",
        ),
        ai_focus="wellbeing, stress management and recovery",
    ),
    AssessmentKind.SKILLS: PillarDefinition(
        kind=AssessmentKind.SKILLS,
        name="Skills",
        description="Skills and competencies for career development",
        questions=(
            _slider("skill_training_regularity", "I practise my craft regularly.", 1.2),
            _slider("feedback_quality", "I get the right feedback from others.", 1.3),
            _slider("technical_improvement_time", "I spend time improving my technical skills.", 1.4),
            _slider("development_feeling", "I feel that I am developing.", 1.5),
            _text("skill_improvement_needs", "What would help you improve your skills right now?"),
        ),
        insight_rule=InsightRule(
            low_label="development_priorities", low_threshold=40,
            high_label="strong_areas", high_threshold=80,
            level_label="skill_level",
            level_bands=((8, "expert"), (6, "proficient"), (4, "developing")),
            fallback_level="beginner",
        ),
        ai_focus="skill development, practice habits and feedback loops",
    ),
    AssessmentKind.TALENT: PillarDefinition(
        kind=AssessmentKind.TALENT,
        name="Talent",
        description="Natural gifts and unique strengths",
        questions=(
            _slider("drive_and_focus", "I have strong drive and focus.", 1.4),
            _slider("creativity_ideas", "I am creative and come up with new ideas.", 1.5),
            _slider("idea_to_action", "I can quickly turn ideas into action.", 1.3),
            _slider("unique_voice", "I have a unique voice or style.", 1.2),
            _text("creativity_usage", "How do you use your creativity today?"),
        ),
        insight_rule=InsightRule(
            low_label="development_areas", low_threshold=50,
            high_label="talent_strengths", high_threshold=80,
            level_label="overall_talent_level",
            level_bands=((8, "exceptional"), (6, "strong"), (4, "developing")),
            fallback_level="emerging",
        ),
        ai_focus="natural strengths, creativity and execution",
    ),
    AssessmentKind.BRAND: PillarDefinition(
        kind=AssessmentKind.BRAND,
        name="Brand",
        description="Personal brand and visibility",
        questions=(
            _slider("brand_clarity", "My brand feels clear and recognisable.", 1.5),
            _slider("platform_messaging", "I signal the right things on my platforms.", 1.4),
            _slider("message_reach", "My message reaches people.", 1.3),
            _slider("credibility", "I am perceived as credible.", 1.2),
            _text("brand_aspiration", "How do you want your brand to be perceived?"),
        ),
        insight_rule=InsightRule(
            low_label="improvement_areas", low_threshold=50,
            high_label="strong_areas", high_threshold=80,
            level_label="overall_brand_maturity",
            level_bands=((8, "mature"), (6, "growing"), (4, "emerging")),
            fallback_level="undefined",
        ),
        ai_focus="personal brand clarity, positioning and reach",
    ),
    AssessmentKind.ECONOMY: PillarDefinition(
        kind=AssessmentKind.ECONOMY,
        name="Economy",
        description="Financial stability and growth",
        questions=(
            _slider("financial_security", "I feel financially secure in my current situation.", 1.5),
            _slider("clear_income_sources", "I have clear income streams tied to my work.", 1.4),
            _slider("new_income_opportunities", "I see new ways to earn from my brand.", 1.3),
            _slider("cost_control", "I am in control of my costs.", 1.2),
            _text("economic_improvement_ideas", "What would increase your financial security and income?"),
        ),
        insight_rule=InsightRule(
            low_label="priority_areas", low_threshold=50,
            high_label="strong_areas", high_threshold=80,
            level_label="financial_stability",
            level_bands=((8, "very_stable"), (6, "stable"), (4, "developing")),
            fallback_level="unstable",
        ),
        ai_focus="income streams, financial security and cost control",
    ),
}


def get_definition(kind: Any) -> PillarDefinition:
    return REGISTRY[parse_assessment_kind(kind)]


def _is_number(value: Any) -> bool:
    # bool is an int subclass; a checkbox answer is not a score
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def validate_answers(kind: Any, answers: Mapping[str, Any], *, partial: bool = True) -> Dict[str, Any]:
    """
    Check answer keys, types and ranges against the question set.

    None values are treated as unanswered and dropped. With partial=False at
    least one numeric question must be answered.
    """
    definition = get_definition(kind)
    if answers is None:
        answers = {}
    if not isinstance(answers, Mapping):
        raise ValidationError("Answers must be an object of question_key -> value", field="answers")

    cleaned: Dict[str, Any] = {}
    for key, value in answers.items():
        question = definition.questions_by_key.get(key)
        if question is None:
            raise ValidationError(f"Unknown question '{key}' for {definition.kind.value}", field="answers")
        if value is None:
            continue
        if question.is_numeric:
            if not _is_number(value):
                raise ValidationError(f"Answer to '{key}' must be a number", field="answers")
            if value < question.min or value > question.max:
                raise ValidationError(
                    f"Answer to '{key}' must be between {question.min} and {question.max}",
                    field="answers",
                )
        elif not isinstance(value, str):
            raise ValidationError(f"Answer to '{key}' must be text", field="answers")
        cleaned[key] = value

    if not partial and not any(q.key in cleaned for q in definition.numeric_questions):
        raise ValidationError("At least one rated question must be answered", field="answers")

    return cleaned


def calculate_scores(kind: Any, answers: Mapping[str, Any]) -> Dict[str, float]:
    """
    Per-question scaled values (0-10) plus "overall".

    Welcome weights every area equally, so overall is the plain mean there.
    """
    definition = get_definition(kind)
    scores: Dict[str, float] = {}
    total = 0.0
    total_weight = 0.0

    for question in definition.numeric_questions:
        value = answers.get(question.key)
        if not _is_number(value):
            continue
        scaled = question.scaled(value)
        scores[question.key] = round(scaled, 2)
        total += scaled * question.weight
        total_weight += question.weight

    scores["overall"] = round(total / total_weight, 2) if total_weight > 0 else 0.0
    return scores


def generate_insights(kind: Any, answers: Mapping[str, Any], overall: float) -> Dict[str, Any]:
    """Critical/strong areas and a level label, used as AI prompt context."""
    definition = get_definition(kind)
    rule = definition.insight_rule

    low, high = [], []
    for question in definition.numeric_questions:
        value = answers.get(question.key)
        if not _is_number(value):
            continue
        if value <= rule.low_threshold:
            low.append(question.key)
        if value >= rule.high_threshold:
            high.append(question.key)

    level = rule.fallback_level
    for threshold, label in rule.level_bands:
        if overall >= threshold:
            level = label
            break

    insights: Dict[str, Any] = {
        rule.low_label: low,
        rule.high_label: high,
        rule.level_label: level,
    }
    free_text = {q.key: answers[q.key] for q in definition.questions if q.type == "text" and answers.get(q.key)}
    if free_text:
        insights["free_text"] = free_text
    return insights


def recommend_next(
    completed: Iterable[Any],
    just_completed: Optional[Any] = None,
    welcome_scores: Optional[Mapping[str, float]] = None,
) -> Optional[AssessmentKind]:
    """
    Next assessment to suggest.

    welcome first; right after welcome, the pillar behind the weakest
    Wheel-of-Life area; otherwise the first pillar in priority order that has
    not been completed. None once everything is done.
    """
    done = {parse_assessment_kind(k) for k in completed}
    if AssessmentKind.WELCOME not in done:
        return AssessmentKind.WELCOME

    if just_completed is not None and parse_assessment_kind(just_completed) is AssessmentKind.WELCOME and welcome_scores:
        areas = [(welcome_scores[a], a) for a in WHEEL_OF_LIFE_AREAS if _is_number(welcome_scores.get(a))]
        if areas:
            lowest_area = min(areas)[1]
            candidate = WHEEL_AREA_TO_PILLAR.get(lowest_area, AssessmentKind.SELF_CARE)
            if candidate not in done:
                return candidate

    for kind in PILLAR_PRIORITY:
        if kind not in done:
            return kind
    return None


def describe_kinds() -> List[Dict[str, Any]]:
    """Question sets for the client, in display order."""
    return [
        {
            "kind": d.kind.value,
            "assessment_type": d.kind.assessment_type,
            "name": d.name,
            "description": d.description,
            "questions": [
                {
                    "key": q.key,
                    "text": q.text,
                    "type": q.type,
                    "min": q.min,
                    "max": q.max,
                    "weight": q.weight,
                }
                for q in d.questions
            ],
        }
        for d in REGISTRY.values()
    ]
