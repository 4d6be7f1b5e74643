"""
Journey Progress Calculator

Turns four completion ratios into an overall 0-100 progress figure and a
journey phase, and keeps the per-user journey row up to date.

    weights = assessments 0.30, tasks 0.40, pillars 0.25, milestones 0.05
    ratio_i = completed_i / max(total_i, 1), clamped to [0, 1]
    overall = round(100 * sum(ratio_i * weight_i))

The pure calculation lives in calculate_journey_progress(); the database
side (counting, upserting) in recalculate_journey_progress().
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from core.timeutil import utcnow
from models import AssessmentRound, PathEntry, Task, UserJourneyState
from services.pillars import ALL_KINDS, PILLAR_KINDS, AssessmentKind, parse_assessment_kind, recommend_next

logger = logging.getLogger(__name__)


class JourneyPhase(str, Enum):
    WELCOME = "welcome"
    DEVELOPMENT_ACTIVE = "development_active"
    DEVELOPMENT_ADVANCED = "development_advanced"
    MASTERY = "mastery"


PROGRESS_WEIGHTS: Dict[str, float] = {
    "assessments": 0.30,
    "tasks": 0.40,
    "pillars": 0.25,
    "milestones": 0.05,
}

# Lower bound inclusive, checked top-down
PHASE_THRESHOLDS = (
    (75, JourneyPhase.MASTERY),
    (50, JourneyPhase.DEVELOPMENT_ADVANCED),
    (15, JourneyPhase.DEVELOPMENT_ACTIVE),
)


@dataclass(frozen=True)
class ProgressCounts:
    assessments_completed: int = 0
    assessments_total: int = len(ALL_KINDS)
    tasks_completed: int = 0
    tasks_total: int = 0
    pillars_activated: int = 0
    pillars_total: int = len(PILLAR_KINDS)
    milestones_completed: int = 0
    milestones_total: int = 0


@dataclass(frozen=True)
class JourneyProgress:
    overall: int
    phase: JourneyPhase
    ratios: Dict[str, float]


def _ratio(completed: int, total: int) -> float:
    value = max(completed, 0) / max(total, 1)
    return min(max(value, 0.0), 1.0)


def phase_for_progress(overall: int) -> JourneyPhase:
    for threshold, phase in PHASE_THRESHOLDS:
        if overall >= threshold:
            return phase
    return JourneyPhase.WELCOME


def calculate_journey_progress(counts: ProgressCounts) -> JourneyProgress:
    """Pure: no I/O, same counts in, same result out."""
    ratios = {
        "assessments": _ratio(counts.assessments_completed, counts.assessments_total),
        "tasks": _ratio(counts.tasks_completed, counts.tasks_total),
        "pillars": _ratio(counts.pillars_activated, counts.pillars_total),
        "milestones": _ratio(counts.milestones_completed, counts.milestones_total),
    }
    weighted = sum(ratios[k] * PROGRESS_WEIGHTS[k] for k in PROGRESS_WEIGHTS)
    # Half-up; the epsilon absorbs float noise (0.3 + 0.4 -> 0.7000000000000001)
    overall = int(math.floor(100 * weighted + 0.5 + 1e-9))
    overall = min(max(overall, 0), 100)
    return JourneyProgress(overall=overall, phase=phase_for_progress(overall), ratios=ratios)


def fetch_progress_counts(db: Session, user_id: UUID) -> ProgressCounts:
    """
    Four independent reads. They are not taken in one snapshot; a concurrent
    write may land between them and is picked up on the next recalculation.
    """
    # 1. assessments: distinct kinds with at least one round
    completed_kinds = {
        row[0]
        for row in db.query(AssessmentRound.pillar_key).filter(AssessmentRound.user_id == user_id).distinct()
    }
    assessments_completed = len(completed_kinds & {k.value for k in ALL_KINDS})

    # 2. tasks
    task_rows = db.query(Task.status, Task.pillar_key).filter(Task.user_id == user_id).all()
    tasks_total = len(task_rows)
    tasks_completed = sum(1 for status, _ in task_rows if status == "completed")

    # 3. pillars activated by a round or a task
    pillar_values = {k.value for k in PILLAR_KINDS}
    task_pillars = {pillar for _, pillar in task_rows if pillar}
    pillars_activated = len((completed_kinds | task_pillars) & pillar_values)

    # 4. milestones
    milestone_rows = db.query(PathEntry.status).filter(
        PathEntry.user_id == user_id, PathEntry.entry_type == "milestone"
    ).all()
    milestones_total = len(milestone_rows)
    milestones_completed = sum(1 for (status,) in milestone_rows if status == "completed")

    return ProgressCounts(
        assessments_completed=assessments_completed,
        tasks_completed=tasks_completed,
        tasks_total=tasks_total,
        pillars_activated=pillars_activated,
        milestones_completed=milestones_completed,
        milestones_total=milestones_total,
    )


def get_journey_state(db: Session, user_id: UUID) -> Optional[UserJourneyState]:
    return db.query(UserJourneyState).filter(UserJourneyState.user_id == user_id).first()


def get_or_create_journey_state(db: Session, user_id: UUID) -> UserJourneyState:
    state = get_journey_state(db, user_id)
    if state:
        return state
    state = UserJourneyState(
        user_id=user_id,
        current_phase=JourneyPhase.WELCOME.value,
        journey_progress=0,
        completed_assessments=[],
        next_recommended_assessment=AssessmentKind.WELCOME.value,
        journey_metadata={},
        last_activity_at=utcnow(),
    )
    db.add(state)
    db.flush()
    return state


def recalculate_journey_progress(db: Session, user_id: UUID, now: Optional[datetime] = None) -> UserJourneyState:
    """Count, calculate, upsert. Last write wins."""
    counts = fetch_progress_counts(db, user_id)
    progress = calculate_journey_progress(counts)

    state = get_or_create_journey_state(db, user_id)
    state.journey_progress = progress.overall
    state.current_phase = progress.phase.value
    state.last_activity_at = now or utcnow()
    db.flush()

    logger.info(
        "Journey recalculated",
        extra={"extra_fields": {
            "user_id": str(user_id),
            "journey_progress": progress.overall,
            "current_phase": progress.phase.value,
        }},
    )
    return state


def record_assessment_completion(
    db: Session,
    user_id: UUID,
    kind: Any,
    scores: Optional[Mapping[str, float]] = None,
    now: Optional[datetime] = None,
) -> UserJourneyState:
    """Append the kind to the completed list and move the recommendation on."""
    kind = parse_assessment_kind(kind)
    now = now or utcnow()
    state = get_or_create_journey_state(db, user_id)

    completed = list(state.completed_assessments or [])
    if kind.value not in completed:
        completed.append(kind.value)

    next_kind = recommend_next(
        completed,
        just_completed=kind,
        welcome_scores=scores if kind is AssessmentKind.WELCOME else None,
    )

    metadata = dict(state.journey_metadata or {})
    metadata[f"{kind.value}_completed_at"] = now.isoformat()
    if scores and "overall" in scores:
        metadata[f"{kind.value}_overall"] = scores["overall"]

    # New objects so the JSON columns are flagged dirty
    state.completed_assessments = completed
    state.journey_metadata = metadata
    state.next_recommended_assessment = next_kind.value if next_kind else None
    state.last_activity_at = now
    db.flush()
    return state


def reset_welcome_journey(db: Session, user_id: UUID) -> UserJourneyState:
    """Admin action: put the user back at the start of the journey."""
    state = get_or_create_journey_state(db, user_id)
    state.current_phase = JourneyPhase.WELCOME.value
    state.journey_progress = 0
    state.completed_assessments = []
    state.next_recommended_assessment = AssessmentKind.WELCOME.value
    state.journey_metadata = {"reset_at": utcnow().isoformat()}
    state.last_activity_at = utcnow()
    db.flush()
    logger.info(f"Journey reset to welcome for user {user_id}")
    return state


def serialize_journey_state(state: UserJourneyState) -> Dict[str, Any]:
    return {
        "user_id": str(state.user_id),
        "current_phase": state.current_phase,
        "journey_progress": state.journey_progress,
        "completed_assessments": list(state.completed_assessments or []),
        "next_recommended_assessment": state.next_recommended_assessment,
        "metadata": dict(state.journey_metadata or {}),
        "last_activity_at": state.last_activity_at,
    }
