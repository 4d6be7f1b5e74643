"""
Assessment Flow Tracker

Per (user, assessment kind) lifecycle:

    NotStarted --save_draft--> InProgress --complete--> Completed
                                   |
                                   +-- draft older than 168h --> Expired

- Completed means the latest round carries an AI analysis. A round whose
  analysis is still missing reports NotStarted with analysis_pending=True
  (the client may start over; consolidation can still repair the round).
- Expired acts like NotStarted for what the client may do (should_restart)
  and the stale draft stays in the table until it is cleared or overwritten.
- A draft saved after the latest completed round opens a new cycle; the
  status then describes that draft.

complete_assessment() runs the multi-step completion sequentially with no
compensating transaction. Only persisting the round may fail the call; every
later step logs its failure and the round is kept.
"""

import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from core.cache import invalidate_client_cache_on_commit
from core.config import settings
from core.exceptions import ConflictError
from core.feature_flags import DEFAULT_FLAGS, FeatureFlags
from core.timeutil import ensure_utc, hours_between, utcnow
from models import AssessmentRound, AssessmentState, Profile
from services.ai_analysis import (
    AnalysisRequest,
    AnalysisResult,
    StefanAnalysisService,
    build_analysis_context,
    get_analysis_service,
)
from services.journey_progress import recalculate_journey_progress, record_assessment_completion
from services.path_entries import create_assessment_actionables
from services.pillars import (
    AssessmentKind,
    calculate_scores,
    get_definition,
    parse_assessment_kind,
    validate_answers,
)
from services.stefan_persona import build_persona_message, context_for_score

logger = logging.getLogger(__name__)


class FlowState(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    EXPIRED = "expired"
    ERROR = "error"


@dataclass
class AssessmentStatus:
    state: FlowState
    has_completed: bool = False
    has_in_progress: bool = False
    can_start: bool = False
    can_resume: bool = False
    should_restart: bool = False
    status_message: str = ""
    last_score: Optional[float] = None
    draft_saved_at: Optional[datetime] = None
    last_completed_at: Optional[datetime] = None
    analysis_pending: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass(frozen=True)
class DraftSnapshot:
    last_saved_at: datetime


@dataclass(frozen=True)
class RoundSnapshot:
    created_at: datetime
    has_analysis: bool
    overall: Optional[float]


def error_status() -> AssessmentStatus:
    """Conservative default when the store cannot be read."""
    return AssessmentStatus(
        state=FlowState.ERROR,
        can_start=True,
        status_message="We couldn't load your progress. You can start the assessment.",
    )


def derive_status(
    draft: Optional[DraftSnapshot],
    latest_round: Optional[RoundSnapshot],
    now: datetime,
    expiry_hours: float = 168,
) -> AssessmentStatus:
    """Pure state derivation; get_status() feeds it from the store."""
    last_score = latest_round.overall if latest_round else None
    last_completed_at = ensure_utc(latest_round.created_at) if latest_round else None

    draft_is_current = draft is not None and (
        latest_round is None
        or ensure_utc(draft.last_saved_at) > ensure_utc(latest_round.created_at)
    )

    if draft_is_current:
        saved_at = ensure_utc(draft.last_saved_at)
        if hours_between(saved_at, now) > expiry_hours:
            return AssessmentStatus(
                state=FlowState.EXPIRED,
                can_start=True,
                should_restart=True,
                status_message="Your saved answers are more than 7 days old. Please start again.",
                last_score=last_score,
                draft_saved_at=saved_at,
                last_completed_at=last_completed_at,
            )
        return AssessmentStatus(
            state=FlowState.IN_PROGRESS,
            has_in_progress=True,
            can_resume=True,
            status_message="You have an assessment in progress. Pick up where you left off.",
            last_score=last_score,
            draft_saved_at=saved_at,
            last_completed_at=last_completed_at,
        )

    if latest_round is not None:
        if latest_round.has_analysis:
            return AssessmentStatus(
                state=FlowState.COMPLETED,
                has_completed=True,
                status_message="Assessment completed. Your analysis is ready.",
                last_score=last_score,
                last_completed_at=last_completed_at,
            )
        return AssessmentStatus(
            state=FlowState.NOT_STARTED,
            can_start=True,
            status_message="Your answers are saved but the analysis isn't available yet. You can take the assessment again.",
            last_score=last_score,
            last_completed_at=last_completed_at,
            analysis_pending=True,
        )

    return AssessmentStatus(
        state=FlowState.NOT_STARTED,
        can_start=True,
        status_message="Ready to start.",
    )


def get_draft(db: Session, user_id: UUID, kind: AssessmentKind) -> Optional[AssessmentState]:
    return db.query(AssessmentState).filter(
        AssessmentState.user_id == user_id,
        AssessmentState.assessment_key == kind.value,
    ).first()


def get_latest_round(db: Session, user_id: UUID, kind: AssessmentKind) -> Optional[AssessmentRound]:
    return (
        db.query(AssessmentRound)
        .filter(AssessmentRound.user_id == user_id, AssessmentRound.pillar_key == kind.value)
        .order_by(AssessmentRound.created_at.desc())
        .first()
    )


def get_status(
    db: Session,
    user_id: UUID,
    kind: Any,
    now: Optional[datetime] = None,
    expiry_hours: Optional[float] = None,
) -> AssessmentStatus:
    """Read-only. Store failures degrade to error_status()."""
    kind = parse_assessment_kind(kind)
    now = now or utcnow()
    expiry = settings.DRAFT_EXPIRY_HOURS if expiry_hours is None else expiry_hours

    try:
        draft = get_draft(db, user_id, kind)
        latest = get_latest_round(db, user_id, kind)
    except SQLAlchemyError as e:
        logger.error(
            f"Assessment status read failed: {e}",
            extra={"extra_fields": {"user_id": str(user_id), "kind": kind.value}},
        )
        return error_status()

    return derive_status(
        DraftSnapshot(last_saved_at=draft.last_saved_at) if draft else None,
        RoundSnapshot(
            created_at=latest.created_at,
            has_analysis=latest.ai_analysis is not None,
            overall=(latest.scores or {}).get("overall"),
        ) if latest else None,
        now,
        expiry,
    )


def save_draft(
    db: Session,
    user_id: UUID,
    kind: Any,
    answers: Mapping[str, Any],
    now: Optional[datetime] = None,
    expiry_hours: Optional[float] = None,
) -> AssessmentState:
    """
    Upsert the draft. Answers merge into a live draft; an expired draft has
    its answers replaced so stale values do not leak into the new attempt.
    """
    kind = parse_assessment_kind(kind)
    cleaned = validate_answers(kind, answers, partial=True)
    now = now or utcnow()
    expiry = settings.DRAFT_EXPIRY_HOURS if expiry_hours is None else expiry_hours

    draft = get_draft(db, user_id, kind)
    if draft is None:
        draft = AssessmentState(
            user_id=user_id,
            assessment_type=kind.assessment_type,
            assessment_key=kind.value,
            form_data=cleaned,
            last_saved_at=now,
        )
        db.add(draft)
    elif hours_between(draft.last_saved_at, now) > expiry:
        draft.form_data = cleaned
        draft.last_saved_at = now
        draft.completed_at = None
        draft.reminder_sent_at = None
    else:
        merged = dict(draft.form_data or {})
        merged.update(cleaned)
        draft.form_data = merged
        draft.last_saved_at = now

    db.flush()
    return draft


def clear_draft(db: Session, user_id: UUID, kind: Any) -> bool:
    """Idempotent. Returns True when a row was removed."""
    kind = parse_assessment_kind(kind)
    deleted = db.query(AssessmentState).filter(
        AssessmentState.user_id == user_id,
        AssessmentState.assessment_key == kind.value,
    ).delete(synchronize_session=False)
    db.flush()
    return bool(deleted)


def attach_analysis(
    db: Session,
    round_: AssessmentRound,
    analysis: str,
    recommendations: Optional[List[str]] = None,
    now: Optional[datetime] = None,
) -> AssessmentRound:
    """Write-once: a round's analysis is never replaced."""
    if round_.ai_analysis is not None:
        raise ConflictError(
            f"Analysis already attached to round {round_.id}",
            error_code="ANALYSIS_ALREADY_ATTACHED",
        )
    round_.ai_analysis = analysis
    round_.ai_recommendations = list(recommendations or [])
    round_.analysis_attached_at = now or utcnow()
    db.flush()
    return round_


def request_analysis(
    analyzer: StefanAnalysisService,
    round_: AssessmentRound,
    now: Optional[datetime] = None,
) -> AnalysisResult:
    """Every call counts as one attempt on the round, successful or not."""
    round_.analysis_attempts = (round_.analysis_attempts or 0) + 1
    round_.last_analysis_attempt_at = now or utcnow()
    answers = dict(round_.answers or {})
    scores = dict(round_.scores or {})
    request = AnalysisRequest(
        pillar_key=round_.pillar_key,
        client_id=str(round_.user_id),
        answers=answers,
        calculated_scores=scores,
        context=build_analysis_context(round_.pillar_key, answers, scores),
    )
    try:
        return analyzer.analyze(request)
    except Exception as e:
        logger.error(f"Analysis request raised for round {round_.id}: {e}")
        return AnalysisResult(success=False, error=str(e))


@dataclass
class CompletionResult:
    round_id: str
    kind: str
    scores: Dict[str, float]
    analysis_attached: bool = False
    ai_analysis: Optional[str] = None
    recommendations: List[str] = field(default_factory=list)
    actionables_created: int = 0
    draft_cleared: bool = False
    journey_updated: bool = False
    journey_progress: Optional[int] = None
    current_phase: Optional[str] = None
    next_recommended_assessment: Optional[str] = None
    persona_message: Optional[Dict[str, str]] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def status(self) -> str:
        return "completed" if self.analysis_attached else "completed_without_analysis"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["status"] = self.status
        return data


def _run_step(db: Session, result: CompletionResult, step: str, fn):
    """Run an optional step inside a savepoint; failures are logged and noted."""
    try:
        with db.begin_nested():
            return fn()
    except Exception as e:
        logger.error(
            f"Assessment completion step '{step}' failed: {e}",
            extra={"extra_fields": {"round_id": result.round_id, "step": step}},
        )
        result.warnings.append(step)
        return None


def complete_assessment(
    db: Session,
    user_id: UUID,
    kind: Any,
    answers: Mapping[str, Any],
    flags: Optional[FeatureFlags] = None,
    analyzer: Optional[StefanAnalysisService] = None,
    now: Optional[datetime] = None,
) -> CompletionResult:
    flags = flags or DEFAULT_FLAGS
    now = now or utcnow()

    # 1. validate + score, before any write
    kind = parse_assessment_kind(kind)
    cleaned = validate_answers(kind, answers, partial=False)
    scores = calculate_scores(kind, cleaned)

    # 2. persist the round; the only step allowed to fail the call
    round_ = AssessmentRound(
        user_id=user_id,
        pillar_key=kind.value,
        answers=cleaned,
        scores=scores,
        created_at=now,
    )
    db.add(round_)
    db.flush()

    result = CompletionResult(round_id=str(round_.id), kind=kind.value, scores=scores)

    # 3. AI analysis
    if flags.ai_analysis:
        analysis = request_analysis(analyzer or get_analysis_service(), round_, now)
        if analysis.success:
            attached = _run_step(
                db, result, "attach_analysis",
                lambda: attach_analysis(db, round_, analysis.analysis, analysis.recommendations, now),
            )
            if attached is not None:
                result.analysis_attached = True
                result.ai_analysis = analysis.analysis
                result.recommendations = list(analysis.recommendations)
        else:
            logger.warning(
                f"Completing {kind.value} without analysis: {analysis.error}",
                extra={"extra_fields": {"user_id": str(user_id), "round_id": result.round_id}},
            )

    # 4. actionables
    if flags.auto_actionables:
        entries = _run_step(
            db, result, "actionables",
            lambda: create_assessment_actionables(db, round_, result.recommendations),
        )
        result.actionables_created = len(entries or [])

    # 5. drop the draft
    cleared = _run_step(db, result, "clear_draft", lambda: clear_draft(db, user_id, kind) or True)
    result.draft_cleared = bool(cleared)

    # 6. journey; a kind is recorded as completed only once analysed.
    # Consolidation records it after a repair.
    def _update_journey():
        if result.analysis_attached:
            record_assessment_completion(db, user_id, kind, scores, now=now)
        return recalculate_journey_progress(db, user_id, now=now)

    journey = _run_step(db, result, "journey", _update_journey)
    if journey is not None:
        result.journey_updated = True
        result.journey_progress = journey.journey_progress
        result.current_phase = journey.current_phase
        result.next_recommended_assessment = journey.next_recommended_assessment

    invalidate_client_cache_on_commit(db, user_id)

    # 7. persona message
    profile = db.query(Profile).filter(Profile.id == user_id).first()
    result.persona_message = build_persona_message(
        context_for_score(scores.get("overall")),
        profile.first_name if profile else None,
        flags,
    )

    logger.info(
        f"Assessment {kind.value} completed ({result.status})",
        extra={"extra_fields": {
            "user_id": str(user_id),
            "round_id": result.round_id,
            "overall": scores.get("overall"),
            "analysis_attached": result.analysis_attached,
            "warnings": result.warnings,
        }},
    )
    return result


def list_rounds(
    db: Session,
    user_id: UUID,
    kind: Optional[Any] = None,
    limit: int = 50,
) -> List[AssessmentRound]:
    q = db.query(AssessmentRound).filter(AssessmentRound.user_id == user_id)
    if kind is not None:
        q = q.filter(AssessmentRound.pillar_key == parse_assessment_kind(kind).value)
    return q.order_by(AssessmentRound.created_at.desc()).limit(limit).all()


def get_all_statuses(db: Session, user_id: UUID, now: Optional[datetime] = None) -> Dict[str, Dict[str, Any]]:
    now = now or utcnow()
    return {k.value: get_status(db, user_id, k, now=now).to_dict() for k in AssessmentKind}


def serialize_round(round_: AssessmentRound) -> Dict[str, Any]:
    return {
        "id": str(round_.id),
        "user_id": str(round_.user_id),
        "kind": round_.pillar_key,
        "name": get_definition(round_.pillar_key).name,
        "answers": dict(round_.answers or {}),
        "scores": dict(round_.scores or {}),
        "ai_analysis": round_.ai_analysis,
        "recommendations": list(round_.ai_recommendations or []),
        "created_at": round_.created_at,
    }
