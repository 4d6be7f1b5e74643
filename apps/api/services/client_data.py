"""
Client-scoped accessors.

Every function here runs the access gate before touching the client's rows,
so a coach whose assignment was deactivated is refused on the next call and
admins are never refused.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from core.cache import analytics_cache_key, get_cache, invalidate_client_cache_on_commit, set_cache
from core.config import settings
from core.database import apply_statement_timeout
from core.exceptions import APIException, NotFoundError, ValidationError
from core.timeutil import utcnow
from models import AssessmentRound, CalendarEvent, PathEntry, Profile, Task
from services.access_control import authorize_client_access
from services.journey_progress import (
    get_or_create_journey_state,
    recalculate_journey_progress,
    serialize_journey_state,
)
from services.path_entries import add_path_entry, list_path_entries
from services.pillars import PILLAR_KINDS, parse_assessment_kind

logger = logging.getLogger(__name__)

EVENT_TYPES = frozenset({"session", "deadline", "reminder", "other"})
TASK_STATUSES = frozenset({"pending", "in_progress", "completed"})


def _validate_pillar(pillar_key: Optional[str]) -> Optional[str]:
    if pillar_key is None:
        return None
    kind = parse_assessment_kind(pillar_key)
    if kind not in PILLAR_KINDS:
        raise ValidationError("pillar_key must be one of the five pillars", field="pillar_key")
    return kind.value


# --- Calendar ---

def get_client_calendar_events(
    db: Session,
    actor: Profile,
    client_id: UUID,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
) -> List[CalendarEvent]:
    authorize_client_access(db, actor, client_id, action="calendar.read")

    if start and end and end < start:
        raise ValidationError("end must not be before start", field="end")

    apply_statement_timeout(db, settings.CALENDAR_FETCH_TIMEOUT_S)
    q = db.query(CalendarEvent).filter(CalendarEvent.user_id == client_id)
    if start:
        q = q.filter(CalendarEvent.event_date >= start)
    if end:
        q = q.filter(CalendarEvent.event_date <= end)
    try:
        return q.order_by(CalendarEvent.event_date.asc()).all()
    except OperationalError as e:
        logger.error(f"Calendar fetch failed for client {client_id}: {e}")
        raise APIException(
            status_code=504,
            detail="Calendar fetch timed out",
            error_code="CALENDAR_TIMEOUT",
        )


def create_client_calendar_event(
    db: Session,
    actor: Profile,
    client_id: UUID,
    *,
    title: str,
    event_date: datetime,
    description: Optional[str] = None,
    event_type: str = "session",
    pillar_key: Optional[str] = None,
) -> CalendarEvent:
    authorize_client_access(db, actor, client_id, action="calendar.write")

    if not (title or "").strip():
        raise ValidationError("Title is required", field="title")
    if event_type not in EVENT_TYPES:
        raise ValidationError(f"Unknown event type: {event_type}", field="event_type")

    event = CalendarEvent(
        user_id=client_id,
        created_by=actor.id,
        title=title.strip(),
        description=description,
        event_date=event_date,
        event_type=event_type,
        pillar_key=_validate_pillar(pillar_key),
    )
    db.add(event)
    db.flush()

    add_path_entry(
        db,
        user_id=client_id,
        created_by=actor.id,
        entry_type="event",
        title=event.title,
        details=description,
        pillar_key=event.pillar_key,
        metadata={"calendar_event_id": str(event.id)},
        occurred_at=event_date,
    )
    return event


# --- Tasks ---

def get_client_tasks(
    db: Session,
    actor: Profile,
    client_id: UUID,
    status: Optional[str] = None,
) -> List[Task]:
    authorize_client_access(db, actor, client_id, action="tasks.read")
    if status is not None and status not in TASK_STATUSES:
        raise ValidationError(f"Unknown task status: {status}", field="status")

    q = db.query(Task).filter(Task.user_id == client_id)
    if status:
        q = q.filter(Task.status == status)
    return q.order_by(Task.created_at.desc()).all()


def create_client_task(
    db: Session,
    actor: Profile,
    client_id: UUID,
    *,
    title: str,
    description: Optional[str] = None,
    pillar_key: Optional[str] = None,
    deadline: Optional[datetime] = None,
) -> Task:
    authorize_client_access(db, actor, client_id, action="tasks.write")
    if not (title or "").strip():
        raise ValidationError("Title is required", field="title")

    task = Task(
        user_id=client_id,
        created_by=actor.id,
        title=title.strip(),
        description=description,
        pillar_key=_validate_pillar(pillar_key),
        deadline=deadline,
        status="pending",
    )
    db.add(task)
    db.flush()

    add_path_entry(
        db,
        user_id=client_id,
        created_by=actor.id,
        entry_type="task",
        title=task.title,
        details=description,
        pillar_key=task.pillar_key,
        metadata={"task_id": str(task.id)},
    )
    recalculate_journey_progress(db, client_id)
    invalidate_client_cache_on_commit(db, client_id)
    return task


def complete_client_task(db: Session, actor: Profile, client_id: UUID, task_id: UUID) -> Task:
    authorize_client_access(db, actor, client_id, action="tasks.write")

    task = db.query(Task).filter(Task.id == task_id, Task.user_id == client_id).first()
    if not task:
        raise NotFoundError("Task", str(task_id))

    if task.status != "completed":
        task.status = "completed"
        task.completed_at = utcnow()
        db.flush()
        recalculate_journey_progress(db, client_id)
        invalidate_client_cache_on_commit(db, client_id)
    return task


# --- Journey / analytics / timeline ---

def get_client_journey_state(db: Session, actor: Profile, client_id: UUID) -> Dict[str, Any]:
    authorize_client_access(db, actor, client_id, action="journey.read")
    return serialize_journey_state(get_or_create_journey_state(db, client_id))


def get_client_analytics(db: Session, actor: Profile, client_id: UUID) -> Dict[str, Any]:
    """
    Aggregate view for coaches: latest score per kind, averages, task
    completion and journey position. Cached briefly in Redis.
    """
    authorize_client_access(db, actor, client_id, action="analytics.read")

    key = analytics_cache_key(client_id)
    cached = get_cache(key)
    if cached is not None:
        return cached

    rounds = (
        db.query(AssessmentRound)
        .filter(AssessmentRound.user_id == client_id)
        .order_by(AssessmentRound.created_at.desc())
        .all()
    )
    latest: Dict[str, Dict[str, Any]] = {}
    for r in rounds:
        if r.pillar_key not in latest:
            latest[r.pillar_key] = {
                "overall": (r.scores or {}).get("overall"),
                "completed_at": r.created_at,
                "has_analysis": r.ai_analysis is not None,
            }
    overalls = [v["overall"] for v in latest.values() if v["overall"] is not None]

    task_statuses = [row[0] for row in db.query(Task.status).filter(Task.user_id == client_id)]
    tasks_total = len(task_statuses)
    tasks_completed = sum(1 for s in task_statuses if s == "completed")

    journey = get_or_create_journey_state(db, client_id)

    result = {
        "client_id": str(client_id),
        "assessment_rounds": len(rounds),
        "latest_scores": latest,
        "average_overall": round(sum(overalls) / len(overalls), 2) if overalls else None,
        "lowest_pillar": min(
            ((v["overall"], k) for k, v in latest.items() if v["overall"] is not None and k != "welcome"),
            default=(None, None),
        )[1],
        "tasks": {
            "total": tasks_total,
            "completed": tasks_completed,
            "completion_rate": round(tasks_completed / tasks_total, 2) if tasks_total else 0.0,
        },
        "journey": {
            "current_phase": journey.current_phase,
            "journey_progress": journey.journey_progress,
            "next_recommended_assessment": journey.next_recommended_assessment,
        },
        "last_activity_at": journey.last_activity_at,
    }
    set_cache(key, result)
    return result


def get_client_timeline(
    db: Session,
    actor: Profile,
    client_id: UUID,
    entry_type: Optional[str] = None,
    limit: int = 200,
) -> List[PathEntry]:
    """Clients reading their own timeline do not see entries hidden from them."""
    authorize_client_access(db, actor, client_id, action="timeline.read")
    include_hidden = actor.id != client_id
    return list_path_entries(db, client_id, include_hidden=include_hidden, entry_type=entry_type, limit=limit)


def create_path_entry(
    db: Session,
    actor: Profile,
    client_id: UUID,
    *,
    entry_type: str,
    title: str,
    details: Optional[str] = None,
    pillar_key: Optional[str] = None,
    status: str = "active",
    visible_to_client: bool = True,
    metadata: Optional[Dict[str, Any]] = None,
) -> PathEntry:
    authorize_client_access(db, actor, client_id, action="timeline.write")
    entry = add_path_entry(
        db,
        user_id=client_id,
        created_by=actor.id,
        entry_type=entry_type,
        title=title,
        details=details,
        pillar_key=_validate_pillar(pillar_key),
        status=status,
        visible_to_client=visible_to_client,
        metadata=metadata,
    )
    if entry_type == "milestone":
        recalculate_journey_progress(db, client_id)
        invalidate_client_cache_on_commit(db, client_id)
    return entry


def serialize_calendar_event(event: CalendarEvent) -> Dict[str, Any]:
    return {
        "id": str(event.id),
        "user_id": str(event.user_id),
        "title": event.title,
        "description": event.description,
        "event_date": event.event_date,
        "event_type": event.event_type,
        "pillar_key": event.pillar_key,
        "created_by": str(event.created_by) if event.created_by else None,
    }


def serialize_task(task: Task) -> Dict[str, Any]:
    return {
        "id": str(task.id),
        "user_id": str(task.user_id),
        "title": task.title,
        "description": task.description,
        "pillar_key": task.pillar_key,
        "status": task.status,
        "deadline": task.deadline,
        "completed_at": task.completed_at,
        "created_at": task.created_at,
    }
