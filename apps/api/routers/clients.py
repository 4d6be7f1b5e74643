"""
Client Data API Router

Coach- and admin-facing reads and writes on one client's data. Every
endpoint goes through the access gate in services.client_data; a client
may also use these routes for their own id.
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import Profile
from schemas import CalendarEventCreate, PathEntryCreate, TaskCreate
from services import client_data
from services.path_entries import serialize_path_entry

router = APIRouter(prefix="/v1/clients", tags=["clients"])


# --- Calendar ---

@router.get("/{client_id}/calendar")
def list_calendar_events(
    client_id: UUID,
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    events = client_data.get_client_calendar_events(db, current_user, client_id, start=start, end=end)
    return [client_data.serialize_calendar_event(e) for e in events]


@router.post("/{client_id}/calendar", status_code=status.HTTP_201_CREATED)
def create_calendar_event(
    client_id: UUID,
    payload: CalendarEventCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    event = client_data.create_client_calendar_event(
        db,
        current_user,
        client_id,
        title=payload.title,
        event_date=payload.event_date,
        description=payload.description,
        event_type=payload.event_type,
        pillar_key=payload.pillar_key,
    )
    return client_data.serialize_calendar_event(event)


# --- Tasks ---

@router.get("/{client_id}/tasks")
def list_tasks(
    client_id: UUID,
    task_status: Optional[str] = Query(None, alias="status"),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    tasks = client_data.get_client_tasks(db, current_user, client_id, status=task_status)
    return [client_data.serialize_task(t) for t in tasks]


@router.post("/{client_id}/tasks", status_code=status.HTTP_201_CREATED)
def create_task(
    client_id: UUID,
    payload: TaskCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = client_data.create_client_task(
        db,
        current_user,
        client_id,
        title=payload.title,
        description=payload.description,
        pillar_key=payload.pillar_key,
        deadline=payload.deadline,
    )
    return client_data.serialize_task(task)


@router.post("/{client_id}/tasks/{task_id}/complete")
def complete_task(
    client_id: UUID,
    task_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    task = client_data.complete_client_task(db, current_user, client_id, task_id)
    return client_data.serialize_task(task)


# --- Journey / analytics ---

@router.get("/{client_id}/journey")
def get_journey(
    client_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return client_data.get_client_journey_state(db, current_user, client_id)


@router.get("/{client_id}/analytics")
def get_analytics(
    client_id: UUID,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return client_data.get_client_analytics(db, current_user, client_id)


# --- Timeline ---

@router.get("/{client_id}/timeline")
def get_timeline(
    client_id: UUID,
    entry_type: Optional[str] = Query(None),
    limit: int = Query(200, ge=1, le=500),
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entries = client_data.get_client_timeline(db, current_user, client_id, entry_type=entry_type, limit=limit)
    return [serialize_path_entry(e) for e in entries]


@router.post("/{client_id}/timeline", status_code=status.HTTP_201_CREATED)
def create_timeline_entry(
    client_id: UUID,
    payload: PathEntryCreate,
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    entry = client_data.create_path_entry(
        db,
        current_user,
        client_id,
        entry_type=payload.entry_type,
        title=payload.title,
        details=payload.details,
        pillar_key=payload.pillar_key,
        status=payload.status,
        visible_to_client=payload.visible_to_client,
        metadata=payload.metadata,
    )
    return serialize_path_entry(entry)
