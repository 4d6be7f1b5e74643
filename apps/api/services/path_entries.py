"""
Development path (timeline) entries.

Append-only. The writers here are unguarded; callers acting on behalf of
another user go through services.client_data, which checks access first.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy.orm import Session

from core.exceptions import ValidationError
from core.timeutil import utcnow
from models import AssessmentRound, PathEntry
from services.pillars import get_definition

logger = logging.getLogger(__name__)

ENTRY_TYPES = frozenset({"recommendation", "task", "event", "assessment", "milestone", "note"})
ENTRY_STATUSES = frozenset({"active", "completed", "archived"})


def add_path_entry(
    db: Session,
    *,
    user_id: UUID,
    entry_type: str,
    title: str,
    details: Optional[str] = None,
    created_by: Optional[UUID] = None,
    pillar_key: Optional[str] = None,
    status: str = "active",
    ai_generated: bool = False,
    visible_to_client: bool = True,
    round_id: Optional[UUID] = None,
    metadata: Optional[Dict[str, Any]] = None,
    occurred_at: Optional[datetime] = None,
) -> PathEntry:
    if entry_type not in ENTRY_TYPES:
        raise ValidationError(f"Unknown path entry type: {entry_type}", field="entry_type")
    if status not in ENTRY_STATUSES:
        raise ValidationError(f"Unknown path entry status: {status}", field="status")
    if not (title or "").strip():
        raise ValidationError("Title is required", field="title")

    entry = PathEntry(
        user_id=user_id,
        created_by=created_by,
        entry_type=entry_type,
        title=title.strip(),
        details=details,
        pillar_key=pillar_key,
        status=status,
        ai_generated=ai_generated,
        visible_to_client=visible_to_client,
        round_id=round_id,
        entry_metadata=dict(metadata or {}),
        occurred_at=occurred_at or utcnow(),
    )
    db.add(entry)
    db.flush()
    return entry


def list_path_entries(
    db: Session,
    user_id: UUID,
    *,
    include_hidden: bool = True,
    entry_type: Optional[str] = None,
    limit: int = 200,
) -> List[PathEntry]:
    q = db.query(PathEntry).filter(PathEntry.user_id == user_id)
    if not include_hidden:
        q = q.filter(PathEntry.visible_to_client.is_(True))
    if entry_type:
        q = q.filter(PathEntry.entry_type == entry_type)
    return q.order_by(PathEntry.occurred_at.desc()).limit(limit).all()


def create_assessment_actionables(
    db: Session,
    round_: AssessmentRound,
    recommendations: Optional[Sequence[Any]] = None,
) -> List[PathEntry]:
    """
    One "assessment" entry for the round plus one AI "recommendation" entry
    per recommendation string.
    """
    definition = get_definition(round_.pillar_key)
    overall = (round_.scores or {}).get("overall")
    entries = [
        add_path_entry(
            db,
            user_id=round_.user_id,
            entry_type="assessment",
            title=f"{definition.name} completed",
            details=f"Overall score {overall}/10" if overall is not None else None,
            pillar_key=round_.pillar_key,
            status="completed",
            round_id=round_.id,
            metadata={"scores": dict(round_.scores or {})},
        )
    ]

    for idx, rec in enumerate(recommendations or []):
        raw = rec.get("title") if isinstance(rec, dict) else rec
        text = str(raw or "").strip()
        if not text:
            continue
        entries.append(
            add_path_entry(
                db,
                user_id=round_.user_id,
                entry_type="recommendation",
                title=text[:200],
                details=rec.get("details") if isinstance(rec, dict) else None,
                pillar_key=round_.pillar_key,
                ai_generated=True,
                round_id=round_.id,
                metadata={"source": "stefan_ai", "position": idx},
            )
        )

    logger.info(f"Created {len(entries)} path entries for round {round_.id}")
    return entries


def serialize_path_entry(entry: PathEntry) -> Dict[str, Any]:
    return {
        "id": str(entry.id),
        "user_id": str(entry.user_id),
        "entry_type": entry.entry_type,
        "title": entry.title,
        "details": entry.details,
        "pillar_key": entry.pillar_key,
        "status": entry.status,
        "ai_generated": entry.ai_generated,
        "visible_to_client": entry.visible_to_client,
        "round_id": str(entry.round_id) if entry.round_id else None,
        "metadata": dict(entry.entry_metadata or {}),
        "occurred_at": entry.occurred_at,
    }
