"""
Journey API Router

The signed-in client's development journey.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from core.auth import get_current_user
from core.database import get_db
from models import Profile
from services.journey_progress import (
    get_or_create_journey_state,
    recalculate_journey_progress,
    serialize_journey_state,
)

router = APIRouter(prefix="/v1/journey", tags=["journey"])


@router.get("")
def get_my_journey(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return serialize_journey_state(get_or_create_journey_state(db, current_user.id))


@router.post("/recalculate")
def recalculate_my_journey(
    current_user: Profile = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return serialize_journey_state(recalculate_journey_progress(db, current_user.id))
