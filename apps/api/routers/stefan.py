"""
Stefan API Router

Persona greetings for the signed-in user.
"""

from fastapi import APIRouter, Depends, Query

from core.auth import get_current_user
from core.feature_flags import FeatureFlags, get_feature_flags
from models import Profile
from services.stefan_persona import build_persona_message

router = APIRouter(prefix="/v1/stefan", tags=["stefan"])


@router.get("/greeting")
def get_greeting(
    context: str = Query("first_login"),
    current_user: Profile = Depends(get_current_user),
    flags: FeatureFlags = Depends(get_feature_flags),
):
    return build_persona_message(context, current_user.first_name, flags)
