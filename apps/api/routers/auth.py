"""
Authentication API endpoints.

Provides:
- Login (JWT token generation)
- Current profile with roles

Accounts are created by admins or through invitation redemption;
there is no open registration.
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session
import logging

from core.database import get_db
from core.security import verify_password, create_access_token, ACCESS_TOKEN_EXPIRE_MINUTES
from core.auth import get_current_user
from models import Profile
from schemas import LoginRequest, ProfileResponse, TokenResponse
from services.user_admin import serialize_profile

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/auth", tags=["auth"])


@router.post("/login", response_model=TokenResponse)
def login(
    credentials: LoginRequest,
    db: Session = Depends(get_db)
):
    """
    Exchange email and password for a bearer token.

    Unknown email and wrong password give the same 401.
    """
    email = credentials.email.strip().lower()
    profile = db.query(Profile).filter(Profile.email == email).first()

    if not profile or not profile.password_hash or not verify_password(credentials.password, profile.password_hash):
        logger.warning("Failed login attempt", extra={"extra_fields": {"email": email}})
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Incorrect email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is deactivated",
        )

    access_token = create_access_token(data={"sub": str(profile.id), "email": profile.email})
    return TokenResponse(
        access_token=access_token,
        expires_in=ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        profile=ProfileResponse(**serialize_profile(profile)),
    )


@router.get("/me", response_model=ProfileResponse)
def get_me(current_user: Profile = Depends(get_current_user)):
    """Current profile with roles."""
    return ProfileResponse(**serialize_profile(current_user))
