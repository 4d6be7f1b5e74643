"""
Custom exception classes and error handling.

Provides consistent error responses across the API. Services raise these
directly so routers do not have to translate them.
"""
from fastapi import HTTPException, status
from typing import Optional, Dict, Any


class APIException(HTTPException):
    """Base API exception with consistent structure."""

    def __init__(
        self,
        status_code: int,
        detail: str,
        error_code: Optional[str] = None,
        headers: Optional[Dict[str, Any]] = None
    ):
        super().__init__(status_code=status_code, detail=detail, headers=headers)
        self.error_code = error_code


class NotFoundError(APIException):
    """Resource not found."""

    def __init__(self, resource: str, identifier: str):
        super().__init__(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"{resource} not found: {identifier}",
            error_code="NOT_FOUND"
        )


class ValidationError(APIException):
    """Validation error. Raised before any store or network call."""

    def __init__(self, detail: str, field: Optional[str] = None):
        error_code = f"VALIDATION_ERROR_{field.upper()}" if field else "VALIDATION_ERROR"
        super().__init__(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=detail,
            error_code=error_code
        )
        self.field = field


class UnauthorizedError(APIException):
    """Authentication required."""

    def __init__(self, detail: str = "Authentication required"):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            error_code="UNAUTHORIZED",
            headers={"WWW-Authenticate": "Bearer"}
        )


class ForbiddenError(APIException):
    """Access denied."""

    def __init__(self, detail: str = "Access denied", error_code: str = "FORBIDDEN"):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
            error_code=error_code
        )


class AuthorizationError(ForbiddenError):
    """
    Role check failed for a client-scoped resource.

    Distinct from an empty result: callers must be able to tell
    "no data" from "not allowed".
    """

    def __init__(self, detail: str = "Not allowed to access this client's data"):
        super().__init__(detail=detail, error_code="AUTHORIZATION_DENIED")


class ConflictError(APIException):
    """Resource conflict (e.g., duplicate entry)."""

    def __init__(self, detail: str, error_code: str = "CONFLICT"):
        super().__init__(
            status_code=status.HTTP_409_CONFLICT,
            detail=detail,
            error_code=error_code
        )


class InvitationAlreadyAcceptedError(ConflictError):
    """Invitation tokens are single use."""

    def __init__(self):
        super().__init__(
            detail="Invitation already accepted",
            error_code="INVITATION_ALREADY_ACCEPTED",
        )


class GoneError(APIException):
    """Resource existed but is no longer usable (expired invitation)."""

    def __init__(self, detail: str, error_code: str = "GONE"):
        super().__init__(
            status_code=status.HTTP_410_GONE,
            detail=detail,
            error_code=error_code
        )
