"""
FastAPI dependency injection functions.

Long-lived handles (Supabase client, HTTP client, services) are created once
in the app lifespan and kept on ``app.state``; these functions only hand them
out.
"""

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.exceptions import InvalidTokenError, PermissionDeniedError
from app.core.rate_limit import GuestQuota
from app.core.security import CurrentUser, decode_access_token
from app.features.doubts.guest import GuestDoubtService
from app.features.doubts.service import DoubtService

# Bearer token scheme for Swagger UI
bearer_scheme = HTTPBearer(auto_error=False)


def get_doubt_service(request: Request) -> DoubtService:
    return request.app.state.doubt_service


def get_guest_service(request: Request) -> GuestDoubtService:
    return request.app.state.guest_service


def get_guest_quota(request: Request) -> GuestQuota:
    return request.app.state.guest_quota


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> CurrentUser:
    """Dependency: extract and validate the caller from the JWT token.

    Raises:
        InvalidTokenError: If the token is missing, invalid, expired or has no subject.
    """
    if credentials is None:
        raise InvalidTokenError()

    payload = decode_access_token(credentials.credentials)
    if payload is None or not payload.get("sub"):
        raise InvalidTokenError()

    return CurrentUser(
        id=str(payload["sub"]),
        role=payload.get("role") or "student",
        name=payload.get("name") or "Student",
    )


async def require_faculty(user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Dependency: only instructors pass."""
    if not user.is_faculty:
        raise PermissionDeniedError("Only faculty can perform this action")
    return user
