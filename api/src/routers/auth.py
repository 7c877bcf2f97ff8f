"""
Authentication router.

Provides REST API endpoints for:
- PIN login issuing a bearer session
- The current user and their effective permissions
"""

from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Request, status
from slowapi import Limiter
from slowapi.util import get_remote_address

from api.src.config import Settings, get_settings
from api.src.dependencies import get_auth_service, get_current_user, get_user_repository
from api.src.errors import AuthError, NotFoundError, ValidationError, failure_as
from api.src.middleware.rbac import entity_capabilities, get_user_permissions
from api.src.models.auth import (
    CurrentUser,
    ErrorResponse,
    LoginRequest,
    LoginResponse,
    PermissionsResponse,
    UserResponse,
)
from api.src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

limiter = Limiter(key_func=get_remote_address)

# Set from the running application's settings by configure_rate_limit
login_rate_limit: Optional[str] = None

router = APIRouter(
    prefix="/auth",
    tags=["Authentication"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
    }
)


def configure_rate_limit(settings: Settings) -> None:
    """Apply an application's rate limit settings to the shared login limiter."""
    global login_rate_limit
    limiter.enabled = settings.rate_limit_enabled
    login_rate_limit = settings.rate_limit_login


def _login_rate() -> str:
    return login_rate_limit or get_settings().rate_limit_login


@router.post(
    "/login",
    response_model=LoginResponse,
    status_code=status.HTTP_200_OK,
    summary="PIN Login",
    description="""
    Authenticate with a PIN code.

    **Request Body:**
    - pinCode: the user's PIN (required)
    - email: restrict the match to one user (optional)

    **Success Response (200):** the user without any PIN data, plus
    `accessToken`, `tokenType` and `expiresIn`.

    **Error Responses:**
    - 400: PIN code missing
    - 401: no user matches the PIN
    - 500: authentication could not be completed
    """,
)
@limiter.limit(_login_rate)
async def login(
    request: Request,
    login_request: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service)
) -> LoginResponse:
    if not login_request.pin_code:
        logger.warning("login_rejected_missing_pin")
        raise ValidationError("PIN code is required")

    with failure_as("Failed to authenticate"):
        session = await auth_service.login(login_request.pin_code, login_request.email)

    if session is None:
        raise AuthError("Invalid PIN code")
    return session


@router.get("/me", response_model=UserResponse, summary="Current user")
async def me(
    user: CurrentUser = Depends(get_current_user),
    user_repo=Depends(get_user_repository)
) -> UserResponse:
    with failure_as("Failed to fetch user"):
        stored = await user_repo.get_user_by_id(user.id)
    if stored is None:
        raise NotFoundError("User not found")
    return stored.to_response()


@router.get("/permissions", response_model=PermissionsResponse, summary="Current permissions")
async def permissions(user: CurrentUser = Depends(get_current_user)) -> PermissionsResponse:
    return PermissionsResponse(
        role=user.role,
        permissions=sorted(p.value for p in get_user_permissions(user.role)),
        entities=entity_capabilities(user.role),
    )
