"""
User management router.

CRUD for application users. PINs are hashed on the way in and never
returned. All endpoints require the ``edit_settings`` permission.
"""

from typing import Dict, List

import structlog
from fastapi import APIRouter, Depends, status

from api.src.config import Settings
from api.src.dependencies import get_auth_service, get_settings_dependency, get_user_repository
from api.src.errors import NotFoundError, ValidationError, failure_as
from api.src.middleware.rbac import PermissionChecker
from api.src.models.auth import (
    CreateUserRequest,
    CurrentUser,
    ErrorResponse,
    Permission,
    UpdateUserRequest,
    UserResponse,
)
from api.src.services.auth_service import AuthService

logger = structlog.get_logger(__name__)

require_user_admin = PermissionChecker(Permission.EDIT_SETTINGS)

router = APIRouter(
    prefix="/users",
    tags=["User Management"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
        404: {"model": ErrorResponse, "description": "Not Found"},
    }
)


def _check_pin(pin: str, settings: Settings) -> None:
    if len(pin) < settings.pin_min_length or not pin.isdigit():
        raise ValidationError(
            "Invalid PIN code",
            details=f"PIN must be at least {settings.pin_min_length} digits"
        )


@router.get("", response_model=List[UserResponse], summary="List users")
async def list_users(
    admin: CurrentUser = Depends(require_user_admin),
    user_repo=Depends(get_user_repository)
) -> List[UserResponse]:
    with failure_as("Failed to fetch users"):
        users = await user_repo.list_users()
    return [user.to_response() for user in users]


@router.post(
    "",
    response_model=UserResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create user"
)
async def create_user(
    body: CreateUserRequest,
    admin: CurrentUser = Depends(require_user_admin),
    user_repo=Depends(get_user_repository),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dependency)
) -> UserResponse:
    if not (body.email and body.name and body.pin_code and body.role):
        raise ValidationError("Missing required fields")
    _check_pin(body.pin_code, settings)

    with failure_as("Failed to create user"):
        user = await user_repo.create_user(
            email=body.email,
            name=body.name,
            pin_hash=auth_service.hash_pin(body.pin_code),
            role=body.role
        )

    logger.info("user_created_by_admin", user_id=user.id, admin_id=admin.id)
    return user.to_response()


@router.get("/{user_id}", response_model=UserResponse, summary="Get user")
async def get_user(
    user_id: str,
    admin: CurrentUser = Depends(require_user_admin),
    user_repo=Depends(get_user_repository)
) -> UserResponse:
    with failure_as("Failed to fetch user"):
        user = await user_repo.get_user_by_id(user_id)
    if user is None:
        raise NotFoundError("User not found")
    return user.to_response()


@router.put("/{user_id}", response_model=UserResponse, summary="Update user")
async def update_user(
    user_id: str,
    body: UpdateUserRequest,
    admin: CurrentUser = Depends(require_user_admin),
    user_repo=Depends(get_user_repository),
    auth_service: AuthService = Depends(get_auth_service),
    settings: Settings = Depends(get_settings_dependency)
) -> UserResponse:
    pin_hash = None
    if body.pin_code:
        _check_pin(body.pin_code, settings)
        pin_hash = auth_service.hash_pin(body.pin_code)

    with failure_as("Failed to update user"):
        user = await user_repo.update_user(
            user_id,
            email=body.email,
            name=body.name,
            pin_hash=pin_hash,
            role=body.role
        )

    if user is None:
        raise NotFoundError("User not found")

    logger.info("user_updated_by_admin", user_id=user_id, admin_id=admin.id)
    return user.to_response()


@router.delete("/{user_id}", summary="Delete user")
async def delete_user(
    user_id: str,
    admin: CurrentUser = Depends(require_user_admin),
    user_repo=Depends(get_user_repository)
) -> Dict[str, bool]:
    with failure_as("Failed to delete user"):
        deleted = await user_repo.delete_user(user_id)

    logger.info("user_deleted_by_admin", user_id=user_id, admin_id=admin.id, deleted=deleted)
    return {"success": True}
