"""
Application settings router.

The stored settings document is public to read so other instances can
hydrate from it; changing it requires ``edit_settings``. The company logo is
kept in the document as a ``data:`` URL under ``logoUrl``.
"""

import base64
import binascii
import re
from typing import Any, Dict

import structlog
from fastapi import APIRouter, Body, Depends, Request

from api.src.config import Settings
from api.src.dependencies import get_settings_dependency, get_settings_repository, get_settings_store
from api.src.errors import ValidationError, failure_as
from api.src.middleware.rbac import PermissionChecker
from api.src.models.auth import CurrentUser, ErrorResponse, Permission
from api.src.repositories.base import to_iso, utc_now
from api.src.services.settings_service import SettingsStore

logger = structlog.get_logger(__name__)

require_settings_editor = PermissionChecker(Permission.EDIT_SETTINGS)

DATA_URL_PATTERN = re.compile(r"^data:([^;]+);base64,(.+)$", re.DOTALL)

LOGO_CONTENT_TYPES = {"image/png", "image/jpeg", "image/jpg", "image/webp", "image/svg+xml", "image/gif"}

router = APIRouter(
    prefix="/settings",
    tags=["Settings"],
    responses={
        500: {"model": ErrorResponse, "description": "Internal error"},
    }
)


@router.get("", summary="Get stored settings")
async def get_settings_document(settings_repo=Depends(get_settings_repository)) -> Dict[str, Any]:
    with failure_as("Failed to fetch settings"):
        stored = await settings_repo.get_settings()

    if stored is None:
        return {"settings": {}, "updatedAt": None}
    settings, updated_at = stored
    return {"settings": settings, "updatedAt": updated_at}


@router.put(
    "",
    summary="Update settings",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
    }
)
async def update_settings_document(
    changes: Dict[str, Any] = Body(...),
    user: CurrentUser = Depends(require_settings_editor),
    settings_repo=Depends(get_settings_repository),
    settings_store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    with failure_as("Failed to save settings"):
        stored = await settings_repo.get_settings()
        existing = stored[0] if stored else {}
        merged = {**existing, **changes, "updatedAt": to_iso(utc_now())}
        await settings_repo.save_settings(merged)

    settings_store.update(changes)
    logger.info("settings_document_updated", user_id=user.id, keys=sorted(changes))
    return {"settings": merged, "savedToDatabase": True}


@router.post(
    "/reset",
    summary="Reset settings to defaults",
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
    }
)
async def reset_settings_document(
    user: CurrentUser = Depends(require_settings_editor),
    settings_repo=Depends(get_settings_repository),
    settings_store: SettingsStore = Depends(get_settings_store)
) -> Dict[str, Any]:
    defaults = settings_store.get_defaults()
    with failure_as("Failed to save settings"):
        await settings_repo.save_settings(defaults)

    settings_store.reset()

    logger.info("settings_document_reset", user_id=user.id)
    return {"settings": defaults, "savedToDatabase": True}


def _decode_logo(body: Any, max_bytes: int) -> str:
    """Validate a ``{"base64": "data:image/...;base64,..."}`` body and return the data URL."""
    data_url = body.get("base64") if isinstance(body, dict) else None
    if not data_url or not isinstance(data_url, str):
        raise ValidationError('No base64 image provided. Send { base64: "data:image/..." }.')

    match = DATA_URL_PATTERN.match(data_url)
    if not match:
        raise ValidationError("Invalid base64 format. Use data:image/...;base64,...")

    content_type = match.group(1) or "image/png"
    if content_type not in LOGO_CONTENT_TYPES:
        raise ValidationError("Unsupported image type.", details=content_type)

    try:
        content = base64.b64decode(match.group(2), validate=True)
    except binascii.Error as e:
        raise ValidationError("Invalid base64 format. Use data:image/...;base64,...") from e

    if not content:
        raise ValidationError("Empty file.")
    if len(content) > max_bytes:
        raise ValidationError("Logo is too large.", details=f"Maximum size is {max_bytes} bytes")

    return f"data:{content_type};base64,{base64.b64encode(content).decode('ascii')}"


@router.post(
    "/logo",
    summary="Upload company logo",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid request"},
        401: {"model": ErrorResponse, "description": "Unauthorized"},
        403: {"model": ErrorResponse, "description": "Forbidden"},
    }
)
async def upload_logo(
    request: Request,
    user: CurrentUser = Depends(require_settings_editor),
    settings_repo=Depends(get_settings_repository),
    settings_store: SettingsStore = Depends(get_settings_store),
    settings: Settings = Depends(get_settings_dependency)
) -> Dict[str, Any]:
    """
    Store the company logo sent as JSON ``{"base64": "data:image/...;base64,..."}``.

    The logo is merged into the stored settings document so other instances
    pick it up when they hydrate.
    """
    if "application/json" not in request.headers.get("content-type", ""):
        raise ValidationError('Send JSON { base64: "data:image/..." }.')
    try:
        body = await request.json()
    except ValueError as e:
        raise ValidationError("Invalid JSON body.") from e

    logo_url = _decode_logo(body, settings.settings_logo_max_bytes)

    with failure_as("Failed to upload logo"):
        stored = await settings_repo.get_settings()
        existing = stored[0] if stored else {}
        merged = {**existing, "logoUrl": logo_url, "updatedAt": to_iso(utc_now())}
        await settings_repo.save_settings(merged)

    settings_store.update({"logoUrl": logo_url})
    logger.info("settings_logo_updated", user_id=user.id, size=len(logo_url))
    return {"logoUrl": logo_url, "savedToDatabase": True}
