"""Notifications router."""

from typing import Dict, List

from fastapi import APIRouter, Depends

from api.src.dependencies import get_current_user, get_notification_service
from api.src.errors import failure_as
from api.src.models.auth import CurrentUser, ErrorResponse
from api.src.services.notification_service import Notification, NotificationService

router = APIRouter(
    prefix="/notifications",
    tags=["Notifications"],
    responses={
        401: {"model": ErrorResponse, "description": "Unauthorized"},
    }
)


@router.get("", response_model=List[Notification], summary="Current notifications")
async def list_notifications(
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
) -> List[Notification]:
    with failure_as("Failed to fetch notifications"):
        return await service.get_all()


@router.get("/count", summary="Number of current notifications")
async def count_notifications(
    user: CurrentUser = Depends(get_current_user),
    service: NotificationService = Depends(get_notification_service)
) -> Dict[str, int]:
    with failure_as("Failed to fetch notifications"):
        return {"count": await service.count()}
