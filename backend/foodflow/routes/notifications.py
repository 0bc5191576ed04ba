"""
FoodFlow Backend: Notification Route Handlers
==============================================

What:  Listing and read-state endpoints for the caller's notifications.
Who:   Called by the frontend notification bell.

Both PUT and POST are accepted for the read transitions; older mobile
clients only send POST.
"""

import logging
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from foodflow.database import get_db_session
from foodflow.routes.deps import get_current_user_id
from foodflow.schemas.common import ErrorResponse
from foodflow.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from foodflow.services.notification_service import notification_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get(
    "",
    response_model=NotificationListResponse,
    summary="List the caller's notifications, newest first",
)
async def list_notifications(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationListResponse:
    return await notification_service.list_notifications(db=db, user_id=user_id)


@router.get(
    "/unread",
    response_model=List[NotificationResponse],
    summary="List the caller's unread notifications",
)
async def list_unread(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> List[NotificationResponse]:
    return await notification_service.list_unread(db=db, user_id=user_id)


@router.get(
    "/count",
    response_model=UnreadCountResponse,
    summary="Count the caller's unread notifications",
)
async def count_unread(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> UnreadCountResponse:
    count = await notification_service.count_unread(db=db, user_id=user_id)
    return UnreadCountResponse(unread_count=count)


@router.api_route(
    "/read-all",
    methods=["PUT", "POST"],
    response_model=MarkAllReadResponse,
    summary="Mark all of the caller's notifications as read",
)
async def mark_all_as_read(
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> MarkAllReadResponse:
    return await notification_service.mark_all_as_read(db=db, user_id=user_id)


@router.api_route(
    "/{notification_id}/read",
    methods=["PUT", "POST"],
    response_model=NotificationResponse,
    responses={
        400: {"description": "Not the receiver of this notification", "model": ErrorResponse},
        404: {"description": "Notification not found", "model": ErrorResponse},
    },
    summary="Mark one notification as read",
    description="One-way transition; marking an already-read notification changes nothing.",
)
async def mark_as_read(
    notification_id: int,
    user_id: int = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db_session),
) -> NotificationResponse:
    return await notification_service.mark_as_read(
        db=db,
        notification_id=notification_id,
        user_id=user_id,
    )
