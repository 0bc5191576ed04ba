"""
FoodFlow Backend: Notification Schemas
=======================================

What:  API contract for the notification endpoints.
Who:   Returned by NotificationService; consumed by the frontend bell menu.

Why separate from the ORM model:
    The response adds `sender_username`, resolved through the user
    directory, which is not a column of the notifications table.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from foodflow.schemas.common import CamelModel


class NotificationResponse(CamelModel):
    """One notification as shown in the notification list."""
    id: int
    receiver_id: int = Field(description="User the notification is addressed to")
    sender_id: Optional[int] = Field(default=None, description="User who triggered it")
    sender_username: Optional[str] = Field(
        default=None,
        description="Display name of the sender, when the sender still exists",
    )
    type: str = Field(description="Notification kind, e.g. LIKE")
    message: str = Field(description="Human-readable text")
    recipe_id: Optional[int] = Field(default=None, description="Recipe the notification refers to")
    is_read: bool
    created_at: datetime
    read_at: Optional[datetime] = None


class NotificationListResponse(CamelModel):
    """
    Full notification list for the caller plus the unread badge count.

    `unread_count` is counted by the database, not derived from the list,
    so it stays correct if the list is ever paginated.
    """
    notifications: List[NotificationResponse]
    unread_count: int = Field(ge=0)


class UnreadCountResponse(CamelModel):
    unread_count: int = Field(ge=0)


class MarkAllReadResponse(CamelModel):
    updated: int = Field(ge=0, description="Number of notifications flipped to read")
