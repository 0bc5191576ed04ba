"""
FoodFlow Backend: Notification Service
=======================================

What:  Creates like notifications and drives their read state.
Who:   LikeService (emitter), notification routes (listing, read-state).

Emitter Contract:
    emit_like_notification() is only called on the first-like path and only
    when liker != owner. It raises freely; the caller runs it inside a
    SAVEPOINT and logs any failure, so a broken notification never undoes
    the like that triggered it.

Read-State Machine:
    unread ──mark_as_read──▶ read
    One-way. There is no "mark unread" transition, and marking a read
    notification again changes nothing (read_at keeps its first value).
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from foodflow.exceptions import NotFoundError, PermissionDeniedError
from foodflow.models.notification import NOTIFICATION_TYPE_LIKE, Notification
from foodflow.models.recipe import Recipe
from foodflow.schemas.notification import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
)
from foodflow.services.user_service import user_service

logger = logging.getLogger(__name__)

UNKNOWN_LIKER_NAME = "Someone"


def build_like_message(liker_name: str, recipe_name: str) -> str:
    return f"{liker_name} liked your recipe '{recipe_name}'."


class NotificationService:
    """
    Business logic for notifications.

    Responsibilities:
        - emit_like_notification(): insert the first-like notification
        - list_notifications() / list_unread() / count_unread(): read side
        - mark_as_read() / mark_all_as_read(): one-way read transition
    """

    # ── Emitter ───────────────────────────────────────────────────────────

    async def emit_like_notification(
        self,
        db: AsyncSession,
        recipe: Recipe,
        liker_user_id: int,
    ) -> Optional[Notification]:
        """
        Tell the recipe owner that `liker_user_id` liked their recipe.

        Both users are read from the database, not the name cache: a cached
        name can outlive a deleted users row. An unknown liker is named
        "Someone" and stored with no sender.

        Returns:
            The flushed Notification, or None when the owner no longer exists.
        """
        owner = await user_service.get_user(db, recipe.user_id)
        if owner is None:
            logger.warning(
                "Recipe %s owner %s not found; skipping like notification",
                recipe.id,
                recipe.user_id,
            )
            return None

        liker = await user_service.get_user(db, liker_user_id)
        if liker is None:
            logger.info("Liker %s has no users row; sending an anonymous notification", liker_user_id)
            sender_id, liker_name = None, UNKNOWN_LIKER_NAME
        else:
            sender_id, liker_name = liker.id, liker.username

        notification = Notification(
            receiver_id=recipe.user_id,
            sender_id=sender_id,
            type=NOTIFICATION_TYPE_LIKE,
            message=build_like_message(liker_name, recipe.name),
            recipe_id=recipe.id,
            is_read=False,
        )
        db.add(notification)
        await db.flush()

        logger.info(
            "Like notification %s created for user %s (recipe %s, liker %s)",
            notification.id,
            recipe.user_id,
            recipe.id,
            liker_user_id,
        )
        return notification

    # ── Read Side ─────────────────────────────────────────────────────────

    async def list_notifications(self, db: AsyncSession, user_id: int) -> NotificationListResponse:
        """All notifications addressed to `user_id`, newest first, plus the unread count."""
        result = await db.execute(
            select(Notification)
            .where(Notification.receiver_id == user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        notifications = list(result.scalars().all())

        return NotificationListResponse(
            notifications=await self._to_responses(db, notifications),
            unread_count=await self.count_unread(db, user_id),
        )

    async def list_unread(self, db: AsyncSession, user_id: int) -> List[NotificationResponse]:
        result = await db.execute(
            select(Notification)
            .where(
                Notification.receiver_id == user_id,
                Notification.is_read.is_(False),
            )
            .order_by(Notification.created_at.desc(), Notification.id.desc())
        )
        return await self._to_responses(db, list(result.scalars().all()))

    async def count_unread(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(
            select(func.count(Notification.id)).where(
                Notification.receiver_id == user_id,
                Notification.is_read.is_(False),
            )
        )
        return result.scalar() or 0

    async def count_for_recipe(self, db: AsyncSession, recipe_id: int) -> int:
        """Number of notifications ever emitted about `recipe_id`."""
        result = await db.execute(
            select(func.count(Notification.id)).where(Notification.recipe_id == recipe_id)
        )
        return result.scalar() or 0

    # ── Read-State Transitions ────────────────────────────────────────────

    async def mark_as_read(
        self,
        db: AsyncSession,
        notification_id: int,
        user_id: int,
    ) -> NotificationResponse:
        """
        Flip one notification to read.

        Raises:
            NotFoundError: No notification has this id (→ 404)
            PermissionDeniedError: The caller is not the receiver (→ 400)
        """
        notification = await db.get(Notification, notification_id)
        if notification is None:
            raise NotFoundError(resource="notification", resource_id=str(notification_id))

        if notification.receiver_id != user_id:
            logger.warning(
                "User %s tried to mark notification %s owned by user %s",
                user_id,
                notification_id,
                notification.receiver_id,
            )
            raise PermissionDeniedError(
                message="You don't have permission to mark this notification as read",
                context={"notification_id": notification_id},
            )

        if not notification.is_read:
            notification.is_read = True
            notification.read_at = datetime.now(timezone.utc)
            await db.flush()

        return (await self._to_responses(db, [notification]))[0]

    async def mark_all_as_read(self, db: AsyncSession, user_id: int) -> MarkAllReadResponse:
        """Flip every unread notification of `user_id` to read; report how many changed."""
        result = await db.execute(
            update(Notification)
            .where(
                Notification.receiver_id == user_id,
                Notification.is_read.is_(False),
            )
            .values(is_read=True, read_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session="fetch")
        )
        updated = result.rowcount or 0
        logger.info("Marked %d notifications read for user %s", updated, user_id)
        return MarkAllReadResponse(updated=updated)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _to_responses(
        self,
        db: AsyncSession,
        notifications: List[Notification],
    ) -> List[NotificationResponse]:
        sender_ids = {n.sender_id for n in notifications if n.sender_id is not None}
        names = await user_service.get_display_names(db, sender_ids)
        return [
            NotificationResponse(
                id=n.id,
                receiver_id=n.receiver_id,
                sender_id=n.sender_id,
                sender_username=names.get(n.sender_id) if n.sender_id is not None else None,
                type=n.type,
                message=n.message,
                recipe_id=n.recipe_id,
                is_read=n.is_read,
                created_at=n.created_at,
                read_at=n.read_at,
            )
            for n in notifications
        ]


# ── Singleton Instance ────────────────────────────────────────────────────
notification_service = NotificationService()
