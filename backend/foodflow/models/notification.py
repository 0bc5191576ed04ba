"""
FoodFlow Backend: Notification SQLAlchemy Model
================================================

What:  ORM model for the `notifications` table.
Who:   Written by NotificationService.emit_like_notification; read and
       flipped to read by the notification endpoints.

Lifecycle:
    1. Inserted with is_read = False on a first-like transition
    2. is_read flipped to True (and read_at stamped) by "mark read"
    3. Never flipped back, never deleted by an unlike

Index on (receiver_id, is_read):
    Serves both the unread badge count and the "mark all read" UPDATE,
    the two queries every page load and every bulk action issue.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text, func, text
from sqlalchemy.orm import Mapped, mapped_column

from foodflow.database import Base
from foodflow.models.user import BigIntId

NOTIFICATION_TYPE_LIKE = "LIKE"


class Notification(Base):
    """A message to one user about something another user did."""

    __tablename__ = "notifications"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)

    receiver_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
    )

    # Nullable: system notifications have no sender, and a deleted sender
    # must not take the receiver's history with it
    sender_id: Mapped[int | None] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
    )

    type: Mapped[str] = mapped_column(
        String(30),
        nullable=False,
        default=NOTIFICATION_TYPE_LIKE,
    )

    message: Mapped[str] = mapped_column(Text, nullable=False)

    recipe_id: Mapped[int | None] = mapped_column(
        BigIntId,
        ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=True,
    )

    is_read: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
        server_default=text("false"),
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    read_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        default=None,
    )

    __table_args__ = (
        Index("idx_notifications_receiver_unread", "receiver_id", "is_read"),
        Index("idx_notifications_created_at", created_at.desc()),
    )

    def __repr__(self) -> str:
        return (
            f"<Notification(id={self.id}, receiver={self.receiver_id}, "
            f"type='{self.type}', is_read={self.is_read})>"
        )
