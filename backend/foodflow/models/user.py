"""
FoodFlow Backend: User SQLAlchemy Model
========================================

What:  ORM model for the `users` table.
Who:   Referenced (by id only) from recipes, recipe_likes and notifications;
       read by UserService to resolve display names.

Credentials are owned by the authentication collaborator. The table only
reserves a `password_hash` column for it; plaintext passwords are never
stored here.
"""

from datetime import datetime, timezone

from sqlalchemy import BigInteger, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from foodflow.database import Base

# BIGINT on PostgreSQL; SQLite only autoincrements an INTEGER PRIMARY KEY
BigIntId = BigInteger().with_variant(Integer(), "sqlite")


class User(Base):
    """A registered account. Referenced by likes and notifications, never owned by them."""

    __tablename__ = "users"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)

    username: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
        comment="Display name shown in notifications",
    )

    email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    password_hash: Mapped[str | None] = mapped_column(
        String(255),
        nullable=True,
        comment="Written by the auth service; never plaintext",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, username='{self.username}')>"
