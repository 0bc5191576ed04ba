"""
FoodFlow Backend: Recipe and RecipeLike SQLAlchemy Models
==========================================================

What:  ORM models for the `recipes` and `recipe_likes` tables.
Who:   Used by LikeService for the toggle workflow and by Alembic.

Table Design:
    recipes.like_count
        A denormalised cache. The source of truth is the set of
        recipe_likes rows; LikeService overwrites the column with
        COUNT(*) after every toggle and never increments it in place.

    recipe_likes (user_id, recipe_id) UNIQUE
        At most one like per user per recipe. Concurrent first-likes
        race on this constraint; exactly one INSERT wins and the loser
        sees a unique violation that LikeService treats as
        "already liked".

    Index on recipe_likes.recipe_id:
        Count reconciliation runs COUNT(*) WHERE recipe_id = :id on every
        toggle. The unique index leads with user_id, so it cannot serve
        that query.

    recipe_likes.user_id
        Not a foreign key. The liker is whoever the gateway says sent the
        request; a missing users row only changes the notification text.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from foodflow.database import Base
from foodflow.models.user import BigIntId

RECIPE_STATUS_DRAFT = "draft"
RECIPE_STATUS_PUBLIC = "public"
RECIPE_STATUSES = (RECIPE_STATUS_DRAFT, RECIPE_STATUS_PUBLIC)
RECIPE_STATUS_CHECK = "status IN (" + ", ".join(f"'{s}'" for s in RECIPE_STATUSES) + ")"


class Recipe(Base):
    """
    A recipe owned by its creator.

    Lifecycle:
        1. Created as 'draft' or 'public' by the recipe CRUD collaborator
        2. like_count rewritten by LikeService after each like/unlike
        3. Deleted by the CRUD collaborator; its likes cascade away
    """

    __tablename__ = "recipes"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)

    # Owner. Notifications for likes on this recipe go to this user.
    user_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=RECIPE_STATUS_DRAFT,
        server_default=text(f"'{RECIPE_STATUS_DRAFT}'"),
        comment="draft | public",
    )

    like_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default=text("0"),
        comment="Cached COUNT(*) of recipe_likes for this recipe",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        CheckConstraint(RECIPE_STATUS_CHECK, name="ck_recipes_status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Recipe(id={self.id}, owner={self.user_id}, "
            f"status='{self.status}', like_count={self.like_count})>"
        )


class RecipeLike(Base):
    """
    One user's like of one recipe.

    Rows are only ever inserted (first like) or deleted (unlike); they are
    never updated.
    """

    __tablename__ = "recipe_likes"

    id: Mapped[int] = mapped_column(BigIntId, primary_key=True, autoincrement=True)

    # Gateway-issued liker id. No foreign key: users rows are owned by the
    # auth collaborator, which also removes a deleted user's likes.
    user_id: Mapped[int] = mapped_column(BigIntId, nullable=False)

    recipe_id: Mapped[int] = mapped_column(
        BigIntId,
        ForeignKey("recipes.id", ondelete="CASCADE"),
        nullable=False,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        server_default=func.now(),
    )

    __table_args__ = (
        UniqueConstraint("user_id", "recipe_id", name="uq_recipe_likes_user_recipe"),
        Index("idx_recipe_likes_recipe_id", "recipe_id"),
    )

    def __repr__(self) -> str:
        return f"<RecipeLike(user_id={self.user_id}, recipe_id={self.recipe_id})>"
