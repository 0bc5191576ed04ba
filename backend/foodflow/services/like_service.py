"""
FoodFlow Backend: Like Service (Toggle Engine + Count Reconciliation)
=====================================================================

What:  Flips a user's like on a recipe and keeps `recipes.like_count` true.
How:   One request transaction: the like insert in a SAVEPOINT (or the
       delete), then the recipe row locked and the count recomputed from
       the like rows.
Who:   Called by the recipe like routes.

Toggle Flow (POST /recipes/{id}/like):
    ┌──────────────┐    ┌────────────┐  absent   ┌──────────────┐    ┌──────────────┐
    │ Load recipe  │───▶│ Like row?  │──────────▶│ INSERT       │───▶│ Lock recipe  │──▶ notify
    │              │    │            │           │ (SAVEPOINT)  │    │ + recompute  │   (SAVEPOINT)
    └──────────────┘    └────────────┘           └──────────────┘    └──────────────┘
                              │ present          ┌──────────────┐    ┌──────────────┐
                              └─────────────────▶│ DELETE       │───▶│ Lock recipe  │
                                                 └──────────────┘    │ + recompute  │
                                                                     └──────────────┘

Concurrency:
    Two first-likes from the same user can both see "absent". The unique
    constraint on (user_id, recipe_id) decides which INSERT wins; the other
    gets InsertOutcome.ALREADY_EXISTS, answers liked=True with the
    recomputed count, and emits no notification.

    The recipe row is locked (FOR NO KEY UPDATE on PostgreSQL) only after
    the like row was written, so recounts on one recipe run one at a time
    and each sees every committed like. The lock does not decide the
    toggle direction.

    SQLite has one writer at a time and reports SQLITE_BUSY instead of
    waiting when a reader tries to become a writer. Such write conflicts
    (and PostgreSQL deadlocks / serialization failures) roll the request
    transaction back and re-run the write with the direction decided by
    the first attempt, so a lost first-like race still reports liked=True.

Timeouts:
    The whole toggle, retries included, runs under
    `settings.db_operation_timeout`. Exceeding it raises
    PersistenceTimeoutError; the session dependency rolls back and the
    client decides whether to resend.
"""

import asyncio
import enum
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from foodflow.config import settings
from foodflow.exceptions import (
    DatabaseError,
    FoodFlowError,
    NotFoundError,
    PersistenceTimeoutError,
)
from foodflow.models.recipe import Recipe, RecipeLike
from foodflow.schemas.like import LikeCountResponse, LikeResponse
from foodflow.services.notification_service import notification_service

logger = logging.getLogger(__name__)

# PostgreSQL SQLSTATE for unique_violation
UNIQUE_VIOLATION_SQLSTATE = "23505"

# serialization_failure, deadlock_detected
WRITE_CONFLICT_SQLSTATES = frozenset({"40001", "40P01"})

# sqlite3 extended result codes (Python 3.11+ exposes them as sqlite_errorname)
SQLITE_UNIQUE_ERRORS = frozenset({"SQLITE_CONSTRAINT_UNIQUE", "SQLITE_CONSTRAINT_PRIMARYKEY"})
SQLITE_LOCK_ERRORS = frozenset({"SQLITE_BUSY", "SQLITE_BUSY_SNAPSHOT", "SQLITE_LOCKED"})


class InsertOutcome(enum.Enum):
    INSERTED = "inserted"
    ALREADY_EXISTS = "already_exists"


def _sqlstate(orig) -> Optional[str]:
    return getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)


def is_unique_violation(exc: IntegrityError) -> bool:
    """
    True when the driver reports a unique-constraint violation.

    Reads the structured error code: SQLAlchemy's asyncpg adapter copies
    the server SQLSTATE onto the wrapped error as `sqlstate` / `pgcode`,
    and sqlite3 sets `sqlite_errorname`.
    """
    orig = exc.orig
    if _sqlstate(orig) == UNIQUE_VIOLATION_SQLSTATE:
        return True
    return getattr(orig, "sqlite_errorname", None) in SQLITE_UNIQUE_ERRORS


def is_write_conflict(exc: BaseException) -> bool:
    """True for lock contention the toggle can resolve by running again."""
    if not isinstance(exc, DBAPIError) or isinstance(exc, IntegrityError):
        return False
    orig = exc.orig
    if _sqlstate(orig) in WRITE_CONFLICT_SQLSTATES:
        return True
    return getattr(orig, "sqlite_errorname", None) in SQLITE_LOCK_ERRORS


class LikeService:
    """
    Like toggling and like-count reconciliation.

    Responsibilities:
        - toggle_like(): like/unlike with race absorption and notification
        - insert_like(): SAVEPOINT-guarded insert with a tagged outcome
        - recompute_like_count() / apply_like_count(): COUNT(*) → recipes.like_count
        - get_like_status() / get_like_count(): read-only queries

    Stateless; every method receives the request's session.
    """

    async def toggle_like(self, db: AsyncSession, recipe_id: int, user_id: int) -> LikeResponse:
        """
        Like the recipe if `user_id` does not like it yet, otherwise unlike it.

        A write conflict rolls back the whole session before the retry, so
        the toggle must be the only write of its request transaction.

        Args:
            db: Request session; the caller's dependency commits it
            recipe_id: Recipe being toggled
            user_id: Acting user (from X-User-Id)

        Returns:
            LikeResponse(liked, like_count) where like_count is the
            recomputed number of like rows.

        Raises:
            NotFoundError: Unknown recipe (→ 404)
            PersistenceTimeoutError: Exceeded db_operation_timeout (→ 500, retryable)
            DatabaseError: Any other persistence failure (→ 500)
        """
        timeout = settings.db_operation_timeout
        try:
            return await asyncio.wait_for(self._toggle(db, recipe_id, user_id), timeout=timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Like toggle timed out after %.1fs (recipe %s, user %s)",
                timeout,
                recipe_id,
                user_id,
            )
            raise PersistenceTimeoutError(
                timeout=timeout,
                operation="like toggle",
                context={"recipe_id": recipe_id},
            )
        except FoodFlowError:
            raise
        except SQLAlchemyError as e:
            logger.error(
                "Database error toggling like (recipe %s, user %s): %s",
                recipe_id,
                user_id,
                str(e),
                exc_info=True,
            )
            raise DatabaseError(
                message="Could not update the like. Please try again.",
                context={"recipe_id": recipe_id, "error_type": type(e).__name__},
            )

    async def _toggle(self, db: AsyncSession, recipe_id: int, user_id: int) -> LikeResponse:
        # Decided once; a retry after a lost race must not flip it
        wants_like: Optional[bool] = None

        async for attempt in AsyncRetrying(
            retry=retry_if_exception(is_write_conflict),
            stop=stop_after_attempt(settings.db_conflict_max_attempts),
            wait=wait_exponential_jitter(initial=0.05, max=0.5, jitter=0.05),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        ):
            with attempt:
                try:
                    recipe = await self._get_recipe(db, recipe_id)
                    if wants_like is None:
                        wants_like = await self._find_like(db, recipe_id, user_id) is None
                    if wants_like:
                        return await self._like(db, recipe, user_id)
                    return await self._unlike(db, recipe_id, user_id)
                except DBAPIError as e:
                    if is_write_conflict(e):
                        await db.rollback()
                    raise

    async def _like(self, db: AsyncSession, recipe: Recipe, user_id: int) -> LikeResponse:
        recipe_id = recipe.id
        owner_id = recipe.user_id

        outcome = await self.insert_like(db, recipe_id, user_id)
        like_count = await self.apply_like_count(db, recipe_id)

        if outcome is InsertOutcome.ALREADY_EXISTS:
            logger.warning(
                "Concurrent like absorbed (recipe %s, user %s); count=%d",
                recipe_id,
                user_id,
                like_count,
            )
        elif owner_id != user_id:
            await self._emit_notification_safely(db, recipe, user_id)

        logger.info("User %s liked recipe %s; count=%d", user_id, recipe_id, like_count)
        return LikeResponse(liked=True, like_count=like_count)

    async def _unlike(self, db: AsyncSession, recipe_id: int, user_id: int) -> LikeResponse:
        # Deleting an already-deleted row is a no-op, so a lost unlike race
        # still ends at liked=False
        await db.execute(
            delete(RecipeLike).where(
                RecipeLike.recipe_id == recipe_id,
                RecipeLike.user_id == user_id,
            )
        )
        like_count = await self.apply_like_count(db, recipe_id)

        logger.info("User %s unliked recipe %s; count=%d", user_id, recipe_id, like_count)
        return LikeResponse(liked=False, like_count=like_count)

    # ── Insert ────────────────────────────────────────────────────────────

    async def insert_like(self, db: AsyncSession, recipe_id: int, user_id: int) -> InsertOutcome:
        """
        Insert the like row inside a SAVEPOINT.

        A unique violation only rolls back the SAVEPOINT and is reported as
        ALREADY_EXISTS; the request transaction stays usable. Any other
        integrity error propagates.
        """
        try:
            async with db.begin_nested():
                db.add(RecipeLike(recipe_id=recipe_id, user_id=user_id))
                await db.flush()
        except IntegrityError as e:
            if is_unique_violation(e):
                return InsertOutcome.ALREADY_EXISTS
            raise
        return InsertOutcome.INSERTED

    # ── Count Reconciliation ──────────────────────────────────────────────

    async def recompute_like_count(self, db: AsyncSession, recipe_id: int) -> int:
        """SELECT COUNT(*) FROM recipe_likes WHERE recipe_id = :recipe_id"""
        result = await db.execute(
            select(func.count()).select_from(RecipeLike).where(RecipeLike.recipe_id == recipe_id)
        )
        return result.scalar() or 0

    async def apply_like_count(self, db: AsyncSession, recipe_id: int) -> int:
        """
        Recompute the count and overwrite recipes.like_count with it.

        Takes the recipe row lock first so the COUNT(*) that follows sees
        every like committed by a toggle that held it before.
        """
        await self._lock_recipe_row(db, recipe_id)
        like_count = await self.recompute_like_count(db, recipe_id)
        # UPDATE statement instead of attribute assignment: a rolled-back
        # SAVEPOINT may have expired the loaded Recipe
        await db.execute(
            update(Recipe)
            .where(Recipe.id == recipe_id)
            .values(like_count=like_count, updated_at=datetime.now(timezone.utc))
            .execution_options(synchronize_session=False)
        )
        return like_count

    # ── Read-Only Queries ─────────────────────────────────────────────────

    async def get_like_status(self, db: AsyncSession, recipe_id: int, user_id: int) -> LikeResponse:
        """Whether `user_id` likes the recipe, plus the reconciled count. No writes."""
        try:
            await self._get_recipe(db, recipe_id)
            existing = await self._find_like(db, recipe_id, user_id)
            like_count = await self.recompute_like_count(db, recipe_id)
        except SQLAlchemyError as e:
            logger.error("Database error reading like status for recipe %s: %s", recipe_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the like status. Please try again.",
                context={"recipe_id": recipe_id},
            )
        return LikeResponse(liked=existing is not None, like_count=like_count)

    async def get_like_count(self, db: AsyncSession, recipe_id: int) -> LikeCountResponse:
        try:
            await self._get_recipe(db, recipe_id)
            like_count = await self.recompute_like_count(db, recipe_id)
        except SQLAlchemyError as e:
            logger.error("Database error counting likes for recipe %s: %s", recipe_id, str(e))
            raise DatabaseError(
                message="Could not retrieve the like count. Please try again.",
                context={"recipe_id": recipe_id},
            )
        return LikeCountResponse(like_count=like_count)

    # ── Helpers ───────────────────────────────────────────────────────────

    async def _lock_recipe_row(self, db: AsyncSession, recipe_id: int) -> None:
        # NO KEY UPDATE leaves the KEY SHARE lock of a like insert's
        # foreign key check unblocked
        await db.execute(
            select(Recipe.id).where(Recipe.id == recipe_id).with_for_update(key_share=True)
        )

    async def _get_recipe(self, db: AsyncSession, recipe_id: int) -> Recipe:
        recipe = await db.get(Recipe, recipe_id)
        if recipe is None:
            raise NotFoundError(resource="recipe", resource_id=str(recipe_id))
        return recipe

    async def _find_like(
        self, db: AsyncSession, recipe_id: int, user_id: int
    ) -> Optional[RecipeLike]:
        result = await db.execute(
            select(RecipeLike).where(
                RecipeLike.recipe_id == recipe_id,
                RecipeLike.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def _emit_notification_safely(
        self, db: AsyncSession, recipe: Recipe, liker_user_id: int
    ) -> None:
        # The like is already persisted; a notification failure must not undo it
        recipe_id = recipe.id
        try:
            async with db.begin_nested():
                await notification_service.emit_like_notification(db, recipe, liker_user_id)
        except Exception:
            logger.warning(
                "Like notification failed (recipe %s, liker %s); like kept",
                recipe_id,
                liker_user_id,
                exc_info=True,
            )


# ── Singleton Instance ────────────────────────────────────────────────────
like_service = LikeService()
