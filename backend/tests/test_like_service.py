"""
FoodFlow Backend: Like Service Tests
=====================================

What:  Toggle, race absorption, count reconciliation and the notification
       side effect, against a real SQLite database.

What we test:
    ✅ like → unlike → like oscillation
    ✅ recipes.like_count equals COUNT(recipe_likes) after every toggle
    ✅ Lost insert race answers liked=True without a second row or notification
    ✅ Simultaneous first-likes on separate sessions both answer liked=True
    ✅ Lock conflicts are retried in the direction the first attempt chose
    ✅ Exactly one notification per first like by a non-owner
    ✅ A failing notification never undoes the like
    ✅ Timeouts and driver errors map to DatabaseError subclasses
"""

import asyncio
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, select, text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

from foodflow.config import settings
from foodflow.exceptions import DatabaseError, NotFoundError, PersistenceTimeoutError
from foodflow.models import Notification, Recipe, RecipeLike
from foodflow.services.like_service import (
    InsertOutcome,
    is_unique_violation,
    is_write_conflict,
    like_service,
)
from foodflow.services.notification_service import notification_service


# ══════════════════════════════════════════════════════════════════════════
# Helpers
# ══════════════════════════════════════════════════════════════════════════

async def toggle(session_factory, recipe_id, user_id):
    """Run one toggle in its own committed transaction, like one request."""
    async with session_factory() as session:
        result = await like_service.toggle_like(session, recipe_id, user_id)
        await session.commit()
    return result.liked, result.like_count


async def stored_count(session_factory, recipe_id):
    async with session_factory() as session:
        recipe = await session.get(Recipe, recipe_id)
        return recipe.like_count


async def like_rows(session_factory, recipe_id):
    async with session_factory() as session:
        result = await session.execute(
            select(func.count()).select_from(RecipeLike).where(RecipeLike.recipe_id == recipe_id)
        )
        return result.scalar()


async def notifications_for(session_factory, receiver_id):
    async with session_factory() as session:
        result = await session.execute(
            select(Notification).where(Notification.receiver_id == receiver_id)
        )
        return list(result.scalars().all())


# ══════════════════════════════════════════════════════════════════════════
# Toggle Semantics
# ══════════════════════════════════════════════════════════════════════════

class TestToggleLike:

    @pytest.mark.asyncio
    async def test_like_unlike_like_oscillates(self, session_factory, seeded):
        rid, uid = seeded["recipe_id"], seeded["liker_id"]

        assert await toggle(session_factory, rid, uid) == (True, 1)
        assert await toggle(session_factory, rid, uid) == (False, 0)
        assert await toggle(session_factory, rid, uid) == (True, 1)

    @pytest.mark.asyncio
    async def test_stored_count_matches_rows_after_every_toggle(self, session_factory, seeded):
        rid = seeded["recipe_id"]
        sequence = [
            seeded["liker_id"],
            seeded["other_id"],
            seeded["owner_id"],
            seeded["liker_id"],
            seeded["other_id"],
        ]

        for user_id in sequence:
            _, returned = await toggle(session_factory, rid, user_id)
            rows = await like_rows(session_factory, rid)
            assert returned == rows
            assert await stored_count(session_factory, rid) == rows

    @pytest.mark.asyncio
    async def test_recipe_owner_scenario(self, session_factory, seeded):
        """bob likes, bob unlikes, alice likes her own recipe."""
        rid = seeded["recipe_id"]
        owner, liker = seeded["owner_id"], seeded["liker_id"]

        assert await toggle(session_factory, rid, liker) == (True, 1)
        notifications = await notifications_for(session_factory, owner)
        assert len(notifications) == 1
        assert notifications[0].sender_id == liker
        assert notifications[0].recipe_id == rid
        assert notifications[0].type == "LIKE"
        assert notifications[0].is_read is False
        assert notifications[0].message == "bob liked your recipe 'Tomato Soup'."

        assert await toggle(session_factory, rid, liker) == (False, 0)
        assert await toggle(session_factory, rid, owner) == (True, 1)

        # Unlike kept the first notification; the self-like added none
        assert len(await notifications_for(session_factory, owner)) == 1
        async with session_factory() as session:
            assert await notification_service.count_for_recipe(session, rid) == 1

    @pytest.mark.asyncio
    async def test_self_like_creates_no_notification(self, session_factory, seeded):
        assert await toggle(session_factory, seeded["recipe_id"], seeded["owner_id"]) == (True, 1)
        assert await notifications_for(session_factory, seeded["owner_id"]) == []

    @pytest.mark.asyncio
    async def test_relike_notifies_again(self, session_factory, seeded):
        """Every first-like transition notifies, including after an unlike."""
        rid, uid = seeded["recipe_id"], seeded["liker_id"]

        await toggle(session_factory, rid, uid)
        await toggle(session_factory, rid, uid)
        await toggle(session_factory, rid, uid)

        assert len(await notifications_for(session_factory, seeded["owner_id"])) == 2

    @pytest.mark.asyncio
    async def test_unknown_recipe_raises_not_found(self, db_session, seeded):
        with pytest.raises(NotFoundError) as exc_info:
            await like_service.toggle_like(db_session, 999, seeded["liker_id"])
        assert "999" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_lost_insert_race_is_absorbed(self, session_factory, seeded):
        """
        The second request of a double-click saw no like row, but the first
        one committed before it inserted.
        """
        rid, uid = seeded["recipe_id"], seeded["liker_id"]
        await toggle(session_factory, rid, uid)

        with patch.object(like_service, "_find_like", AsyncMock(return_value=None)):
            assert await toggle(session_factory, rid, uid) == (True, 1)

        assert await like_rows(session_factory, rid) == 1
        assert await stored_count(session_factory, rid) == 1
        assert len(await notifications_for(session_factory, seeded["owner_id"])) == 1

    @pytest.mark.asyncio
    async def test_missing_liker_is_named_someone(self, session_factory, seeded):
        """A liker with no users row still likes; foreign keys are enforced."""
        async with session_factory() as session:
            assert (await session.execute(text("PRAGMA foreign_keys"))).scalar() == 1

        assert await toggle(session_factory, seeded["recipe_id"], 42) == (True, 1)

        notifications = await notifications_for(session_factory, seeded["owner_id"])
        assert [n.message for n in notifications] == ["Someone liked your recipe 'Tomato Soup'."]
        assert notifications[0].sender_id is None
        assert await toggle(session_factory, seeded["recipe_id"], 42) == (False, 0)


# ══════════════════════════════════════════════════════════════════════════
# Concurrent Toggles
# ══════════════════════════════════════════════════════════════════════════

class _SqliteBusy(Exception):
    sqlite_errorname = "SQLITE_BUSY"


def existence_checks_meet(parties):
    """
    Hold every toggle after its "is there a like row?" check until all
    `parties` toggles made theirs, so each one decides on the same state.
    """
    barrier = asyncio.Barrier(parties)
    find_like = like_service._find_like

    async def find_then_wait(db, recipe_id, user_id):
        existing = await find_like(db, recipe_id, user_id)
        await barrier.wait()
        return existing

    return patch.object(like_service, "_find_like", find_then_wait)


class TestConcurrentToggles:

    @pytest.mark.asyncio
    async def test_simultaneous_first_likes_agree(self, session_factory, seeded):
        """A double-click: two sessions, same user, both saw no like row."""
        rid, uid = seeded["recipe_id"], seeded["liker_id"]

        with existence_checks_meet(2):
            results = await asyncio.gather(
                toggle(session_factory, rid, uid),
                toggle(session_factory, rid, uid),
            )

        assert results == [(True, 1), (True, 1)]
        assert await like_rows(session_factory, rid) == 1
        assert await stored_count(session_factory, rid) == 1
        assert len(await notifications_for(session_factory, seeded["owner_id"])) == 1

    @pytest.mark.asyncio
    async def test_simultaneous_likes_by_different_users_both_count(self, session_factory, seeded):
        rid = seeded["recipe_id"]

        with existence_checks_meet(2):
            results = await asyncio.gather(
                toggle(session_factory, rid, seeded["liker_id"]),
                toggle(session_factory, rid, seeded["other_id"]),
            )

        assert sorted(results) == [(True, 1), (True, 2)]
        assert await like_rows(session_factory, rid) == 2
        assert await stored_count(session_factory, rid) == 2
        assert len(await notifications_for(session_factory, seeded["owner_id"])) == 2

    @pytest.mark.asyncio
    async def test_lock_conflict_retries_the_like(self, session_factory, seeded):
        rid, uid = seeded["recipe_id"], seeded["liker_id"]
        insert_like = like_service.insert_like
        attempts = []

        async def busy_once(db, recipe_id, user_id):
            attempts.append(user_id)
            if len(attempts) == 1:
                raise OperationalError("INSERT INTO recipe_likes ...", {}, _SqliteBusy())
            return await insert_like(db, recipe_id, user_id)

        with patch.object(like_service, "insert_like", busy_once):
            assert await toggle(session_factory, rid, uid) == (True, 1)

        assert attempts == [uid, uid]
        assert await like_rows(session_factory, rid) == 1
        assert len(await notifications_for(session_factory, seeded["owner_id"])) == 1

    @pytest.mark.asyncio
    async def test_retry_keeps_the_first_decision(self, session_factory, seeded):
        """
        The like lost its lock conflict to an identical like that committed
        meanwhile; the retry must not turn into an unlike.
        """
        rid, uid = seeded["recipe_id"], seeded["liker_id"]
        insert_like = like_service.insert_like
        raced = []

        async def other_request_wins(db, recipe_id, user_id):
            if not raced:
                raced.append(user_id)
                # SQLite: the other request cannot commit while this one holds its read lock
                await db.rollback()
                assert await toggle(session_factory, recipe_id, user_id) == (True, 1)
                raise OperationalError("INSERT INTO recipe_likes ...", {}, _SqliteBusy())
            return await insert_like(db, recipe_id, user_id)

        with patch.object(like_service, "insert_like", other_request_wins):
            assert await toggle(session_factory, rid, uid) == (True, 1)

        assert await like_rows(session_factory, rid) == 1
        assert len(await notifications_for(session_factory, seeded["owner_id"])) == 1

    @pytest.mark.asyncio
    async def test_persistent_lock_conflict_becomes_database_error(self, session_factory, seeded):
        busy = OperationalError("INSERT INTO recipe_likes ...", {}, _SqliteBusy())

        with patch.object(settings, "db_conflict_max_attempts", 2), \
                patch.object(like_service, "insert_like", AsyncMock(side_effect=busy)) as mock_insert:
            with pytest.raises(DatabaseError):
                await toggle(session_factory, seeded["recipe_id"], seeded["liker_id"])

        assert mock_insert.await_count == 2
        assert await like_rows(session_factory, seeded["recipe_id"]) == 0


# ══════════════════════════════════════════════════════════════════════════
# Notification Isolation
# ══════════════════════════════════════════════════════════════════════════

class TestNotificationFailure:

    @pytest.mark.asyncio
    async def test_emitter_exception_keeps_the_like(self, session_factory, seeded):
        rid, uid = seeded["recipe_id"], seeded["liker_id"]

        with patch.object(
            notification_service,
            "emit_like_notification",
            AsyncMock(side_effect=RuntimeError("notification store down")),
        ):
            assert await toggle(session_factory, rid, uid) == (True, 1)

        assert await like_rows(session_factory, rid) == 1
        assert await stored_count(session_factory, rid) == 1
        assert await notifications_for(session_factory, seeded["owner_id"]) == []

    @pytest.mark.asyncio
    async def test_emitter_database_error_rolls_back_only_the_notification(
        self, session_factory, seeded
    ):
        """A constraint failure inside the emitter's SAVEPOINT leaves the like intact."""

        async def broken_emit(db, recipe, liker_user_id):
            db.add(
                Notification(
                    receiver_id=recipe.user_id,
                    sender_id=liker_user_id,
                    type="LIKE",
                    message=None,  # NOT NULL violation
                    recipe_id=recipe.id,
                )
            )
            await db.flush()

        rid, uid = seeded["recipe_id"], seeded["liker_id"]
        with patch.object(notification_service, "emit_like_notification", broken_emit):
            assert await toggle(session_factory, rid, uid) == (True, 1)

        assert await like_rows(session_factory, rid) == 1
        assert await notifications_for(session_factory, seeded["owner_id"]) == []


# ══════════════════════════════════════════════════════════════════════════
# Count Reconciliation & Read-Only Queries
# ══════════════════════════════════════════════════════════════════════════

class TestReconciliation:

    @pytest.mark.asyncio
    async def test_zero_rows_gives_zero(self, db_session, seeded):
        assert await like_service.recompute_like_count(db_session, seeded["recipe_id"]) == 0

    @pytest.mark.asyncio
    async def test_apply_repairs_a_drifted_cache(self, session_factory, seeded):
        rid = seeded["recipe_id"]
        async with session_factory() as session:
            recipe = await session.get(Recipe, rid)
            recipe.like_count = 17
            session.add(RecipeLike(recipe_id=rid, user_id=seeded["liker_id"]))
            await session.commit()

        async with session_factory() as session:
            assert await like_service.apply_like_count(session, rid) == 1
            await session.commit()

        assert await stored_count(session_factory, rid) == 1

    @pytest.mark.asyncio
    async def test_like_count_and_status_are_read_only(self, session_factory, seeded):
        rid, uid = seeded["recipe_id"], seeded["liker_id"]
        await toggle(session_factory, rid, uid)

        async with session_factory() as session:
            count = await like_service.get_like_count(session, rid)
            mine = await like_service.get_like_status(session, rid, uid)
            theirs = await like_service.get_like_status(session, rid, seeded["other_id"])
            assert not session.new and not session.dirty

        assert count.like_count == 1
        assert (mine.liked, mine.like_count) == (True, 1)
        assert (theirs.liked, theirs.like_count) == (False, 1)

    @pytest.mark.asyncio
    async def test_like_count_unknown_recipe_raises_not_found(self, db_session, seeded):
        with pytest.raises(NotFoundError):
            await like_service.get_like_count(db_session, 404)

    @pytest.mark.asyncio
    async def test_insert_like_reports_outcome(self, session_factory, seeded):
        rid, uid = seeded["recipe_id"], seeded["liker_id"]
        async with session_factory() as session:
            assert await like_service.insert_like(session, rid, uid) is InsertOutcome.INSERTED
            assert await like_service.insert_like(session, rid, uid) is InsertOutcome.ALREADY_EXISTS
            # The outer transaction survived the failed SAVEPOINT
            assert await like_service.recompute_like_count(session, rid) == 1


# ══════════════════════════════════════════════════════════════════════════
# Error Translation
# ══════════════════════════════════════════════════════════════════════════

class _PgUniqueViolation(Exception):
    sqlstate = "23505"


class _PgForeignKeyViolation(Exception):
    sqlstate = "23503"


class _SqliteUniqueViolation(Exception):
    sqlite_errorname = "SQLITE_CONSTRAINT_UNIQUE"


class _SqliteNotNull(Exception):
    sqlite_errorname = "SQLITE_CONSTRAINT_NOTNULL"


class _PgDeadlock(Exception):
    sqlstate = "40P01"


class TestErrorTranslation:

    @pytest.mark.parametrize(
        "orig, expected",
        [
            (_PgUniqueViolation(), True),
            (_PgForeignKeyViolation(), False),
            (_SqliteUniqueViolation(), True),
            (_SqliteNotNull(), False),
            (Exception("duplicate key value violates unique constraint"), False),
        ],
    )
    def test_unique_violation_uses_error_codes_only(self, orig, expected):
        assert is_unique_violation(IntegrityError("INSERT ...", {}, orig)) is expected

    @pytest.mark.parametrize(
        "error, expected",
        [
            (OperationalError("INSERT ...", {}, _SqliteBusy()), True),
            (DBAPIError("UPDATE ...", {}, _PgDeadlock()), True),
            (OperationalError("SELECT ...", {}, Exception("connection reset")), False),
            (IntegrityError("INSERT ...", {}, _PgUniqueViolation()), False),
            (RuntimeError("database is locked"), False),
        ],
    )
    def test_write_conflict_uses_error_codes_only(self, error, expected):
        assert is_write_conflict(error) is expected

    @pytest.mark.asyncio
    async def test_timeout_raises_retryable_persistence_error(self, mock_db_session):
        async def slow_toggle(db, recipe_id, user_id):
            await asyncio.sleep(5)

        with patch.object(settings, "db_operation_timeout", 0.05), \
                patch.object(like_service, "_toggle", slow_toggle):
            with pytest.raises(PersistenceTimeoutError) as exc_info:
                await like_service.toggle_like(mock_db_session, 5, 2)

        assert exc_info.value.retryable is True
        assert exc_info.value.context["recipe_id"] == 5

    @pytest.mark.asyncio
    async def test_driver_error_becomes_database_error(self, mock_db_session):
        failure = OperationalError("SELECT ...", {}, Exception("connection reset"))
        with patch.object(like_service, "_toggle", AsyncMock(side_effect=failure)):
            with pytest.raises(DatabaseError) as exc_info:
                await like_service.toggle_like(mock_db_session, 5, 2)

        assert exc_info.value.retryable is False
        assert "connection reset" not in exc_info.value.message
