"""
FoodFlow Backend: User Directory
=================================

What:  Resolves user ids to display names for notifications.
How:   Database lookups fronted by a bounded, expiring in-memory cache.
Who:   NotificationService: uncached liker and owner rows for the emitter
       (which warm the cache), cached sender names for listings.

Cache Semantics:
    - Owned by the UserService instance; there is no module-level dict.
    - Bounded: at most `max_entries` users, least recently used evicted first.
    - Expiring: entries older than `ttl_seconds` are treated as misses, so a
      rename made elsewhere shows up within one TTL.
    - Explicit invalidation: `invalidate(user_id)` after a rename or delete,
      `clear()` for everything.
    - Only hits are cached. A missing user is looked up again next time, so
      a user created a moment later is never masked by a stale miss.

    Scope is a single process. Multi-worker deployments simply hold one
    cache per worker; stale names are bounded by the TTL.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional, Set, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from foodflow.config import settings
from foodflow.models.user import User

logger = logging.getLogger(__name__)


class UserCache:
    """
    LRU + TTL map of user id → username.

    Not thread-safe; uvicorn async workers run all coroutines of a process
    on one thread, and every method completes without awaiting.
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: float = 300,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.max_entries = max_entries
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        # user_id -> (username, stored_at)
        self._entries: "OrderedDict[int, Tuple[str, float]]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, user_id: int) -> Optional[str]:
        entry = self._entries.get(user_id)
        if entry is None:
            self.misses += 1
            return None

        username, stored_at = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[user_id]
            self.misses += 1
            return None

        self._entries.move_to_end(user_id)
        self.hits += 1
        return username

    def put(self, user_id: int, username: str) -> None:
        self._entries[user_id] = (username, self._clock())
        self._entries.move_to_end(user_id)
        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("User cache evicted user %s", evicted)

    def invalidate(self, user_id: int) -> None:
        self._entries.pop(user_id, None)

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)


class UserService:
    """
    Read-side access to users.

    Registration, login and profile edits belong to the auth collaborator;
    it must call `invalidate()` after changing a username.
    """

    def __init__(self, cache: Optional[UserCache] = None):
        self.cache = cache or UserCache(
            max_entries=settings.user_cache_max_entries,
            ttl_seconds=settings.user_cache_ttl_seconds,
        )

    async def get_user(self, db: AsyncSession, user_id: int) -> Optional[User]:
        """Load a user row (uncached) and refresh its cached display name."""
        user = await db.get(User, user_id)
        if user is not None:
            self.cache.put(user.id, user.username)
        return user

    async def get_display_name(self, db: AsyncSession, user_id: Optional[int]) -> Optional[str]:
        """
        Return the username for `user_id`, or None when there is no such user.

        Cache first, database on a miss.
        """
        if user_id is None:
            return None

        cached = self.cache.get(user_id)
        if cached is not None:
            return cached

        user = await self.get_user(db, user_id)
        return user.username if user is not None else None

    async def get_display_names(
        self, db: AsyncSession, user_ids: Set[int]
    ) -> Dict[int, str]:
        """Resolve several ids at once; unknown ids are absent from the result."""
        names: Dict[int, str] = {}
        for user_id in user_ids:
            name = await self.get_display_name(db, user_id)
            if name is not None:
                names[user_id] = name
        return names

    def invalidate(self, user_id: int) -> None:
        self.cache.invalidate(user_id)

    def clear_cache(self) -> None:
        self.cache.clear()


# ── Singleton Instance ────────────────────────────────────────────────────
# Holds the cache, so it must be shared across requests
user_service = UserService()
