"""Per-screen, time-bounded cache of profile snapshots and their friendship state."""
from __future__ import annotations

import logging
import time
from typing import Callable

from ..schemas.friends import FriendshipState, ProfileCacheEntry, UserProfileSnapshot

logger = logging.getLogger(__name__)

DEFAULT_TTL_MS = 30 * 60 * 1000


def wall_clock_ms() -> float:
    return time.time() * 1000.0


class ProfileCache:
    """Maps user id to ``ProfileCacheEntry``; entries older than the TTL count as absent.

    Each screen controller owns its own instance. Nothing is shared across
    screens, so no locking is required on the single event loop.
    """

    def __init__(self, *, ttl_ms: int = DEFAULT_TTL_MS, clock: Callable[[], float] | None = None) -> None:
        self.ttl_ms = ttl_ms
        self._clock = clock or wall_clock_ms
        self._entries: dict[str, ProfileCacheEntry] = {}

    def now(self) -> float:
        return self._clock()

    def get(self, user_id: str) -> ProfileCacheEntry | None:
        entry = self._entries.get(user_id)
        if entry is None:
            return None
        if self.now() - entry.timestamp < self.ttl_ms:
            logger.debug("Profile cache hit for %s", user_id)
            return entry
        logger.debug("Profile cache entry for %s expired", user_id)
        self._entries.pop(user_id, None)
        return None

    def put(self, user_id: str, profile: UserProfileSnapshot, status: FriendshipState) -> ProfileCacheEntry:
        entry = ProfileCacheEntry(profile=profile, status=status, timestamp=self.now())
        self._entries[user_id] = entry
        return entry

    def invalidate(self, user_id: str) -> None:
        if self._entries.pop(user_id, None) is not None:
            logger.debug("Profile cache entry for %s invalidated", user_id)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, user_id: object) -> bool:
        return isinstance(user_id, str) and self.get(user_id) is not None

    def __len__(self) -> int:
        return len(self._entries)


__all__ = ["DEFAULT_TTL_MS", "ProfileCache", "wall_clock_ms"]
