"""
Time-bounded cache for per-user plan limits.

One instance per application (see tagmentia.main), injected wherever limits
are read or invalidated. Entries expire after ttl_seconds and are removed
explicitly through invalidate()/invalidate_all(); nothing is evicted
silently. Each process holds its own cache, so a multi-instance deployment
can serve a verdict that is up to one TTL stale.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Tuple

from tagmentia.models.limits import UserPlanLimits


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 5 * 60


@dataclass(frozen=True)
class CachedLimitsEntry:
    value: UserPlanLimits
    expires_at: float


class LimitsCache:
    """Memoizes fetch(user_id) for ttl_seconds per user."""

    def __init__(
        self,
        fetch: Callable[[str], UserPlanLimits],
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._fetch = fetch
        self._ttl = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CachedLimitsEntry] = {}
        # bumped by invalidation; a fetch that straddles a bump is not stored
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._lock = threading.Lock()

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def _live_entry(self, user_id: str, now: float) -> Optional[CachedLimitsEntry]:
        entry = self._entries.get(user_id)
        if entry is not None and now < entry.expires_at:
            return entry
        return None

    def get(self, user_id: str) -> UserPlanLimits:
        """Return cached limits, fetching on a miss or after expiry.

        Fetch errors propagate and leave the cache unchanged.
        """
        with self._lock:
            entry = self._live_entry(user_id, self._clock())
            stamp = self._stamp(user_id)
        if entry is not None:
            return entry.value

        value = self._fetch(user_id)
        with self._lock:
            if self._stamp(user_id) != stamp:
                logger.debug("[limits-cache] invalidated during fetch, not stored", extra={"user_id": user_id})
                return value
            self._entries[user_id] = CachedLimitsEntry(value=value, expires_at=self._clock() + self._ttl)
        logger.debug("[limits-cache] miss", extra={"user_id": user_id})
        return value

    def _stamp(self, user_id: str) -> Tuple[int, int]:
        return self._epoch, self._generations.get(user_id, 0)

    def invalidate(self, user_id: str) -> None:
        with self._lock:
            self._entries.pop(user_id, None)
            self._generations[user_id] = self._generations.get(user_id, 0) + 1
        logger.info("[limits-cache] invalidated", extra={"user_id": user_id})

    def invalidate_all(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            self._generations.clear()
            self._epoch += 1
        logger.info("[limits-cache] cleared", extra={"entries": count})

    def __contains__(self, user_id: object) -> bool:
        if not isinstance(user_id, str):
            return False
        with self._lock:
            return self._live_entry(user_id, self._clock()) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
