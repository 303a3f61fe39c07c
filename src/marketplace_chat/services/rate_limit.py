"""Typing-indicator debounce backed by a swappable timestamp store."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from threading import Lock
from typing import Any, Final, Protocol

import redis

from marketplace_chat.core.settings import settings

logger = logging.getLogger(__name__)

_KEY_PREFIX: Final[str] = "typing"


class TimestampStore(Protocol):
    """Records the last accepted signal time per key."""

    def claim(self, key: str, now: float, window_seconds: float) -> bool:
        """Record ``now`` for ``key`` if the window has elapsed; return whether it did."""
        ...

    def prune(self, now: float, max_age_seconds: float) -> None:
        ...

    def size(self) -> int:
        ...


class InMemoryTimestampStore:
    """Process-local store. Suitable for single-instance deployments."""

    def __init__(self) -> None:
        self._entries: dict[str, float] = {}
        self._lock = Lock()

    def claim(self, key: str, now: float, window_seconds: float) -> bool:
        with self._lock:
            last = self._entries.get(key)
            if last is not None and now - last < window_seconds:
                return False
            self._entries[key] = now
            return True

    def prune(self, now: float, max_age_seconds: float) -> None:
        with self._lock:
            stale = [key for key, ts in self._entries.items() if now - ts > max_age_seconds]
            for key in stale:
                del self._entries[key]

    def size(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisTimestampStore:
    """Shared store for multi-process deployments.

    A key set with ``NX`` and a millisecond expiry equal to the window exists
    exactly while the window is open, so expiry handles pruning.
    """

    def __init__(self, client: Any) -> None:
        self._redis = client

    def claim(self, key: str, now: float, window_seconds: float) -> bool:
        window_ms = max(1, int(window_seconds * 1000))
        return bool(self._redis.set(f"{_KEY_PREFIX}:{key}", repr(now), nx=True, px=window_ms))

    def prune(self, now: float, max_age_seconds: float) -> None:
        return None

    def size(self) -> int:
        return 0


class TypingRateLimiter:
    """Accepts at most one typing signal per ``(user, conversation)`` per window."""

    def __init__(
        self,
        store: TimestampStore,
        *,
        window_seconds: float = 1.0,
        soft_limit: int = 5000,
        max_age_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.store = store
        self.window_seconds = window_seconds
        self.soft_limit = soft_limit
        self.max_age_seconds = max_age_seconds
        self._clock = clock

    def allow(self, user_id: str, conversation_id: str) -> bool:
        """Return True and record the signal when the window has elapsed."""
        now = self._clock()
        if self.store.size() > self.soft_limit:
            self.store.prune(now, self.max_age_seconds)
        return self.store.claim(f"{user_id}:{conversation_id}", now, self.window_seconds)


def build_timestamp_store() -> TimestampStore:
    """Return the store selected by ``TYPING_RATE_BACKEND``."""
    if settings.typing_rate_backend == "redis":
        logger.info("Typing limiter using redis at %s", settings.redis_url)
        return RedisTimestampStore(redis.from_url(settings.redis_url))
    return InMemoryTimestampStore()


class _TypingLimiterSingleton:
    _instance: TypingRateLimiter | None = None

    @classmethod
    def get_instance(cls) -> TypingRateLimiter:
        if cls._instance is None:
            cls._instance = TypingRateLimiter(
                build_timestamp_store(),
                window_seconds=settings.typing_window_seconds,
                soft_limit=settings.typing_soft_limit,
                max_age_seconds=settings.typing_max_age_seconds,
            )
        return cls._instance


def get_typing_limiter() -> TypingRateLimiter:
    """Return the process-wide typing limiter."""
    return _TypingLimiterSingleton.get_instance()
