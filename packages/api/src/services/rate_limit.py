# This project was developed with assistance from AI tools.
"""Fixed-window rate limiting for untrusted submission channels.

Counters are keyed ``rate_limit:{action}:{method}:{identifier}`` so each
(action, channel, identifier) triple is exhausted independently. A window
starts at the first increment and lasts ``{action}_rate_period`` hours; the
maximum per window comes from ``{action}_rate_limit_{method}``.

Two counter stores are provided: an in-process store (single worker, tests)
and a Redis store used when ``REDIS_URL`` is configured.
"""

import logging
import threading
import time
from collections.abc import Callable, Mapping
from typing import Protocol

from ..core.config import Settings
from ..core.errors import RateLimitExceededError, UnknownActionError
from .policy import DEFAULT_POLICIES

logger = logging.getLogger(__name__)


class CounterStore(Protocol):
    def get(self, key: str) -> int: ...

    def increment(self, key: str, window_seconds: int) -> int: ...


class MemoryCounterStore:
    """Thread-safe in-process counters with per-key expiry."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self._clock = clock
        self._lock = threading.Lock()
        self._counters: dict[str, tuple[int, float]] = {}

    def _live(self, key: str, now: float) -> tuple[int, float] | None:
        entry = self._counters.get(key)
        if entry is None:
            return None
        if entry[1] <= now:
            del self._counters[key]
            return None
        return entry

    def get(self, key: str) -> int:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry[0] if entry else 0

    def increment(self, key: str, window_seconds: int) -> int:
        with self._lock:
            now = self._clock()
            entry = self._live(key, now)
            if entry is None:
                entry = (0, now + window_seconds)
            count = entry[0] + 1
            self._counters[key] = (count, entry[1])
            return count


class RedisCounterStore:
    """Redis-backed counters; the window TTL is set only on first increment."""

    def __init__(self, client):
        self._client = client

    def get(self, key: str) -> int:
        value = self._client.get(key)
        return int(value) if value is not None else 0

    def increment(self, key: str, window_seconds: int) -> int:
        pipe = self._client.pipeline()
        pipe.set(key, 0, ex=window_seconds, nx=True)
        pipe.incr(key)
        _, count = pipe.execute()
        return int(count)


class RateLimiter:
    """Gate in front of proof submission by web upload and inbound email."""

    def __init__(self, store: CounterStore):
        self._store = store

    @staticmethod
    def cache_key(action: str, method: str, identifier) -> str:
        return f"rate_limit:{action}:{method}:{identifier}"

    def check(
        self,
        action: str,
        identifier,
        method: str = "web",
        *,
        policies: Mapping[str, int] | None = None,
    ) -> int:
        """Count one attempt and return the new counter value.

        The atomic increment is the gate, so concurrent callers sharing a
        store cannot both slip under the limit. A rejected attempt still
        counts toward the current window.

        Raises UnknownActionError if no limit or period is configured for
        ``action``/``method`` and RateLimitExceededError once the counter
        passes the maximum for the current window.
        """
        policies = DEFAULT_POLICIES if policies is None else policies
        max_count = policies.get(f"{action}_rate_limit_{method}")
        period_hours = policies.get(f"{action}_rate_period")
        if max_count is None or period_hours is None:
            raise UnknownActionError(f"Unknown rate limit action: {action} ({method})")

        key = self.cache_key(action, method, identifier)
        count = self._store.increment(key, period_hours * 3600)
        if count > max_count:
            logger.warning(
                "Rate limit hit: action=%s method=%s identifier=%s max=%d",
                action, method, identifier, max_count,
            )
            raise RateLimitExceededError(action, method, max_count, period_hours)
        return count

    def current(self, action: str, identifier, method: str = "web") -> int:
        return self._store.get(self.cache_key(action, method, identifier))


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

_limiter: RateLimiter | None = None


def init_rate_limiter(cfg: Settings) -> RateLimiter:
    """Initialise the singleton (called once from app lifespan)."""
    global _limiter  # noqa: PLW0603
    if cfg.REDIS_URL:
        import redis

        store = RedisCounterStore(redis.Redis.from_url(cfg.REDIS_URL))
        logger.info("RateLimiter initialised (redis)")
    else:
        store = MemoryCounterStore()
        logger.info("RateLimiter initialised (in-process counters)")
    _limiter = RateLimiter(store)
    return _limiter


def get_rate_limiter() -> RateLimiter:
    """Return the initialised RateLimiter singleton."""
    if _limiter is None:
        raise RuntimeError("RateLimiter not initialised -- call init_rate_limiter() first")
    return _limiter
