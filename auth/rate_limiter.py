"""Rate limiting for login, magic link and password reset attempts.

Counters live in an injected CounterStore:
- InMemoryCounterStore: process-local, resets on restart. Default.
- ValkeyCounterStore: shared by every app instance.

Windows are fixed: the first attempt opens a window of window_seconds and
the counter expires when it closes. Limits are checked before any
credential lookup so a limited client learns nothing from timing.
"""

import logging
import math
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable

import redis

from clients.valkey_client import ValkeyClient
from auth.exceptions import RateLimitedError

logger = logging.getLogger(__name__)


class CounterStore(ABC):
    """Expiring integer counters keyed by string."""

    @abstractmethod
    def increment(self, key: str, window_seconds: int) -> int:
        """Add one attempt, opening a window if none is open. Returns the new count."""

    @abstractmethod
    def get(self, key: str) -> tuple[int, int] | None:
        """(count, seconds until the window closes), or None if no open window."""

    @abstractmethod
    def reset(self, key: str) -> None:
        """Forget the counter. Safe for missing keys."""

    def ping(self) -> bool:
        """True if counters can be read and written."""
        return True


class InMemoryCounterStore(CounterStore):
    """Thread-safe dict of counters with TTL eviction on access."""

    # Closed windows are swept once this many keys are held
    PURGE_THRESHOLD = 10_000

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        purge_threshold: int = PURGE_THRESHOLD,
    ):
        self._clock = clock
        self._purge_threshold = purge_threshold
        self._counters: dict[str, list] = {}  # key -> [count, reset_at]
        self._lock = threading.RLock()

    def increment(self, key: str, window_seconds: int) -> int:
        now = self._clock()
        with self._lock:
            entry = self._counters.get(key)
            if entry is None or entry[1] <= now:
                if len(self._counters) >= self._purge_threshold:
                    self.purge_expired()
                entry = [0, now + window_seconds]
                self._counters[key] = entry
            entry[0] += 1
            return entry[0]

    def get(self, key: str) -> tuple[int, int] | None:
        now = self._clock()
        with self._lock:
            entry = self._counters.get(key)
            if entry is None:
                return None
            if entry[1] <= now:
                del self._counters[key]
                return None
            return entry[0], max(math.ceil(entry[1] - now), 1)

    def reset(self, key: str) -> None:
        with self._lock:
            self._counters.pop(key, None)

    def purge_expired(self) -> int:
        """Drop every closed window. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, reset_at) in self._counters.items() if reset_at <= now]
            for key in expired:
                del self._counters[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._counters)


class ValkeyCounterStore(CounterStore):
    """Counters as Valkey keys whose TTL is the window."""

    def __init__(self, valkey: ValkeyClient):
        self._valkey = valkey

    def increment(self, key: str, window_seconds: int) -> int:
        return self._valkey.incr_with_expiry(key, window_seconds)

    def get(self, key: str) -> tuple[int, int] | None:
        value = self._valkey.get(key)
        if value is None:
            return None
        ttl = self._valkey.ttl(key)
        return int(value), max(ttl, 1)

    def reset(self, key: str) -> None:
        self._valkey.delete(key)

    def ping(self) -> bool:
        try:
            return self._valkey.ping()
        except redis.RedisError as e:
            logger.warning(f"Valkey counter store unreachable: {e}")
            return False


class RateLimiter:
    """
    Attempt budget per client IP and per account identifier.

    namespace keeps budgets apart, so admin logins never consume the owner
    login budget and vice versa.
    """

    KEY_PREFIX = "ratelimit:"

    def __init__(
        self,
        store: CounterStore,
        max_attempts: int,
        window_seconds: int,
        namespace: str,
    ):
        self._store = store
        self._max_attempts = max_attempts
        self._window_seconds = window_seconds
        self._namespace = namespace

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    def _key(self, kind: str, identifier: str) -> str:
        """Rate limit key, identifier normalized to lowercase."""
        return f"{self.KEY_PREFIX}{self._namespace}:{kind}:{identifier.strip().lower()}"

    def _keys(self, ip_address: str | None, identifier: str | None) -> list[str]:
        keys = []
        if ip_address:
            keys.append(self._key("ip", ip_address))
        if identifier:
            keys.append(self._key("id", identifier))
        return keys

    def check(self, ip_address: str | None, identifier: str | None) -> None:
        """
        Raise if the IP or the identifier has used up its budget.

        Does not count as an attempt; call record_failure for that.

        Raises:
            RateLimitedError: If either key is over the limit.
        """
        for key in self._keys(ip_address, identifier):
            current = self._store.get(key)
            if current is not None and current[0] >= self._max_attempts:
                raise RateLimitedError(retry_after_seconds=current[1], limit=self._max_attempts)

    def record_failure(self, ip_address: str | None, identifier: str | None) -> None:
        """Count one failed attempt against both keys."""
        for key in self._keys(ip_address, identifier):
            self._store.increment(key, self._window_seconds)

    def hit(self, identifier: str) -> None:
        """
        Count a request and raise once the budget is exceeded.

        For request-count budgets (magic links, reset emails) where every
        request counts, successful or not.

        Raises:
            RateLimitedError: If this request is over the limit.
        """
        key = self._key("id", identifier)
        count = self._store.increment(key, self._window_seconds)
        if count > self._max_attempts:
            current = self._store.get(key)
            retry_after = current[1] if current else self._window_seconds
            raise RateLimitedError(retry_after_seconds=retry_after, limit=self._max_attempts)

    def reset(self, ip_address: str | None, identifier: str | None) -> None:
        """Reset both keys after a successful login."""
        for key in self._keys(ip_address, identifier):
            self._store.reset(key)

