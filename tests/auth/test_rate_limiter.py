"""Tests for RateLimiter and its counter stores."""

from unittest.mock import Mock

import pytest
import redis

from auth.exceptions import RateLimitedError
from auth.rate_limiter import InMemoryCounterStore, RateLimiter, ValkeyCounterStore
from clients.valkey_client import ValkeyClient


class FakeClock:
    """Monotonic clock the test moves by hand."""

    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryCounterStore(clock=clock)


@pytest.fixture
def rate_limiter(store):
    """Three attempts per five minutes."""
    return RateLimiter(store, max_attempts=3, window_seconds=300, namespace="login")


class TestInMemoryCounterStore:

    def test_increment_counts_up(self, store):
        assert store.increment("k", 60) == 1
        assert store.increment("k", 60) == 2

    def test_get_missing_is_none(self, store):
        assert store.get("missing") is None

    def test_get_returns_count_and_ttl(self, store, clock):
        store.increment("k", 60)
        clock.advance(20)
        assert store.get("k") == (1, 40)

    def test_window_is_fixed(self, store, clock):
        """Later increments do not extend the window."""
        store.increment("k", 60)
        clock.advance(50)
        store.increment("k", 60)
        assert store.get("k") == (2, 10)

    def test_expired_window_starts_over(self, store, clock):
        store.increment("k", 60)
        clock.advance(60)
        assert store.get("k") is None
        assert store.increment("k", 60) == 1

    def test_reset_missing_key_is_safe(self, store):
        store.reset("missing")

    def test_ping(self, store):
        assert store.ping() is True

    def test_purge_expired(self, store, clock):
        store.increment("short", 10)
        store.increment("long", 100)
        clock.advance(30)

        assert store.purge_expired() == 1
        assert len(store) == 1

    def test_new_window_sweeps_at_threshold(self, clock):
        store = InMemoryCounterStore(clock=clock, purge_threshold=2)
        store.increment("a", 10)
        store.increment("b", 10)
        clock.advance(30)

        store.increment("c", 10)

        assert len(store) == 1


class TestValkeyCounterStore:

    @pytest.fixture
    def valkey(self):
        return Mock(spec=ValkeyClient)

    def test_increment_uses_expiring_counter(self, valkey):
        valkey.incr_with_expiry.return_value = 4
        assert ValkeyCounterStore(valkey).increment("k", 900) == 4
        valkey.incr_with_expiry.assert_called_once_with("k", 900)

    def test_ping(self, valkey):
        valkey.ping.return_value = True
        assert ValkeyCounterStore(valkey).ping() is True

    def test_ping_unreachable(self, valkey):
        valkey.ping.side_effect = redis.ConnectionError("refused")
        assert ValkeyCounterStore(valkey).ping() is False

    def test_get_reads_count_and_ttl(self, valkey):
        valkey.get.return_value = "2"
        valkey.ttl.return_value = 120
        assert ValkeyCounterStore(valkey).get("k") == (2, 120)

    def test_get_missing(self, valkey):
        valkey.get.return_value = None
        assert ValkeyCounterStore(valkey).get("k") is None

    def test_reset_deletes(self, valkey):
        ValkeyCounterStore(valkey).reset("k")
        valkey.delete.assert_called_once_with("k")


class TestCheck:

    def test_allows_under_limit(self, rate_limiter):
        rate_limiter.record_failure("1.2.3.4", "a@b.test")
        rate_limiter.record_failure("1.2.3.4", "a@b.test")
        rate_limiter.check("1.2.3.4", "a@b.test")

    def test_blocks_at_limit(self, rate_limiter):
        for _ in range(3):
            rate_limiter.record_failure("1.2.3.4", "a@b.test")

        with pytest.raises(RateLimitedError) as exc_info:
            rate_limiter.check("1.2.3.4", "a@b.test")

        assert exc_info.value.retry_after_seconds == 300
        assert exc_info.value.limit == 3

    def test_check_does_not_count(self, rate_limiter, store):
        for _ in range(10):
            rate_limiter.check("1.2.3.4", "a@b.test")
        assert len(store) == 0

    def test_ip_budget_spans_identifiers(self, rate_limiter):
        """One IP cycling through emails is still limited."""
        for i in range(3):
            rate_limiter.record_failure("1.2.3.4", f"user{i}@b.test")

        with pytest.raises(RateLimitedError):
            rate_limiter.check("1.2.3.4", "fresh@b.test")

    def test_identifier_budget_spans_ips(self, rate_limiter):
        for i in range(3):
            rate_limiter.record_failure(f"10.0.0.{i}", "a@b.test")

        with pytest.raises(RateLimitedError):
            rate_limiter.check("10.0.0.99", "a@b.test")

    def test_identifier_is_case_insensitive(self, rate_limiter):
        for _ in range(3):
            rate_limiter.record_failure(None, "A@B.test")

        with pytest.raises(RateLimitedError):
            rate_limiter.check(None, "a@b.test")

    def test_unknown_ip_only_uses_identifier(self, rate_limiter, store):
        rate_limiter.record_failure(None, "a@b.test")
        assert len(store) == 1

    def test_window_expiry_lifts_limit(self, rate_limiter, clock):
        for _ in range(3):
            rate_limiter.record_failure("1.2.3.4", "a@b.test")
        clock.advance(300)
        rate_limiter.check("1.2.3.4", "a@b.test")


class TestNamespaces:

    def test_budgets_are_separate(self, store):
        owner = RateLimiter(store, max_attempts=3, window_seconds=300, namespace="login")
        admin = RateLimiter(store, max_attempts=3, window_seconds=300, namespace="admin")

        for _ in range(3):
            owner.record_failure("1.2.3.4", "same")

        admin.check("1.2.3.4", "same")


class TestHit:

    def test_allows_up_to_limit(self, rate_limiter):
        for _ in range(3):
            rate_limiter.hit("a@b.test")

    def test_raises_past_limit(self, rate_limiter):
        for _ in range(3):
            rate_limiter.hit("a@b.test")
        with pytest.raises(RateLimitedError):
            rate_limiter.hit("a@b.test")


class TestReset:

    def test_clears_both_keys(self, rate_limiter, store):
        for _ in range(3):
            rate_limiter.record_failure("1.2.3.4", "a@b.test")

        rate_limiter.reset("1.2.3.4", "a@b.test")

        rate_limiter.check("1.2.3.4", "a@b.test")
        assert store.get("ratelimit:login:ip:1.2.3.4") is None
        assert store.get("ratelimit:login:id:a@b.test") is None
