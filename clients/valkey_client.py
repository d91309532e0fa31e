"""
Valkey (Redis-compatible) client for shared rate-limit counters.

Simple wrapper around redis-py. Lets several app instances share one
attempt budget per identifier. Connection URL from Vault or VALKEY_URL.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import logging

import redis

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        count = client.incr_with_expiry("ratelimit:owner:ip:1.2.3.4", 900)
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """Health check. Raises redis.ConnectionError if unreachable."""
        self._client.ping()
        return True

    def get(self, key: str) -> str | None:
        """Get value by key. None if key doesn't exist (not an error)."""
        return self._client.get(key)

    def delete(self, key: str) -> bool:
        """Delete key. True if key existed."""
        return self._client.delete(key) > 0

    def ttl(self, key: str) -> int:
        """
        Get remaining TTL in seconds.

        Returns:
            -2 if key doesn't exist
            -1 if key has no expiration
            Positive int: remaining seconds
        """
        return self._client.ttl(key)

    def incr_with_expiry(self, key: str, expire_seconds: int) -> int:
        """
        Increment key by 1, starting its expiry when the key is created.

        INCR and the conditional EXPIRE run in one MULTI/EXEC so a counter can
        never be left without a TTL. The expiry is not refreshed on later
        increments (fixed window).
        """
        pipe = self._client.pipeline(transaction=True)
        pipe.incr(key)
        pipe.expire(key, expire_seconds, nx=True)
        count, _ = pipe.execute()
        return int(count)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
