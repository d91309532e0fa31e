"""
PostgreSQL client with connection pooling.

Uses psycopg2 with ThreadedConnectionPool. The dashboard talks to the
database with a single service role, so tenant scoping is done in the
queries themselves (every gift card query filters on business_id).

One client is built lazily per process via get_postgres_client() and passed
to consumers explicitly.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, List, Tuple
from uuid import UUID

import psycopg2
import psycopg2.extras
import psycopg2.pool

logger = logging.getLogger(__name__)

# Global JSONB registration flag
_jsonb_registered = False

# Process-wide cached handle
_postgres_instance: "PostgresClient | None" = None
_instance_lock = threading.Lock()


class PostgresClient:
    """
    PostgreSQL client returning rows as dicts.

    Usage:
        db = PostgresClient(database_url)
        row = db.execute_single("SELECT * FROM businesses WHERE id = %s", (business_id,))
    """

    # Class-level connection pools shared across instances
    _connection_pools: Dict[str, psycopg2.pool.ThreadedConnectionPool] = {}
    _pools_lock = threading.RLock()

    def __init__(self, database_url: str):
        self._database_url = database_url
        self._ensure_connection_pool()

    def _ensure_connection_pool(self) -> None:
        """Create connection pool if it doesn't exist."""
        with self._pools_lock:
            if self._database_url not in self._connection_pools:
                pool = psycopg2.pool.ThreadedConnectionPool(
                    minconn=1,
                    maxconn=20,
                    dsn=self._database_url,
                    connect_timeout=30,
                )

                global _jsonb_registered
                if not _jsonb_registered:
                    psycopg2.extras.register_default_jsonb(globally=True)
                    _jsonb_registered = True

                self._connection_pools[self._database_url] = pool
                logger.info("Connection pool created")

    @contextmanager
    def get_connection(self):
        """Borrow a pooled connection; rolled back on error, always returned."""
        if self._database_url not in self._connection_pools:
            self._ensure_connection_pool()

        pool = self._connection_pools[self._database_url]
        conn = None

        try:
            conn = pool.getconn()
            if conn is None:
                raise RuntimeError("Could not get connection from pool")
            yield conn
        except Exception:
            if conn is not None:
                conn.rollback()
            raise
        finally:
            if conn:
                pool.putconn(conn)

    def _convert_params(self, params: Tuple | Dict | None) -> Tuple | Dict | None:
        """Convert UUID objects to strings."""
        if params is None:
            return None

        def convert(value: Any) -> Any:
            if isinstance(value, UUID):
                return str(value)
            if isinstance(value, list):
                return [convert(v) for v in value]
            if isinstance(value, tuple):
                return tuple(convert(v) for v in value)
            return value

        if isinstance(params, dict):
            return {k: convert(v) for k, v in params.items()}
        return convert(params)

    def execute(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute query, return list of row dicts. Empty list if no results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()] if cur.description else []
                conn.commit()
                return rows

    def execute_single(self, query: str, params: Tuple | Dict | None = None) -> Dict[str, Any] | None:
        """Execute query, return first row or None."""
        results = self.execute(query, params)
        return results[0] if results else None

    def execute_returning(self, query: str, params: Tuple | Dict | None = None) -> List[Dict[str, Any]]:
        """Execute INSERT/UPDATE/DELETE with RETURNING, return results."""
        params = self._convert_params(params)
        with self.get_connection() as conn:
            with conn.cursor(cursor_factory=psycopg2.extras.RealDictCursor) as cur:
                cur.execute(query, params)
                rows = [dict(row) for row in cur.fetchall()]
                conn.commit()
                return rows

    def close(self) -> None:
        """Close connection pool."""
        with self._pools_lock:
            if self._database_url in self._connection_pools:
                self._connection_pools[self._database_url].closeall()
                del self._connection_pools[self._database_url]

    @classmethod
    def close_all_pools(cls) -> None:
        """Close all connection pools."""
        with cls._pools_lock:
            for pool in cls._connection_pools.values():
                pool.closeall()
            cls._connection_pools.clear()


def get_postgres_client(database_url: str | None = None) -> PostgresClient:
    """
    Return the process-wide PostgresClient, creating it on first use.

    The URL is resolved once (argument, DATABASE_URL, then Vault); later calls
    return the cached handle and ignore the argument.
    """
    global _postgres_instance
    with _instance_lock:
        if _postgres_instance is None:
            if database_url is None:
                from clients.vault_client import get_database_url
                database_url = get_database_url()
            _postgres_instance = PostgresClient(database_url)
        return _postgres_instance

