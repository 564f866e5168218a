"""
Lazily-opened, bounded PostgreSQL connection pool.

The underlying ``psycopg_pool.ConnectionPool`` is only created on the first
``connection()`` call, so building a store never touches the network.
"""
import threading
import time
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Optional

import psycopg_pool
from psycopg import Connection
from psycopg.rows import dict_row, DictRow
from psycopg_pool import ConnectionPool

from poky.core.common import elapsed_ms
from poky.core.errors import PoolClosed, PoolExhausted
from poky.core.logger import setup_logger
from poky.kv.postgres.models import ConnectionSpec, PoolSettings

logger = setup_logger(__name__, include_location=True)

__all__ = [
    'PoolManager',
    'open_pool',
]


class PoolManager:
    """Owns one connection pool for the lifetime of the process."""

    def __init__(self, spec: ConnectionSpec, settings: Optional[PoolSettings] = None):
        self.spec = spec
        self.settings = settings or PoolSettings()
        self._pool: Optional[ConnectionPool[Connection[DictRow]]] = None
        self._lock = threading.Lock()
        self._closed = False

    @property
    def is_open(self) -> bool:
        return self._pool is not None and not self._closed

    @property
    def closed(self) -> bool:
        return self._closed

    def _create_pool(self) -> ConnectionPool[Connection[DictRow]]:
        settings = self.settings
        logger.info(
            "Creating pool with min %d and max %d connections.", settings.min_size, settings.max_size
        )
        pool = ConnectionPool(
            self.spec.conninfo,
            min_size=settings.min_size,
            max_size=settings.max_size,
            timeout=settings.timeout,
            max_idle=settings.max_idle_excess,
            max_lifetime=settings.max_idle,
            kwargs={"row_factory": dict_row, "autocommit": True},
            name=settings.name,
            open=False,
        )
        try:
            pool.open(wait=True, timeout=settings.timeout)
        except psycopg_pool.PoolTimeout as e:
            pool.close()
            raise PoolExhausted(
                f"Could not open pool {settings.name} to {self.spec.host}:{self.spec.port} "
                f"within {settings.timeout}s"
            ) from e
        logger.debug("Pool %s opened for %s", settings.name, self.spec.subname)
        return pool

    def get_pool(self) -> ConnectionPool[Connection[DictRow]]:
        """Return the pool, creating it on first use. Safe under concurrent callers."""
        if self._closed:
            raise PoolClosed(f"Pool {self.settings.name} is closed")
        pool = self._pool
        if pool is not None:
            return pool
        with self._lock:
            if self._closed:
                raise PoolClosed(f"Pool {self.settings.name} is closed")
            if self._pool is None:
                self._pool = self._create_pool()
            return self._pool

    @contextmanager
    def connection(self) -> Iterator[Connection[DictRow]]:
        """
        Check a connection out of the pool and return it on every exit path.

        Raises:
            PoolExhausted: no connection became available within the timeout,
                or too many callers are already waiting.
            PoolClosed: the pool has been closed.
        """
        pool = self.get_pool()
        acquire_start = time.monotonic()
        try:
            conn = pool.getconn()
        except psycopg_pool.PoolClosed as e:
            raise PoolClosed(f"Pool {self.settings.name} is closed") from e
        except (psycopg_pool.PoolTimeout, psycopg_pool.TooManyRequests) as e:
            raise PoolExhausted(
                f"No connection available from {self.settings.name} after {elapsed_ms(acquire_start):.1f}ms: {e}"
            ) from e
        logger.debug("Connection acquired from %s in %.1fms", self.settings.name, elapsed_ms(acquire_start))
        try:
            yield conn
        finally:
            pool.putconn(conn)
            logger.debug("Connection returned to %s", self.settings.name)

    def close(self) -> None:
        """Close every pooled connection. Later calls are no-ops."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pool, self._pool = self._pool, None
        if pool is not None:
            logger.info("Closing pool %s", self.settings.name)
            pool.close()

    def stats(self) -> Dict[str, Any]:
        pool = self._pool
        if pool is None:
            return {}
        pool_stats = pool.get_stats()
        return {
            "name": pool.name,
            "size": pool_stats.get("pool_size", 0),
            "available": pool_stats.get("pool_available", 0),
            "waiting": pool_stats.get("requests_waiting", 0),
        }

    def __enter__(self) -> "PoolManager":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def open_pool(spec: ConnectionSpec, min_size: int = 3, max_size: int = 15, **kwargs) -> PoolManager:
    """Create a lazy pool handle for ``spec``; nothing connects until first use."""
    return PoolManager(spec, PoolSettings(min_size=min_size, max_size=max_size, **kwargs))
