"""
PostgreSQL-backed key-value store.

Usage:
    from poky.core.config import PokySettings
    from poky.kv.postgres import PostgresKeyValue

    with PostgresKeyValue(PokySettings.from_env()) as kv:
        kv.create_bucket("users")
        kv.set("users", "alice", '{"name": "Alice"}')
        kv.get("users", "alice")
"""

import threading
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

from poky.core.config import PokySettings
from poky.core.errors import PoolClosed
from poky.kv.postgres import operations, partition
from poky.kv.postgres.dsn import create_connection_spec
from poky.kv.postgres.execution import CallExecutor, StrictCallExecutor
from poky.kv.postgres.models import BatchRecord, KVTuple, PoolSettings, SetOutcome
from poky.kv.postgres.pool import PoolManager
from poky.kv.postgres.sql import Condition


def create_connection(dsn: str, settings: Optional[PokySettings] = None) -> PoolManager:
    """Build a lazy pool for ``dsn``; the pool connects on first use."""
    settings = settings or PokySettings.from_env(dsn=dsn)
    spec = create_connection_spec(dsn, settings.driver)
    return PoolManager(
        spec,
        PoolSettings(
            min_size=settings.min_pool_size,
            max_size=settings.max_pool_size,
            timeout=settings.pool_timeout,
        ),
    )


def close_connection(pool: PoolManager) -> None:
    pool.close()


class PostgresKeyValue:
    """
    Key-value operations over one lazily created pool.

    With ``strict=False`` backend failures are logged and reported as
    ``None``; with ``strict=True`` they raise ``BackendCallFailure`` and
    invalid bucket names raise ``InvalidBucketName``.
    """

    def __init__(self, settings: PokySettings, strict: bool = False):
        if not settings.dsn:
            raise ValueError("PokySettings.dsn is required")
        self.settings = settings
        self.strict = strict
        self._pool: Optional[PoolManager] = None
        self._executor: Optional[CallExecutor] = None
        self._lock = threading.Lock()
        self._closed = False

    @classmethod
    def from_dsn(cls, dsn: str, strict: bool = False, **overrides) -> "PostgresKeyValue":
        return cls(PokySettings.from_env(dsn=dsn, **overrides), strict=strict)

    @property
    def pool(self) -> PoolManager:
        if self._pool is None:
            with self._lock:
                if self._closed:
                    raise PoolClosed("Key-value store is closed")
                if self._pool is None:
                    self._pool = create_connection(self.settings.dsn, self.settings)
        return self._pool

    @property
    def executor(self) -> CallExecutor:
        if self._executor is None:
            # self.pool takes the same non-reentrant lock
            pool = self.pool
            with self._lock:
                if self._executor is None:
                    executor_class = StrictCallExecutor if self.strict else CallExecutor
                    self._executor = executor_class(pool)
        return self._executor

    def get(self, bucket: str, key: str) -> Optional[KVTuple]:
        return operations.pg_get(self.executor, bucket, key)

    def set(self, bucket: str, key: str, data: str, modified_at: Optional[datetime] = None) -> Optional[SetOutcome]:
        return operations.pg_set(self.executor, bucket, key, data, modified_at)

    def delete(self, bucket: str, key: str) -> Optional[bool]:
        result = operations.pg_delete(self.executor, bucket, key)
        return result[0] if result is not None else None

    def mget(self, bucket: str, conds: Sequence[Condition]) -> Optional[List[KVTuple]]:
        return operations.pg_mget(self.executor, bucket, conds)

    def mset(self, records: Iterable[Union[BatchRecord, dict]]) -> List[Optional[SetOutcome]]:
        return operations.pg_mset(self.executor, records)

    def using_partitioning(self) -> bool:
        return partition.using_partitioning(self.executor, self.settings.partitioned)

    def create_bucket(self, bucket: str) -> Optional[Any]:
        return partition.create_bucket(
            self.executor, bucket, force_partitioned=self.settings.partitioned, strict=self.strict
        )

    def purge_bucket(self, bucket: str) -> Optional[dict]:
        return operations.pg_purge_bucket(self.executor, bucket)

    def stats(self) -> Dict[str, Any]:
        return self._pool.stats() if self._pool is not None else {}

    def close(self) -> None:
        """Close the pool if it was ever created."""
        with self._lock:
            self._closed = True
            pool = self._pool
        if pool is not None:
            close_connection(pool)

    def __enter__(self) -> "PostgresKeyValue":
        return self

    def __exit__(self, *exc) -> None:
        self.close()
