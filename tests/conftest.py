import threading
import time

import psycopg_pool
import pytest

import poky.kv.postgres.pool as pool_module
from poky.kv.postgres.execution import CallExecutor
from poky.kv.postgres.models import ConnectionSpec, PoolSettings
from poky.kv.postgres.pool import PoolManager


class FakeBackend:
    """
    Stands in for the database behind a fake pool.

    ``on(fragment, result)`` registers a response for statements containing
    ``fragment``; ``result`` is a list of row dicts, an exception instance to
    raise, or a callable taking the params and returning rows.
    """

    def __init__(self):
        self.calls = []
        self.rules = []
        self.pools = []
        self.delay = 0.0
        self.checked_out = 0
        self.peak = 0
        self._lock = threading.Lock()

    def on(self, fragment, result):
        self.rules.insert(0, (fragment, result))
        return self

    def statements(self, fragment=None):
        return [sql for sql, _ in self.calls if fragment is None or fragment in sql]

    def respond(self, sql, params):
        with self._lock:
            self.calls.append((sql, list(params)))
        if self.delay:
            time.sleep(self.delay)
        for fragment, result in self.rules:
            if fragment in sql:
                if isinstance(result, BaseException):
                    raise result
                if callable(result):
                    return result(params)
                return [dict(row) for row in result]
        return []

    def acquired(self):
        with self._lock:
            self.checked_out += 1
            self.peak = max(self.peak, self.checked_out)

    def released(self):
        with self._lock:
            self.checked_out -= 1


class FakeCursor:
    def __init__(self, backend):
        self.backend = backend
        self.description = None
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, sql, params=None):
        self._rows = self.backend.respond(sql, params or [])
        self.description = [("result",)]

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows


class FakeConnection:
    def __init__(self, backend):
        self.backend = backend

    def cursor(self):
        return FakeCursor(self.backend)


class FakeConnectionPool:
    def __init__(self, backend, conninfo, **kwargs):
        self.backend = backend
        self.conninfo = conninfo
        self.kwargs = kwargs
        self.name = kwargs.get("name", "fake_pool")
        self.max_size = kwargs.get("max_size", 4)
        self.timeout = kwargs.get("timeout", 30.0)
        self.opened = False
        self.close_calls = 0
        self.getconn_error = None
        self._slots = threading.BoundedSemaphore(self.max_size)

    def open(self, wait=True, timeout=None):
        self.opened = True

    def close(self):
        self.close_calls += 1

    def getconn(self, timeout=None):
        if self.close_calls:
            raise psycopg_pool.PoolClosed(f"the pool {self.name!r} is already closed")
        if self.getconn_error is not None:
            raise self.getconn_error
        if not self._slots.acquire(timeout=self.timeout):
            raise psycopg_pool.PoolTimeout(f"couldn't get a connection after {self.timeout:.2f} sec")
        self.backend.acquired()
        return FakeConnection(self.backend)

    def putconn(self, conn):
        self.backend.released()
        self._slots.release()

    def get_stats(self):
        return {"pool_size": self.max_size, "pool_available": self.max_size - self.backend.checked_out,
                "requests_waiting": 0}


@pytest.fixture
def backend(monkeypatch):
    backend = FakeBackend()

    def factory(conninfo, **kwargs):
        pool = FakeConnectionPool(backend, conninfo, **kwargs)
        backend.pools.append(pool)
        return pool

    monkeypatch.setattr(pool_module, "ConnectionPool", factory)
    return backend


@pytest.fixture
def spec():
    return ConnectionSpec(scheme="postgresql", host="localhost", port=5432, user="poky",
                          password="secret", database="poky")


@pytest.fixture
def pool(backend, spec):
    manager = PoolManager(spec, PoolSettings(min_size=3, max_size=15, timeout=5.0))
    yield manager
    manager.close()


@pytest.fixture
def executor(pool):
    return CallExecutor(pool)
