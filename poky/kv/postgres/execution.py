"""
Scoped statement execution against the shared pool.

Every call borrows one connection, runs one parameterized statement, hands
the fully fetched rows to a handler while the connection is still checked
out, and returns the connection on every exit path. Driver errors are
logged link by link and turned into a ``BackendError`` value; pool errors
propagate.
"""

from dataclasses import dataclass, field
from typing import Any, Callable, Generic, List, Optional, Sequence, TypeVar, Union

import psycopg

from poky.core.errors import BackendCallFailure, ErrorInfo, classify_error_chain
from poky.core.logger import setup_logger
from poky.kv.postgres.pool import PoolManager

logger = setup_logger(__name__, include_location=True)

T = TypeVar("T")
Rows = List[dict]
ResultHandler = Callable[[Rows], T]


@dataclass(frozen=True)
class CallOk(Generic[T]):
    value: T


@dataclass(frozen=True)
class BackendError:
    details: List[ErrorInfo] = field(default_factory=list)


CallResult = Union[CallOk[T], BackendError]


def _sql_summary(statement: str) -> str:
    trimmed = (statement or "").strip()
    if not trimmed:
        return "UNKNOWN len=0"
    operation = trimmed.split(None, 1)[0].upper()
    return f"{operation} len={len(trimmed)}"


def first_row(rows: Rows) -> Optional[dict]:
    return rows[0] if rows else None


def all_rows(rows: Rows) -> Rows:
    return rows


def warn_backend_error(error: BaseException) -> List[ErrorInfo]:
    """Log every link of a driver error chain and return their details."""
    details = classify_error_chain(error)
    for info in details:
        logger.warning(
            info.format(),
            extra={
                "exception_type": info.exception_type,
                "sqlstate": info.pg_code,
                "error_code": info.code,
                "error": info.to_dict(),
            },
        )
    return details


class CallExecutor:
    """Runs statements through a ``PoolManager``."""

    def __init__(self, pool: PoolManager):
        self.pool = pool

    def call(self, statement: str, params: Sequence[Any], handler: ResultHandler = all_rows) -> CallResult:
        """
        Execute ``statement`` and return ``CallOk(handler(rows))`` or
        ``BackendError`` when the driver raised.

        Rows are fetched in full before ``handler`` runs and before the
        connection goes back to the pool.
        """
        logger.debug("Executing %s with %d params", _sql_summary(statement), len(params))
        with self.pool.connection() as conn:
            try:
                with conn.cursor() as cur:
                    cur.execute(statement, params)
                    rows = cur.fetchall() if cur.description is not None else []
                    return CallOk(handler(list(rows)))
            except psycopg.Error as e:
                return BackendError(warn_backend_error(e))

    def execute(self, statement: str, params: Sequence[Any], handler: ResultHandler = all_rows) -> Optional[T]:
        """Run a statement; backend failures are logged and yield ``None``."""
        result = self.call(statement, params, handler)
        if isinstance(result, BackendError):
            return None
        return result.value

    def execute_strict(self, statement: str, params: Sequence[Any], handler: ResultHandler = all_rows) -> T:
        """Run a statement; backend failures raise ``BackendCallFailure``."""
        result = self.call(statement, params, handler)
        if isinstance(result, BackendError):
            raise BackendCallFailure(result.details)
        return result.value


class StrictCallExecutor(CallExecutor):
    """Executor whose ``execute`` surfaces backend failures instead of hiding them."""

    def execute(self, statement: str, params: Sequence[Any], handler: ResultHandler = all_rows) -> T:
        return self.execute_strict(statement, params, handler)
