"""
Error types and PostgreSQL error classification for poky.

Structural problems (bad DSN, bad bucket name) and pool capacity problems are
raised as exceptions. Failures of a single statement are described by
``ErrorInfo`` records so they can be logged, returned, or raised on demand.
"""

from enum import Enum
from typing import Any, Iterator, List, Optional
from pydantic import BaseModel, Field


class PokyError(Exception):
    """Base class for all poky errors."""


class MalformedConnectionString(PokyError, ValueError):
    """The DSN cannot be parsed or carries no credentials."""

    def __init__(self, dsn: str, reason: str):
        self.reason = reason
        # never echo credentials back into logs
        super().__init__(f"Malformed connection string: {reason}")


class InvalidBucketName(PokyError, ValueError):
    """The bucket name cannot be used as a partition table name."""

    def __init__(self, bucket: str):
        self.bucket = bucket
        super().__init__(
            f"Error, bucket name '{bucket}' is not a valid partitioned bucket name. "
            "Must match letters, digits and underscores only and not start with a digit."
        )


class PoolExhausted(PokyError):
    """No connection could be acquired from the pool in time."""


class PoolClosed(PokyError):
    """The pool has been closed."""


class ErrorKind(str, Enum):
    """Categories of backend statement failures."""

    DB_CONNECTION = "db_connection"  # 08xxx
    DB_CONSTRAINT = "db_constraint"  # 23xxx
    DB_DEADLOCK = "db_deadlock"      # 40001, 40P01
    DB_TIMEOUT = "db_timeout"        # 57014
    DB_SYNTAX = "db_syntax"          # 42xxx
    DB_DATA = "db_data"              # 22xxx
    UNKNOWN = "unknown"


class ErrorInfo(BaseModel):
    """
    One link of a backend error chain.

    ``code`` plays the role of a vendor error code: ``PG_<sqlstate>``,
    or ``PG_UNKNOWN`` when the driver reported no sqlstate.
    """

    kind: ErrorKind = Field(default=ErrorKind.UNKNOWN)
    retryable: bool = Field(default=False)
    code: str = Field(default="PG_UNKNOWN")
    message: str = Field(default="Unknown error")
    pg_code: Optional[str] = Field(None, description="PostgreSQL sqlstate (e.g. 40P01, 23505)")
    exception_type: Optional[str] = Field(None, description="Python exception class name")

    def to_dict(self) -> dict[str, Any]:
        d = {
            "kind": self.kind.value,
            "retryable": self.retryable,
            "code": self.code,
            "message": self.message,
        }
        if self.pg_code is not None:
            d["pg_code"] = self.pg_code
        if self.exception_type is not None:
            d["exception_type"] = self.exception_type
        return d

    def format(self) -> str:
        return (
            f"{self.exception_type}:\n"
            f" Message: {self.message}\n"
            f" SQLState: {self.pg_code}\n"
            f" Error Code: {self.code}"
        )


class BackendCallFailure(PokyError):
    """A statement failed on the backend. Raised only by strict calls."""

    def __init__(self, details: List[ErrorInfo]):
        self.details = details
        head = details[0].message if details else "unknown backend error"
        super().__init__(f"Backend call failed: {head}")


def _sqlstate(error: BaseException) -> Optional[str]:
    pg_code = getattr(error, "sqlstate", None)
    if not pg_code:
        pg_code = getattr(error, "pgcode", None)
    return pg_code or None


def _message(error: BaseException) -> str:
    diag = getattr(error, "diag", None)
    primary = getattr(diag, "message_primary", None) if diag is not None else None
    return primary or str(error).strip() or error.__class__.__name__


def classify_postgres_error(error: BaseException) -> ErrorInfo:
    """Classify a single PostgreSQL driver exception."""
    pg_code = _sqlstate(error)
    code = f"PG_{pg_code}" if pg_code else "PG_UNKNOWN"
    message = _message(error)
    common = dict(
        code=code,
        message=message,
        pg_code=pg_code,
        exception_type=error.__class__.__name__,
    )

    if pg_code in ("40001", "40P01"):
        return ErrorInfo(kind=ErrorKind.DB_DEADLOCK, retryable=True, **common)
    if pg_code == "57014":
        return ErrorInfo(kind=ErrorKind.DB_TIMEOUT, retryable=True, **common)
    if pg_code and pg_code.startswith("08"):
        return ErrorInfo(kind=ErrorKind.DB_CONNECTION, retryable=True, **common)
    if pg_code and pg_code.startswith("23"):
        return ErrorInfo(kind=ErrorKind.DB_CONSTRAINT, **common)
    if pg_code and pg_code.startswith("42"):
        return ErrorInfo(kind=ErrorKind.DB_SYNTAX, **common)
    if pg_code and pg_code.startswith("22"):
        return ErrorInfo(kind=ErrorKind.DB_DATA, **common)
    return ErrorInfo(kind=ErrorKind.UNKNOWN, **common)


def iter_error_chain(error: BaseException) -> Iterator[BaseException]:
    """Yield ``error`` followed by its causes, explicit before implicit."""
    seen = set()
    current: Optional[BaseException] = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def classify_error_chain(error: BaseException) -> List[ErrorInfo]:
    return [classify_postgres_error(link) for link in iter_error_chain(error)]
