import psycopg
import psycopg.errors

from poky.core.errors import (
    BackendCallFailure,
    ErrorKind,
    InvalidBucketName,
    MalformedConnectionString,
    classify_error_chain,
    classify_postgres_error,
    iter_error_chain,
)


def test_classify_unique_violation():
    info = classify_postgres_error(psycopg.errors.UniqueViolation("duplicate key value"))
    assert info.kind == ErrorKind.DB_CONSTRAINT
    assert info.code == "PG_23505"
    assert info.pg_code == "23505"
    assert info.exception_type == "UniqueViolation"
    assert info.retryable is False


def test_classify_query_canceled():
    info = classify_postgres_error(psycopg.errors.QueryCanceled("canceling statement due to statement timeout"))
    assert info.kind == ErrorKind.DB_TIMEOUT
    assert info.retryable is True


def test_classify_without_sqlstate():
    info = classify_postgres_error(psycopg.InterfaceError("connection already closed"))
    assert info.kind == ErrorKind.UNKNOWN
    assert info.code == "PG_UNKNOWN"
    assert info.pg_code is None
    assert "pg_code" not in info.to_dict()


def test_error_chain_follows_cause_then_context():
    root = psycopg.OperationalError("connection lost")
    middle = psycopg.errors.SerializationFailure("could not serialize access")
    middle.__context__ = root
    top = psycopg.errors.InFailedSqlTransaction("current transaction is aborted")
    top.__cause__ = middle
    assert list(iter_error_chain(top)) == [top, middle, root]
    assert [i.kind for i in classify_error_chain(top)] == [
        ErrorKind.UNKNOWN, ErrorKind.DB_DEADLOCK, ErrorKind.UNKNOWN
    ]


def test_error_chain_stops_on_cycles():
    a = psycopg.OperationalError("a")
    b = psycopg.OperationalError("b")
    a.__cause__ = b
    b.__cause__ = a
    assert list(iter_error_chain(a)) == [a, b]


def test_format_lists_every_field():
    text = classify_postgres_error(psycopg.errors.UniqueViolation("duplicate key value")).format()
    assert text.splitlines() == [
        "UniqueViolation:",
        " Message: duplicate key value",
        " SQLState: 23505",
        " Error Code: PG_23505",
    ]


def test_backend_call_failure_message():
    details = classify_error_chain(psycopg.errors.UniqueViolation("duplicate key value"))
    error = BackendCallFailure(details)
    assert error.details == details
    assert "duplicate key value" in str(error)


def test_structural_errors_are_value_errors():
    assert isinstance(InvalidBucketName("2fast"), ValueError)
    assert isinstance(MalformedConnectionString("x", "missing user info"), ValueError)
