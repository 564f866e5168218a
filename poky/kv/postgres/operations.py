"""
Key-value operations mapped onto the stored procedures.

Each function issues at most one statement per key through the given
executor. With the default executor a failed statement yields ``None``.
"""

from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Union

from poky.core.logger import setup_logger
from poky.kv.postgres.execution import CallExecutor, first_row
from poky.kv.postgres.models import BatchRecord, KVTuple, SetOutcome
from poky.kv.postgres.sql import (
    DELETE_SQL,
    GET_SQL,
    PURGE_BUCKET_SQL,
    Condition,
    mget_statement,
    set_statement,
)

logger = setup_logger(__name__, include_location=True)


def _to_tuple(row: Optional[dict]) -> Optional[KVTuple]:
    return KVTuple.model_validate(row) if row is not None else None


def _to_outcome(row: Optional[dict]) -> Optional[SetOutcome]:
    if row is None or row.get("result") is None:
        return None
    return SetOutcome(row["result"])


def pg_get(executor: CallExecutor, bucket: str, key: str) -> Optional[KVTuple]:
    """Get the tuple at ``bucket``/``key``, or ``None`` when there is none."""
    return executor.execute(GET_SQL, [bucket, key], lambda rows: _to_tuple(first_row(rows)))


def pg_set(
        executor: CallExecutor,
        bucket: str,
        key: str,
        data: str,
        modified_at: Optional[datetime] = None,
) -> Optional[SetOutcome]:
    """
    Upsert ``data`` at ``bucket``/``key``.

    Without ``modified_at`` the backend stamps the row itself. A stale
    ``modified_at`` comes back as ``SetOutcome.REJECTED``.
    """
    sql, params = set_statement(bucket, key, data, modified_at)
    return executor.execute(sql, params, lambda rows: _to_outcome(first_row(rows)))


def pg_delete(executor: CallExecutor, bucket: str, key: str) -> Optional[List[bool]]:
    """
    Delete the tuple at ``bucket``/``key``. Returns ``[True]`` when a row was
    removed and ``[False]`` when it did not exist.
    """
    def handler(rows):
        row = first_row(rows)
        return [bool(row["result"]) if row is not None else False]

    return executor.execute(DELETE_SQL, [bucket, key], handler)


def pg_mget(executor: CallExecutor, bucket: str, conds: Sequence[Condition]) -> Optional[List[KVTuple]]:
    """
    Fetch many keys of one bucket in a single ``mget`` call.

    Rows come back in whatever order the backend produced them. An empty
    ``conds`` returns ``[]`` without a round trip.
    """
    statement = mget_statement(bucket, conds)
    if statement is None:
        return []
    sql, params = statement
    return executor.execute(sql, params, lambda rows: [KVTuple.model_validate(row) for row in rows])


def pg_mset(
        executor: CallExecutor,
        records: Iterable[Union[BatchRecord, dict]],
) -> List[Optional[SetOutcome]]:
    """
    Upsert every record with its own ``upsert_kv_data`` call, in order.

    Records are written one at a time rather than in one multi-row statement
    so that concurrent writers never lock overlapping rows in different
    orders. A failed or rejected record does not stop the rest.
    """
    outcomes = []
    for record in records:
        if not isinstance(record, BatchRecord):
            record = BatchRecord.model_validate(record)
        outcomes.append(pg_set(executor, record.bucket, record.key, record.data, record.modified_at))
    logger.debug("mset wrote %d records", len(outcomes))
    return outcomes


def pg_purge_bucket(executor: CallExecutor, bucket: str) -> Optional[dict]:
    """Remove every tuple of ``bucket``. Should only be used in testing."""
    return executor.execute(PURGE_BUCKET_SQL, [bucket], first_row)
