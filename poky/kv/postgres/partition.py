import re
from typing import Any, Optional

from poky.core.errors import InvalidBucketName
from poky.core.logger import setup_logger
from poky.kv.postgres.execution import CallExecutor, first_row
from poky.kv.postgres.sql import CHILD_TABLES_SQL, CREATE_BUCKET_SQL

logger = setup_logger(__name__, include_location=True)

# bucket names become child table names when partitioning
VALID_BUCKET_NAME = re.compile(r"[A-Za-z_][A-Za-z0-9_]+")


def valid_bucket_name(bucket: Any) -> bool:
    return isinstance(bucket, str) and VALID_BUCKET_NAME.fullmatch(bucket) is not None


def child_tables_exist(executor: CallExecutor) -> bool:
    """True when at least one table inherits from ``poky``."""
    return bool(executor.execute(CHILD_TABLES_SQL, [], lambda rows: len(rows) > 0))


def using_partitioning(executor: CallExecutor, force: bool = False) -> bool:
    return force or child_tables_exist(executor)


def create_bucket(
        executor: CallExecutor,
        bucket: str,
        force_partitioned: bool = False,
        strict: bool = False,
) -> Optional[Any]:
    """
    Create the partition for ``bucket`` when partitioning is in use.

    The name is checked first, so an invalid name never reaches the backend:
    it returns ``None`` (or raises ``InvalidBucketName`` when ``strict``).
    A valid name returns ``True`` in a flat layout, the
    ``create_bucket_partition`` row on success, and ``None`` when the backend
    call failed.
    """
    if not valid_bucket_name(bucket):
        error = InvalidBucketName(bucket)
        if strict:
            raise error
        logger.error(str(error))
        return None
    if not using_partitioning(executor, force_partitioned):
        return True
    return executor.execute(CREATE_BUCKET_SQL, [bucket], first_row)
