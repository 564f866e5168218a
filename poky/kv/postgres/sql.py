"""
Statements for the key-value stored procedures.

``mget_statement`` encodes the batch conditions as a PostgreSQL array of
``mget_param_row`` composites, one ``(%s, %s)`` slot per condition, with the
parameters flattened in request order.
"""

from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from poky.kv.postgres.models import MgetCondition

GET_SQL = "SELECT * FROM poky WHERE bucket=%s AND key=%s"
SET_SQL = "SELECT upsert_kv_data(%s, %s, %s) AS result"
SET_MODIFIED_SQL = "SELECT upsert_kv_data(%s, %s, %s, %s) AS result"
DELETE_SQL = "SELECT delete_kv_data(%s, %s) AS result"
CREATE_BUCKET_SQL = "SELECT create_bucket_partition(%s) AS result"
PURGE_BUCKET_SQL = "SELECT purge_bucket(%s) AS result"
CHILD_TABLES_SQL = """SELECT c.relname AS child
                      FROM pg_inherits
                      JOIN pg_class AS c ON (inhrelid=c.oid)
                      JOIN pg_class AS p ON (inhparent=p.oid)
                      WHERE p.relname = 'poky'"""

MGET_PARAM_ROW = "(%s, %s)::mget_param_row"

Condition = Union[MgetCondition, dict]


def wrap_join(before: str, sep: str, after: str, items: Iterable[str]) -> str:
    return before + sep.join(items) + after


def pg_array(items: Iterable[str]) -> str:
    return wrap_join("ARRAY[", ", ", "]", items)


def _as_condition(cond: Condition) -> MgetCondition:
    if isinstance(cond, MgetCondition):
        return cond
    return MgetCondition.model_validate(cond)


def mget_conditions(conds: Sequence[Condition]) -> Tuple[List[str], List[Any]]:
    """Return one placeholder slot per condition and the flat ``key, modified_at`` params."""
    slots = [MGET_PARAM_ROW] * len(conds)
    params: List[Any] = []
    for cond in map(_as_condition, conds):
        params.extend((cond.key, cond.modified_at))
    return slots, params


def mget_statement(bucket: str, conds: Sequence[Condition]) -> Optional[Tuple[str, List[Any]]]:
    """
    Build the ``mget(bucket, ARRAY[...])`` call, or ``None`` when there is
    nothing to ask for.

    Example:
        >>> mget_statement("b", [{"key": "k1"}, {"key": "k2"}])
        ('SELECT * FROM mget(%s, ARRAY[(%s, %s)::mget_param_row, (%s, %s)::mget_param_row])',
         ['b', 'k1', None, 'k2', None])
    """
    if not conds:
        return None
    slots, params = mget_conditions(conds)
    sql = wrap_join("SELECT * FROM mget(", ", ", ")", ["%s", pg_array(slots)])
    return sql, [bucket, *params]


def set_statement(bucket: str, key: str, data: str, modified_at: Any = None) -> Tuple[str, List[Any]]:
    if modified_at is not None:
        return SET_MODIFIED_SQL, [bucket, key, data, modified_at]
    return SET_SQL, [bucket, key, data]
