import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from crudgate.api.exceptions import BadRequestException
from crudgate.interface.base import Aggregation, Pagination
from crudgate.interface.filter import Filter, FilterTree, Sort
from crudgate.permissions.filters import PermissionFilterBuilder
from crudgate.query.filter import compile_filters
from crudgate.query.pagination import default_pagination
from crudgate.query.params import ParamCursor
from crudgate.query.sanitize import sanitize_identifier
from crudgate.query.sort import sorts_to_sql

logger = logging.getLogger(__name__)

AGGREGATE_FUNCTIONS = {"count", "sum", "avg", "min", "max"}

_NO_ID = object()


def _require_identifier(name: str, kind: str) -> str:
    safe = sanitize_identifier(name)
    if safe == "":
        raise BadRequestException(detail=f"Invalid {kind} name '{name}'")
    return safe


def aggregation_to_sql(agg: Aggregation) -> str:
    """Render ``FUNC(field) AS alias`` for one aggregation"""
    function = agg.function.strip().lower()
    if function not in AGGREGATE_FUNCTIONS:
        raise BadRequestException(detail=f"Unknown aggregate function '{agg.function}'")

    if agg.field == "*":
        if function != "count":
            raise BadRequestException(detail=f"'{function}' cannot be applied to '*'")
        field = "*"
        default_alias = f"{function}_all"
    else:
        field = _require_identifier(agg.field, "aggregate field")
        default_alias = f"{function}_{field}"

    alias = _require_identifier(agg.alias, "alias") if agg.alias else default_alias
    return f"{function.upper()}({field}) AS {alias}"


class QueryBuilder:
    """Composes SELECT and COUNT statements for one table.

    Request filters and an optional filter tree (the caller's row-level
    policy or a deep filter) end up in the same WHERE clause, AND-ed, with
    placeholders numbered from ``param_offset`` without gaps. Build a new
    instance per statement; instances are not meant to be shared.
    """

    def __init__(self, table_name: str, param_offset: int = 1):
        self.table_name = _require_identifier(table_name, "table")
        self.param_offset = param_offset
        self.select_cols: List[str] = ["*"]
        self.filters: List[Filter] = []
        self.tree: Optional[Union[Dict[str, Any], FilterTree]] = None
        self.sorts: List[Sort] = []
        self.group_cols: List[str] = []
        self.aggregations: List[Aggregation] = []
        self.pagination: Pagination = default_pagination()
        self.last_param: int = param_offset - 1

    def select(self, *cols: str) -> "QueryBuilder":
        if cols:
            self.select_cols = [c if c == "*" else _require_identifier(c, "column") for c in cols]
        return self

    def where(self, filters: Optional[List[Filter]]) -> "QueryBuilder":
        self.filters = list(filters or [])
        return self

    def where_tree(self, tree: Optional[Union[Dict[str, Any], FilterTree]]) -> "QueryBuilder":
        self.tree = tree or None
        return self

    def order_by(self, sorts: Optional[List[Sort]]) -> "QueryBuilder":
        self.sorts = list(sorts or [])
        return self

    def paginate(self, pagination: Pagination) -> "QueryBuilder":
        self.pagination = pagination
        return self

    def group_by(self, *cols: str) -> "QueryBuilder":
        self.group_cols = [_require_identifier(c, "group by column") for c in cols]
        return self

    def aggregate(self, aggregations: Optional[List[Aggregation]]) -> "QueryBuilder":
        self.aggregations = list(aggregations or [])
        return self

    def _where_sql(self, cursor: ParamCursor) -> str:
        parts = []
        if self.filters:
            parts.append(compile_filters(self.filters, cursor))

        if self.tree:
            predicate, _ = PermissionFilterBuilder.for_cursor(cursor).build(self.tree)
            if predicate:
                parts.append(f"({predicate})" if parts else predicate)

        return " AND ".join(parts)

    def _projection(self) -> str:
        if self.aggregations or self.group_cols:
            # grouped rows only carry the group columns and the aggregates
            cols = list(self.group_cols) + [aggregation_to_sql(a) for a in self.aggregations]
            return ", ".join(cols)
        return ", ".join(self.select_cols)

    def build_select(self) -> Tuple[str, List[Any]]:
        cursor = ParamCursor(self.param_offset)

        sql = f"SELECT {self._projection()} FROM {self.table_name}"

        where_sql = self._where_sql(cursor)
        if where_sql:
            sql += f" WHERE {where_sql}"

        if self.group_cols:
            sql += f" GROUP BY {', '.join(self.group_cols)}"

        order_sql = sorts_to_sql(self.sorts)
        if order_sql:
            sql += f" ORDER BY {order_sql}"

        sql += f" LIMIT {int(self.pagination.limit)} OFFSET {int(self.pagination.offset)}"

        self.last_param = cursor.last_index
        logger.debug(f"Built select: {sql}")
        return sql, cursor.args

    def build_count(self) -> Tuple[str, List[Any]]:
        """COUNT(*) over the same WHERE; always numbered from ``$1``"""
        cursor = ParamCursor(1)
        where_sql = self._where_sql(cursor)
        where_part = f" WHERE {where_sql}" if where_sql else ""

        if self.group_cols:
            sql = (
                f"SELECT COUNT(*) FROM (SELECT 1 FROM {self.table_name}{where_part}"
                f" GROUP BY {', '.join(self.group_cols)}) AS grouped"
            )
        else:
            sql = f"SELECT COUNT(*) FROM {self.table_name}{where_part}"

        return sql, cursor.args

    def build_select_by_id(self, id_column: str, id_value: Any = _NO_ID) -> Tuple[str, List[Any]]:
        """Single-row lookup, the primary key always binds to ``$1``.

        A filter tree set on the builder is appended after the key, numbered
        from ``$2``. When ``id_value`` is given it is included as the first
        argument.
        """
        column = _require_identifier(id_column, "primary key")
        cursor = ParamCursor(2)

        sql = f"SELECT {', '.join(self.select_cols)} FROM {self.table_name} WHERE {column} = $1"

        if self.tree:
            predicate, _ = PermissionFilterBuilder.for_cursor(cursor).build(self.tree)
            if predicate:
                sql += f" AND ({predicate})"

        args = list(cursor.args)
        if id_value is not _NO_ID:
            args.insert(0, id_value)
        return sql, args


def build_insert(table_name: str, data: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """INSERT ... RETURNING * for the sanitized keys of ``data``.

    Keys that are not plain identifiers are dropped.
    """
    table = _require_identifier(table_name, "table")
    cursor = ParamCursor(1)
    columns = []
    placeholders = []

    for col, val in data.items():
        if sanitize_identifier(col) == "":
            logger.debug(f"Dropping unsafe insert column {col!r}")
            continue
        columns.append(col)
        placeholders.append(cursor.add(val))

    if not columns:
        return f"INSERT INTO {table} DEFAULT VALUES RETURNING *", []

    sql = f"INSERT INTO {table} ({', '.join(columns)}) VALUES ({', '.join(placeholders)}) RETURNING *"
    return sql, cursor.args


def build_update(table_name: str, id_column: str, id_value: Any, data: Dict[str, Any]) -> Tuple[str, List[Any]]:
    """UPDATE ... SET ... WHERE pk = $n RETURNING *, the id binding last.

    The primary key column itself is never updated through this path.
    """
    table = _require_identifier(table_name, "table")
    column = _require_identifier(id_column, "primary key")
    cursor = ParamCursor(1)
    set_clauses = []

    for col, val in data.items():
        if sanitize_identifier(col) == "":
            logger.debug(f"Dropping unsafe update column {col!r}")
            continue
        if col == column:
            continue
        set_clauses.append(f"{col} = {cursor.add(val)}")

    if not set_clauses:
        raise BadRequestException(detail="No fields to update")

    id_placeholder = cursor.add(id_value)
    sql = f"UPDATE {table} SET {', '.join(set_clauses)} WHERE {column} = {id_placeholder} RETURNING *"
    return sql, cursor.args


def build_delete(table_name: str, id_column: str) -> str:
    table = _require_identifier(table_name, "table")
    column = _require_identifier(id_column, "primary key")
    return f"DELETE FROM {table} WHERE {column} = $1"
