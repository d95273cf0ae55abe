import re
import logging
from typing import Any, Iterable, List, Mapping, Optional, Tuple

from crudgate.api.exceptions import InvalidFilterException
from crudgate.interface.filter import Filter, FilterOperator
from crudgate.query.params import ParamCursor, get_values
from crudgate.query.sanitize import sanitize_identifier

logger = logging.getLogger(__name__)

FILTER_KEY_RE = re.compile(r"^filter\[([a-zA-Z_][a-zA-Z0-9_]*)(?::([a-z]+))?\]$")

# operators that compile to "<field> <op> <placeholder>"
OPERATOR_SQL = {
    FilterOperator.eq: "=",
    FilterOperator.ne: "!=",
    FilterOperator.gt: ">",
    FilterOperator.gte: ">=",
    FilterOperator.lt: "<",
    FilterOperator.lte: "<=",
    FilterOperator.like: "ILIKE",
    FilterOperator.in_: "IN",
    FilterOperator.null: "IS NULL",
    FilterOperator.notnull: "IS NOT NULL",
}

KNOWN_OPERATORS = {op.value for op in FilterOperator}


class FilterParser:
    """Parses ``filter[field]=value`` and ``filter[field:op]=value`` parameters.

    When ``allowed_fields`` is given, filtering on any other field is an
    error. Filters come back in the order their keys appear in ``params``;
    pass ``sort_filters=True`` to order them by field name instead.
    """

    def __init__(self, allowed_fields: Optional[Iterable[str]] = None, sort_filters: bool = False):
        self.allowed_fields = set(allowed_fields or [])
        self.sort_filters = sort_filters

    def parse(self, params: Mapping[str, Any]) -> List[Filter]:
        filters: List[Filter] = []

        for key in list(params.keys()):
            match = FILTER_KEY_RE.match(key)
            if match is None:
                continue

            field = match.group(1)
            op_str = match.group(2) or FilterOperator.eq.value

            if self.allowed_fields and field not in self.allowed_fields:
                raise InvalidFilterException(detail=f"Field '{field}' is not allowed for filtering")

            if op_str not in KNOWN_OPERATORS:
                raise InvalidFilterException(detail=f"Unknown operator '{op_str}'")

            values = get_values(params, key)
            filters.append(Filter(
                field=field,
                operator=FilterOperator(op_str),
                value=values[0] if values else "",
            ))

        if self.sort_filters:
            filters.sort(key=lambda f: f.field)

        logger.debug(f"Parsed {len(filters)} filter(s)")
        return filters


def _in_values(value: Any) -> List[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set)):
        items = list(value)
    elif isinstance(value, str):
        items = value.split(",")
    else:
        items = [value]

    result = []
    for item in items:
        if isinstance(item, str):
            item = item.strip()
            if item == "":
                continue
        result.append(item)
    return result


def filter_to_sql(f: Filter, cursor: ParamCursor) -> str:
    """Compile one filter, binding its values on ``cursor``"""
    field = sanitize_identifier(f.field)
    if field == "":
        raise InvalidFilterException(detail=f"Invalid field name '{f.field}'")

    operator = FilterOperator(f.operator)

    if operator == FilterOperator.null:
        return f"{field} IS NULL"

    if operator == FilterOperator.notnull:
        return f"{field} IS NOT NULL"

    if operator == FilterOperator.like:
        return f"{field} ILIKE {cursor.add(f'%{f.value}%')}"

    if operator == FilterOperator.in_:
        values = _in_values(f.value)
        if not values:
            # nothing can be a member of an empty set
            return "1 = 0"
        placeholders = [cursor.add(v) for v in values]
        return f"{field} IN ({', '.join(placeholders)})"

    return f"{field} {OPERATOR_SQL[operator]} {cursor.add(f.value)}"


def filters_to_sql(filters: List[Filter], start_param: int = 1) -> Tuple[str, List[Any]]:
    """Compile filters into an AND-joined predicate.

    Placeholders are numbered contiguously from ``start_param``.
    """
    if not filters:
        return "", []

    cursor = ParamCursor(start_param)
    sql = compile_filters(filters, cursor)
    return sql, cursor.args


def compile_filters(filters: List[Filter], cursor: ParamCursor) -> str:
    conditions = [filter_to_sql(f, cursor) for f in filters]
    return " AND ".join(conditions)
