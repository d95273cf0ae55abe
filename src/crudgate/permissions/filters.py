"""
Filter tree compiler for row-level policies and deep filters.

A filter tree is a JSON object whose keys are either field names or the
logical groups ``_and`` / ``_or``::

    {
        "status": "published",
        "_or": [
            {"author_id": "$USER_ID"},
            {"visibility": {"_in": ["public", "team"]}}
        ]
    }

Compilation happens in two steps. :func:`parse_filter_tree` turns the raw
JSON into the AST in :mod:`crudgate.interface.filter`, dropping anything it
does not understand (unknown operators, malformed operands, unsafe field
names). :class:`PermissionFilterBuilder` then renders the AST into a SQL
predicate with positional placeholders drawn from one shared counter.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple, Union

from crudgate.interface.filter import (
    AndNode,
    FieldCondition,
    FilterTree,
    OperatorClause,
    OrNode,
)
from crudgate.query.params import ParamCursor
from crudgate.query.sanitize import strip_identifier

logger = logging.getLogger(__name__)

AND_KEY = "_and"
OR_KEY = "_or"

_COMPARISON_OPS: Dict[str, str] = {
    "_eq": "=",
    "_ne": "!=",
    "_neq": "!=",
    "_gt": ">",
    "_gte": ">=",
    "_lt": "<",
    "_lte": "<=",
    "_regex": "~",
    "_iregex": "~*",
}

# operator -> (SQL operator, LIKE pattern template)
_PATTERN_OPS: Dict[str, Tuple[str, str]] = {
    "_like": ("ILIKE", "%{}%"),
    "_contains": ("ILIKE", "%{}%"),
    "_nlike": ("NOT ILIKE", "%{}%"),
    "_not_contains": ("NOT ILIKE", "%{}%"),
    "_starts_with": ("ILIKE", "{}%"),
    "_ends_with": ("ILIKE", "%{}"),
}

_LIST_OPS = {"_in", "_nin", "_not_in"}
_NULL_OPS = {"_null", "_is_null"}
_NOT_NULL_OPS = {"_nnull", "_is_not_null"}

SUPPORTED_OPERATORS = (
    set(_COMPARISON_OPS) | set(_PATTERN_OPS) | _LIST_OPS | _NULL_OPS | _NOT_NULL_OPS | {"_between"}
)


# ---------------------------------------------------------------------------
# JSON -> AST
# ---------------------------------------------------------------------------

def _parse_clause(operator: str, value: Any) -> Optional[OperatorClause]:
    """Validate one operator/operand pair, ``None`` if it must be dropped"""
    if operator not in SUPPORTED_OPERATORS:
        return None

    if operator in _LIST_OPS and not isinstance(value, (list, tuple)):
        return None

    if operator == "_between" and (not isinstance(value, (list, tuple)) or len(value) != 2):
        return None

    if operator in _NULL_OPS and not isinstance(value, bool):
        return None

    if isinstance(value, tuple):
        value = list(value)

    return OperatorClause(operator=operator, value=value)


def _parse_field(field: str, value: Any) -> Optional[FieldCondition]:
    column = strip_identifier(field)
    if column == "":
        logger.debug(f"Dropping filter on unusable field name {field!r}")
        return None

    if isinstance(value, dict):
        clauses = []
        for operator, operand in value.items():
            clause = _parse_clause(operator, operand)
            if clause is None:
                logger.debug(f"Dropping unsupported filter operator {operator!r} on {column}")
                continue
            clauses.append(clause)
    elif isinstance(value, (list, tuple)):
        clauses = [OperatorClause(operator="_in", value=list(value))]
    else:
        clauses = [OperatorClause(operator="_eq", value=value)]

    if not clauses:
        return None

    return FieldCondition(field=column, clauses=clauses)


def _parse_children(value: Any) -> List[FilterTree]:
    if not isinstance(value, list):
        return []
    return [parse_filter_tree(child) for child in value if isinstance(child, dict)]


def parse_filter_tree(data: Optional[Dict[str, Any]]) -> FilterTree:
    """Build the AST for a filter object, dropping what cannot be compiled"""
    tree = FilterTree()
    if not data:
        return tree

    for key, value in data.items():
        if key == AND_KEY:
            children = _parse_children(value)
            if children:
                tree.nodes.append(AndNode(children=children))
        elif key == OR_KEY:
            children = _parse_children(value)
            if children:
                tree.nodes.append(OrNode(children=children))
        else:
            condition = _parse_field(key, value)
            if condition is not None:
                tree.nodes.append(condition)

    return tree


# ---------------------------------------------------------------------------
# AST -> SQL
# ---------------------------------------------------------------------------

class PermissionFilterBuilder:
    """Renders filter trees into SQL predicates.

    ``param_offset`` is the number of the last placeholder already used by
    the surrounding statement; the first placeholder issued here is
    ``param_offset + 1``. A builder instance is bound to one statement.
    """

    def __init__(self, param_offset: int = 0):
        self._cursor = ParamCursor(param_offset + 1)

    @classmethod
    def for_cursor(cls, cursor: ParamCursor) -> "PermissionFilterBuilder":
        """Builder sharing an existing statement cursor"""
        builder = cls.__new__(cls)
        builder._cursor = cursor
        return builder

    @property
    def param_offset(self) -> int:
        return self._cursor.last_index

    def build(self, data: Union[Dict[str, Any], FilterTree, None]) -> Tuple[str, List[Any]]:
        """Compile a filter tree, returning the predicate and the values it bound"""
        tree = data if isinstance(data, FilterTree) else parse_filter_tree(data)
        if tree.is_empty():
            return "", []

        bound_before = len(self._cursor.args)
        conditions = self._compile_tree(tree)
        if not conditions:
            return "", []

        return " AND ".join(conditions), self._cursor.args[bound_before:]

    def _compile_tree(self, tree: FilterTree) -> List[str]:
        conditions: List[str] = []
        for node in tree.nodes:
            if isinstance(node, FieldCondition):
                condition = self._compile_field(node)
            elif isinstance(node, AndNode):
                condition = self._compile_and(node)
            elif isinstance(node, OrNode):
                condition = self._compile_or(node)
            else:
                condition = ""
            if condition:
                conditions.append(condition)
        return conditions

    def _compile_and(self, node: AndNode) -> str:
        conditions: List[str] = []
        for child in node.children:
            conditions.extend(self._compile_tree(child))
        if not conditions:
            return ""
        return "(" + " AND ".join(conditions) + ")"

    def _compile_or(self, node: OrNode) -> str:
        branches: List[str] = []
        for child in node.children:
            sub_conditions = self._compile_tree(child)
            if sub_conditions:
                branches.append("(" + " AND ".join(sub_conditions) + ")")
        if not branches:
            return ""
        return "(" + " OR ".join(branches) + ")"

    def _compile_field(self, node: FieldCondition) -> str:
        conditions = []
        for clause in node.clauses:
            condition = self._compile_clause(node.field, clause)
            if condition:
                conditions.append(condition)
        return " AND ".join(conditions)

    def _compile_clause(self, field: str, clause: OperatorClause) -> str:
        operator = clause.operator
        value = clause.value
        cursor = self._cursor

        if operator in _COMPARISON_OPS:
            return f"{field} {_COMPARISON_OPS[operator]} {cursor.add(value)}"

        if operator in _PATTERN_OPS:
            sql_op, template = _PATTERN_OPS[operator]
            return f"{field} {sql_op} {cursor.add(template.format(value))}"

        if operator in _LIST_OPS:
            negated = operator != "_in"
            if not value:
                return "1 = 1" if negated else "1 = 0"
            placeholders = ", ".join(cursor.add(v) for v in value)
            return f"{field} {'NOT IN' if negated else 'IN'} ({placeholders})"

        if operator in _NULL_OPS:
            return f"{field} IS NULL" if value else f"{field} IS NOT NULL"

        if operator in _NOT_NULL_OPS:
            return f"{field} IS NOT NULL"

        if operator == "_between":
            low = cursor.add(value[0])
            high = cursor.add(value[1])
            return f"{field} BETWEEN {low} AND {high}"

        return ""


def compile_filter_tree(data: Union[Dict[str, Any], FilterTree, None],
                        param_offset: int = 0) -> Tuple[str, List[Any]]:
    return PermissionFilterBuilder(param_offset).build(data)


def apply_permission_filter(existing: Optional[Dict[str, Any]],
                            permission_filter: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """AND a policy row filter onto an existing filter tree"""
    if not permission_filter:
        return existing

    if not existing:
        return permission_filter

    return {AND_KEY: [existing, permission_filter]}


def merge_filters(*filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Merge filter trees key by key.

    A field present in more than one tree is moved into an ``_and`` group so
    that neither condition is lost.
    """
    result: Dict[str, Any] = {}

    for f in filters:
        if not f:
            continue
        for key, value in f.items():
            if key == AND_KEY:
                children = value if isinstance(value, list) else []
                result[AND_KEY] = list(result.get(AND_KEY, [])) + list(children)
            elif key in result:
                group = list(result.get(AND_KEY, []))
                group.extend([{key: result.pop(key)}, {key: value}])
                result[AND_KEY] = group
            else:
                result[key] = value

    return result
