from typing import Iterable, List, Optional

from crudgate.api.exceptions import InvalidSortException
from crudgate.interface.filter import Sort, SortDirection
from crudgate.query.sanitize import sanitize_identifier


class SortParser:
    """Parses ``sort=-created_at,name`` into ordered sort specs"""

    def __init__(self, allowed_fields: Optional[Iterable[str]] = None):
        self.allowed_fields = set(allowed_fields or [])

    def parse(self, sort_param: Optional[str]) -> List[Sort]:
        if not sort_param:
            return []

        sorts: List[Sort] = []

        for part in sort_param.split(","):
            part = part.strip()
            if part == "":
                continue

            direction = SortDirection.asc
            field = part

            if part.startswith("-"):
                direction = SortDirection.desc
                field = part[1:]
            elif part.startswith("+"):
                field = part[1:]

            if sanitize_identifier(field) == "":
                raise InvalidSortException(detail=f"Invalid field name '{field}'")

            if self.allowed_fields and field not in self.allowed_fields:
                raise InvalidSortException(detail=f"Field '{field}' is not allowed for sorting")

            sorts.append(Sort(field=field, direction=direction))

        return sorts


def sorts_to_sql(sorts: List[Sort]) -> str:
    """Render an ORDER BY list, preserving precedence order"""
    parts = []
    for s in sorts:
        field = sanitize_identifier(s.field)
        if field == "":
            continue
        parts.append(f"{field} {SortDirection(s.direction).value}")
    return ", ".join(parts)


def default_sort(primary_key: Optional[str]) -> List[Sort]:
    if not primary_key:
        return []
    return [Sort(field=primary_key, direction=SortDirection.desc)]
