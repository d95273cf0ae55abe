import json
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from pydantic import BaseModel, Field

from crudgate.interface.base import Aggregation, Pagination
from crudgate.interface.filter import Filter, FilterOperator, Sort, SortDirection
from crudgate.query.filter import FilterParser, KNOWN_OPERATORS
from crudgate.query.pagination import default_pagination, parse_pagination
from crudgate.query.params import get_first, get_values
from crudgate.query.sort import SortParser
from crudgate.settings import settings

logger = logging.getLogger(__name__)


class ListOptions(BaseModel):
    """Everything a list request can ask for"""
    filters: List[Filter] = Field(default_factory=list)
    sort: List[Sort] = Field(default_factory=list)
    pagination: Pagination = Field(default_factory=default_pagination)
    fields: List[str] = Field(default_factory=list)
    expand: List[str] = Field(default_factory=list)
    search: str = ""
    deep: Dict[str, List[Filter]] = Field(default_factory=dict)
    aggregate: List[Aggregation] = Field(default_factory=list)
    group_by: List[str] = Field(default_factory=list)

    def with_filter(self, field: str, operator: FilterOperator, value: Any) -> "ListOptions":
        filters = self.filters + [Filter(field=field, operator=operator, value=value)]
        return self.model_copy(update={"filters": filters})

    def with_sort(self, field: str, direction: SortDirection = SortDirection.asc) -> "ListOptions":
        return self.model_copy(update={"sort": self.sort + [Sort(field=field, direction=direction)]})

    def with_pagination(self, page: int, limit: int) -> "ListOptions":
        return self.model_copy(update={"pagination": Pagination.create(page, limit)})

    def with_fields(self, *fields: str) -> "ListOptions":
        return self.model_copy(update={"fields": list(fields)})

    def with_expand(self, *expand: str) -> "ListOptions":
        return self.model_copy(update={"expand": list(expand)})

    def with_search(self, search: str) -> "ListOptions":
        return self.model_copy(update={"search": search})

    def to_query_params(self) -> Dict[str, List[str]]:
        """Serialize back to a multi-valued query parameter dict"""
        params: Dict[str, List[str]] = {}

        for f in self.filters:
            key = f"filter[{f.field}"
            if FilterOperator(f.operator) != FilterOperator.eq:
                key += f":{FilterOperator(f.operator).value}"
            key += "]"
            params.setdefault(key, []).append(format_filter_value(f.value))

        if self.sort:
            parts = [
                f"-{s.field}" if SortDirection(s.direction) == SortDirection.desc else s.field
                for s in self.sort
            ]
            params["sort"] = [",".join(parts)]

        if self.pagination.page > 1:
            params["page"] = [str(self.pagination.page)]
        if self.pagination.limit != settings.DEFAULT_PAGE_LIMIT:
            params["limit"] = [str(self.pagination.limit)]

        if self.fields:
            params["fields"] = [",".join(self.fields)]
        if self.expand:
            params["expand"] = [",".join(self.expand)]
        if self.search:
            params["search"] = [self.search]
        if self.group_by:
            params["group_by"] = [",".join(self.group_by)]

        return params


def parse_comma_separated(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def parse_expand(params: Mapping[str, Any]) -> List[str]:
    return parse_comma_separated(get_first(params, "expand"))


def _split_bracket(rest: str):
    """``"[a]tail"`` -> ``("a", "tail")``, ``None`` when malformed"""
    if not rest.startswith("["):
        return None
    close = rest.find("]")
    if close == -1:
        return None
    return rest[1:close], rest[close + 1:]


def parse_deep_filters(params: Mapping[str, Any]) -> Dict[str, List[Filter]]:
    """Parse ``deep[relation][field]=v`` and ``deep[relation][field][op]=v``.

    Malformed keys and unknown operators are skipped.
    """
    deep: Dict[str, List[Filter]] = {}

    for key in list(params.keys()):
        if not key.startswith("deep["):
            continue

        relation_part = _split_bracket(key[len("deep"):])
        if relation_part is None:
            continue
        relation, rest = relation_part

        field_part = _split_bracket(rest)
        if field_part is None:
            continue
        field, rest = field_part

        operator = FilterOperator.eq.value
        if rest:
            op_part = _split_bracket(rest)
            if op_part is None or op_part[1]:
                continue
            operator = op_part[0]

        if operator not in KNOWN_OPERATORS:
            logger.debug(f"Skipping deep filter with unknown operator {operator!r}")
            continue

        values = get_values(params, key)
        if not values:
            continue

        deep.setdefault(relation, []).append(
            Filter(field=field, operator=FilterOperator(operator), value=values[0])
        )

    return deep


def parse_aggregation(value: Optional[str]) -> List[Aggregation]:
    """Parse ``count(id),sum(total)`` or a JSON list of aggregation objects"""
    if not value:
        return []

    value = value.strip()
    if value.startswith("["):
        try:
            return [Aggregation(**item) for item in json.loads(value)]
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring malformed aggregate JSON: {e}")

    aggregations = []
    for part in value.split(","):
        part = part.strip()
        if not part:
            continue
        open_paren = part.find("(")
        close_paren = part.find(")")
        if open_paren == -1 or close_paren == -1 or open_paren >= close_paren:
            continue
        aggregations.append(Aggregation(
            function=part[:open_paren].strip(),
            field=part[open_paren + 1:close_paren].strip(),
        ))
    return aggregations


def parse_options(params: Mapping[str, Any],
                  allowed_fields: Optional[Iterable[str]] = None) -> ListOptions:
    """Parse all list options from request parameters.

    Filter and sort errors propagate; nothing is built from a request whose
    parameters did not parse.
    """
    allowed = list(allowed_fields or [])

    return ListOptions(
        filters=FilterParser(allowed).parse(params),
        sort=SortParser(allowed).parse(get_first(params, "sort")),
        pagination=parse_pagination(params),
        fields=parse_comma_separated(get_first(params, "fields")),
        expand=parse_expand(params),
        search=get_first(params, "search", "") or "",
        deep=parse_deep_filters(params),
        aggregate=parse_aggregation(get_first(params, "aggregate")),
        group_by=parse_comma_separated(get_first(params, "group_by")),
    )


def format_filter_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)):
        return ",".join(format_filter_value(v) for v in value)
    return json.dumps(value, default=str).strip('"')
