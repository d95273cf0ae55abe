from enum import Enum
from typing import Any, List, Union
from pydantic import BaseModel, Field


class FilterOperator(str, Enum):
    eq = "eq"
    ne = "ne"
    gt = "gt"
    gte = "gte"
    lt = "lt"
    lte = "lte"
    like = "like"
    in_ = "in"
    null = "null"
    notnull = "notnull"


class Filter(BaseModel):
    """A single request filter condition, e.g. ``filter[price:gt]=100``"""
    field: str
    operator: FilterOperator = FilterOperator.eq
    value: Any = None


class SortDirection(str, Enum):
    asc = "ASC"
    desc = "DESC"


class Sort(BaseModel):
    field: str
    direction: SortDirection = SortDirection.asc


# Filter tree AST shared by row-level policies and deep filters.
#
#   {"status": "active", "_or": [{"owner_id": "$USER_ID"}, {"public": {"_eq": True}}]}
#
# parses to FilterTree(nodes=[FieldCondition(status), OrNode([...])]).

class OperatorClause(BaseModel):
    operator: str
    value: Any = None

class FieldCondition(BaseModel):
    field: str
    clauses: List[OperatorClause] = Field(default_factory=list)

class AndNode(BaseModel):
    children: List["FilterTree"] = Field(default_factory=list)

class OrNode(BaseModel):
    children: List["FilterTree"] = Field(default_factory=list)

FilterNode = Union[FieldCondition, AndNode, OrNode]

class FilterTree(BaseModel):
    """One JSON object of the filter grammar; its nodes are implicitly AND-ed"""
    nodes: List[FilterNode] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return len(self.nodes) == 0


AndNode.model_rebuild()
OrNode.model_rebuild()
FilterTree.model_rebuild()
