from .base import Aggregation, ListResponse, PageInfo, Pagination
from .filter import (
    AndNode,
    FieldCondition,
    Filter,
    FilterOperator,
    FilterTree,
    OperatorClause,
    OrNode,
    Sort,
    SortDirection,
)
from .permissions import (
    Action,
    AuthUser,
    CheckResult,
    FieldPermissions,
    ParsedPolicy,
    Policy,
    parse_policy,
)
from .schema import Collection, Field, ForeignKeyInfo, Relationship
