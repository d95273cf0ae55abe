"""
Role based permission system.

Main components:
- filters: filter tree parser and SQL compiler for row-level policies
- store: policy persistence (SQL table or in-memory)
- cache: per-role policy cache guarded by a reader/writer lock
- checker: permission checks, field permissions, variables and presets
- dependencies: FastAPI dependency running the check per request
"""

from .filters import (
    PermissionFilterBuilder,
    apply_permission_filter,
    compile_filter_tree,
    merge_filters,
    parse_filter_tree,
)

from .cache import PolicyCache, RWLock

from .store import InMemoryPolicyStore, PolicyStore, SqlPolicyStore

from .checker import PermissionChecker

from .dependencies import (
    PermissionDependency,
    extract_collection_from_path,
    get_check_result,
    method_to_action,
)

__all__ = [
    "PermissionFilterBuilder",
    "apply_permission_filter",
    "compile_filter_tree",
    "merge_filters",
    "parse_filter_tree",
    "PolicyCache",
    "RWLock",
    "InMemoryPolicyStore",
    "PolicyStore",
    "SqlPolicyStore",
    "PermissionChecker",
    "PermissionDependency",
    "extract_collection_from_path",
    "get_check_result",
    "method_to_action",
]
