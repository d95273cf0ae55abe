"""
Role based permission checks.

The checker answers "may this user perform this action on this collection"
and, when the answer is yes, hands back what the caller has to enforce: the
row filter with user variables substituted, the field permissions and the
create presets. Denials come back as ``CheckResult(allowed=False)`` with a
caller-facing reason; only :meth:`PermissionChecker.require` raises.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from crudgate.api.exceptions import ForbiddenException, InternalServerException, UnauthorizedException
from crudgate.interface.permissions import (
    Action,
    AuthUser,
    CheckResult,
    FieldPermissions,
    Policy,
    parse_policy,
)
from crudgate.permissions.cache import PolicyCache
from crudgate.permissions.store import PolicyStore
from crudgate.settings import settings

logger = logging.getLogger(__name__)

WILDCARD_COLLECTION = "*"


def _resolve_variable(value: str, user: AuthUser) -> Any:
    if value in ("$USER_ID", "$CURRENT_USER"):
        return user.id
    if value in ("$ROLE_ID", "$CURRENT_ROLE"):
        return user.role_id
    if value in ("$ROLE", "$ROLE_NAME"):
        return user.role
    if value == "$USERNAME":
        return user.username
    if value == "$EMAIL":
        return user.email
    return value


class PermissionChecker:

    def __init__(self, store: PolicyStore, admin_role: Optional[str] = None,
                 cache: Optional[PolicyCache] = None, invalidate_on_write: bool = False):
        """
        Args:
            store: policy persistence
            admin_role: role name that bypasses all policies
            cache: shared policy cache, a private one is created when omitted
            invalidate_on_write: clear the cache after every policy mutation
                made through this checker. Off by default, in which case
                callers must call :meth:`clear_cache` themselves after
                changing policies.
        """
        self.store = store
        self.admin_role = admin_role or settings.ADMIN_ROLE
        self.cache = cache if cache is not None else PolicyCache()
        self.invalidate_on_write = invalidate_on_write

    # ------------------------------------------------------------------
    # checks
    # ------------------------------------------------------------------

    def check(self, user: Optional[AuthUser], collection: str, action: Action,
              timeout: Optional[float] = None) -> CheckResult:
        if user is None:
            return CheckResult(allowed=False, reason="not authenticated")

        if user.role == self.admin_role:
            return CheckResult(allowed=True)

        action = Action(action)
        policy = self._get_policy(user.role_id, collection, action, timeout)
        if policy is None:
            policy = self._get_policy(user.role_id, WILDCARD_COLLECTION, action, timeout)

        if policy is None:
            return CheckResult(
                allowed=False,
                reason=f"no permission for {action.value} on {collection}",
            )

        try:
            parsed = parse_policy(policy)
        except ValueError as e:
            logger.error(f"Policy {policy.id} for role {policy.role_id} is malformed: {e}")
            raise InternalServerException(detail=f"Failed to parse policy {policy.id}") from e

        return CheckResult(
            allowed=True,
            filter=self.resolve_filter_variables(parsed.filter_map, user),
            field_perms=parsed.field_permissions_map,
            presets=parsed.presets_map,
        )

    def check_with_data(self, user: Optional[AuthUser], collection: str, action: Action,
                        data: Dict[str, Any], timeout: Optional[float] = None) -> CheckResult:
        """Check and validate a write payload.

        On ``create`` the policy presets are injected into ``data`` in place
        for every key the payload does not already carry.
        """
        result = self.check(user, collection, action, timeout)
        if not result.allowed:
            return result

        reason = self._field_violation(data, result.field_perms, Action(action))
        if reason:
            return CheckResult(allowed=False, reason=reason)

        if Action(action) == Action.create and result.presets:
            for key, value in result.presets.items():
                if key not in data:
                    data[key] = self.resolve_value(value, user)

        return result

    def require(self, user: Optional[AuthUser], collection: str, action: Action,
                data: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None) -> CheckResult:
        """Like :meth:`check` (or :meth:`check_with_data` when ``data`` is given) but raising on denial"""
        if user is None:
            raise UnauthorizedException(detail="not authenticated")

        if data is None:
            result = self.check(user, collection, action, timeout)
        else:
            result = self.check_with_data(user, collection, action, data, timeout)

        if not result.allowed:
            raise ForbiddenException(detail=result.reason)
        return result

    def filter_allowed_fields(self, data: Dict[str, Any], perms: FieldPermissions,
                              action: Action) -> Dict[str, Any]:
        """Drop the keys of ``data`` the caller may not see or write"""
        if perms.is_unrestricted():
            return data

        action = Action(action)
        result = {}
        for key, value in data.items():
            if key in perms.denied:
                continue
            if action != Action.read and key in perms.read_only:
                continue
            if perms.allowed and key not in perms.allowed:
                continue
            result[key] = value
        return result

    def _field_violation(self, data: Dict[str, Any], perms: FieldPermissions, action: Action) -> str:
        for key in data:
            if key in perms.denied:
                return f"field '{key}' is not allowed"
            if action != Action.read and key in perms.read_only:
                return f"field '{key}' is read-only"
            if perms.allowed and key not in perms.allowed:
                return f"field '{key}' is not in allowed list"
        return ""

    # ------------------------------------------------------------------
    # variables
    # ------------------------------------------------------------------

    def resolve_filter_variables(self, filter: Optional[Dict[str, Any]],
                                 user: AuthUser) -> Optional[Dict[str, Any]]:
        if filter is None:
            return None
        return {key: self.resolve_value(value, user) for key, value in filter.items()}

    def resolve_value(self, value: Any, user: AuthUser) -> Any:
        if isinstance(value, str):
            return _resolve_variable(value, user)
        if isinstance(value, dict):
            return {k: self.resolve_value(v, user) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_value(v, user) for v in value]
        return value

    # ------------------------------------------------------------------
    # cache
    # ------------------------------------------------------------------

    def _get_policy(self, role_id: Optional[str], collection: str, action: Action,
                    timeout: Optional[float] = None) -> Optional[Policy]:
        if not role_id:
            return None

        policies = self.cache.get(role_id)
        if policies is None:
            policies = self.load_role_policies(role_id, timeout)

        for policy in policies:
            if policy.collection == collection and Action(policy.action) == action:
                return policy
        return None

    def load_role_policies(self, role_id: str, timeout: Optional[float] = None) -> List[Policy]:
        """Fetch every policy of a role and replace its cache entry"""
        policies = self.store.get_by_role(role_id, timeout=timeout)
        self.cache.set(role_id, policies)
        logger.info(f"Loaded {len(policies)} policies for role {role_id}")
        return policies

    def clear_cache(self):
        self.cache.clear()

    def _after_write(self):
        if self.invalidate_on_write:
            self.clear_cache()

    # ------------------------------------------------------------------
    # policy administration
    # ------------------------------------------------------------------

    def create_policy(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        created = self.store.create(policy, timeout=timeout)
        self._after_write()
        return created

    def update_policy(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        updated = self.store.update(policy, timeout=timeout)
        self._after_write()
        return updated

    def delete_policy(self, policy_id: str, timeout: Optional[float] = None):
        self.store.delete(policy_id, timeout=timeout)
        self._after_write()

    def get_policies_for_role(self, role_id: str, timeout: Optional[float] = None) -> List[Policy]:
        return self.store.get_by_role(role_id, timeout=timeout)

    def get_policies_for_collection(self, collection: str, timeout: Optional[float] = None) -> List[Policy]:
        return self.store.get_by_collection(collection, timeout=timeout)

    def set_policy(self, role_id: str, collection: str, action: Action,
                   filter: Optional[Dict[str, Any]] = None,
                   field_perms: Optional[Dict[str, Any]] = None,
                   presets: Optional[Dict[str, Any]] = None,
                   timeout: Optional[float] = None) -> Policy:
        """Create or replace the policy for a role/collection/action"""
        policy = Policy(
            role_id=role_id,
            collection=collection,
            action=Action(action),
            filter=json.dumps(filter) if filter is not None else None,
            field_permissions=json.dumps(field_perms) if field_perms is not None else None,
            presets=json.dumps(presets) if presets is not None else None,
        )
        stored = self.store.upsert(policy, timeout=timeout)
        self._after_write()
        return stored
