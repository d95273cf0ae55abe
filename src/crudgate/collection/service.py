"""
Collection CRUD with query parsing and permission enforcement.

The service glues the pieces together for one request: it parses the list
options against the collection's fields, asks the permission checker for the
caller's row filter and field permissions, builds and runs the statements
through the repository and shapes the response.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional

from crudgate.api.exceptions import CrudgateException
from crudgate.collection.repository import CollectionRepository
from crudgate.collection.schema import SchemaProvider
from crudgate.interface.base import ListResponse, PageInfo
from crudgate.interface.filter import Filter
from crudgate.interface.permissions import Action, AuthUser, CheckResult
from crudgate.interface.schema import Collection
from crudgate.permissions.checker import PermissionChecker
from crudgate.query.options import parse_options
from crudgate.query.sort import default_sort
from crudgate.query.validators import FilterValidator, OptionsValidator

logger = logging.getLogger(__name__)


def filter_fields(data: Dict[str, Any], collection: Collection) -> Dict[str, Any]:
    """Drop payload keys that are not fields of the collection"""
    known = set(collection.field_names())
    return {key: value for key, value in data.items() if key in known}


class CollectionService:

    def __init__(self, repo: CollectionRepository, schema: SchemaProvider,
                 checker: Optional[PermissionChecker] = None):
        self.repo = repo
        self.schema = schema
        self.checker = checker

    def _authorize(self, user: Optional[AuthUser], collection: Collection, action: Action,
                   data: Optional[Dict[str, Any]] = None) -> Optional[CheckResult]:
        if self.checker is None:
            return None
        return self.checker.require(user, collection.name, action, data)

    def _project(self, items: List[Dict[str, Any]], permission: Optional[CheckResult]) -> List[Dict[str, Any]]:
        if permission is None:
            return items
        return [
            self.checker.filter_allowed_fields(item, permission.field_perms, Action.read)
            for item in items
        ]

    def list(self, name: str, params: Mapping[str, Any], user: Optional[AuthUser] = None) -> ListResponse:
        collection = self.schema.get_collection(name)
        field_names = collection.field_names()

        options = parse_options(params, field_names)
        OptionsValidator(field_names).validate(options)

        permission = self._authorize(user, collection, Action.read)

        sorts = options.sort
        if not sorts and not options.aggregate and not options.group_by:
            sorts = default_sort(collection.primary_key)

        result = self.repo.list(
            collection,
            filters=options.filters,
            sorts=sorts,
            pagination=options.pagination,
            row_filter=permission.filter if permission else None,
            fields=options.fields,
            group_by=options.group_by,
            aggregate=options.aggregate,
        )

        items = self._project(result.items, permission)

        if options.expand:
            self._expand(collection, items, options.expand, options.deep, user)

        return ListResponse(
            items=items,
            pagination=PageInfo.build(options.pagination.page, options.pagination.limit, result.total),
        )

    def get(self, name: str, id: Any, user: Optional[AuthUser] = None,
            expand: Optional[List[str]] = None,
            deep: Optional[Dict[str, List[Filter]]] = None) -> Dict[str, Any]:
        collection = self.schema.get_collection(name)
        permission = self._authorize(user, collection, Action.read)

        item = self.repo.get_by_id(collection, id, permission.filter if permission else None)
        item = self._project([item], permission)[0]

        if expand:
            self._expand(collection, [item], expand, deep or {}, user)

        return item

    def create(self, name: str, data: Dict[str, Any], user: Optional[AuthUser] = None) -> Dict[str, Any]:
        collection = self.schema.get_collection(name)
        payload = filter_fields(data, collection)

        # presets are injected into payload here
        permission = self._authorize(user, collection, Action.create, payload)

        item = self.repo.create(collection, payload)
        return self._project([item], permission)[0]

    def update(self, name: str, id: Any, data: Dict[str, Any], user: Optional[AuthUser] = None) -> Dict[str, Any]:
        collection = self.schema.get_collection(name)
        payload = filter_fields(data, collection)

        permission = self._authorize(user, collection, Action.update, payload)

        item = self.repo.update(collection, id, payload, permission.filter if permission else None)
        return self._project([item], permission)[0]

    def delete(self, name: str, id: Any, user: Optional[AuthUser] = None):
        collection = self.schema.get_collection(name)
        permission = self._authorize(user, collection, Action.delete)
        self.repo.delete(collection, id, permission.filter if permission else None)

    def _expand(self, collection: Collection, items: List[Dict[str, Any]], expand: List[str],
                deep: Dict[str, List[Filter]], user: Optional[AuthUser]):
        """Attach related rows under the expand name, e.g. ``author`` for ``author_id``"""
        for field in expand:
            relationship = (
                self.schema.get_relationship(collection.name, f"{field}_id")
                or self.schema.get_relationship(collection.name, field)
            )
            if relationship is None:
                logger.debug(f"No relationship '{field}' on {collection.name}")
                continue

            fk_field = relationship.field_name
            ids = []
            for item in items:
                value = item.get(fk_field)
                if value is not None and value not in ids:
                    ids.append(value)
            if not ids:
                continue

            try:
                related = self.schema.get_collection(relationship.related_collection)

                permission = None
                if self.checker is not None:
                    permission = self.checker.check(user, related.name, Action.read)
                    if not permission.allowed:
                        logger.debug(f"Skipping expansion of {field}: {permission.reason}")
                        continue

                deep_filters = deep.get(field, [])
                FilterValidator(related.field_names()).validate_filters(deep_filters)

                related_items = self.repo.get_related(
                    related, ids, deep_filters, permission.filter if permission else None
                )
            except CrudgateException as e:
                logger.warning(f"Failed to expand '{field}' on {collection.name}: {e}")
                continue

            for item in items:
                value = item.get(fk_field)
                if value is not None and str(value) in related_items:
                    item[field] = self._project([related_items[str(value)]], permission)[0]
