"""
Policy storage.

:class:`SqlPolicyStore` keeps policies in one table, unique on
``(role_id, collection, action)``::

    CREATE TABLE crudgate_permissions (
        id                VARCHAR(64) PRIMARY KEY,
        role_id           TEXT NOT NULL,
        collection        TEXT NOT NULL,
        action            TEXT NOT NULL,
        filter            TEXT,
        field_permissions TEXT,
        validation        TEXT,
        presets           TEXT,
        created_at        TIMESTAMP,
        updated_at        TIMESTAMP,
        UNIQUE (role_id, collection, action)
    )

On Postgres the JSON columns may be ``jsonb``; decoded values are turned
back into JSON text so :class:`Policy` always carries raw documents.
"""

import json
import threading
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy import DateTime, bindparam, text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from crudgate.api.exceptions import ConflictException, InternalServerException, NotFoundException
from crudgate.interface.permissions import Action, Policy
from crudgate.query.sanitize import sanitize_identifier
from crudgate.settings import settings
import logging

logger = logging.getLogger(__name__)

POLICY_COLUMNS = (
    "id", "role_id", "collection", "action", "filter", "field_permissions",
    "validation", "presets", "created_at", "updated_at",
)

_JSON_COLUMNS = ("filter", "field_permissions", "validation", "presets")

# "filter" and "action" are keywords in some dialects
_COLUMN_LIST = ", ".join(f'"{c}"' for c in POLICY_COLUMNS)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class PolicyStore(ABC):
    """Persistence for permission policies.

    Every call accepts an optional ``timeout`` in seconds; implementations
    that cannot enforce one ignore it.
    """

    @abstractmethod
    def get_by_role_and_collection(self, role_id: str, collection: str, action: Action,
                                   timeout: Optional[float] = None) -> Optional[Policy]:
        ...

    @abstractmethod
    def get_by_role(self, role_id: str, timeout: Optional[float] = None) -> List[Policy]:
        ...

    @abstractmethod
    def get_by_collection(self, collection: str, timeout: Optional[float] = None) -> List[Policy]:
        ...

    @abstractmethod
    def create(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        ...

    @abstractmethod
    def update(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        ...

    @abstractmethod
    def delete(self, policy_id: str, timeout: Optional[float] = None) -> None:
        ...

    @abstractmethod
    def upsert(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        ...


class SqlPolicyStore(PolicyStore):

    def __init__(self, session_factory: Callable[[], Session], table_name: Optional[str] = None):
        table_name = table_name or settings.POLICY_TABLE
        if sanitize_identifier(table_name) == "":
            raise ValueError(f"Invalid policy table name '{table_name}'")
        self.session_factory = session_factory
        self.table_name = table_name

    def _select_sql(self, where: str, order_by: str) -> Any:
        sql = (
            f"SELECT {_COLUMN_LIST} FROM {self.table_name} "
            f"WHERE {where} ORDER BY {order_by}"
        )
        return text(sql).columns(created_at=DateTime(), updated_at=DateTime())

    def _write_sql(self, sql: str) -> Any:
        return text(sql).bindparams(
            bindparam("created_at", type_=DateTime()),
            bindparam("updated_at", type_=DateTime()),
        )

    def _apply_timeout(self, session: Session, timeout: Optional[float]):
        if not timeout:
            return
        if session.get_bind().dialect.name == "postgresql":
            session.execute(text(f"SET LOCAL statement_timeout = {int(timeout * 1000)}"))

    def _to_policy(self, row) -> Policy:
        data: Dict[str, Any] = dict(row._mapping)
        for column in _JSON_COLUMNS:
            value = data.get(column)
            if value is not None and not isinstance(value, str):
                data[column] = json.dumps(value)
        data["id"] = str(data["id"])
        data["role_id"] = str(data["role_id"])
        return Policy(**data)

    def _params(self, policy: Policy) -> Dict[str, Any]:
        return {
            "id": policy.id,
            "role_id": policy.role_id,
            "collection": policy.collection,
            "action": Action(policy.action).value,
            "filter": policy.filter,
            "field_permissions": policy.field_permissions,
            "validation": policy.validation,
            "presets": policy.presets,
            "created_at": policy.created_at,
            "updated_at": policy.updated_at,
        }

    def _fail(self, operation: str, e: Exception) -> InternalServerException:
        logger.error(f"Policy store {operation} on {self.table_name} failed: {e}")
        return InternalServerException(detail=f"{operation} on {self.table_name} failed")

    def create_table(self):
        """Create the policy table if it does not exist yet"""
        sql = (
            f"CREATE TABLE IF NOT EXISTS {self.table_name} ("
            "id VARCHAR(64) PRIMARY KEY, "
            "role_id VARCHAR(255) NOT NULL, "
            "collection VARCHAR(255) NOT NULL, "
            '"action" VARCHAR(16) NOT NULL, '
            '"filter" TEXT, field_permissions TEXT, validation TEXT, presets TEXT, '
            "created_at TIMESTAMP, updated_at TIMESTAMP, "
            'UNIQUE (role_id, collection, "action"))'
        )
        with self.session_factory() as session:
            try:
                session.execute(text(sql))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._fail("create table", e) from e

    def get_by_role_and_collection(self, role_id: str, collection: str, action: Action,
                                   timeout: Optional[float] = None) -> Optional[Policy]:
        statement = self._select_sql(
            'role_id = :role_id AND collection = :collection AND "action" = :action', "id"
        )
        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                row = session.execute(statement, {
                    "role_id": role_id,
                    "collection": collection,
                    "action": Action(action).value,
                }).first()
            except SQLAlchemyError as e:
                raise self._fail("select", e) from e

        return self._to_policy(row) if row is not None else None

    def get_by_role(self, role_id: str, timeout: Optional[float] = None) -> List[Policy]:
        statement = self._select_sql("role_id = :role_id", 'collection, "action"')
        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                rows = session.execute(statement, {"role_id": role_id}).all()
            except SQLAlchemyError as e:
                raise self._fail("select", e) from e

        return [self._to_policy(row) for row in rows]

    def get_by_collection(self, collection: str, timeout: Optional[float] = None) -> List[Policy]:
        statement = self._select_sql("collection = :collection", 'role_id, "action"')
        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                rows = session.execute(statement, {"collection": collection}).all()
            except SQLAlchemyError as e:
                raise self._fail("select", e) from e

        return [self._to_policy(row) for row in rows]

    def create(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        now = _now()
        policy = policy.model_copy(update={
            "id": policy.id or str(uuid.uuid4()),
            "created_at": now,
            "updated_at": now,
        })

        statement = self._write_sql(
            f"INSERT INTO {self.table_name} ({_COLUMN_LIST}) "
            f"VALUES ({', '.join(':' + c for c in POLICY_COLUMNS)})"
        )

        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                session.execute(statement, self._params(policy))
                session.commit()
            except IntegrityError as e:
                session.rollback()
                raise ConflictException(
                    detail=f"Policy for {policy.role_id}/{policy.collection}/{Action(policy.action).value} already exists"
                ) from e
            except SQLAlchemyError as e:
                session.rollback()
                raise self._fail("insert", e) from e

        logger.info(f"Created policy {policy.id} for role {policy.role_id} on {policy.collection}")
        return policy

    def update(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        if not policy.id:
            raise NotFoundException(detail="Policy not found")

        policy = policy.model_copy(update={"updated_at": _now()})

        statement = text(
            f'UPDATE {self.table_name} SET "filter" = :filter, field_permissions = :field_permissions, '
            f"validation = :validation, presets = :presets, updated_at = :updated_at WHERE id = :id"
        ).bindparams(bindparam("updated_at", type_=DateTime()))

        params = self._params(policy)
        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                result = session.execute(statement, {
                    key: params[key]
                    for key in ("filter", "field_permissions", "validation", "presets", "updated_at", "id")
                })
                if result.rowcount == 0:
                    session.rollback()
                    raise NotFoundException(detail=f"Policy {policy.id} not found")
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._fail("update", e) from e

        logger.info(f"Updated policy {policy.id}")
        return policy

    def delete(self, policy_id: str, timeout: Optional[float] = None) -> None:
        statement = text(f"DELETE FROM {self.table_name} WHERE id = :id")

        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                result = session.execute(statement, {"id": policy_id})
                if result.rowcount == 0:
                    session.rollback()
                    raise NotFoundException(detail=f"Policy {policy_id} not found")
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._fail("delete", e) from e

        logger.info(f"Deleted policy {policy_id}")

    def upsert(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        """Insert, or replace the documents of the policy with the same key.

        The returned policy carries the id that is actually stored, which is
        the existing one when the key was already taken.
        """
        now = _now()
        policy = policy.model_copy(update={
            "id": policy.id or str(uuid.uuid4()),
            "created_at": now,
            "updated_at": now,
        })

        statement = self._write_sql(
            f"INSERT INTO {self.table_name} ({_COLUMN_LIST}) "
            f"VALUES ({', '.join(':' + c for c in POLICY_COLUMNS)}) "
            'ON CONFLICT (role_id, collection, "action") DO UPDATE SET '
            '"filter" = EXCLUDED."filter", field_permissions = EXCLUDED.field_permissions, '
            "validation = EXCLUDED.validation, presets = EXCLUDED.presets, "
            "updated_at = EXCLUDED.updated_at"
        )

        with self.session_factory() as session:
            try:
                self._apply_timeout(session, timeout)
                session.execute(statement, self._params(policy))
                session.commit()
            except SQLAlchemyError as e:
                session.rollback()
                raise self._fail("upsert", e) from e

        logger.info(f"Upserted policy for role {policy.role_id} on {policy.collection}")
        stored = self.get_by_role_and_collection(policy.role_id, policy.collection, policy.action, timeout)
        return stored or policy


class InMemoryPolicyStore(PolicyStore):
    """Thread-safe store keeping policies in a dict, for tests and embedding"""

    def __init__(self, policies: Optional[List[Policy]] = None):
        self._lock = threading.Lock()
        self._policies: Dict[str, Policy] = {}
        for policy in policies or []:
            self.create(policy)

    def _find_key(self, role_id: str, collection: str, action: Action) -> Optional[Policy]:
        action = Action(action)
        for policy in self._policies.values():
            if policy.role_id == role_id and policy.collection == collection and Action(policy.action) == action:
                return policy
        return None

    def get_by_role_and_collection(self, role_id: str, collection: str, action: Action,
                                   timeout: Optional[float] = None) -> Optional[Policy]:
        with self._lock:
            return self._find_key(role_id, collection, action)

    def get_by_role(self, role_id: str, timeout: Optional[float] = None) -> List[Policy]:
        with self._lock:
            policies = [p for p in self._policies.values() if p.role_id == role_id]
        return sorted(policies, key=lambda p: (p.collection, Action(p.action).value))

    def get_by_collection(self, collection: str, timeout: Optional[float] = None) -> List[Policy]:
        with self._lock:
            policies = [p for p in self._policies.values() if p.collection == collection]
        return sorted(policies, key=lambda p: (p.role_id, Action(p.action).value))

    def create(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        now = _now()
        policy = policy.model_copy(update={
            "id": policy.id or str(uuid.uuid4()),
            "created_at": now,
            "updated_at": now,
        })
        with self._lock:
            if policy.id in self._policies or self._find_key(policy.role_id, policy.collection, policy.action):
                raise ConflictException(
                    detail=f"Policy for {policy.role_id}/{policy.collection}/{Action(policy.action).value} already exists"
                )
            self._policies[policy.id] = policy
        return policy

    def update(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        with self._lock:
            existing = self._policies.get(policy.id) if policy.id else None
            if existing is None:
                raise NotFoundException(detail=f"Policy {policy.id} not found")
            updated = existing.model_copy(update={
                "filter": policy.filter,
                "field_permissions": policy.field_permissions,
                "validation": policy.validation,
                "presets": policy.presets,
                "updated_at": _now(),
            })
            self._policies[updated.id] = updated
        return updated

    def delete(self, policy_id: str, timeout: Optional[float] = None) -> None:
        with self._lock:
            if self._policies.pop(policy_id, None) is None:
                raise NotFoundException(detail=f"Policy {policy_id} not found")

    def upsert(self, policy: Policy, timeout: Optional[float] = None) -> Policy:
        now = _now()
        with self._lock:
            existing = self._find_key(policy.role_id, policy.collection, policy.action)
            if existing is not None:
                stored = existing.model_copy(update={
                    "filter": policy.filter,
                    "field_permissions": policy.field_permissions,
                    "validation": policy.validation,
                    "presets": policy.presets,
                    "updated_at": now,
                })
            else:
                stored = policy.model_copy(update={
                    "id": policy.id or str(uuid.uuid4()),
                    "created_at": now,
                    "updated_at": now,
                })
            self._policies[stored.id] = stored
        return stored
