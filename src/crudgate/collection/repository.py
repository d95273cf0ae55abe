import logging
from typing import Any, Dict, Iterable, List, Optional

from pydantic import BaseModel, Field
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from crudgate.api.exceptions import ConflictException, InternalServerException, NotFoundException
from crudgate.collection.executor import SqlExecutor
from crudgate.interface.base import Aggregation, Pagination
from crudgate.interface.filter import Filter, FilterOperator, Sort
from crudgate.interface.schema import Collection
from crudgate.query.builder import QueryBuilder, build_delete, build_insert, build_update

logger = logging.getLogger(__name__)


class ListResult(BaseModel):
    items: List[Dict[str, Any]] = Field(default_factory=list)
    total: int = 0


def normalize_value(value: Any) -> Any:
    if isinstance(value, memoryview):
        value = value.tobytes()
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return value


def normalize_row(row: Dict[str, Any]) -> Dict[str, Any]:
    return {key: normalize_value(value) for key, value in row.items()}


def is_duplicate_key_error(e: Exception) -> bool:
    orig = getattr(e, "orig", None)
    if getattr(orig, "pgcode", None) == "23505":
        return True
    message = str(e)
    return "23505" in message or "duplicate key" in message or "UNIQUE constraint failed" in message


class CollectionRepository:
    """Row access for dynamic collections.

    Every method takes the collection metadata and an optional row filter
    tree; the filter is AND-ed into the statement so rows outside it behave
    exactly like missing rows.
    """

    def __init__(self, executor: SqlExecutor):
        self.executor = executor

    def _internal(self, operation: str, collection: Collection, e: Exception) -> InternalServerException:
        logger.error(f"{operation} on {collection.table_name} failed: {e}")
        return InternalServerException(detail=f"{operation} on {collection.table_name} failed")

    def list(self, collection: Collection,
             filters: Optional[List[Filter]] = None,
             sorts: Optional[List[Sort]] = None,
             pagination: Optional[Pagination] = None,
             row_filter: Optional[Dict[str, Any]] = None,
             fields: Optional[List[str]] = None,
             group_by: Optional[List[str]] = None,
             aggregate: Optional[List[Aggregation]] = None) -> ListResult:
        builder = (
            QueryBuilder(collection.table_name)
            .select(*(fields or []))
            .where(filters)
            .where_tree(row_filter)
            .order_by(sorts)
            .group_by(*(group_by or []))
            .aggregate(aggregate)
        )
        if pagination is not None:
            builder.paginate(pagination)

        count_sql, count_args = builder.build_count()
        select_sql, select_args = builder.build_select()

        try:
            total = self.executor.fetch_value(count_sql, count_args) or 0
            rows = self.executor.fetch_all(select_sql, select_args)
        except SQLAlchemyError as e:
            raise self._internal("select", collection, e) from e

        return ListResult(items=[normalize_row(r) for r in rows], total=int(total))

    def get_by_id(self, collection: Collection, id: Any,
                  row_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        builder = QueryBuilder(collection.table_name).where_tree(row_filter)
        sql, args = builder.build_select_by_id(collection.primary_key, id)

        try:
            row = self.executor.fetch_one(sql, args)
        except SQLAlchemyError as e:
            raise self._internal("select", collection, e) from e

        if row is None:
            raise NotFoundException(detail=f"Item with ID '{id}' not found")
        return normalize_row(row)

    def create(self, collection: Collection, data: Dict[str, Any]) -> Dict[str, Any]:
        sql, args = build_insert(collection.table_name, data)

        try:
            row = self.executor.fetch_one(sql, args)
            self.executor.commit()
        except IntegrityError as e:
            self.executor.rollback()
            if is_duplicate_key_error(e):
                raise ConflictException(detail="Record already exists") from e
            raise self._internal("insert", collection, e) from e
        except SQLAlchemyError as e:
            self.executor.rollback()
            raise self._internal("insert", collection, e) from e

        logger.debug(f"Inserted row into {collection.table_name}")
        return normalize_row(row or {})

    def update(self, collection: Collection, id: Any, data: Dict[str, Any],
               row_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        self.get_by_id(collection, id, row_filter)

        sql, args = build_update(collection.table_name, collection.primary_key, id, data)

        try:
            row = self.executor.fetch_one(sql, args)
            self.executor.commit()
        except IntegrityError as e:
            self.executor.rollback()
            if is_duplicate_key_error(e):
                raise ConflictException(detail="Record with this value already exists") from e
            raise self._internal("update", collection, e) from e
        except SQLAlchemyError as e:
            self.executor.rollback()
            raise self._internal("update", collection, e) from e

        if row is None:
            raise NotFoundException(detail=f"Item with ID '{id}' not found")
        return normalize_row(row)

    def delete(self, collection: Collection, id: Any,
               row_filter: Optional[Dict[str, Any]] = None):
        self.get_by_id(collection, id, row_filter)

        sql = build_delete(collection.table_name, collection.primary_key)

        try:
            self.executor.execute(sql, [id])
            self.executor.commit()
        except SQLAlchemyError as e:
            self.executor.rollback()
            raise self._internal("delete", collection, e) from e

    def get_related(self, related: Collection, ids: Iterable[Any],
                    deep_filters: Optional[List[Filter]] = None,
                    row_filter: Optional[Dict[str, Any]] = None) -> Dict[str, Dict[str, Any]]:
        """Rows of ``related`` whose primary key is in ``ids``, keyed by ``str(pk)``"""
        ids = list(ids)
        if not ids:
            return {}

        filters = [Filter(field=related.primary_key, operator=FilterOperator.in_, value=ids)]
        filters.extend(deep_filters or [])

        builder = (
            QueryBuilder(related.table_name)
            .where(filters)
            .where_tree(row_filter)
            .paginate(Pagination.create(1, len(ids)))
        )
        sql, args = builder.build_select()

        try:
            rows = self.executor.fetch_all(sql, args)
        except SQLAlchemyError as e:
            raise self._internal("select", related, e) from e

        result = {}
        for row in rows:
            row = normalize_row(row)
            if related.primary_key in row:
                result[str(row[related.primary_key])] = row
        return result
