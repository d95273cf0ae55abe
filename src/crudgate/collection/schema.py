import threading
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List, Optional, Tuple

from crudgate.api.exceptions import CollectionNotFoundException
from crudgate.interface.schema import Collection, Relationship


class SchemaProvider(ABC):
    """Collection metadata as seen by the service layer"""

    @abstractmethod
    def get_collection(self, name: str) -> Collection:
        """Raises CollectionNotFoundException for unknown or disabled collections"""
        ...

    @abstractmethod
    def get_relationship(self, collection: str, field_name: str) -> Optional[Relationship]:
        ...


class StaticSchemaRegistry(SchemaProvider):
    """Schema provider backed by collections registered in code"""

    def __init__(self, collections: Optional[Iterable[Collection]] = None,
                 relationships: Optional[Iterable[Relationship]] = None):
        self._lock = threading.Lock()
        self._collections: Dict[str, Collection] = {}
        self._relationships: Dict[Tuple[str, str], Relationship] = {}

        for collection in collections or []:
            self.register_collection(collection)
        for relationship in relationships or []:
            self.register_relationship(relationship)

    def register_collection(self, collection: Collection):
        with self._lock:
            self._collections[collection.name] = collection

    def register_relationship(self, relationship: Relationship):
        with self._lock:
            self._relationships[(relationship.collection, relationship.field_name)] = relationship

    def get_collection(self, name: str) -> Collection:
        with self._lock:
            collection = self._collections.get(name)

        if collection is None or not collection.enabled:
            raise CollectionNotFoundException(detail=f"Collection '{name}' not found")
        return collection

    def get_relationship(self, collection: str, field_name: str) -> Optional[Relationship]:
        with self._lock:
            return self._relationships.get((collection, field_name))

    def list_collections(self) -> List[Collection]:
        with self._lock:
            return [c for c in self._collections.values() if c.enabled]
