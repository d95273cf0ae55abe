from .executor import SqlExecutor
from .repository import CollectionRepository, ListResult
from .schema import SchemaProvider, StaticSchemaRegistry
from .service import CollectionService
