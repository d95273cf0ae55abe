from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field as PydanticField


class ForeignKeyInfo(BaseModel):
    table: str
    column: str
    on_delete: Optional[str] = None
    on_update: Optional[str] = None


class Field(BaseModel):
    name: str
    data_type: str = "string"
    is_nullable: bool = True
    is_unique: bool = False
    is_primary_key: bool = False
    default_value: Optional[str] = None
    foreign_key: Optional[ForeignKeyInfo] = None
    validation_rules: Dict[str, Any] = PydanticField(default_factory=dict)


class Collection(BaseModel):
    """A table exposed as a CRUD resource, as described by the schema layer"""
    name: str
    table_name: str
    primary_key: str = "id"
    enabled: bool = True
    fields: List[Field] = PydanticField(default_factory=list)

    def field_names(self) -> List[str]:
        return [f.name for f in self.fields]


class Relationship(BaseModel):
    collection: str
    field_name: str
    related_collection: str
    relationship_type: str = "many_to_one"
    junction_table: Optional[str] = None
    junction_field: Optional[str] = None
