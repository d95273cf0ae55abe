import json
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field


class Action(str, Enum):
    create = "create"
    read = "read"
    update = "update"
    delete = "delete"


class AuthUser(BaseModel):
    """The authenticated caller as handed over by the auth layer"""
    id: str
    role_id: Optional[str] = None
    role: Optional[str] = None
    username: Optional[str] = None
    email: Optional[str] = None


class FieldPermissions(BaseModel):
    allowed: List[str] = Field(default_factory=list, description="Whitelist, applies when not empty")
    denied: List[str] = Field(default_factory=list, description="Blacklist")
    read_only: List[str] = Field(default_factory=list, description="Readable but never writable")

    def is_unrestricted(self) -> bool:
        return not self.allowed and not self.denied


class Policy(BaseModel):
    """Stored permission policy; JSON sub-documents are kept as raw strings"""
    id: Optional[str] = None
    role_id: str
    collection: str
    action: Action
    filter: Optional[str] = None
    field_permissions: Optional[str] = None
    validation: Optional[str] = None
    presets: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ParsedPolicy(BaseModel):
    policy: Policy
    filter_map: Optional[Dict[str, Any]] = None
    field_permissions_map: FieldPermissions = Field(default_factory=FieldPermissions)
    validation_map: Optional[Dict[str, Any]] = None
    presets_map: Optional[Dict[str, Any]] = None


def _load_json_object(raw: Optional[str], name: str) -> Optional[Dict[str, Any]]:
    if raw is None or raw == "":
        return None
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ValueError(f"invalid {name} JSON: {e}") from e
    if value is None:
        return None
    if not isinstance(value, dict):
        raise ValueError(f"{name} must be a JSON object")
    return value


def parse_policy(policy: Policy) -> ParsedPolicy:
    """Decode the JSON sub-documents of a policy.

    Raises:
        ValueError: if one of the documents is malformed
    """
    field_perms = _load_json_object(policy.field_permissions, "field_permissions")
    return ParsedPolicy(
        policy=policy,
        filter_map=_load_json_object(policy.filter, "filter"),
        field_permissions_map=FieldPermissions(**field_perms) if field_perms else FieldPermissions(),
        validation_map=_load_json_object(policy.validation, "validation"),
        presets_map=_load_json_object(policy.presets, "presets"),
    )


class CheckResult(BaseModel):
    allowed: bool
    filter: Optional[Dict[str, Any]] = None
    field_perms: FieldPermissions = Field(default_factory=FieldPermissions)
    presets: Optional[Dict[str, Any]] = None
    reason: str = ""
