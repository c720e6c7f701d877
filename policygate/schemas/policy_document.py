"""Pydantic schema for policy documents (the import/export representation)."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Literal, Optional, Union


class _Strict(BaseModel):
    # Typos in a policy must fail the load, not silently drop a rule
    model_config = ConfigDict(extra="forbid")


class AttributeDefinition(_Strict):
    type: Literal["boolean", "string", "number", "enum"]
    values: Optional[List[str]] = None


# "boolean" is shorthand for {"type": "boolean"}
AttributeField = Union[Literal["boolean", "string", "number"], AttributeDefinition]


class ResourceTypeDocument(_Strict):
    name: str
    actions: List[str] = Field(default_factory=list)
    attributes: Dict[str, AttributeField] = Field(default_factory=dict)


class PermissionDocument(_Strict):
    action: str
    resource_type: str
    condition: Optional[Dict[str, Any]] = None


class TopLevelPermissionDocument(PermissionDocument):
    role: str


class RoleDocument(_Strict):
    name: str
    description: Optional[str] = None
    permissions: List[PermissionDocument] = Field(default_factory=list)


class UserSetDocument(_Strict):
    name: str
    condition: Dict[str, Any]


class ResourceSetDocument(_Strict):
    name: str
    resource_type: str
    condition: Dict[str, Any]


class PolicyDocument(_Strict):
    name: str = "default"
    subject_attributes: Dict[str, AttributeField] = Field(default_factory=dict)
    resource_types: List[ResourceTypeDocument] = Field(default_factory=list)
    user_sets: List[UserSetDocument] = Field(default_factory=list)
    resource_sets: List[ResourceSetDocument] = Field(default_factory=list)
    roles: List[RoleDocument] = Field(default_factory=list)
    # Grants may also be listed flat; they are appended to their role's grants
    permissions: List[TopLevelPermissionDocument] = Field(default_factory=list)
