"""Immutable policy model shared by the store, the resolver and the engine."""
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, FrozenSet, List, Mapping, Optional, Tuple

if TYPE_CHECKING:
    from policygate.services.conditions import Condition

WILDCARD = "*"

# Identity fields every condition may read without declaring them
SUBJECT_ID_ATTRIBUTE = "id"
RESOURCE_KEY_ATTRIBUTE = "key"


def _read_only(mapping: Mapping) -> Mapping:
    if isinstance(mapping, MappingProxyType):
        return mapping
    return MappingProxyType(dict(mapping))


@dataclass(frozen=True)
class AttributeSpec:
    name: str
    kind: str
    values: Tuple[str, ...] = ()

    def to_document(self) -> Any:
        if self.kind == "enum":
            return {"type": "enum", "values": list(self.values)}
        return self.kind


@dataclass(frozen=True)
class ResourceType:
    name: str
    attributes: Mapping[str, AttributeSpec] = field(default_factory=dict)
    # Empty means the type does not restrict its action names
    actions: Tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "attributes", _read_only(self.attributes))

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"name": self.name}
        if self.actions:
            doc["actions"] = list(self.actions)
        doc["attributes"] = {name: spec.to_document() for name, spec in self.attributes.items()}
        return doc


@dataclass(frozen=True)
class Permission:
    role: str
    action: str
    resource_type: str
    condition: Optional["Condition"] = None

    def matches(self, action: str, resource_type: str) -> bool:
        return (
            self.action in (WILDCARD, action)
            and self.resource_type in (WILDCARD, resource_type)
        )

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"action": self.action, "resource_type": self.resource_type}
        if self.condition is not None:
            doc["condition"] = self.condition.to_document()
        return doc

    def __str__(self) -> str:
        suffix = " if " + str(self.condition) if self.condition is not None else ""
        return f"({self.role}, {self.action}, {self.resource_type}){suffix}"


@dataclass(frozen=True)
class Role:
    name: str
    permissions: Tuple[Permission, ...] = ()
    description: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"name": self.name}
        if self.description is not None:
            doc["description"] = self.description
        doc["permissions"] = [p.to_document() for p in self.permissions]
        return doc


@dataclass(frozen=True)
class Subject:
    """Authenticated caller. Built by the authentication layer, never by the engine."""
    id: str
    roles: FrozenSet[str] = frozenset()
    attributes: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if not isinstance(self.roles, frozenset):
            object.__setattr__(self, "roles", frozenset(self.roles))


@dataclass(frozen=True)
class Resource:
    type: str
    key: Optional[str] = None
    attributes: Mapping[str, Any] = field(default_factory=dict)


class DecisionReason(str, Enum):
    MATCHED = "matched"
    DEFAULT_DENY = "default_deny"
    INVALID_REQUEST = "invalid_request"
    ENGINE_ERROR = "engine_error"


@dataclass(frozen=True)
class Decision:
    allowed: bool
    reason: DecisionReason
    matched_permission: Optional[Permission] = None
    policy_version: int = 0

    @classmethod
    def deny(cls, reason: DecisionReason = DecisionReason.DEFAULT_DENY, policy_version: int = 0) -> "Decision":
        return cls(allowed=False, reason=reason, policy_version=policy_version)


@dataclass(frozen=True)
class NamedSet:
    """A UserSet or ResourceSet: a named predicate reused by permissions."""
    name: str
    condition: "Condition"
    # Only set for resource sets
    resource_type: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"name": self.name}
        if self.resource_type is not None:
            doc["resource_type"] = self.resource_type
        doc["condition"] = self.condition.to_document()
        return doc


@dataclass(frozen=True)
class PolicySnapshot:
    """One immutable, versioned view of the whole policy.

    ``version`` is assigned by the store and is not part of equality, so a
    snapshot reloaded from its own export compares equal to the original.
    """
    name: str = "default"
    subject_attributes: Mapping[str, AttributeSpec] = field(default_factory=dict)
    resource_types: Mapping[str, ResourceType] = field(default_factory=dict)
    user_sets: Mapping[str, NamedSet] = field(default_factory=dict)
    resource_sets: Mapping[str, NamedSet] = field(default_factory=dict)
    roles: Mapping[str, Role] = field(default_factory=dict)
    version: int = field(default=0, compare=False)

    def __post_init__(self):
        for name in ("subject_attributes", "resource_types", "user_sets", "resource_sets", "roles"):
            object.__setattr__(self, name, _read_only(getattr(self, name)))

    def accepts_action(self, action: str, resource_type: str) -> bool:
        """True when ``resource_type`` is declared and does not rule out ``action``.

        A type that lists its actions accepts only those; a type without a
        list leaves matching to the permissions themselves.
        """
        declared = self.resource_types.get(resource_type)
        if declared is None:
            return False
        if declared.actions:
            return action in declared.actions
        return True

    def permissions_for(self, roles, action: str, resource_type: str) -> List[Permission]:
        """Permissions granted to any of ``roles`` for the action, in document order."""
        if not self.accepts_action(action, resource_type):
            return []
        found = []
        for role in self.roles.values():
            if role.name not in roles:
                continue
            found.extend(p for p in role.permissions if p.matches(action, resource_type))
        return found

    def to_document(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "subject_attributes": {n: s.to_document() for n, s in self.subject_attributes.items()},
            "resource_types": [rt.to_document() for rt in self.resource_types.values()],
            "user_sets": [s.to_document() for s in self.user_sets.values()],
            "resource_sets": [s.to_document() for s in self.resource_sets.values()],
            "roles": [r.to_document() for r in self.roles.values()],
        }
