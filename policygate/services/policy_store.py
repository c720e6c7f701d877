"""Policy store: compiles policy documents into immutable snapshots and swaps them atomically.

The store owns exactly one reference to the active PolicySnapshot. Loading
builds a complete new snapshot off to the side and replaces the reference in
a single assignment, so a reader that grabbed the old snapshot keeps a
consistent view for the rest of its decision. Writers are serialized by a
lock; readers never take it.
"""
import json
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

import yaml
from pydantic import ValidationError

from policygate.core.exceptions import InvalidPolicy
from policygate.core.logging_config import logger
from policygate.schemas.policy_document import AttributeDefinition, PolicyDocument
from policygate.services.conditions import ConditionParser
from policygate.services.policy import (
    RESOURCE_KEY_ATTRIBUTE,
    SUBJECT_ID_ATTRIBUTE,
    WILDCARD,
    AttributeSpec,
    NamedSet,
    Permission,
    PolicySnapshot,
    ResourceType,
    Role,
)


def _attribute_specs(raw: Mapping[str, Any], reserved: str, where: str, errors: List[str]) -> Dict[str, AttributeSpec]:
    specs: Dict[str, AttributeSpec] = {}
    for name, definition in raw.items():
        if name == reserved:
            errors.append(f"{where}: '{name}' is a built-in attribute and cannot be declared")
            continue
        if not name or "." in name:
            errors.append(f"{where}: invalid attribute name {name!r}")
            continue
        if isinstance(definition, AttributeDefinition):
            kind, values = definition.type, tuple(definition.values or ())
        else:
            kind, values = definition, ()
        if kind == "enum" and not values:
            errors.append(f"{where}.{name}: enum attributes need a non-empty 'values' list")
            continue
        if kind != "enum" and values:
            errors.append(f"{where}.{name}: only enum attributes take 'values'")
            continue
        specs[name] = AttributeSpec(name, kind, values)
    return specs


def _duplicates(names) -> List[str]:
    seen, dupes = set(), []
    for name in names:
        if name in seen and name not in dupes:
            dupes.append(name)
        seen.add(name)
    return dupes


def compile_policy(document: Union[Mapping[str, Any], PolicyDocument], version: int = 0) -> PolicySnapshot:
    """Validate a policy document and build its snapshot.

    Every problem found is reported in a single InvalidPolicy.
    """
    if not isinstance(document, PolicyDocument):
        if not isinstance(document, Mapping):
            raise InvalidPolicy(["policy document must be an object"])
        try:
            document = PolicyDocument.model_validate(dict(document))
        except ValidationError as e:
            raise InvalidPolicy(
                f"{'.'.join(str(p) for p in err['loc']) or 'document'}: {err['msg']}"
                for err in e.errors()
            ) from None

    errors: List[str] = []

    for label, names in (
        ("role", [r.name for r in document.roles]),
        ("resource type", [rt.name for rt in document.resource_types]),
        ("user set", [s.name for s in document.user_sets]),
        ("resource set", [s.name for s in document.resource_sets]),
    ):
        for name in _duplicates(names):
            errors.append(f"duplicate {label} name '{name}'")
        if WILDCARD in names:
            errors.append(f"'{WILDCARD}' cannot be used as a {label} name")

    subject_schema = _attribute_specs(
        document.subject_attributes, SUBJECT_ID_ATTRIBUTE, "subject_attributes", errors
    )

    resource_types: Dict[str, ResourceType] = {}
    for i, rt in enumerate(document.resource_types):
        where = f"resource_types[{i}]"
        for action in _duplicates(rt.actions):
            errors.append(f"{where}: duplicate action '{action}'")
        if WILDCARD in rt.actions:
            errors.append(f"{where}: '{WILDCARD}' cannot be declared as an action")
        attributes = _attribute_specs(rt.attributes, RESOURCE_KEY_ATTRIBUTE, f"{where}.attributes", errors)
        resource_types.setdefault(rt.name, ResourceType(rt.name, attributes, tuple(rt.actions)))

    user_sets: Dict[str, NamedSet] = {}
    for i, raw_set in enumerate(document.user_sets):
        parser = ConditionParser({"subject": subject_schema, "resource": None})
        condition = parser.parse(raw_set.condition, f"user_sets[{i}].condition")
        errors.extend(parser.errors)
        if condition is not None:
            user_sets.setdefault(raw_set.name, NamedSet(raw_set.name, condition))

    resource_sets: Dict[str, NamedSet] = {}
    for i, raw_set in enumerate(document.resource_sets):
        where = f"resource_sets[{i}]"
        resource_type = resource_types.get(raw_set.resource_type)
        if resource_type is None:
            errors.append(f"{where}: undeclared resource type '{raw_set.resource_type}'")
            continue
        parser = ConditionParser({"subject": None, "resource": resource_type.attributes})
        condition = parser.parse(raw_set.condition, f"{where}.condition")
        errors.extend(parser.errors)
        if condition is not None:
            resource_sets.setdefault(
                raw_set.name, NamedSet(raw_set.name, condition, resource_type=resource_type.name)
            )

    declared_roles = {r.name for r in document.roles}
    grants: Dict[str, List[tuple]] = {r.name: [] for r in document.roles}
    for i, role in enumerate(document.roles):
        for j, grant in enumerate(role.permissions):
            grants[role.name].append((f"roles[{i}].permissions[{j}]", grant))
    for k, grant in enumerate(document.permissions):
        if grant.role not in declared_roles:
            errors.append(f"permissions[{k}]: undeclared role '{grant.role}'")
            continue
        grants[grant.role].append((f"permissions[{k}]", grant))

    roles: Dict[str, Role] = {}
    for role_doc in document.roles:
        if role_doc.name in roles:
            continue
        permissions = []
        for where, grant in grants[role_doc.name]:
            permission = _compile_permission(
                role_doc.name, grant, where, subject_schema, resource_types, user_sets, resource_sets, errors
            )
            if permission is not None:
                permissions.append(permission)
        roles[role_doc.name] = Role(role_doc.name, tuple(permissions), role_doc.description)

    if errors:
        raise InvalidPolicy(errors)

    return PolicySnapshot(
        name=document.name,
        subject_attributes=subject_schema,
        resource_types=resource_types,
        user_sets=user_sets,
        resource_sets=resource_sets,
        roles=roles,
        version=version,
    )


def _compile_permission(role, grant, where, subject_schema, resource_types, user_sets, resource_sets, errors):
    if grant.resource_type == WILDCARD:
        resource_schema = None
    elif grant.resource_type in resource_types:
        resource_type = resource_types[grant.resource_type]
        resource_schema = resource_type.attributes
        if grant.action != WILDCARD and resource_type.actions and grant.action not in resource_type.actions:
            errors.append(f"{where}: action '{grant.action}' is not declared on '{grant.resource_type}'")
            return None
    else:
        errors.append(f"{where}: undeclared resource type '{grant.resource_type}'")
        return None

    condition = None
    if grant.condition is not None:
        parser = ConditionParser(
            {"subject": subject_schema, "resource": resource_schema},
            user_sets=user_sets,
            resource_sets=resource_sets,
            resource_type=grant.resource_type,
        )
        condition = parser.parse(grant.condition, f"{where}.condition")
        errors.extend(parser.errors)
        if condition is None:
            return None
    return Permission(role, grant.action, grant.resource_type, condition)


def read_policy_file(path: Union[str, Path]) -> Any:
    """Read a JSON or YAML policy document from disk."""
    path = Path(path)
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() in (".yaml", ".yml"):
        return yaml.safe_load(text)
    return json.loads(text)


class PolicyStore:
    """Single-writer, many-reader holder of the active policy snapshot."""

    def __init__(self, document: Optional[Mapping[str, Any]] = None):
        self._lock = threading.Lock()
        self._issued = 0
        self._snapshot = PolicySnapshot(version=0)
        if document is not None:
            self.load(document)

    def current_snapshot(self) -> PolicySnapshot:
        """Return the last successfully loaded snapshot. Never blocks."""
        return self._snapshot

    @property
    def version(self) -> int:
        return self._snapshot.version

    def validate(self, document: Mapping[str, Any]) -> PolicySnapshot:
        """Compile ``document`` without activating it."""
        return compile_policy(document, version=self._snapshot.version)

    def load(
        self,
        document: Mapping[str, Any],
        commit: Optional[Callable[[PolicySnapshot], Any]] = None,
    ) -> PolicySnapshot:
        """Compile and activate ``document``; on InvalidPolicy the active snapshot is kept.

        ``commit`` runs under the writer lock after compilation and before the
        swap. If it raises, the active snapshot is kept and the error propagates.
        """
        with self._lock:
            try:
                snapshot = compile_policy(document, version=self._issued + 1)
            except InvalidPolicy as e:
                logger.warning(
                    f"Rejected policy load; keeping version {self._snapshot.version}: {e}"
                )
                raise
            # Versions are never reused, even when a commit fails
            self._issued = snapshot.version
            if commit is not None:
                try:
                    commit(snapshot)
                except Exception:
                    logger.error(
                        f"Commit of policy version {snapshot.version} failed; "
                        f"keeping version {self._snapshot.version}"
                    )
                    raise
            self._snapshot = snapshot
        logger.info(
            f"Policy '{snapshot.name}' activated as version {snapshot.version} "
            f"({len(snapshot.roles)} roles, {len(snapshot.resource_types)} resource types)"
        )
        return snapshot

    def load_file(self, path: Union[str, Path]) -> PolicySnapshot:
        try:
            document = read_policy_file(path)
        except (ValueError, yaml.YAMLError) as e:
            raise InvalidPolicy([f"{path}: unreadable policy document ({e})"]) from e
        return self.load(document)

    def export(self) -> Dict[str, Any]:
        """Canonical document for the active snapshot; loading it yields an equal snapshot."""
        return self._snapshot.to_document()
