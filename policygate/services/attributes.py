"""Attribute resolution: type coercion of raw request attributes against declared schemas."""
import math
import re
from typing import Any, Dict, Mapping, Optional

from policygate.core.exceptions import UnknownAttribute
from policygate.core.logging_config import logger
from policygate.services.policy import AttributeSpec, ResourceType

_INTEGER = re.compile(r"[+-]?[0-9]+")
_DECIMAL = re.compile(r"[+-]?(?:[0-9]+\.[0-9]*|\.[0-9]+|[0-9]+)(?:[eE][+-]?[0-9]+)?")
_BOOLEAN_LITERALS = {"true": True, "false": False}


def is_number(value: Any) -> bool:
    """Booleans are ints in Python but never numbers here."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def coerce_value(spec: AttributeSpec, value: Any) -> Any:
    """Coerce ``value`` to the declared type of ``spec``.

    Raises ValueError when the value has no canonical representation
    in that type.
    """
    if spec.kind == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in _BOOLEAN_LITERALS:
            return _BOOLEAN_LITERALS[value.strip().lower()]
        raise ValueError(f"{value!r} is not a boolean")

    if spec.kind == "number":
        if is_number(value):
            if isinstance(value, float) and not math.isfinite(value):
                raise ValueError(f"{value!r} is not a finite number")
            return value
        if isinstance(value, str):
            text = value.strip()
            if _INTEGER.fullmatch(text):
                return int(text)
            if not _DECIMAL.fullmatch(text):
                raise ValueError(f"{value!r} is not a number")
            number = float(text)
            if not math.isfinite(number):
                raise ValueError(f"{value!r} is not a finite number")
            return number
        raise ValueError(f"{value!r} is not a number")

    if spec.kind == "enum":
        if is_number(value):
            value = str(value)
        if isinstance(value, str) and value in spec.values:
            return value
        raise ValueError(f"{value!r} is not one of {list(spec.values)}")

    if isinstance(value, str):
        return value
    raise ValueError(f"{value!r} is not a string")


class AttributeResolver:
    """Turns raw attribute bags into typed attributes a condition can read.

    Undeclared keys are dropped unless strict mode is on, in which case
    UnknownAttribute is raised. Values that cannot be coerced are always
    dropped so the conditions reading them evaluate fail-closed.
    """

    def __init__(self, strict: bool = False):
        self.strict = strict

    def resolve(
        self,
        raw: Optional[Mapping[str, Any]],
        resource_type: ResourceType,
        strict: Optional[bool] = None,
    ) -> Dict[str, Any]:
        return self._resolve(raw, resource_type.attributes, resource_type.name, strict)

    def resolve_subject(
        self,
        raw: Optional[Mapping[str, Any]],
        schema: Mapping[str, AttributeSpec],
        strict: Optional[bool] = None,
    ) -> Dict[str, Any]:
        return self._resolve(raw, schema, "subject", strict)

    def _resolve(self, raw, schema, owner, strict) -> Dict[str, Any]:
        strict = self.strict if strict is None else strict
        raw = raw or {}

        unknown = [name for name in raw if name not in schema]
        if unknown and strict:
            raise UnknownAttribute(unknown, owner)

        resolved: Dict[str, Any] = {}
        for name, spec in schema.items():
            if name not in raw or raw[name] is None:
                continue
            try:
                resolved[name] = coerce_value(spec, raw[name])
            except ValueError as e:
                logger.debug(f"Dropping attribute {owner}.{name}: {e}")
        return resolved
