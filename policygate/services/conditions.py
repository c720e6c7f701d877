"""Condition expressions: parsing from policy documents and fail-closed evaluation.

Document forms::

    {"attr": "resource.published", "op": "=", "value": false}
    {"attr": "resource.author_id", "op": "=", "ref": "subject.id"}
    {"attr": "resource.category", "op": "in", "value": ["news", "tutorial"]}
    {"all": [...]}   {"any": [...]}   {"not": {...}}
    {"user_set": "approved_writers"}   {"resource_set": "draft_posts"}

Evaluation is three-valued: a comparison whose attribute is missing, or
whose operands are not comparable, is *unknown*. Unknown propagates through
all/any/not and the overall result is true only when the tree is definitely
true, so missing data can never grant access.
"""
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Union

from policygate.services.attributes import coerce_value, is_number
from policygate.services.policy import (
    RESOURCE_KEY_ATTRIBUTE,
    SUBJECT_ID_ATTRIBUTE,
    AttributeSpec,
    NamedSet,
)

SCOPES = ("subject", "resource")

OPERATORS = ("=", "!=", ">", "<", ">=", "<=", "in")
ORDERING_OPERATORS = (">", "<", ">=", "<=")

OPERATOR_ALIASES = {
    "==": "=",
    "eq": "=",
    "≠": "!=",
    "ne": "!=",
    "gt": ">",
    "lt": "<",
    "≥": ">=",
    "gte": ">=",
    "≤": "<=",
    "lte": "<=",
    "∈": "in",
}

_BUILTIN_SPECS = {
    "subject": AttributeSpec(SUBJECT_ID_ATTRIBUTE, "string"),
    "resource": AttributeSpec(RESOURCE_KEY_ATTRIBUTE, "string"),
}

_MISSING = object()


# --- Expression tree ---

@dataclass(frozen=True)
class AttrRef:
    scope: str
    name: str

    def __str__(self) -> str:
        return f"{self.scope}.{self.name}"


@dataclass(frozen=True)
class Comparison:
    attr: AttrRef
    op: str
    value: Any = None
    ref: Optional[AttrRef] = None

    def to_document(self) -> Dict[str, Any]:
        doc: Dict[str, Any] = {"attr": str(self.attr), "op": self.op}
        if self.ref is not None:
            doc["ref"] = str(self.ref)
        elif self.op == "in":
            doc["value"] = list(self.value)
        else:
            doc["value"] = self.value
        return doc

    def __str__(self) -> str:
        operand = str(self.ref) if self.ref is not None else repr(self.value)
        return f"{self.attr} {self.op} {operand}"


@dataclass(frozen=True)
class AllOf:
    items: Tuple["Condition", ...]

    def to_document(self) -> Dict[str, Any]:
        return {"all": [item.to_document() for item in self.items]}

    def __str__(self) -> str:
        return "(" + " and ".join(str(i) for i in self.items) + ")"


@dataclass(frozen=True)
class AnyOf:
    items: Tuple["Condition", ...]

    def to_document(self) -> Dict[str, Any]:
        return {"any": [item.to_document() for item in self.items]}

    def __str__(self) -> str:
        return "(" + " or ".join(str(i) for i in self.items) + ")"


@dataclass(frozen=True)
class Not:
    item: "Condition"

    def to_document(self) -> Dict[str, Any]:
        return {"not": self.item.to_document()}

    def __str__(self) -> str:
        return f"not {self.item}"


@dataclass(frozen=True)
class SetRef:
    """Reference to a named user set or resource set, resolved at load time."""
    kind: str  # "user_set" or "resource_set"
    name: str
    condition: "Condition"

    def to_document(self) -> Dict[str, Any]:
        return {self.kind: self.name}

    def __str__(self) -> str:
        return f"{self.kind}:{self.name}"


Condition = Union[Comparison, AllOf, AnyOf, Not, SetRef]


# --- Parsing ---

class ConditionParser:
    """Compiles condition documents, collecting every error instead of stopping at the first."""

    def __init__(
        self,
        schemas: Mapping[str, Optional[Mapping[str, AttributeSpec]]],
        user_sets: Optional[Mapping[str, NamedSet]] = None,
        resource_sets: Optional[Mapping[str, NamedSet]] = None,
        resource_type: Optional[str] = None,
    ):
        # scope -> declared attributes; a scope mapped to None may not be referenced
        self.schemas = schemas
        self.user_sets = user_sets
        self.resource_sets = resource_sets
        self.resource_type = resource_type
        self.errors: List[str] = []

    def parse(self, raw: Any, where: str) -> Optional[Condition]:
        if not isinstance(raw, dict):
            return self._fail(where, "condition must be an object")

        if "all" in raw or "any" in raw:
            key = "all" if "all" in raw else "any"
            if len(raw) != 1:
                return self._fail(where, f"'{key}' cannot be combined with other keys")
            items = raw[key]
            if not isinstance(items, list) or not items:
                return self._fail(where, f"'{key}' needs a non-empty list")
            parsed = [self.parse(item, f"{where}.{key}[{i}]") for i, item in enumerate(items)]
            if any(p is None for p in parsed):
                return None
            return (AllOf if key == "all" else AnyOf)(tuple(parsed))

        if "not" in raw:
            if len(raw) != 1:
                return self._fail(where, "'not' cannot be combined with other keys")
            inner = self.parse(raw["not"], f"{where}.not")
            return Not(inner) if inner is not None else None

        if "user_set" in raw or "resource_set" in raw:
            return self._parse_set_ref(raw, where)

        if "attr" in raw:
            return self._parse_comparison(raw, where)

        return self._fail(where, f"unrecognised condition keys {sorted(raw)}")

    def _parse_set_ref(self, raw: Dict[str, Any], where: str) -> Optional[Condition]:
        kind = "user_set" if "user_set" in raw else "resource_set"
        if len(raw) != 1:
            return self._fail(where, f"'{kind}' cannot be combined with other keys")
        sets = self.user_sets if kind == "user_set" else self.resource_sets
        if sets is None:
            return self._fail(where, f"{kind} references are not allowed here")
        name = raw[kind]
        named = sets.get(name) if isinstance(name, str) else None
        if named is None:
            return self._fail(where, f"undeclared {kind} '{name}'")
        if kind == "resource_set" and named.resource_type != self.resource_type:
            return self._fail(
                where,
                f"resource_set '{name}' applies to '{named.resource_type}', not '{self.resource_type}'",
            )
        return SetRef(kind, name, named.condition)

    def _parse_comparison(self, raw: Dict[str, Any], where: str) -> Optional[Condition]:
        extra = set(raw) - {"attr", "op", "value", "ref"}
        if extra:
            return self._fail(where, f"unexpected keys {sorted(extra)}")

        op = raw.get("op")
        if isinstance(op, str):
            op = OPERATOR_ALIASES.get(op, op)
        if op not in OPERATORS:
            return self._fail(where, f"unknown operator {raw.get('op')!r}")

        attr, spec = self._reference(raw["attr"], where)
        if attr is None:
            return None

        if ("value" in raw) == ("ref" in raw):
            return self._fail(where, "exactly one of 'value' or 'ref' is required")

        if "ref" in raw:
            if op == "in":
                return self._fail(where, "'in' needs a literal list, not a reference")
            ref, ref_spec = self._reference(raw["ref"], where)
            if ref is None:
                return None
            if op in ORDERING_OPERATORS and not (spec.kind == ref_spec.kind == "number"):
                return self._fail(where, f"'{op}' compares numbers only")
            return Comparison(attr, op, ref=ref)

        if op in ORDERING_OPERATORS and spec.kind != "number":
            return self._fail(where, f"'{op}' compares numbers only; {attr} is {spec.kind}")

        literal = raw["value"]
        try:
            if op == "in":
                if not isinstance(literal, list) or not literal:
                    return self._fail(where, "'in' needs a non-empty list")
                value = tuple(coerce_value(spec, item) for item in literal)
            else:
                value = coerce_value(spec, literal)
        except ValueError as e:
            return self._fail(where, f"literal for {attr}: {e}")
        return Comparison(attr, op, value=value)

    def _reference(self, text: Any, where: str):
        if not isinstance(text, str) or "." not in text:
            self._fail(where, f"attribute reference {text!r} must look like 'subject.name' or 'resource.name'")
            return None, None
        scope, name = text.split(".", 1)
        if scope not in SCOPES:
            self._fail(where, f"unknown attribute scope '{scope}'")
            return None, None
        schema = self.schemas.get(scope)
        if schema is None:
            self._fail(where, f"{scope} attributes cannot be referenced here")
            return None, None
        builtin = _BUILTIN_SPECS[scope]
        if name == builtin.name:
            return AttrRef(scope, name), builtin
        spec = schema.get(name)
        if spec is None:
            self._fail(where, f"undeclared attribute '{text}'")
            return None, None
        return AttrRef(scope, name), spec

    def _fail(self, where: str, message: str) -> None:
        self.errors.append(f"{where}: {message}")
        return None


# --- Evaluation ---

def _lookup(ref: AttrRef, subject_attrs: Mapping[str, Any], resource_attrs: Mapping[str, Any]) -> Any:
    source = subject_attrs if ref.scope == "subject" else resource_attrs
    value = source.get(ref.name, _MISSING)
    return _MISSING if value is None else value


def _equal(left: Any, right: Any) -> bool:
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if is_number(left) and is_number(right):
        return left == right
    return type(left) is type(right) and left == right


_ORDERING: Dict[str, Callable[[Any, Any], bool]] = {
    ">": lambda a, b: a > b,
    "<": lambda a, b: a < b,
    ">=": lambda a, b: a >= b,
    "<=": lambda a, b: a <= b,
}


def _compare(node: Comparison, subject_attrs, resource_attrs) -> Optional[bool]:
    left = _lookup(node.attr, subject_attrs, resource_attrs)
    if left is _MISSING:
        return None
    if node.ref is not None:
        right = _lookup(node.ref, subject_attrs, resource_attrs)
        if right is _MISSING:
            return None
    else:
        right = node.value

    if node.op == "=":
        return _equal(left, right)
    if node.op == "!=":
        return not _equal(left, right)
    if node.op == "in":
        return any(_equal(left, item) for item in right)
    if not (is_number(left) and is_number(right)):
        return None
    return _ORDERING[node.op](left, right)


def _evaluate(node: Condition, subject_attrs, resource_attrs) -> Optional[bool]:
    if isinstance(node, Comparison):
        return _compare(node, subject_attrs, resource_attrs)
    if isinstance(node, SetRef):
        return _evaluate(node.condition, subject_attrs, resource_attrs)
    if isinstance(node, Not):
        inner = _evaluate(node.item, subject_attrs, resource_attrs)
        return None if inner is None else not inner
    if isinstance(node, AllOf):
        result: Optional[bool] = True
        for item in node.items:
            value = _evaluate(item, subject_attrs, resource_attrs)
            if value is False:
                return False
            if value is None:
                result = None
        return result
    if isinstance(node, AnyOf):
        result = False
        for item in node.items:
            value = _evaluate(item, subject_attrs, resource_attrs)
            if value is True:
                return True
            if value is None:
                result = None
        return result
    raise TypeError(f"Not a condition: {node!r}")


def evaluate(
    condition: Optional[Condition],
    subject_attrs: Mapping[str, Any],
    resource_attrs: Mapping[str, Any],
) -> bool:
    """True only when ``condition`` definitely holds; no condition always holds."""
    if condition is None:
        return True
    return _evaluate(condition, subject_attrs, resource_attrs) is True
