"""Attribute resolution and type coercion."""
import pytest

from policygate.core.exceptions import UnknownAttribute
from policygate.services.attributes import AttributeResolver, coerce_value
from policygate.services.policy import AttributeSpec, ResourceType

POST = ResourceType(
    name="post",
    attributes={
        "published": AttributeSpec("published", "boolean"),
        "likes": AttributeSpec("likes", "number"),
        "title": AttributeSpec("title", "string"),
        "category": AttributeSpec("category", "enum", ("news", "tutorial")),
        "rating": AttributeSpec("rating", "enum", ("1", "2", "3")),
    },
)


class TestCoercion:
    """Canonical conversions from raw request values."""

    @pytest.mark.parametrize("raw, expected", [
        (True, True),
        ("true", True),
        ("FALSE", False),
        (" true ", True),
    ])
    def test_boolean(self, raw, expected):
        assert coerce_value(POST.attributes["published"], raw) is expected

    @pytest.mark.parametrize("raw", ["yes", "1", 1, 0, None, "truthy"])
    def test_boolean_rejects_non_canonical(self, raw):
        with pytest.raises(ValueError):
            coerce_value(POST.attributes["published"], raw)

    def test_number_from_string(self):
        spec = POST.attributes["likes"]
        assert coerce_value(spec, "42") == 42
        assert isinstance(coerce_value(spec, "42"), int)
        assert coerce_value(spec, "2.5") == 2.5
        assert coerce_value(spec, 7) == 7

    def test_number_accepts_plain_decimal_literals(self):
        spec = POST.attributes["likes"]
        assert coerce_value(spec, "-3") == -3
        assert coerce_value(spec, ".5") == 0.5
        assert coerce_value(spec, "1e3") == 1000.0

    @pytest.mark.parametrize("raw", ["1_000", "\u0661\u0662", "0x10", "1e999", "12abc", ""])
    def test_number_rejects_non_decimal_strings(self, raw):
        with pytest.raises(ValueError):
            coerce_value(POST.attributes["likes"], raw)

    @pytest.mark.parametrize("raw", [True, "many", "nan", "inf", float("nan"), []])
    def test_number_rejects(self, raw):
        with pytest.raises(ValueError):
            coerce_value(POST.attributes["likes"], raw)

    def test_enum(self):
        assert coerce_value(POST.attributes["category"], "news") == "news"
        assert coerce_value(POST.attributes["rating"], 2) == "2"
        with pytest.raises(ValueError):
            coerce_value(POST.attributes["category"], "gossip")

    def test_string_is_not_coerced_from_other_types(self):
        assert coerce_value(POST.attributes["title"], "Hello") == "Hello"
        with pytest.raises(ValueError):
            coerce_value(POST.attributes["title"], 12)


class TestResolver:
    """Resolution against a resource type's declared schema."""

    def test_permissive_drops_unknown_keys(self):
        resolved = AttributeResolver().resolve({"published": "false", "color": "red"}, POST)
        assert resolved == {"published": False}

    def test_strict_rejects_unknown_keys(self):
        with pytest.raises(UnknownAttribute) as excinfo:
            AttributeResolver(strict=True).resolve({"published": True, "color": "red", "size": 1}, POST)
        assert excinfo.value.names == ["color", "size"]
        assert excinfo.value.owner == "post"

    def test_strict_flag_per_call_overrides_default(self):
        resolver = AttributeResolver(strict=True)
        assert resolver.resolve({"color": "red"}, POST, strict=False) == {}

    def test_uncoercible_values_are_dropped(self):
        resolved = AttributeResolver().resolve({"published": "maybe", "likes": "12"}, POST)
        assert resolved == {"likes": 12}

    def test_null_values_are_absent(self):
        assert AttributeResolver().resolve({"published": None}, POST) == {}

    def test_missing_input_resolves_to_empty(self):
        assert AttributeResolver().resolve(None, POST) == {}

    def test_subject_schema(self):
        schema = {"approved": AttributeSpec("approved", "boolean")}
        resolver = AttributeResolver()
        assert resolver.resolve_subject({"approved": "true", "team": "x"}, schema) == {"approved": True}
        with pytest.raises(UnknownAttribute) as excinfo:
            resolver.resolve_subject({"team": "x"}, schema, strict=True)
        assert excinfo.value.owner == "subject"
