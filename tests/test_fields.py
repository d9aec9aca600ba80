"""Tests for perch.schema.fields — schema compilation."""

import re

import pytest

from perch.errors import ConfigurationError
from perch.schema.fields import (
    FieldSchema,
    FieldType,
    compile_field,
    compile_responses,
    compile_schema,
    describe_schema,
)


class TestCompileField:
    def test_minimal(self) -> None:
        field = compile_field("name", {"type": "string"})
        assert field == FieldSchema(type=FieldType.STRING)
        assert field.required is False

    def test_full(self) -> None:
        field = compile_field(
            "code",
            {"type": "string", "required": True, "min": 2, "max": 4, "pattern": r"^[A-Z]+$"},
        )
        assert field.required is True
        assert field.min == 2
        assert field.max == 4
        assert isinstance(field.pattern, re.Pattern)

    def test_field_schema_passes_through(self) -> None:
        field = FieldSchema(type=FieldType.NUMBER, min=0)
        assert compile_field("age", field) is field

    def test_choices_become_tuple(self) -> None:
        field = compile_field("role", {"type": "string", "choices": ["admin", "user"]})
        assert field.choices == ("admin", "user")

    def test_unknown_type(self) -> None:
        with pytest.raises(ConfigurationError, match="unknown type 'date'"):
            compile_field("when", {"type": "date"})

    def test_missing_type(self) -> None:
        with pytest.raises(ConfigurationError, match="'when'"):
            compile_field("when", {"required": True})

    def test_unknown_key(self) -> None:
        with pytest.raises(ConfigurationError, match="default"):
            compile_field("name", {"type": "string", "default": "x"})

    def test_min_greater_than_max(self) -> None:
        with pytest.raises(ConfigurationError, match="min"):
            compile_field("age", {"type": "number", "min": 10, "max": 1})

    def test_min_equal_max_allowed(self) -> None:
        field = compile_field("pin", {"type": "string", "min": 4, "max": 4})
        assert field.min == field.max == 4

    def test_bool_bound_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="must be a number"):
            compile_field("age", {"type": "number", "min": True})

    def test_bounds_on_boolean_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="not supported"):
            compile_field("flag", {"type": "boolean", "max": 1})

    def test_negative_length_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match=">= 0"):
            compile_field("name", {"type": "string", "min": -1})

    def test_pattern_on_number_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="pattern"):
            compile_field("age", {"type": "number", "pattern": r"\d+"})

    def test_invalid_pattern(self) -> None:
        with pytest.raises(ConfigurationError, match="invalid pattern"):
            compile_field("name", {"type": "string", "pattern": "("})

    def test_empty_choices(self) -> None:
        with pytest.raises(ConfigurationError, match="must not be empty"):
            compile_field("role", {"type": "string", "choices": []})

    def test_string_choices_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="collection"):
            compile_field("role", {"type": "string", "choices": "abc"})

    def test_not_a_mapping(self) -> None:
        with pytest.raises(ConfigurationError, match="expected a mapping"):
            compile_field("name", "string")  # type: ignore[arg-type]


class TestCompileSchema:
    def test_none_stays_none(self) -> None:
        assert compile_schema(None) is None

    def test_read_only(self) -> None:
        schema = compile_schema({"name": {"type": "string"}})
        assert schema is not None
        with pytest.raises(TypeError):
            schema["other"] = FieldSchema(type=FieldType.STRING)  # type: ignore[index]

    def test_error_names_field(self) -> None:
        with pytest.raises(ConfigurationError, match="'age'"):
            compile_schema({"name": {"type": "string"}, "age": {"type": "integer"}})


class TestCompileResponses:
    def test_empty(self) -> None:
        assert dict(compile_responses(None)) == {}

    def test_per_status(self) -> None:
        responses = compile_responses({201: {"id": {"type": "number", "required": True}}})
        assert set(responses) == {201}
        assert responses[201]["id"].required is True

    @pytest.mark.parametrize("status", ["200", 99, 600, True])
    def test_bad_status(self, status: object) -> None:
        with pytest.raises(ConfigurationError, match="HTTP status code"):
            compile_responses({status: {}})  # type: ignore[dict-item]

    def test_none_schema_rejected(self) -> None:
        with pytest.raises(ConfigurationError, match="status 200"):
            compile_responses({200: None})  # type: ignore[dict-item]


class TestDescribe:
    def test_round_trips_declaration(self) -> None:
        spec = {"name": {"type": "string", "required": True, "min": 2, "pattern": "^A"}}
        assert describe_schema(compile_schema(spec)) == spec

    def test_none(self) -> None:
        assert describe_schema(None) is None
