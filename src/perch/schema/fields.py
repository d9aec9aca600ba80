"""Field schemas — the declarative rules a route attaches to each input and response.

A schema is written as a plain mapping and compiled once, when the route
contract is built::

    {
        "name": {"type": "string", "required": True, "min": 2},
        "age": {"type": "number", "min": 0, "max": 120},
    }

Compilation turns every entry into a frozen :class:`FieldSchema` and
rejects anything malformed with ``ConfigurationError``, so a broken
schema stops the app at startup instead of failing mid-request.
"""

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from types import MappingProxyType
from typing import Any, TypeAlias

from perch.errors import ConfigurationError


class FieldType(StrEnum):
    """The closed set of field types a schema may declare."""

    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    EMAIL = "email"
    OBJECT = "object"


# Types whose min/max bound the character length
_LENGTH_TYPES = frozenset({FieldType.STRING, FieldType.EMAIL})
# Types that accept min/max at all
_RANGED_TYPES = _LENGTH_TYPES | {FieldType.NUMBER}

_SPEC_KEYS = frozenset({"type", "required", "min", "max", "pattern", "choices"})


@dataclass(frozen=True, slots=True)
class FieldSchema:
    """One compiled validation rule.

    ``min`` / ``max`` bound the length of strings and emails and the
    value of numbers, inclusive on both ends. ``pattern`` applies to
    strings and emails (violations report constraint ``format``).
    ``choices`` restricts the coerced value to a closed set.
    """

    type: FieldType
    required: bool = False
    min: float | None = None
    max: float | None = None
    pattern: re.Pattern[str] | None = None
    choices: tuple[Any, ...] | None = None

    def __post_init__(self) -> None:
        if self.min is not None and self.max is not None and self.min > self.max:
            msg = f"min ({self.min}) must not exceed max ({self.max})"
            raise ConfigurationError(msg)

    def describe(self) -> dict[str, Any]:
        """JSON-ready description, the inverse of ``compile_field``."""
        out: dict[str, Any] = {"type": self.type.value, "required": self.required}
        if self.min is not None:
            out["min"] = self.min
        if self.max is not None:
            out["max"] = self.max
        if self.pattern is not None:
            out["pattern"] = self.pattern.pattern
        if self.choices is not None:
            out["choices"] = list(self.choices)
        return out


# Field name -> compiled rule. Read-only once compiled.
SchemaMap: TypeAlias = Mapping[str, FieldSchema]

# What users write: a FieldSchema or a plain mapping per field
FieldSpec: TypeAlias = FieldSchema | Mapping[str, Any]
SchemaSpec: TypeAlias = Mapping[str, FieldSpec]


def compile_field(name: str, spec: FieldSpec) -> FieldSchema:
    """Compile one field declaration.

    Raises ``ConfigurationError`` naming the field for any problem:
    unknown keys, unknown type, non-numeric or inverted bounds, bounds on
    a type that has no size, or an invalid regex.
    """
    if isinstance(spec, FieldSchema):
        return spec
    if not isinstance(spec, Mapping):
        msg = f"Field {name!r}: expected a mapping or FieldSchema, got {type(spec).__name__}"
        raise ConfigurationError(msg)

    unknown = set(spec) - _SPEC_KEYS
    if unknown:
        msg = f"Field {name!r}: unknown schema key(s) {', '.join(sorted(unknown))}"
        raise ConfigurationError(msg)

    raw_type = spec.get("type")
    try:
        field_type = FieldType(raw_type)
    except ValueError:
        allowed = ", ".join(t.value for t in FieldType)
        msg = f"Field {name!r}: unknown type {raw_type!r} (expected one of: {allowed})"
        raise ConfigurationError(msg) from None

    bounds: dict[str, float | None] = {}
    for key in ("min", "max"):
        value = spec.get(key)
        if value is None:
            bounds[key] = None
            continue
        if isinstance(value, bool) or not isinstance(value, int | float):
            msg = f"Field {name!r}: {key} must be a number, got {value!r}"
            raise ConfigurationError(msg)
        if field_type not in _RANGED_TYPES:
            msg = f"Field {name!r}: {key} is not supported for type {field_type.value!r}"
            raise ConfigurationError(msg)
        if field_type in _LENGTH_TYPES and value < 0:
            msg = f"Field {name!r}: length {key} must be >= 0"
            raise ConfigurationError(msg)
        bounds[key] = value

    pattern = spec.get("pattern")
    compiled_pattern: re.Pattern[str] | None = None
    if pattern is not None:
        if field_type not in _LENGTH_TYPES:
            msg = f"Field {name!r}: pattern is not supported for type {field_type.value!r}"
            raise ConfigurationError(msg)
        try:
            compiled_pattern = re.compile(pattern)
        except re.error as exc:
            msg = f"Field {name!r}: invalid pattern {pattern!r}: {exc}"
            raise ConfigurationError(msg) from exc

    choices = spec.get("choices")
    if choices is not None:
        if isinstance(choices, str | bytes) or not hasattr(choices, "__iter__"):
            msg = f"Field {name!r}: choices must be a collection of values"
            raise ConfigurationError(msg)
        choices = tuple(choices)
        if not choices:
            msg = f"Field {name!r}: choices must not be empty"
            raise ConfigurationError(msg)

    try:
        return FieldSchema(
            type=field_type,
            required=bool(spec.get("required", False)),
            min=bounds["min"],
            max=bounds["max"],
            pattern=compiled_pattern,
            choices=choices,
        )
    except ConfigurationError as exc:
        raise ConfigurationError(f"Field {name!r}: {exc}") from None


def compile_schema(spec: SchemaSpec | None) -> SchemaMap | None:
    """Compile a whole field map. ``None`` stays ``None`` (no schema declared)."""
    if spec is None:
        return None
    if not isinstance(spec, Mapping):
        msg = f"Schema must be a mapping of field names, got {type(spec).__name__}"
        raise ConfigurationError(msg)
    return MappingProxyType({name: compile_field(name, field) for name, field in spec.items()})


def compile_responses(
    spec: Mapping[int, SchemaSpec] | None,
) -> Mapping[int, SchemaMap]:
    """Compile per-status response schemas, checking the status codes."""
    if not spec:
        return MappingProxyType({})
    compiled: dict[int, SchemaMap] = {}
    for status, schema in spec.items():
        if isinstance(status, bool) or not isinstance(status, int) or not 100 <= status <= 599:
            msg = f"Response schema key must be an HTTP status code, got {status!r}"
            raise ConfigurationError(msg)
        compiled_schema = compile_schema(schema)
        if compiled_schema is None:
            msg = f"Response schema for status {status} must be a mapping, got None"
            raise ConfigurationError(msg)
        compiled[status] = compiled_schema
    return MappingProxyType(compiled)


def describe_schema(schema: SchemaMap | None) -> dict[str, Any] | None:
    """JSON-ready description of a compiled schema."""
    if schema is None:
        return None
    return {name: field.describe() for name, field in schema.items()}
