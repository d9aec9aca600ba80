"""Schema validation — coerce raw request input into declared, typed fields.

Usage::

    from perch.schema import compile_schema, validate

    schema = compile_schema({
        "name": {"type": "string", "required": True, "min": 2},
        "age": {"type": "number", "min": 0, "max": 120},
    })
    result = validate(request.query, schema, source="query")
    if not result:
        # result.errors == (ValidationError(field="age", constraint="type", ...),)
        ...
    # result.data == {"name": "Al", "age": 42}

Policy:

- Every declared field is checked; errors on different fields accumulate
  so the client sees every problem in one round trip.
- Within a field, the first failing constraint stops that field.
- Fields absent from the schema are dropped from ``data`` (allow-list).
- Absent optional fields are omitted. There are no defaults.
"""

import logging
import math
import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from perch.schema.fields import FieldSchema, FieldType, SchemaMap

logger = logging.getLogger("perch.schema")

# local@domain, both parts non-empty, no whitespace. A format check,
# not an RFC 5322 parser.
_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+$")
_INT_RE = re.compile(r"^[+-]?\d+$")
# Plain decimal notation only: no underscores, "inf", "nan" or hex
_DECIMAL_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")

_MISSING = object()


class Constraint(StrEnum):
    """Which rule a field violated."""

    REQUIRED = "required"
    TYPE = "type"
    MIN = "min"
    MAX = "max"
    FORMAT = "format"
    CHOICES = "choices"


@dataclass(frozen=True, slots=True)
class ValidationError:
    """One field-level violation.

    ``value`` is the raw value as received, before any coercion.
    ``source`` names the input surface (``query``, ``body``, ``params``)
    when validation ran inside a route.
    """

    field: str
    constraint: Constraint
    value: Any = None
    message: str = ""
    source: str = ""

    def to_dict(self) -> dict[str, Any]:
        """Wire form used in 400 responses."""
        out: dict[str, Any] = {
            "field": self.field,
            "constraint": self.constraint.value,
            "value": self.value,
            "message": self.message,
        }
        if self.source:
            out["source"] = self.source
        return out


@dataclass(frozen=True, slots=True)
class ValidationResult:
    """The outcome of validating one input against one schema.

    The result is falsy when invalid, so you can write::

        result = validate(data, schema)
        if not result:
            return error_payload(result.errors)

    ``data`` holds the coerced values for declared, present fields.
    It is empty whenever ``errors`` is non-empty.
    """

    data: dict[str, Any]
    errors: tuple[ValidationError, ...] = ()

    @property
    def is_valid(self) -> bool:
        """True if validation passed with no errors."""
        return not self.errors

    def __bool__(self) -> bool:
        """Falsy when invalid — enables ``if not result:`` pattern."""
        return self.is_valid


def validate(
    data: Mapping[str, Any] | None,
    schema: SchemaMap,
    *,
    source: str = "",
) -> ValidationResult:
    """Validate *data* against a compiled *schema*.

    Args:
        data: Raw input — ``QueryParams``, path params, or a decoded body.
            ``None`` is treated as empty.
        schema: Output of ``compile_schema()``.
        source: Input surface label copied onto each error.

    Returns:
        A ``ValidationResult`` with coerced ``data`` or the full error list.
    """
    data = data if data is not None else {}
    errors: list[ValidationError] = []
    cleaned: dict[str, Any] = {}

    for name, field in schema.items():
        raw = data.get(name, _MISSING)
        ok, value, error = _validate_field(name, raw, field, source)
        if error is not None:
            errors.append(error)
        elif ok:
            cleaned[name] = value

    extra = [key for key in data if key not in schema]
    if extra:
        logger.debug("Dropped undeclared %s field(s): %s", source or "input", ", ".join(extra))

    if errors:
        return ValidationResult(data={}, errors=tuple(errors))
    return ValidationResult(data=cleaned)


def _is_absent(raw: Any) -> bool:
    return raw is _MISSING or raw is None or raw == ""


def _validate_field(
    name: str,
    raw: Any,
    field: FieldSchema,
    source: str,
) -> tuple[bool, Any, ValidationError | None]:
    """Check one field. Returns ``(present, coerced_value, error)``."""

    def fail(constraint: Constraint, message: str) -> tuple[bool, Any, ValidationError]:
        value = None if raw is _MISSING else raw
        return False, None, ValidationError(name, constraint, value, message, source)

    if _is_absent(raw):
        if field.required:
            return fail(Constraint.REQUIRED, f"{name} is required")
        return False, None, None

    coerced = _coerce(raw, field.type)
    if coerced is _MISSING:
        if field.type is FieldType.EMAIL and isinstance(raw, str):
            return fail(Constraint.FORMAT, f"{name} must be a valid email address")
        return fail(Constraint.TYPE, f"{name} must be of type {field.type.value}")

    if field.type is FieldType.NUMBER:
        size, unit = coerced, ""
    elif field.type in (FieldType.STRING, FieldType.EMAIL):
        size, unit = len(coerced), " characters"
    else:
        size, unit = None, ""

    if size is not None:
        if field.min is not None and size < field.min:
            return fail(Constraint.MIN, f"{name} must be at least {_fmt(field.min)}{unit}")
        if field.max is not None and size > field.max:
            return fail(Constraint.MAX, f"{name} must be at most {_fmt(field.max)}{unit}")

    if field.pattern is not None and not field.pattern.search(coerced):
        return fail(Constraint.FORMAT, f"{name} does not match the required pattern")

    if field.choices is not None and coerced not in field.choices:
        options = ", ".join(str(c) for c in field.choices)
        return fail(Constraint.CHOICES, f"{name} must be one of: {options}")

    return True, coerced, None


def _coerce(raw: Any, field_type: FieldType) -> Any:
    """Convert *raw* to *field_type*, or return ``_MISSING`` if it can't be."""
    match field_type:
        case FieldType.STRING:
            return raw if isinstance(raw, str) else _MISSING
        case FieldType.NUMBER:
            return _coerce_number(raw)
        case FieldType.BOOLEAN:
            if isinstance(raw, bool):
                return raw
            if isinstance(raw, str):
                lowered = raw.strip().lower()
                if lowered == "true":
                    return True
                if lowered == "false":
                    return False
            return _MISSING
        case FieldType.EMAIL:
            if isinstance(raw, str) and _EMAIL_RE.match(raw):
                return raw
            return _MISSING
        case FieldType.OBJECT:
            return dict(raw) if isinstance(raw, Mapping) else _MISSING
    return _MISSING


def _coerce_number(raw: Any) -> Any:
    # bool is an int subclass; "true" is not a number
    if isinstance(raw, bool):
        return _MISSING
    if isinstance(raw, int):
        return raw
    if isinstance(raw, float):
        return raw if math.isfinite(raw) else _MISSING
    if not isinstance(raw, str):
        return _MISSING
    text = raw.strip()
    if not _DECIMAL_RE.match(text):
        return _MISSING
    try:
        value = int(text) if _INT_RE.match(text) else float(text)
    except ValueError:
        # more digits than int() will convert
        return _MISSING
    return value if isinstance(value, int) or math.isfinite(value) else _MISSING


def _fmt(bound: float) -> str:
    return str(int(bound)) if float(bound).is_integer() else str(bound)
