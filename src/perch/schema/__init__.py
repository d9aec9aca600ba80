"""Schemas — declare field rules, validate request input, shape responses.

Usage::

    from perch.schema import compile_schema, shape, validate

    query = compile_schema({"name": {"type": "string", "required": True}})
    result = validate({"name": "Al", "extra": 1}, query)
    # result.data == {"name": "Al"}
"""

from perch.schema.fields import (
    FieldSchema,
    FieldType,
    SchemaMap,
    compile_field,
    compile_responses,
    compile_schema,
    describe_schema,
)
from perch.schema.shaper import shape
from perch.schema.validator import (
    Constraint,
    ValidationError,
    ValidationResult,
    validate,
)

__all__ = [
    "Constraint",
    "FieldSchema",
    "FieldType",
    "SchemaMap",
    "ValidationError",
    "ValidationResult",
    "compile_field",
    "compile_responses",
    "compile_schema",
    "describe_schema",
    "shape",
    "validate",
]
