"""Response shaping — filter a handler's payload down to its declared fields.

A route declares one schema per status code it can answer with. After the
handler returns, the payload is shaped against the schema for the status
actually chosen:

- no schema for that status: the payload passes through unmodified
- schema present: every required field must be in the payload, and only
  declared fields survive

Values are copied verbatim. Coercion belongs to the request side; shaping
only filters, so shaping the same payload twice gives the same result.
"""

from collections.abc import Mapping
from typing import Any

from perch.errors import ShapeError
from perch.schema.fields import SchemaMap


def shape(
    status: int,
    payload: Any,
    responses: Mapping[int, SchemaMap],
) -> Any:
    """Shape *payload* for *status* against the declared *responses*.

    Raises ``ShapeError`` when a required field is missing. A required
    field whose value is ``None`` counts as present: the handler chose
    to send a null. A payload that is not a mapping (a list, a scalar)
    has no fields at all.
    """
    schema = responses.get(status)
    if schema is None:
        return payload

    fields: Mapping[str, Any] = payload if isinstance(payload, Mapping) else {}
    missing = tuple(
        name for name, field in schema.items() if field.required and name not in fields
    )
    if missing:
        raise ShapeError(status, missing)

    return {name: fields[name] for name in schema if name in fields}
