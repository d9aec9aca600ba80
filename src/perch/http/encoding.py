"""JSON encoding for response payloads.

Handler payloads routinely carry values the stdlib encoder refuses:
timestamps from the database layer, ``Decimal`` money columns, UUID
primary keys. ``to_jsonable`` converts them recursively; ``dumps`` is
the single place response bodies are encoded.
"""

import dataclasses
import datetime
import json
import uuid
from collections.abc import Mapping
from decimal import Decimal
from typing import Any


def to_jsonable(value: Any) -> Any:
    """Return *value* with every nested non-JSON type converted.

    - ``datetime`` / ``date`` / ``time`` -> ISO 8601 string
    - ``Decimal`` / ``UUID`` -> string
    - ``set`` / ``frozenset`` / ``tuple`` -> list
    - dataclass instances -> dict
    - mappings -> dict with string keys

    Anything else is returned unchanged and left to ``json.dumps``.
    """
    match value:
        case None | bool() | int() | float() | str():
            return value
        case datetime.datetime() | datetime.date() | datetime.time():
            return value.isoformat()
        case Decimal() | uuid.UUID():
            return str(value)
        case Mapping():
            return {str(k): to_jsonable(v) for k, v in value.items()}
        case list() | tuple() | set() | frozenset():
            return [to_jsonable(item) for item in value]
        case _ if dataclasses.is_dataclass(value) and not isinstance(value, type):
            return to_jsonable(dataclasses.asdict(value))
    return value


def dumps(value: Any) -> str:
    """Encode *value* as a compact JSON string."""
    return json.dumps(to_jsonable(value), separators=(",", ":"), ensure_ascii=False)
