"""Tests for perch.schema.shaper — per-status response filtering."""

import pytest

from perch.errors import ShapeError
from perch.schema import compile_responses, shape

RESPONSES = compile_responses(
    {
        201: {
            "id": {"type": "number", "required": True},
            "name": {"type": "string", "required": True},
            "email": {"type": "email", "required": True},
            "createdAt": {"type": "string", "required": True},
        },
        200: {"nickname": {"type": "string"}},
    }
)

CREATED = {
    "id": 1,
    "name": "Al",
    "email": "al@example.com",
    "age": 33,
    "createdAt": "2024-01-01T00:00:00Z",
}


class TestShape:
    def test_undeclared_fields_dropped(self) -> None:
        shaped = shape(201, CREATED, RESPONSES)
        assert shaped == {
            "id": 1,
            "name": "Al",
            "email": "al@example.com",
            "createdAt": "2024-01-01T00:00:00Z",
        }
        assert "age" not in shaped

    def test_undeclared_status_passes_through(self) -> None:
        payload = {"anything": [1, 2], "goes": True}
        assert shape(404, payload, RESPONSES) is payload

    def test_no_schemas_at_all(self) -> None:
        payload = [1, 2, 3]
        assert shape(200, payload, {}) is payload

    def test_idempotent(self) -> None:
        once = shape(201, CREATED, RESPONSES)
        assert shape(201, once, RESPONSES) == once

    def test_values_copied_verbatim(self) -> None:
        # No re-coercion: a string id stays a string
        shaped = shape(201, {**CREATED, "id": "1"}, RESPONSES)
        assert shaped["id"] == "1"

    def test_optional_field_may_be_absent(self) -> None:
        assert shape(200, {"other": 1}, RESPONSES) == {}

    def test_null_counts_as_present(self) -> None:
        shaped = shape(201, {**CREATED, "email": None}, RESPONSES)
        assert shaped["email"] is None

    def test_payload_not_mutated(self) -> None:
        payload = dict(CREATED)
        shape(201, payload, RESPONSES)
        assert payload == CREATED


class TestMissingField:
    def test_missing_required(self) -> None:
        payload = {k: v for k, v in CREATED.items() if k not in {"email", "createdAt"}}
        with pytest.raises(ShapeError) as exc_info:
            shape(201, payload, RESPONSES)
        exc = exc_info.value
        assert exc.kind == ShapeError.MISSING_FIELD
        assert exc.status == 201
        assert exc.fields == ("email", "createdAt")
        assert "email, createdAt" in str(exc)

    def test_non_mapping_payload_has_no_fields(self) -> None:
        with pytest.raises(ShapeError) as exc_info:
            shape(201, ["not", "a", "mapping"], RESPONSES)
        assert exc_info.value.fields == ("id", "name", "email", "createdAt")
