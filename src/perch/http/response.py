"""Outgoing responses.

Dispatch builds every response it sends with ``json_response`` or
``error_response``. Handlers and middleware may build a ``Response``
themselves; dispatch passes it through untouched.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, replace
from typing import Any

from perch.http.encoding import dumps

JSON_CONTENT_TYPE = "application/json"


@dataclass(frozen=True, slots=True)
class Response:
    """A complete HTTP response. ``with_*`` methods return modified copies::

        Response("pong").with_status(202).with_header("X-Region", "eu")
    """

    body: str | bytes = ""
    status: int = 200
    content_type: str = "text/plain; charset=utf-8"
    headers: tuple[tuple[str, str], ...] = ()

    def with_status(self, status: int) -> Response:
        return replace(self, status=status)

    def with_header(self, name: str, value: str) -> Response:
        """Append a header; earlier headers with the same name stay."""
        return replace(self, headers=(*self.headers, (name, value)))

    @property
    def body_bytes(self) -> bytes:
        return self.body.encode("utf-8") if isinstance(self.body, str) else self.body

    @property
    def text(self) -> str:
        return self.body_bytes.decode("utf-8")

    @property
    def json(self) -> Any:
        """The body parsed as JSON."""
        return json.loads(self.body_bytes)


def json_response(
    data: Any,
    status: int = 200,
    headers: Mapping[str, str] | None = None,
) -> Response:
    """Encode *data* (see ``perch.http.encoding``) as a JSON response."""
    return Response(
        body=dumps(data),
        status=status,
        content_type=JSON_CONTENT_TYPE,
        headers=tuple((headers or {}).items()),
    )


def enveloped_response(status: int, data: Any) -> Response:
    """``{"success": ..., "status": status, "data": data}`` with *status*.

    ``success`` is false for a 4xx or 5xx status the handler chose.
    """
    return json_response({"success": status < 400, "status": status, "data": data}, status=status)


def error_response(status: int, message: str, **extra: Any) -> Response:
    """``{"success": false, "error": message, **extra}`` with *status*."""
    return json_response({"success": False, "error": message, **extra}, status=status)
