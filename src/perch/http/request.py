"""The incoming request as route handlers and validators see it.

Metadata is fixed when the ASGI scope is read. The body arrives later:
it is pulled from ``receive`` on first access and kept, so validation,
middleware, and the handler can all read it.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import parse_qsl

from perch._internal.asgi import Receive
from perch.errors import HTTPError
from perch.http.headers import Headers
from perch.http.query import QueryParams

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


@dataclass(frozen=True, slots=True)
class Request:
    """One HTTP request.

    ``query`` and ``path_params`` are the raw string inputs of the
    ``query`` and ``params`` schemas; ``data()`` is the input of the
    ``body`` schema.
    """

    method: str
    path: str
    headers: Headers
    query: QueryParams
    path_params: dict[str, str]
    http_version: str
    client: tuple[str, int] | None
    _receive: Receive = field(repr=False, compare=False)
    # Shared by copies made with with_path_params()
    _body_cache: dict[str, Any] = field(default_factory=dict, repr=False, compare=False)

    @classmethod
    def from_asgi(
        cls,
        scope: Mapping[str, Any],
        receive: Receive,
        path_params: dict[str, str] | None = None,
    ) -> Request:
        client = scope.get("client")
        return cls(
            method=scope["method"],
            path=scope["path"],
            headers=Headers(scope.get("headers", ())),
            query=QueryParams(scope.get("query_string", b"")),
            path_params=path_params or {},
            http_version=scope.get("http_version", "1.1"),
            client=(client[0], client[1]) if client else None,
            _receive=receive,
        )

    @property
    def content_type(self) -> str | None:
        return self.headers.get("content-type")

    @property
    def content_length(self) -> int | None:
        """Declared body size, or ``None`` when absent or unparseable."""
        raw = self.headers.get("content-length", "")
        return int(raw) if raw.isdigit() else None

    @property
    def url(self) -> str:
        """Path plus query string."""
        if not self.query.raw:
            return self.path
        return f"{self.path}?{self.query.raw.decode('latin-1')}"

    def with_path_params(self, path_params: dict[str, str]) -> Request:
        """This request with the router's captured parameters."""
        return replace(self, path_params=path_params)

    async def body(self) -> bytes:
        """The complete body. ``receive`` is drained once."""
        if "raw" not in self._body_cache:
            parts: list[bytes] = []
            more = True
            while more:
                message = await self._receive()
                parts.append(message.get("body", b""))
                more = message.get("more_body", False)
            self._body_cache["raw"] = b"".join(parts)
        return self._body_cache["raw"]

    async def json(self) -> Any:
        return json.loads(await self.body())

    async def data(self) -> Mapping[str, Any]:
        """The body as named fields, for ``body`` schema validation.

        - empty body: ``{}``
        - URL-encoded form: first value per key
        - anything else is read as JSON and must be an object

        Raises ``HTTPError(400)`` when the body can't be read as fields.
        """
        if "fields" not in self._body_cache:
            raw = await self.body()
            self._body_cache["fields"] = _parse_fields(raw, self.content_type or "")
        return self._body_cache["fields"]


def _parse_fields(raw: bytes, content_type: str) -> Mapping[str, Any]:
    if not raw.strip():
        return {}
    if FORM_CONTENT_TYPE in content_type.lower():
        fields: dict[str, str] = {}
        for key, value in parse_qsl(raw.decode("utf-8", errors="replace"), keep_blank_values=True):
            fields.setdefault(key, value)
        return fields
    try:
        decoded = json.loads(raw)
    except ValueError:
        raise HTTPError(status=400, detail="Malformed request body") from None
    if not isinstance(decoded, dict):
        raise HTTPError(status=400, detail="Request body must be a JSON object")
    return decoded
