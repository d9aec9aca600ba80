"""Perch exception hierarchy.

Shared across the router, contract builder, dispatcher, registry, and
ASGI handler so every module raises and catches the same types.
"""

from dataclasses import dataclass


class PerchError(Exception):
    """Base for all perch-specific errors."""


class ConfigurationError(PerchError):
    """Raised when route or app configuration is invalid.

    Schema problems (unknown field type, ``min > max``) and duplicate
    registrations surface here, at ``RouteContract.build()`` time,
    never while serving a request.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(PerchError):
    """An error that maps directly to an HTTP status code.

    Raised by the router, middleware, or handlers. The ASGI handler
    catches these and dispatches to the matching ``@app.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404 — no route matched the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class MethodNotAllowed(HTTPError):  # noqa: N818
    """405 — route exists but not for this HTTP method.

    Includes an ``Allow`` header listing the valid methods.
    """

    def __init__(self, allowed: frozenset[str], detail: str = "") -> None:
        allow_value = ", ".join(sorted(allowed))
        default_detail = f"Method not allowed. Allowed methods: {allow_value}"
        super().__init__(
            status=405,
            detail=detail or default_detail,
            headers=(("Allow", allow_value),),
        )


class ShapeError(PerchError):
    """A handler returned a payload that breaks its declared response schema.

    Only one variant exists today: required fields missing from the
    payload (``kind == "missing_field"``). This is a server-side contract
    violation and is always reported to the client as a 500.
    """

    MISSING_FIELD = "missing_field"

    def __init__(self, status: int, fields: tuple[str, ...]) -> None:
        self.kind = self.MISSING_FIELD
        self.status = status
        self.fields = fields
        names = ", ".join(fields)
        super().__init__(f"Response for status {status} is missing required field(s): {names}")


class RegistryResolutionError(PerchError):
    """An injectable module could not be resolved.

    Raised for unknown module names and for factories that fail. Fatal to
    the request that triggered it; the failure is not cached, so a later
    request retries the factory.
    """

    def __init__(self, name: str, reason: str) -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Could not resolve injectable module {name!r}: {reason}")
