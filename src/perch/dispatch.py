"""Dispatch — run one request through a compiled endpoint.

Every request that reaches an ``Endpoint`` moves through a fixed sequence
of states::

    RECEIVED -> VALIDATING -> INVOKING -> SHAPING -> RESPONDED
                    \\            \\          \\
                     +------------+----------+--> ERRORED

- VALIDATING: each declared input surface (``query``, ``body``,
  ``params``) is validated independently. Any error on any surface ends
  the request with a 400 listing every error.
- INVOKING: the handler is called exactly once. For every style except
  ``validated_unsafe``, an exception is logged and becomes a 500.
- SHAPING: the payload is shaped against the schema for the chosen
  status. A missing required field is the handler's bug and becomes a 500.
- RESPONDED: the body is serialized, inside a ``{"success", "status", "data"}``
  envelope for validated styles. ``Reply`` is sealed from here on.

``HTTPError`` raised anywhere in the pipeline is left to the host, which
renders it with its own status.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from perch._internal.invoke import invoke
from perch.contract import Endpoint, RouteStyle
from perch.errors import HTTPError, ShapeError
from perch.http.request import Request
from perch.http.response import Response, enveloped_response, error_response, json_response
from perch.injection.registry import ModuleRegistry
from perch.schema.shaper import shape
from perch.schema.validator import ValidationError, validate

logger = logging.getLogger("perch.dispatch")

VALIDATION_FAILED = "Validation failed"
INTERNAL_ERROR = "Internal Server Error"

# Styles whose payloads go out as {"success", "status", "data"};
# plain and not-found handlers send their payload as-is
_ENVELOPED = frozenset({
    RouteStyle.VALIDATED,
    RouteStyle.VALIDATED_WITH_PARAMS,
    RouteStyle.VALIDATED_UNSAFE,
})


class DispatchState(StrEnum):
    RECEIVED = "received"
    VALIDATING = "validating"
    INVOKING = "invoking"
    SHAPING = "shaping"
    RESPONDED = "responded"
    ERRORED = "errored"


# Legal transitions; RESPONDED and ERRORED are terminal
_TRANSITIONS: dict[DispatchState, frozenset[DispatchState]] = {
    DispatchState.RECEIVED: frozenset({DispatchState.VALIDATING, DispatchState.ERRORED}),
    DispatchState.VALIDATING: frozenset({DispatchState.INVOKING, DispatchState.ERRORED}),
    DispatchState.INVOKING: frozenset({DispatchState.SHAPING, DispatchState.ERRORED}),
    DispatchState.SHAPING: frozenset({DispatchState.RESPONDED, DispatchState.ERRORED}),
    DispatchState.RESPONDED: frozenset(),
    DispatchState.ERRORED: frozenset(),
}


class Reply:
    """Mutable response metadata handed to the handler.

    The handler may set ``status`` and add headers while it runs. Once the
    response is sent, the reply is sealed and further changes raise
    ``RuntimeError``.
    """

    __slots__ = ("_headers", "_state", "_status")

    def __init__(self, status: int = 200) -> None:
        self._status = status
        self._headers: list[tuple[str, str]] = []
        self._state = DispatchState.RECEIVED

    def __repr__(self) -> str:
        return f"Reply(status={self._status}, state={self._state.value})"

    @property
    def state(self) -> DispatchState:
        return self._state

    @property
    def status(self) -> int:
        return self._status

    @status.setter
    def status(self, value: int) -> None:
        self._check_mutable()
        if isinstance(value, bool) or not isinstance(value, int) or not 100 <= value <= 599:
            msg = f"Invalid HTTP status code: {value!r}"
            raise ValueError(msg)
        self._status = value

    @property
    def headers(self) -> tuple[tuple[str, str], ...]:
        return tuple(self._headers)

    def set_header(self, name: str, value: str) -> None:
        """Add a header to the eventual response."""
        self._check_mutable()
        self._headers.append((name, value))

    def advance(self, state: DispatchState) -> None:
        """Move to *state*. Raises ``RuntimeError`` on an illegal transition."""
        if state not in _TRANSITIONS[self._state]:
            msg = f"Illegal dispatch transition {self._state.value} -> {state.value}"
            raise RuntimeError(msg)
        self._state = state

    def _check_mutable(self) -> None:
        if self._state in (DispatchState.RESPONDED, DispatchState.ERRORED):
            msg = "Reply is sealed: the response has already been sent"
            raise RuntimeError(msg)


@dataclass(frozen=True, slots=True)
class ValidatedRequest:
    """Coerced request input for one request.

    Each surface is ``None`` unless the route declared a schema for it.
    The raw ``request`` is always available for anything not validated.
    """

    request: Request
    query: dict[str, Any] | None = None
    body: dict[str, Any] | None = None
    params: dict[str, Any] | None = None


def validation_error_response(errors: Sequence[ValidationError]) -> Response:
    """The 400 body listing every validation error."""
    return error_response(
        400,
        VALIDATION_FAILED,
        errors=[error.to_dict() for error in errors],
    )


async def dispatch(
    endpoint: Endpoint,
    request: Request,
    registry: ModuleRegistry,
    *,
    debug: bool = False,
    route_path: str | None = None,
) -> Response:
    """Run *request* through *endpoint* and return the response.

    *route_path* is the mounted path template, used to identify the route
    in logs. Exceptions escape only for ``validated_unsafe`` endpoints
    and for ``HTTPError``.
    """
    method = request.method if endpoint.style is RouteStyle.NOT_FOUND else endpoint.method
    route = f"{method} {route_path or request.path}"
    reply = Reply(endpoint.default_status)

    # -- VALIDATING --
    reply.advance(DispatchState.VALIDATING)
    try:
        validated, errors = await _validate(endpoint, request)
    except HTTPError:
        reply.advance(DispatchState.ERRORED)
        raise
    if errors:
        reply.advance(DispatchState.ERRORED)
        logger.debug(
            "Validation failed for %s: %s",
            route,
            ", ".join(f"{e.source}.{e.field} ({e.constraint.value})" for e in errors),
        )
        return validation_error_response(errors)

    # -- INVOKING --
    reply.advance(DispatchState.INVOKING)
    kwargs = _build_arguments(endpoint, request, validated, reply, registry)
    try:
        result = await invoke(endpoint.handler, **kwargs)
        if not isinstance(result, Response):
            result = _unpack_result(result, reply)
    except HTTPError:
        reply.advance(DispatchState.ERRORED)
        raise
    except Exception as exc:
        reply.advance(DispatchState.ERRORED)
        if endpoint.unsafe:
            raise
        logger.exception("Handler error in %s", route)
        message = (str(exc) or type(exc).__name__) if debug else INTERNAL_ERROR
        return error_response(500, message)

    # -- SHAPING --
    reply.advance(DispatchState.SHAPING)
    if isinstance(result, Response):
        reply.advance(DispatchState.RESPONDED)
        return result

    try:
        shaped = shape(reply.status, result, endpoint.responses)
    except ShapeError as exc:
        reply.advance(DispatchState.ERRORED)
        logger.error("Response contract violation in %s: %s", route, exc)
        return error_response(500, str(exc) if debug else INTERNAL_ERROR)

    # -- RESPONDED --
    if endpoint.style in _ENVELOPED:
        response = enveloped_response(reply.status, shaped)
    else:
        response = json_response(shaped, status=reply.status)
    for name, value in reply.headers:
        response = response.with_header(name, value)
    reply.advance(DispatchState.RESPONDED)
    return response


async def _validate(
    endpoint: Endpoint,
    request: Request,
) -> tuple[ValidatedRequest, list[ValidationError]]:
    """Validate every declared surface. Errors from all surfaces accumulate."""
    if not endpoint.request:
        return ValidatedRequest(request=request), []

    errors: list[ValidationError] = []
    values: dict[str, dict[str, Any]] = {}
    for source, schema in endpoint.request.surfaces():
        raw = await _surface_input(source, endpoint, request)
        result = validate(raw, schema, source=source)
        if result:
            values[source] = result.data
        else:
            errors.extend(result.errors)

    return ValidatedRequest(request=request, **values), errors


async def _surface_input(source: str, endpoint: Endpoint, request: Request) -> Mapping[str, Any]:
    match source:
        case "query":
            return request.query
        case "body":
            return await request.data()
        case _:
            if endpoint.param_names is None:
                return request.path_params
            return {
                name: value
                for name, value in request.path_params.items()
                if name in endpoint.param_names
            }


def _build_arguments(
    endpoint: Endpoint,
    request: Request,
    validated: ValidatedRequest,
    reply: Reply,
    registry: ModuleRegistry,
) -> dict[str, Any]:
    """Build handler kwargs from the plan computed at build time."""
    kwargs: dict[str, Any] = {}
    for name, source in endpoint.arguments:
        match source:
            case "request":
                kwargs[name] = request
            case "validated":
                kwargs[name] = validated
            case "reply":
                kwargs[name] = reply
            case "modules":
                kwargs[name] = registry.view()
            case "query" | "body" | "params":
                kwargs[name] = getattr(validated, source)
            case _:
                if name in request.path_params:
                    kwargs[name] = request.path_params[name]
    return kwargs


def _unpack_result(result: Any, reply: Reply) -> Any:
    """Normalize a handler's return value to a payload, updating *reply*.

    ``None`` is an empty object; ``(payload, status)`` sets the status.
    """
    if isinstance(result, tuple) and len(result) == 2 and isinstance(result[1], int):
        payload, status = result
        reply.status = status
        result = payload
    if result is None:
        return {}
    return result
