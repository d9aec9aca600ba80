"""Route contracts — declare handlers per verb, compile them into endpoints.

One ``RouteContract`` describes one route (usually one ``route.py`` file).
Handlers are registered per HTTP verb in one of four styles:

- ``Plain`` — the handler is called as-is, no validation or shaping
- ``Validated`` — request schemas for ``query`` / ``body`` / ``params``
  plus per-status response schemas
- ``ValidatedWithParams`` — like ``Validated``, and the route grows one
  ``{name}`` path segment per listed parameter; only those are
  validated under ``params``
- ``ValidatedUnsafe`` — request validation only; handler exceptions
  propagate to the host instead of becoming a 500 payload

Usage::

    route = RouteContract()

    @route.get
    def index():
        return {"users": []}

    @route.post_validated(
        body={"name": {"type": "string", "required": True, "min": 2}},
        responses={201: {"id": {"type": "number", "required": True}}},
    )
    async def create(data: ValidatedRequest, reply: Reply):
        reply.status = 201
        return {"id": 1, **data.body}

    @route.get_with_params(["id"], params={"id": {"type": "number"}})
    def show(data: ValidatedRequest):
        return {"id": data.params["id"]}

    route.use(require_token)  # this route only

    compiled = route.build()

``build()`` compiles every schema and freezes the contract. Schema
mistakes and duplicate registrations raise ``ConfigurationError`` there,
at startup, never while serving a request.
"""

from __future__ import annotations

import inspect
import threading
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from functools import partialmethod
from typing import Any

from perch._internal.types import Handler
from perch.errors import ConfigurationError
from perch.middleware.protocol import Middleware
from perch.schema.fields import (
    FieldType,
    SchemaMap,
    SchemaSpec,
    compile_field,
    compile_responses,
    compile_schema,
    describe_schema,
)

METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "PATCH", "DELETE")


class RouteStyle(StrEnum):
    """How an endpoint was registered."""

    PLAIN = "plain"
    VALIDATED = "validated"
    VALIDATED_WITH_PARAMS = "validated_with_params"
    VALIDATED_UNSAFE = "validated_unsafe"
    NOT_FOUND = "not_found"


# -- Registration variants --


@dataclass(frozen=True, slots=True)
class RequestSchemas:
    """Uncompiled schemas for each request input surface."""

    query: SchemaSpec | None = None
    body: SchemaSpec | None = None
    params: SchemaSpec | None = None


@dataclass(frozen=True, slots=True)
class Plain:
    handler: Handler
    path: str = ""


@dataclass(frozen=True, slots=True)
class Validated:
    request: RequestSchemas
    responses: Mapping[int, SchemaSpec]
    handler: Handler
    path: str = ""


@dataclass(frozen=True, slots=True)
class ValidatedWithParams:
    param_names: tuple[str, ...]
    request: RequestSchemas
    responses: Mapping[int, SchemaSpec]
    handler: Handler
    path: str = ""


@dataclass(frozen=True, slots=True)
class ValidatedUnsafe:
    request: RequestSchemas
    handler: Handler
    path: str = ""


type Registration = Plain | Validated | ValidatedWithParams | ValidatedUnsafe


# -- Compiled form --


@dataclass(frozen=True, slots=True)
class CompiledSchemas:
    """Compiled request schemas. ``None`` means the surface is not validated."""

    query: SchemaMap | None = None
    body: SchemaMap | None = None
    params: SchemaMap | None = None

    def __bool__(self) -> bool:
        return any(s is not None for s in (self.query, self.body, self.params))

    def surfaces(self) -> tuple[tuple[str, SchemaMap], ...]:
        """``(surface_name, schema)`` for every declared surface."""
        return tuple(
            (name, schema)
            for name, schema in (("query", self.query), ("body", self.body), ("params", self.params))
            if schema is not None
        )


@dataclass(frozen=True, slots=True)
class Endpoint:
    """One compiled (method, sub-path) handler, ready for dispatch.

    ``path`` is relative to wherever the route is mounted: ``""`` for the
    route's own path, ``"/{id}"`` for a ``ValidatedWithParams`` endpoint.
    """

    method: str
    path: str
    style: RouteStyle
    handler: Handler
    request: CompiledSchemas = field(default_factory=CompiledSchemas)
    responses: Mapping[int, SchemaMap] = field(default_factory=dict)
    # Path params validated under ``params``; None means all of them
    param_names: tuple[str, ...] | None = None
    default_status: int = 200
    arguments: tuple[tuple[str, str], ...] = ()

    @property
    def unsafe(self) -> bool:
        """True if handler exceptions must propagate to the host."""
        return self.style is RouteStyle.VALIDATED_UNSAFE

    @property
    def handler_name(self) -> str:
        module = getattr(self.handler, "__module__", None) or ""
        name = getattr(self.handler, "__qualname__", None) or repr(self.handler)
        return f"{module}.{name}" if module else name

    def describe(self, prefix: str = "") -> dict[str, Any]:
        """JSON-ready description of this endpoint."""
        return {
            "method": self.method,
            "path": join_path(prefix, self.path) or "/",
            "style": self.style.value,
            "handler": self.handler_name,
            "request": {
                "query": describe_schema(self.request.query),
                "body": describe_schema(self.request.body),
                "params": describe_schema(self.request.params),
            },
            "responses": {
                str(status): describe_schema(schema)
                for status, schema in sorted(self.responses.items())
            },
        }


@dataclass(frozen=True, slots=True)
class CompiledRoute:
    """The immutable, mountable result of ``RouteContract.build()``."""

    endpoints: tuple[Endpoint, ...] = ()
    not_found: Endpoint | None = None
    # Run around every endpoint of this route, first one outermost
    middleware: tuple[Middleware, ...] = ()

    def lookup(self, method: str, path: str = "") -> Endpoint | None:
        """Exact (method, sub-path) lookup."""
        for endpoint in self.endpoints:
            if endpoint.method == method and endpoint.path == path:
                return endpoint
        return None

    def describe(self, prefix: str = "") -> list[dict[str, Any]]:
        """Describe every endpoint, the not-found handler last."""
        described = [endpoint.describe(prefix) for endpoint in self.endpoints]
        if self.not_found is not None:
            described.append(self.not_found.describe(prefix))
        return described


# -- Builder --


class RouteContract:
    """Accumulates registrations per verb until ``build()``.

    Every verb gets four registration methods (``get``, ``get_validated``,
    ``get_with_params``, ``get_unsafe`` and the same for ``post``, ``put``,
    ``patch``, ``delete``). Each can be used as a decorator.
    """

    __slots__ = ("_compiled", "_lock", "_middleware", "_not_found", "_registrations")

    def __init__(self) -> None:
        self._registrations: dict[str, list[Registration]] = {method: [] for method in METHODS}
        self._not_found: Handler | None = None
        self._middleware: list[Middleware] = []
        self._compiled: CompiledRoute | None = None
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        count = sum(len(regs) for regs in self._registrations.values())
        state = "built" if self._compiled is not None else "open"
        return f"RouteContract({count} registration(s), {state})"

    @property
    def is_built(self) -> bool:
        return self._compiled is not None

    def registrations(self, method: str) -> tuple[Registration, ...]:
        """Registrations for *method*, in declaration order."""
        return tuple(self._registrations[_normalize_method(method)])

    # -- Generic registration --

    def add(self, method: str, registration: Registration) -> None:
        """Register one variant under *method*."""
        self._check_open()
        if not isinstance(registration, Plain | Validated | ValidatedWithParams | ValidatedUnsafe):
            msg = f"Unknown registration type: {type(registration).__name__}"
            raise TypeError(msg)
        self._registrations[_normalize_method(method)].append(registration)

    def not_found(self, handler: Handler) -> Handler:
        """Register the catch-all for requests no endpoint matches."""
        self._check_open()
        if self._not_found is not None:
            msg = "A not-found handler is already registered for this route"
            raise ConfigurationError(msg)
        self._not_found = handler
        return handler

    def use(self, *middleware: Middleware) -> RouteContract:
        """Run *middleware* around this route's handlers only.

        Applies to every endpoint and the not-found handler, after any
        app-wide middleware. Returns the contract for chaining.
        """
        self._check_open()
        for mw in middleware:
            if not isinstance(mw, Middleware):
                msg = f"Middleware must be callable, got {type(mw).__name__}"
                raise TypeError(msg)
        self._middleware.extend(middleware)
        return self

    # -- Styles (method-parameterized; per-verb aliases below) --

    def plain(self, method: str, handler: Handler, *, path: str = "") -> Handler:
        """Register *handler* with no validation or shaping."""
        self.add(method, Plain(handler, path=path))
        return handler

    def validated(
        self,
        method: str,
        handler: Handler | None = None,
        *,
        query: SchemaSpec | None = None,
        body: SchemaSpec | None = None,
        params: SchemaSpec | None = None,
        responses: Mapping[int, SchemaSpec] | None = None,
        path: str = "",
    ) -> Any:
        """Register a validated handler. Returns a decorator if *handler* is omitted."""
        schemas = RequestSchemas(query=query, body=body, params=params)

        def register(func: Handler) -> Handler:
            self.add(method, Validated(schemas, dict(responses or {}), func, path=path))
            return func

        return register(handler) if handler is not None else register

    def with_params(
        self,
        method: str,
        names: str | Sequence[str],
        handler: Handler | None = None,
        *,
        query: SchemaSpec | None = None,
        body: SchemaSpec | None = None,
        params: SchemaSpec | None = None,
        responses: Mapping[int, SchemaSpec] | None = None,
        path: str = "",
    ) -> Any:
        """Register a validated handler that owns the path params in *names*."""
        param_names = (names,) if isinstance(names, str) else tuple(names)
        schemas = RequestSchemas(query=query, body=body, params=params)

        def register(func: Handler) -> Handler:
            self.add(
                method,
                ValidatedWithParams(param_names, schemas, dict(responses or {}), func, path=path),
            )
            return func

        return register(handler) if handler is not None else register

    def unsafe(
        self,
        method: str,
        handler: Handler | None = None,
        *,
        query: SchemaSpec | None = None,
        body: SchemaSpec | None = None,
        params: SchemaSpec | None = None,
        path: str = "",
    ) -> Any:
        """Register a validated handler whose exceptions reach the host."""
        schemas = RequestSchemas(query=query, body=body, params=params)

        def register(func: Handler) -> Handler:
            self.add(method, ValidatedUnsafe(schemas, func, path=path))
            return func

        return register(handler) if handler is not None else register

    get = partialmethod(plain, "GET")
    get_validated = partialmethod(validated, "GET")
    get_with_params = partialmethod(with_params, "GET")
    get_unsafe = partialmethod(unsafe, "GET")

    post = partialmethod(plain, "POST")
    post_validated = partialmethod(validated, "POST")
    post_with_params = partialmethod(with_params, "POST")
    post_unsafe = partialmethod(unsafe, "POST")

    put = partialmethod(plain, "PUT")
    put_validated = partialmethod(validated, "PUT")
    put_with_params = partialmethod(with_params, "PUT")
    put_unsafe = partialmethod(unsafe, "PUT")

    patch = partialmethod(plain, "PATCH")
    patch_validated = partialmethod(validated, "PATCH")
    patch_with_params = partialmethod(with_params, "PATCH")
    patch_unsafe = partialmethod(unsafe, "PATCH")

    delete = partialmethod(plain, "DELETE")
    delete_validated = partialmethod(validated, "DELETE")
    delete_with_params = partialmethod(with_params, "DELETE")
    delete_unsafe = partialmethod(unsafe, "DELETE")

    # -- Compilation --

    def build(self) -> CompiledRoute:
        """Compile every registration and freeze the contract.

        Idempotent: later calls return the same ``CompiledRoute``.
        Raises ``ConfigurationError`` for invalid schemas or two
        registrations on the same (verb, sub-path).
        """
        with self._lock:
            if self._compiled is not None:
                return self._compiled

            endpoints: list[Endpoint] = []
            seen: dict[tuple[str, str], Endpoint] = {}
            for method in METHODS:
                for registration in self._registrations[method]:
                    endpoint = _compile(method, registration)
                    key = (endpoint.method, endpoint.path)
                    if key in seen:
                        msg = (
                            f"Duplicate registration for {method} {endpoint.path or '/'}: "
                            f"{seen[key].handler_name} and {endpoint.handler_name}"
                        )
                        raise ConfigurationError(msg)
                    seen[key] = endpoint
                    endpoints.append(endpoint)

            not_found = None
            if self._not_found is not None:
                not_found = Endpoint(
                    method="*",
                    path="",
                    style=RouteStyle.NOT_FOUND,
                    handler=self._not_found,
                    default_status=404,
                    arguments=plan_arguments(self._not_found),
                )

            self._compiled = CompiledRoute(
                endpoints=tuple(endpoints),
                not_found=not_found,
                middleware=tuple(self._middleware),
            )
            return self._compiled

    def _check_open(self) -> None:
        if self._compiled is not None:
            msg = "Cannot register handlers after build()."
            raise RuntimeError(msg)


# -- Helpers --


def join_path(*parts: str) -> str:
    """Join path fragments into ``/a/b`` form; all-empty gives ``""``."""
    segments = [seg for part in parts for seg in part.strip("/").split("/") if seg]
    return "/" + "/".join(segments) if segments else ""


def _normalize_method(method: str) -> str:
    upper = method.upper()
    if upper not in METHODS:
        msg = f"Unsupported HTTP method {method!r} (expected one of: {', '.join(METHODS)})"
        raise ConfigurationError(msg)
    return upper


def _compile(method: str, registration: Registration) -> Endpoint:
    """Turn one registration into an ``Endpoint``, compiling its schemas."""
    handler = registration.handler
    if not callable(handler):
        msg = f"{method} handler must be callable, got {type(handler).__name__}"
        raise ConfigurationError(msg)

    try:
        match registration:
            case Plain(path=path):
                return Endpoint(
                    method=method,
                    path=join_path(path),
                    style=RouteStyle.PLAIN,
                    handler=handler,
                    arguments=plan_arguments(handler),
                )
            case Validated(request=request, responses=responses, path=path):
                return Endpoint(
                    method=method,
                    path=join_path(path),
                    style=RouteStyle.VALIDATED,
                    handler=handler,
                    request=_compile_request(request),
                    responses=compile_responses(responses),
                    arguments=plan_arguments(handler),
                )
            case ValidatedWithParams(
                param_names=names, request=request, responses=responses, path=path
            ):
                _check_param_names(names)
                schemas = _compile_request(request)
                return Endpoint(
                    method=method,
                    path=join_path(path, *(f"{{{name}}}" for name in names)),
                    style=RouteStyle.VALIDATED_WITH_PARAMS,
                    handler=handler,
                    request=CompiledSchemas(
                        query=schemas.query,
                        body=schemas.body,
                        params=_params_schema(names, schemas.params),
                    ),
                    responses=compile_responses(responses),
                    param_names=names,
                    arguments=plan_arguments(handler),
                )
            case ValidatedUnsafe(request=request, path=path):
                return Endpoint(
                    method=method,
                    path=join_path(path),
                    style=RouteStyle.VALIDATED_UNSAFE,
                    handler=handler,
                    request=_compile_request(request),
                    arguments=plan_arguments(handler),
                )
    except ConfigurationError as exc:
        name = getattr(handler, "__qualname__", repr(handler))
        raise ConfigurationError(f"{method} {name}: {exc}") from None

    msg = f"Unknown registration type: {type(registration).__name__}"
    raise TypeError(msg)


def _compile_request(request: RequestSchemas) -> CompiledSchemas:
    return CompiledSchemas(
        query=compile_schema(request.query),
        body=compile_schema(request.body),
        params=compile_schema(request.params),
    )


def _check_param_names(names: tuple[str, ...]) -> None:
    if not names:
        msg = "at least one path parameter name is required"
        raise ConfigurationError(msg)
    for name in names:
        if not isinstance(name, str) or not name.isidentifier():
            msg = f"path parameter name must be an identifier, got {name!r}"
            raise ConfigurationError(msg)
    if len(set(names)) != len(names):
        msg = f"duplicate path parameter names: {', '.join(names)}"
        raise ConfigurationError(msg)


def _params_schema(names: Iterable[str], schema: SchemaMap | None) -> SchemaMap:
    """Schema for the listed params. Undeclared ones are required strings."""
    declared = dict(schema or {})
    listed = tuple(names)
    unknown = [name for name in declared if name not in listed]
    if unknown:
        msg = f"params schema declares unlisted path parameter(s): {', '.join(unknown)}"
        raise ConfigurationError(msg)
    for name in listed:
        declared.setdefault(name, compile_field(name, {"type": FieldType.STRING, "required": True}))
    return compile_schema(declared) or {}


# Argument sources a handler can ask for, by parameter name
_NAMED_SOURCES = {
    "request": "request",
    "data": "validated",
    "reply": "reply",
    "modules": "modules",
    "query": "query",
    "body": "body",
    "params": "params",
}


def plan_arguments(handler: Callable[..., Any]) -> tuple[tuple[str, str], ...]:
    """Map each handler parameter to where its value comes from.

    Resolution order per parameter:

    1. annotation (``Request``, ``ValidatedRequest``, ``Reply``, ``Injected``)
    2. parameter name (``request``, ``data``, ``reply``, ``modules``,
       ``query``, ``body``, ``params``)
    3. anything else is looked up in the path params at request time
    """
    from perch.dispatch import Reply, ValidatedRequest
    from perch.http.request import Request
    from perch.injection.registry import Injected

    by_annotation: dict[Any, str] = {
        Request: "request",
        ValidatedRequest: "validated",
        Reply: "reply",
        Injected: "modules",
    }

    try:
        sig = inspect.signature(handler, eval_str=True)
    except (TypeError, ValueError, NameError):
        sig = inspect.signature(handler)

    plan: list[tuple[str, str]] = []
    for name, param in sig.parameters.items():
        if param.kind in (inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD):
            continue
        source = by_annotation.get(param.annotation) or _NAMED_SOURCES.get(name, "path")
        plan.append((name, source))
    return tuple(plan)
