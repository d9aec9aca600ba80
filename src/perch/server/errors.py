"""Turning exceptions that escaped the chain into responses.

Every error ends as ``{"success": false, "error": ...}`` JSON unless the
app registered a handler with ``@app.error(status_or_exception_type)``.
"""

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any

from perch._internal.invoke import invoke
from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response, error_response, json_response

logger = logging.getLogger("perch.server")

type ErrorHandlers = Mapping[int | type, Callable[..., Any]]


def find_error_handler(exc: Exception, status: int, handlers: ErrorHandlers) -> Callable[..., Any] | None:
    """The most specific handler for *exc*: by class (nearest in the MRO), then by *status*."""
    for cls in type(exc).__mro__:
        if cls in handlers:
            return handlers[cls]
        if cls is Exception:
            break
    return handlers.get(status)


async def call_error_handler(
    handler: Callable[..., Any],
    request: Request,
    exc: Exception,
    status: int,
) -> Response:
    """Run *handler* with as many of ``(request, exc)`` as it accepts.

    Non-``Response`` results are sent as JSON. A response left at 200
    takes *status*.
    """
    arity = len(inspect.signature(handler).parameters)
    result = await invoke(handler, *(request, exc)[:arity])
    response = result if isinstance(result, Response) else json_response(result)
    return response.with_status(status) if response.status == 200 else response


async def handle_http_error(exc: HTTPError, request: Request, error_handlers: ErrorHandlers) -> Response:
    logger.debug("%d %s %s: %s", exc.status, request.method, request.path, exc.detail)

    handler = find_error_handler(exc, exc.status, error_handlers)
    if handler is not None:
        return await call_error_handler(handler, request, exc, exc.status)

    response = error_response(exc.status, exc.detail or f"Error {exc.status}")
    for name, value in exc.headers:
        response = response.with_header(name, value)
    return response


async def handle_internal_error(
    exc: Exception,
    request: Request,
    error_handlers: ErrorHandlers,
    debug: bool,
) -> Response:
    """Log *exc* and answer 500. The message is only revealed in debug mode."""
    logger.exception("Unhandled error in %s %s", request.method, request.path)

    handler = find_error_handler(exc, 500, error_handlers)
    if handler is not None:
        return await call_error_handler(handler, request, exc, 500)

    message = (str(exc) or type(exc).__name__) if debug else "Internal Server Error"
    return error_response(500, message)
