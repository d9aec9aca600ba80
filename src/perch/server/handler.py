"""The ASGI request path: scope in, response messages out.

``handle_request`` reads the scope into a ``Request``, passes it down the
middleware chain to the router, turns anything raised into a JSON error,
and sends the result.
"""

from collections.abc import Callable, Mapping
from functools import partial
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch.errors import HTTPError
from perch.http.request import Request
from perch.http.response import Response
from perch.middleware.protocol import Next
from perch.routing.router import Router
from perch.server.errors import handle_http_error, handle_internal_error
from perch.server.sender import send_response


async def route_request(
    request: Request,
    *,
    router: Router,
    max_content_length: int | None,
) -> Response:
    """The innermost link of the chain: size check, match, dispatch."""
    declared = request.content_length
    if max_content_length is not None and declared is not None and declared > max_content_length:
        raise HTTPError(status=413, detail="Request body too large")
    match = router.match(request.method, request.path)
    return await match.route.handler(request.with_path_params(match.path_params))


def build_chain(endpoint: Next, middleware: tuple[Callable[..., Any], ...]) -> Next:
    """Wrap *endpoint* so ``middleware[0]`` sees the request first."""
    chain = endpoint
    for mw in reversed(middleware):
        chain = partial(_call_middleware, mw, chain)
    return chain


async def _call_middleware(mw: Callable[..., Any], next_: Next, request: Request) -> Response:
    return await mw(request, next_)


async def handle_request(
    scope: Scope,
    receive: Receive,
    send: Send,
    *,
    chain: Next,
    error_handlers: Mapping[int | type, Callable[..., Any]],
    debug: bool,
) -> None:
    """Serve one ``http`` scope through the prebuilt middleware *chain*."""
    if scope["type"] != "http":
        return

    request = Request.from_asgi(scope, receive)
    try:
        response = await chain(request)
    except HTTPError as exc:
        response = await handle_http_error(exc, request, error_handlers)
    except Exception as exc:
        response = await handle_internal_error(exc, request, error_handlers, debug)
    await send_response(response, send)
