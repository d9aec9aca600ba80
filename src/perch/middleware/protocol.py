"""The middleware shape.

Middleware wraps the whole request pipeline: route matching, validation,
the handler, and shaping. It sees every request, including the ones that
end in a 404 or 405, and may replace or decorate the response::

    async def served_by(request: Request, next: Next) -> Response:
        response = await next(request)
        return response.with_header("X-Served-By", "perch")

Raising ``HTTPError`` from middleware short-circuits the chain and is
rendered like any other HTTP error.

Middleware given to ``RouteContract.use()`` (or exported by a routes
directory's ``middleware.py``) runs only for that route, inside the
app-wide chain and after path parameters are matched.
"""

from collections.abc import Awaitable, Callable
from typing import Protocol, runtime_checkable

from perch.http.request import Request
from perch.http.response import Response

# The rest of the chain, ending in route dispatch
type Next = Callable[[Request], Awaitable[Response]]


@runtime_checkable
class Middleware(Protocol):
    """Any ``async (request, next) -> Response`` callable, function or object."""

    async def __call__(self, request: Request, next: Next) -> Response: ...
