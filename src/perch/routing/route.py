"""Router entries and match results."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from perch.contract import Endpoint
from perch.http.request import Request
from perch.http.response import Response


@dataclass(frozen=True, slots=True)
class PathSegment:
    """One ``/``-separated piece of a route path.

    ``value`` is the literal text, or ``{name}`` for a parameter segment
    (both ``{name}`` and ``[name]`` parse to the same segment).
    """

    value: str
    is_param: bool = False
    param_name: str | None = None


@dataclass(frozen=True, slots=True)
class Route:
    """An endpoint at its full mounted path.

    ``method`` is ``"*"`` for a not-found fallback. ``handler`` already
    carries the app's registry and debug flag, so serving a match only
    needs the request.
    """

    path: str
    method: str
    endpoint: Endpoint
    handler: Callable[[Request], Awaitable[Response]]


@dataclass(frozen=True, slots=True)
class RouteMatch:
    route: Route
    path_params: dict[str, str]
