"""Routing — mounted endpoints matched by method and path.

Paths are compiled into a segment trie at freeze time. ``{name}``
segments capture one path segment as a string parameter; type coercion
is left to the route's ``params`` schema.
"""

from perch.routing.route import Route, RouteMatch
from perch.routing.router import Router, parse_path

__all__ = ["Route", "RouteMatch", "Router", "parse_path"]
