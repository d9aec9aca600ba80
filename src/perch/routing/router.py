"""Compiled router with trie-based path matching.

Routes are registered during setup and compiled into an immutable
lookup structure when the app freezes. Besides exact routes the router
keeps prefix fallbacks: a route's not-found handler answers every
request under its mount path that no endpoint matched.
"""

import logging
import re

from perch.errors import ConfigurationError, MethodNotAllowed, NotFound
from perch.routing.route import PathSegment, Route, RouteMatch

logger = logging.getLogger("perch.routing")

# Both spellings of a parameter segment: {name} and [name]
_PARAM_RE = re.compile(r"^(?:\{(\w+)\}|\[(\w+)\])$")


def parse_path(path: str) -> list[PathSegment]:
    """Parse a route path string into segments.

    Examples::

        "/users"      -> [PathSegment("users")]
        "/users/{id}" -> [PathSegment("users"), PathSegment("{id}", is_param=True, param_name="id")]
        "/users/[id]" -> same as "/users/{id}"
    """
    segments: list[PathSegment] = []
    for part in path.strip("/").split("/"):
        if not part:
            continue
        param = _PARAM_RE.match(part)
        if param:
            name = param.group(1) or param.group(2)
            segments.append(PathSegment(value=f"{{{name}}}", is_param=True, param_name=name))
        else:
            segments.append(PathSegment(value=part))
    return segments


def canonical_path(path: str) -> str:
    """Normalize *path* to ``/a/{b}`` form."""
    return "/" + "/".join(seg.value for seg in parse_path(path))


class _TrieNode:
    """A node in the route trie. Mutable during compilation only."""

    __slots__ = ("children", "fallback", "param_child", "routes_by_method")

    def __init__(self) -> None:
        self.children: dict[str, _TrieNode] = {}
        # One parameter edge per level: (param_name, node)
        self.param_child: tuple[str, _TrieNode] | None = None
        self.routes_by_method: dict[str, Route] = {}
        # Not-found route for everything under this prefix
        self.fallback: Route | None = None


class Router:
    """Compiled router with trie-based path matching.

    Usage::

        router = Router()
        router.add(Route("/users/{id}", "GET", endpoint, handler))
        router.compile()
        match = router.match("GET", "/users/42")
    """

    __slots__ = ("_compiled", "_root")

    def __init__(self) -> None:
        self._root = _TrieNode()
        self._compiled = False

    def add(self, route: Route) -> None:
        """Add a route. Must be called before compile()."""
        node = self._node_for(route.path)
        if route.method in node.routes_by_method:
            existing = node.routes_by_method[route.method]
            msg = (
                f"Route conflict: {route.method} {canonical_path(route.path)} is mounted "
                f"twice ({existing.endpoint.handler_name}, {route.endpoint.handler_name})"
            )
            raise ConfigurationError(msg)
        node.routes_by_method[route.method] = route

    def add_fallback(self, route: Route) -> None:
        """Answer unmatched requests under ``route.path`` with *route*."""
        node = self._node_for(route.path)
        if node.fallback is not None:
            msg = f"Duplicate not-found handler for {canonical_path(route.path)}"
            raise ConfigurationError(msg)
        node.fallback = route

    def _node_for(self, path: str) -> _TrieNode:
        if self._compiled:
            msg = "Cannot add routes after compilation."
            raise RuntimeError(msg)

        node = self._root
        for seg in parse_path(path):
            if seg.is_param:
                name = seg.param_name or ""
                if node.param_child is None:
                    node.param_child = (name, _TrieNode())
                elif node.param_child[0] != name:
                    msg = (
                        f"Conflicting path parameters at {canonical_path(path)}: "
                        f"{{{node.param_child[0]}}} and {{{name}}}"
                    )
                    raise ConfigurationError(msg)
                node = node.param_child[1]
            else:
                node = node.children.setdefault(seg.value, _TrieNode())
        return node

    @property
    def routes(self) -> list[Route]:
        """All registered routes, fallbacks included, in path order."""
        result: list[Route] = []
        self._collect_routes(self._root, result)
        return result

    def _collect_routes(self, node: _TrieNode, result: list[Route]) -> None:
        result.extend(node.routes_by_method[m] for m in sorted(node.routes_by_method))
        if node.fallback is not None:
            result.append(node.fallback)
        for key in sorted(node.children):
            self._collect_routes(node.children[key], result)
        if node.param_child is not None:
            self._collect_routes(node.param_child[1], result)

    def compile(self) -> None:
        """Freeze the router. No more routes can be added."""
        self._compiled = True
        logger.debug("Router compiled with %d route(s)", len(self.routes))

    def match(self, method: str, path: str) -> RouteMatch:
        """Match a request path and method against compiled routes.

        Returns a ``RouteMatch`` on success. When no endpoint matches, the
        deepest not-found fallback covering the path answers instead.
        Raises ``NotFound`` if nothing matches the path and
        ``MethodNotAllowed`` if the path matches but the method doesn't.
        """
        parts = [p for p in path.strip("/").split("/") if p]
        result = self._match_node(self._root, parts, 0, {})

        if result is not None:
            node, params = result
            if method in node.routes_by_method:
                return RouteMatch(route=node.routes_by_method[method], path_params=params)

        fallback = self._match_fallback(parts)
        if fallback is not None:
            return fallback

        if result is not None:
            raise MethodNotAllowed(frozenset(result[0].routes_by_method))
        raise NotFound()

    def _match_node(
        self,
        node: _TrieNode,
        parts: list[str],
        index: int,
        params: dict[str, str],
    ) -> tuple[_TrieNode, dict[str, str]] | None:
        """Recursively match path parts against the trie."""
        if index == len(parts):
            if node.routes_by_method:
                return node, params
            return None

        part = parts[index]

        # Static segments win over parameters
        if part in node.children:
            result = self._match_node(node.children[part], parts, index + 1, params)
            if result is not None:
                return result

        if node.param_child is not None:
            name, child = node.param_child
            return self._match_node(child, parts, index + 1, {**params, name: part})

        return None

    def _match_fallback(self, parts: list[str]) -> RouteMatch | None:
        """Deepest fallback whose prefix covers *parts*."""
        best: RouteMatch | None = None
        stack: list[tuple[_TrieNode, int, dict[str, str]]] = [(self._root, 0, {})]
        best_depth = -1
        while stack:
            node, index, params = stack.pop()
            if node.fallback is not None and index > best_depth:
                best, best_depth = RouteMatch(route=node.fallback, path_params=params), index
            if index == len(parts):
                continue
            part = parts[index]
            if part in node.children:
                stack.append((node.children[part], index + 1, params))
            if node.param_child is not None:
                name, child = node.param_child
                stack.append((child, index + 1, {**params, name: part}))
        return best
