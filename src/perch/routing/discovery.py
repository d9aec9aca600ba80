"""Filesystem route discovery for a routes/ directory.

Walks the routes directory tree and loads every ``route.py`` file. A
file must export ``route``: a ``RouteContract`` (built on discovery) or
an already-built ``CompiledRoute``. The URL is the file's directory path
relative to the root::

    routes/
        route.py                 -> /
        users/route.py           -> /users
        users/{id}/route.py      -> /users/{id}
        users/[id]/posts/route.py -> /users/{id}/posts
        users/middleware.py     (wraps /users and everything below it)
        _shared/helpers.py       (skipped)

Directory names wrapped in ``{braces}`` or ``[brackets]`` become path
parameters. Directories starting with ``_`` or ``.`` are skipped.

A ``middleware.py`` exports ``middleware``: one middleware or a list of
them. It runs around every route file in its directory and below,
outermost for the directory nearest the root, and before the route's own
``RouteContract.use()`` middleware.
"""

from __future__ import annotations

import importlib.util
import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from types import ModuleType

from perch.contract import CompiledRoute, RouteContract
from perch.errors import ConfigurationError
from perch.middleware.protocol import Middleware

logger = logging.getLogger("perch.routing")

ROUTE_FILE = "route.py"
MIDDLEWARE_FILE = "middleware.py"

# Attributes the files must export
ROUTE_ATTR = "route"
MIDDLEWARE_ATTR = "middleware"

_PARAM_DIR_RE = re.compile(r"^(?:\{(\w+)\}|\[(\w+)\])$")


@dataclass(frozen=True, slots=True)
class DiscoveredRoute:
    """One ``route.py`` file and the URL it is mounted at."""

    url_path: str
    source: Path
    route: CompiledRoute


def discover_routes(routes_dir: str | Path) -> list[DiscoveredRoute]:
    """Walk *routes_dir* and load every route file.

    Raises ``FileNotFoundError`` if the directory does not exist and
    ``ConfigurationError`` if a ``route.py`` has no usable ``route``.
    """
    root = Path(routes_dir).resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Routes directory not found: {root}")

    found: list[DiscoveredRoute] = []
    _walk_directory(root, url_parts=[], inherited=(), found=found)
    logger.debug("Discovered %d route file(s) in %s", len(found), root)
    return found


def _walk_directory(
    directory: Path,
    *,
    url_parts: list[str],
    inherited: tuple[Middleware, ...],
    found: list[DiscoveredRoute],
) -> None:
    url_path = "/" + "/".join(url_parts)
    middleware_file = directory / MIDDLEWARE_FILE
    if middleware_file.is_file():
        inherited = (*inherited, *_load_middleware(middleware_file, url_path))

    route_file = directory / ROUTE_FILE
    if route_file.is_file():
        route = _load_route(route_file, url_path)
        if inherited:
            route = replace(route, middleware=(*inherited, *route.middleware))
        found.append(DiscoveredRoute(url_path, route_file, route))

    for item in sorted(directory.iterdir()):
        if not item.is_dir():
            continue
        if item.name.startswith(("_", ".")):
            continue

        param = _PARAM_DIR_RE.match(item.name)
        segment = "{" + (param.group(1) or param.group(2)) + "}" if param else item.name
        _walk_directory(item, url_parts=[*url_parts, segment], inherited=inherited, found=found)


def _import_file(file: Path, prefix: str, url_path: str) -> ModuleType:
    module_name = prefix + re.sub(r"\W", "_", url_path.strip("/") or "root")
    spec = importlib.util.spec_from_file_location(module_name, file)
    if spec is None or spec.loader is None:
        msg = f"Cannot load {file}"
        raise ConfigurationError(msg)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


def _load_middleware(file: Path, url_path: str) -> tuple[Middleware, ...]:
    exported = getattr(_import_file(file, "_perch_middleware_", url_path), MIDDLEWARE_ATTR, None)
    middleware = tuple(exported) if isinstance(exported, list | tuple) else (exported,)
    for mw in middleware:
        if not isinstance(mw, Middleware):
            msg = (
                f"{file} must export {MIDDLEWARE_ATTR!r} as middleware or a list of them, "
                f"got {type(mw).__name__}"
            )
            raise ConfigurationError(msg)
    logger.debug("Loaded %d middleware for %s", len(middleware), url_path)
    return middleware


def _load_route(file: Path, url_path: str) -> CompiledRoute:
    """Import a route file and build its exported contract."""
    exported = getattr(_import_file(file, "_perch_route_", url_path), ROUTE_ATTR, None)
    if isinstance(exported, RouteContract):
        return exported.build()
    if isinstance(exported, CompiledRoute):
        return exported
    msg = (
        f"{file} must export {ROUTE_ATTR!r} as a RouteContract or CompiledRoute, "
        f"got {type(exported).__name__}"
    )
    raise ConfigurationError(msg)
