"""Perch application class.

Mutable during setup (route mounting, middleware, error handlers, hooks).
Frozen at runtime when app.run() or __call__() is first invoked.
"""

import logging
import threading
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any

from perch._internal.asgi import Receive, Scope, Send
from perch._internal.invoke import run_hooks
from perch._internal.types import ErrorHandler, Factory
from perch.config import AppConfig
from perch.contract import CompiledRoute, RouteContract, join_path
from perch.dispatch import dispatch
from perch.errors import ConfigurationError
from perch.injection.discovery import discover_injectables
from perch.injection.registry import ModuleRegistry
from perch.middleware.protocol import Middleware, Next
from perch.routing.discovery import discover_routes
from perch.routing.route import Route
from perch.routing.router import Router, parse_path
from perch.server.handler import build_chain, handle_request, route_request

logger = logging.getLogger("perch.server")


@dataclass(slots=True)
class _Mount:
    """A route waiting to be compiled into the router."""

    path: str
    route: RouteContract | CompiledRoute


class App:
    """The perch application.

    Owns the module registry and hands it to every mounted endpoint::

        app = App(AppConfig(routes_dir="routes", modules_dir="injectable"))
        app.mount_routes()

        users = app.contract("/users")

        @users.get
        def index():
            return {"users": []}

    Thread safety:
        The setup phase is single-threaded (decorators at import time).
        The freeze transition uses a Lock + double-check so exactly one
        thread compiles the app, even when several ASGI workers call
        ``__call__()`` concurrently on the first request.
    """

    __slots__ = (
        # Set by _freeze()
        "_chain",
        "_error_handlers",
        "_freeze_lock",
        "_frozen",
        "_middleware_list",
        "_mounts",
        "_registry",
        "_router",
        "_shutdown_hooks",
        "_startup_hooks",
        "config",
    )

    def __init__(
        self,
        config: AppConfig | None = None,
        *,
        modules: Mapping[str, Factory] | None = None,
        registry: ModuleRegistry | None = None,
    ) -> None:
        if modules is not None and registry is not None:
            msg = "Pass either modules or registry, not both"
            raise ConfigurationError(msg)
        self.config: AppConfig = config or AppConfig()
        self._registry: ModuleRegistry = registry or ModuleRegistry(modules)
        self._mounts: list[_Mount] = []
        self._middleware_list: list[Middleware] = []
        self._error_handlers: dict[int | type, ErrorHandler] = {}
        self._startup_hooks: list[Callable[..., Any]] = []
        self._shutdown_hooks: list[Callable[..., Any]] = []
        self._frozen: bool = False
        self._freeze_lock: threading.Lock = threading.Lock()

        # Compiled state, set during _freeze()
        self._router: Router | None = None
        self._chain: Next | None = None

    @property
    def registry(self) -> ModuleRegistry:
        """The injectable module registry shared by every endpoint."""
        return self._registry

    # -- Route mounting --

    def mount(self, path: str, route: RouteContract | CompiledRoute) -> None:
        """Mount a route at *path*.

        A ``RouteContract`` is built when the app freezes, so handlers can
        still be registered on it until then.
        """
        self._check_not_frozen()
        if not isinstance(route, RouteContract | CompiledRoute):
            msg = f"Cannot mount {type(route).__name__}; expected RouteContract or CompiledRoute"
            raise TypeError(msg)
        self._mounts.append(_Mount(path=path, route=route))

    def contract(self, path: str) -> RouteContract:
        """Create a ``RouteContract`` mounted at *path* and return it."""
        route = RouteContract()
        self.mount(path, route)
        return route

    def mount_routes(self, routes_dir: str | Path | None = None) -> None:
        """Discover ``route.py`` files under *routes_dir* and mount them.

        Defaults to ``config.routes_dir``.
        """
        self._check_not_frozen()
        directory = routes_dir or self.config.routes_dir
        if directory is None:
            msg = "mount_routes() needs a directory or config.routes_dir"
            raise ConfigurationError(msg)
        for found in discover_routes(directory):
            self._mounts.append(_Mount(path=found.url_path, route=found.route))

    # -- Injectable modules --

    def provide(self, name: str, factory: Factory) -> None:
        """Register an injectable module factory under *name*."""
        self._check_not_frozen()
        self._registry.provide(name, factory)

    # -- Error handlers --

    def error(
        self,
        code_or_exception: int | type[Exception],
    ) -> Callable[[ErrorHandler], ErrorHandler]:
        """Register an error handler via decorator."""

        def decorator(func: ErrorHandler) -> ErrorHandler:
            self._check_not_frozen()
            self._error_handlers[code_or_exception] = func
            return func

        return decorator

    # -- Middleware --

    def add_middleware(self, middleware: Middleware) -> None:
        """Add a middleware. The first one added runs outermost."""
        self._check_not_frozen()
        if not isinstance(middleware, Middleware):
            msg = f"Middleware must be callable, got {type(middleware).__name__}"
            raise TypeError(msg)
        self._middleware_list.append(middleware)

    # -- Lifecycle hooks --

    def on_startup(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync startup hook via decorator.

        Hooks run in registration order during ASGI lifespan startup,
        after eager module warm-up and before the first request.
        """
        self._check_not_frozen()
        self._startup_hooks.append(func)
        return func

    def on_shutdown(self, func: Callable[..., Any]) -> Callable[..., Any]:
        """Register an async or sync shutdown hook via decorator."""
        self._check_not_frozen()
        self._shutdown_hooks.append(func)
        return func

    # -- Introspection --

    def describe_routes(self) -> list[dict[str, Any]]:
        """JSON-ready description of every mounted endpoint.

        Freezes the app.
        """
        self._ensure_frozen()
        described: list[dict[str, Any]] = []
        for mount in self._mounts:
            compiled = mount.route.build() if isinstance(mount.route, RouteContract) else mount.route
            described.extend(compiled.describe(_mount_path(mount.path)))
        return described

    # -- Serving --

    def run(self, host: str | None = None, port: int | None = None) -> None:
        """Compile the app and serve it with the development server."""
        self._ensure_frozen()

        from perch.server.dev import run_dev_server

        run_dev_server(
            self,
            host or self.config.host,
            port or self.config.port,
            reload=self.config.reload,
            log_level=self.config.log_level,
        )

    # -- ASGI interface --

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        """ASGI 3.0 entry point."""
        if scope["type"] == "lifespan":
            await self._handle_lifespan(scope, receive, send)
            return

        self._ensure_frozen()
        assert self._chain is not None

        await handle_request(
            scope,
            receive,
            send,
            chain=self._chain,
            error_handlers=self._error_handlers,
            debug=self.config.debug,
        )

    async def _handle_lifespan(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
    ) -> None:
        """Run the ASGI lifespan protocol.

        Freezes the app at startup, warms the registry when
        ``config.eager_modules`` is set, then runs the startup hooks.
        """
        while True:
            message = await receive()
            msg_type = message["type"]

            if msg_type == "lifespan.startup":
                try:
                    self._ensure_frozen()
                    if self.config.eager_modules:
                        await self._registry.warm()
                    await run_hooks(self._startup_hooks)
                except Exception as exc:
                    logger.exception("Application startup failed")
                    await send({"type": "lifespan.startup.failed", "message": str(exc)})
                    return
                await send({"type": "lifespan.startup.complete"})

            elif msg_type == "lifespan.shutdown":
                await run_hooks(self._shutdown_hooks)
                await send({"type": "lifespan.shutdown.complete"})
                return

    # -- Internal --

    def _ensure_frozen(self) -> None:
        """Thread-safe freeze with double-check locking."""
        if self._frozen:
            return
        with self._freeze_lock:
            if self._frozen:
                return
            self._freeze()
            self._frozen = True

    def _freeze(self) -> None:
        """Compile the app into its frozen runtime state.

        MUST only be called while holding _freeze_lock.
        """
        # 1. Injectable modules discovered on disk; explicit ones win
        if self.config.modules_dir is not None:
            for name, factory in discover_injectables(self.config.modules_dir).items():
                if name not in self._registry:
                    self._registry.provide(name, factory)

        # 2. Compile route table
        router = Router()
        for mount in self._mounts:
            compiled = mount.route.build() if isinstance(mount.route, RouteContract) else mount.route
            self._add_compiled(router, _mount_path(mount.path), compiled)
        router.compile()
        self._router = router

        # 3. Middleware around routing, first added runs outermost
        endpoint = partial(
            route_request,
            router=router,
            max_content_length=self.config.max_content_length,
        )
        self._chain = build_chain(endpoint, tuple(self._middleware_list))

        logger.debug(
            "App frozen: %d mount(s), %d injectable module(s)",
            len(self._mounts),
            len(self._registry),
        )

    def _add_compiled(self, router: Router, prefix: str, compiled: CompiledRoute) -> None:
        bind = partial(dispatch, registry=self._registry, debug=self.config.debug)
        for endpoint in compiled.endpoints:
            path = join_path(prefix, endpoint.path) or "/"
            _check_unique_params(path)
            handler = build_chain(partial(bind, endpoint, route_path=path), compiled.middleware)
            router.add(Route(path=path, method=endpoint.method, endpoint=endpoint, handler=handler))
        if compiled.not_found is not None:
            endpoint = compiled.not_found
            handler = build_chain(partial(bind, endpoint, route_path=prefix), compiled.middleware)
            router.add_fallback(Route(path=prefix, method="*", endpoint=endpoint, handler=handler))

    def _check_not_frozen(self) -> None:
        if self._frozen:
            msg = (
                "Cannot modify the app after it has started serving requests. "
                "Mount routes and add middleware before calling app.run()."
            )
            raise RuntimeError(msg)


def _mount_path(path: str) -> str:
    """Canonical mount path: ``/`` or ``/a/{b}``, brackets normalized."""
    return "/" + "/".join(seg.value for seg in parse_path(path))


def _check_unique_params(path: str) -> None:
    names = [seg.param_name for seg in parse_path(path) if seg.is_param]
    if len(set(names)) != len(names):
        msg = f"Path parameter repeated in {path}"
        raise ConfigurationError(msg)
