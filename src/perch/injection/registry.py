"""Injectable module registry — named, lazily-resolved, process-wide singletons.

The registry is built from a static ``name -> factory`` table (usually
produced by :func:`perch.injection.discovery.discover_injectables`) and owned
by the ``App``. Each compiled endpoint receives the same registry and hands
handlers an :class:`Injected` view of it::

    registry = ModuleRegistry({
        "mailer": "app.injectable.mailer:Mailer",   # import string
        "cache": make_cache,                         # sync or async factory
    })

    @route.post_validated(body={...}, responses={...})
    async def create(data: ValidatedRequest, modules: Injected):
        mailer = await modules.resolve("mailer")
        ...

Factory forms:

- a class: instantiated with no arguments
- a callable (sync or async): called with no arguments; if it returns a
  class, that class is instantiated
- an import string ``"package.module:attribute"``: imported on first
  resolution, then handled like the forms above (a non-callable attribute
  is used as the instance itself)

Concurrency:
    Resolution is at-most-once per name. The first caller runs the factory;
    concurrent callers for the same name wait on that attempt's
    ``anyio.Event`` and share its outcome. A failed attempt is not cached,
    so a later request retries the factory. Bookkeeping is guarded by a
    ``threading.Lock`` so the registry stays consistent under
    free-threaded workers.
"""

from __future__ import annotations

import importlib
import inspect
import logging
import threading
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import anyio

from perch._internal.invoke import invoke
from perch._internal.types import Factory
from perch.errors import RegistryResolutionError

logger = logging.getLogger("perch.injection")


@dataclass(slots=True)
class _Attempt:
    """One in-flight resolution that followers can wait on."""

    done: anyio.Event = field(default_factory=anyio.Event)
    error: RegistryResolutionError | None = None


class ModuleRegistry:
    """Lazily-resolved mapping from module name to singleton instance.

    Construct once at process start and pass it to the ``App`` (or let the
    ``App`` build one from ``AppConfig.modules_dir``). Tests construct
    their own registries; nothing here is global.
    """

    __slots__ = ("_factories", "_instances", "_lock", "_pending")

    def __init__(self, factories: Mapping[str, Factory] | None = None) -> None:
        self._factories: dict[str, Factory] = dict(factories or {})
        self._instances: dict[str, Any] = {}
        self._pending: dict[str, _Attempt] = {}
        self._lock = threading.Lock()

    # -- Introspection --

    @property
    def names(self) -> tuple[str, ...]:
        """All module names this registry can resolve, sorted."""
        with self._lock:
            return tuple(sorted(set(self._factories) | set(self._instances)))

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._factories or name in self._instances

    def __len__(self) -> int:
        return len(self.names)

    def __repr__(self) -> str:
        return f"ModuleRegistry({list(self.names)!r})"

    def is_resolved(self, name: str) -> bool:
        """True if *name* has a cached instance."""
        with self._lock:
            return name in self._instances

    # -- Registration --

    def provide(self, name: str, factory: Factory) -> None:
        """Add or replace the factory for *name*.

        Any cached instance for *name* is dropped so the next lookup
        uses the new factory.
        """
        with self._lock:
            self._factories[name] = factory
            self._instances.pop(name, None)

    def register(self, name: str, instance: Any) -> None:
        """Register an already-built instance under *name*."""
        with self._lock:
            self._instances[name] = instance
        logger.debug("Registered injectable module instance: %s", name)

    def clear(self) -> None:
        """Forget every cached instance. Factories are kept."""
        with self._lock:
            self._instances.clear()

    # -- Resolution --

    async def resolve(self, name: str) -> Any:
        """Return the instance for *name*, running its factory at most once.

        Raises ``RegistryResolutionError`` if *name* is unknown or its
        factory fails.
        """
        while True:
            with self._lock:
                if name in self._instances:
                    return self._instances[name]
                if name not in self._factories:
                    raise RegistryResolutionError(name, "no such module is registered")
                factory = self._factories[name]
                attempt = self._pending.get(name)
                leader = attempt is None
                if attempt is None:
                    attempt = _Attempt()
                    self._pending[name] = attempt

            if leader:
                return await self._run_factory(name, factory, attempt)

            await attempt.done.wait()
            if attempt.error is not None:
                raise attempt.error
            # Loop: the leader cached the instance (or it was cleared in
            # between, in which case this caller becomes the next leader)

    async def _run_factory(self, name: str, factory: Factory, attempt: _Attempt) -> Any:
        try:
            instance = await _build(factory)
        except Exception as exc:
            logger.error("Failed to resolve injectable module %s: %s", name, exc)
            attempt.error = RegistryResolutionError(name, str(exc) or type(exc).__name__)
            raise attempt.error from exc
        else:
            with self._lock:
                self._instances[name] = instance
            logger.debug("Resolved injectable module: %s", name)
            return instance
        finally:
            # Also runs on cancellation: followers wake up and one of them
            # takes over as leader
            with self._lock:
                self._pending.pop(name, None)
            attempt.done.set()

    async def warm(self) -> dict[str, RegistryResolutionError]:
        """Resolve every registered module concurrently.

        Used at startup when ``AppConfig.eager_modules`` is set. Failures
        are logged and returned, never raised: an unresolvable module only
        fails the requests that actually use it.
        """
        failures: dict[str, RegistryResolutionError] = {}

        async def _one(module_name: str) -> None:
            try:
                await self.resolve(module_name)
            except RegistryResolutionError as exc:
                failures[module_name] = exc

        async with anyio.create_task_group() as tg:
            for module_name in self.names:
                tg.start_soon(_one, module_name)

        resolved = len(self.names) - len(failures)
        logger.info("Injectable modules warmed: %d resolved, %d failed", resolved, len(failures))
        return failures

    def view(self) -> Injected:
        """Return a request-scoped view for handler code."""
        return Injected(self)


class Injected:
    """The handler-facing view of a :class:`ModuleRegistry`.

    Every lookup goes to the live registry; the view holds no copies.
    A fresh view is built for each request.
    """

    __slots__ = ("_registry",)

    def __init__(self, registry: ModuleRegistry) -> None:
        self._registry = registry

    async def resolve(self, name: str) -> Any:
        """Resolve *name* through the registry."""
        return await self._registry.resolve(name)

    def __contains__(self, name: object) -> bool:
        return name in self._registry

    @property
    def names(self) -> tuple[str, ...]:
        """Module names available to the handler."""
        return self._registry.names

    def __repr__(self) -> str:
        return f"Injected({list(self.names)!r})"


async def _build(factory: Factory) -> Any:
    """Turn one factory declaration into an instance."""
    target: Any = factory
    if isinstance(factory, str):
        target = _import_string(factory)

    if inspect.isclass(target):
        return target()
    if callable(target):
        result = await invoke(target)
        if inspect.isclass(result):
            return result()
        return result
    return target


def _import_string(import_string: str) -> Any:
    """Resolve ``"package.module:attribute"`` to the attribute."""
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        msg = f"Import string {import_string!r} must look like 'package.module:attribute'"
        raise ValueError(msg)
    module = importlib.import_module(module_path)
    return getattr(module, attr_name)
