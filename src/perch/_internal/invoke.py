"""Uniform calls for ``def`` and ``async def`` user code.

Handlers, module factories, error handlers, and lifecycle hooks may each
be sync or async; everything that calls them goes through here.
"""

import inspect
from collections.abc import Callable, Iterable
from typing import Any


async def invoke(func: Callable[..., Any], *args: Any, **kwargs: Any) -> Any:
    """Call *func*, awaiting the result when it is awaitable."""
    result = func(*args, **kwargs)
    if inspect.isawaitable(result):
        return await result
    return result


async def run_hooks(hooks: Iterable[Callable[[], Any]]) -> None:
    """Run zero-argument lifecycle hooks one after another, in order."""
    for hook in hooks:
        await invoke(hook)
