"""ASGI 3.0 interface types.

Scopes and messages are plain dicts on the wire; perch only converts
them to ``Request``/``Response`` at the edges (``server.handler``,
``server.sender``, ``testing.client``).
"""

from collections.abc import Awaitable, Callable, MutableMapping
from typing import Any

type Scope = MutableMapping[str, Any]
type Message = MutableMapping[str, Any]
type Receive = Callable[[], Awaitable[Message]]
type Send = Callable[[Message], Awaitable[None]]
