"""Type aliases shared by the contract, app, and registry."""

from collections.abc import Callable
from typing import Any

# Anything a route registers: its parameters are planned at build() time
type Handler = Callable[..., Any]

# @app.error() target; called with (), (request,) or (request, exc)
type ErrorHandler = Callable[..., Any]

# What a registry name maps to: a factory callable (sync or async), a
# class to instantiate, or a "package.module:attribute" import string
type Factory = Callable[[], Any] | type | str
