"""Middleware — ``async (request, next) -> Response`` callables run around dispatch."""

from perch.middleware.protocol import Middleware, Next

__all__ = ["Middleware", "Next"]
