"""Testing utilities for perch applications."""

from perch.testing.client import TestClient

__all__ = ["TestClient"]
