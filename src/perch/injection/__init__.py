"""Injectable modules — named, lazily-resolved singletons for handlers."""

from perch.injection.discovery import discover_injectables
from perch.injection.registry import Injected, ModuleRegistry

__all__ = ["Injected", "ModuleRegistry", "discover_injectables"]
