"""Filesystem discovery for injectable modules.

Walks a modules directory and builds the static ``name -> factory`` table
a :class:`~perch.injection.registry.ModuleRegistry` is constructed from.

Every ``.py`` file that defines a module-level ``injectable`` attribute
contributes one entry. The name is the file's path relative to the root,
without the suffix, joined with ``_``::

    injectable/
        mailer.py          -> "mailer"
        test/math.py       -> "test_math"
        _helpers.py        (skipped)

Files are imported at discovery time so a broken module fails the app at
startup. The factory itself (the ``injectable`` attribute) still runs
lazily, on first resolution.
"""

from __future__ import annotations

import importlib.util
import logging
from pathlib import Path
from typing import Any

from perch._internal.types import Factory
from perch.errors import ConfigurationError

logger = logging.getLogger("perch.injection")

# Attribute a module must define to be registered
INJECTABLE_ATTR = "injectable"


def discover_injectables(modules_dir: str | Path) -> dict[str, Factory]:
    """Walk *modules_dir* and return the ``name -> factory`` table.

    Raises ``FileNotFoundError`` if the directory does not exist and
    ``ConfigurationError`` if two files map to the same name.
    """
    root = Path(modules_dir).resolve()
    if not root.is_dir():
        raise FileNotFoundError(f"Modules directory not found: {root}")

    table: dict[str, Factory] = {}
    sources: dict[str, Path] = {}
    for file in _iter_module_files(root):
        factory = _load_injectable(file, root)
        if factory is None:
            continue
        name = module_name_for(file, root)
        if name in table:
            msg = (
                f"Injectable module name {name!r} is defined by both "
                f"{sources[name]} and {file}"
            )
            raise ConfigurationError(msg)
        table[name] = factory
        sources[name] = file

    logger.debug("Discovered %d injectable module(s) in %s", len(table), root)
    return table


def module_name_for(file: Path, root: Path) -> str:
    """Registry name for *file*: its relative path joined with ``_``."""
    relative = file.relative_to(root).with_suffix("")
    return "_".join(relative.parts)


def _iter_module_files(directory: Path) -> list[Path]:
    """Collect candidate ``.py`` files, depth-first, in sorted order."""
    files: list[Path] = []
    for item in sorted(directory.iterdir()):
        if item.name.startswith(("_", ".")):
            continue
        if item.is_dir():
            files.extend(_iter_module_files(item))
        elif item.is_file() and item.suffix == ".py":
            files.append(item)
    return files


def _load_injectable(file: Path, root: Path) -> Any:
    """Import *file* and return its ``injectable`` attribute, or None."""
    module_name = f"_perch_injectable_{module_name_for(file, root)}"
    spec = importlib.util.spec_from_file_location(module_name, file)
    if spec is None or spec.loader is None:
        return None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return getattr(module, INJECTABLE_ATTR, None)
