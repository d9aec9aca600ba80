"""Locate the ``App`` a CLI command should act on."""

import importlib
import os
import sys

from perch.app import App


def resolve_app(import_string: str) -> App:
    """Import ``"package.module:attribute"`` and return the App it names.

    - The attribute defaults to ``app``; it may be dotted (``"main:api.app"``).
    - A callable that is not an App is taken as a factory and called.
    - The working directory is importable, as with ``python -m``.

    Raises ``ModuleNotFoundError``, ``AttributeError`` or ``TypeError``;
    the CLI reports all three the same way.
    """
    module_path, _, attr_path = import_string.partition(":")
    cwd = os.getcwd()
    if cwd not in sys.path:
        sys.path.insert(0, cwd)

    obj: object = importlib.import_module(module_path)
    for attr in (attr_path or "app").split("."):
        obj = getattr(obj, attr)

    if callable(obj) and not isinstance(obj, App):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"App factory {import_string!r} failed: {exc}"
            raise TypeError(msg) from exc

    if not isinstance(obj, App):
        msg = f"{import_string!r} is a {type(obj).__name__}, not a perch.App"
        raise TypeError(msg)
    return obj
