"""Application configuration.

AppConfig is a frozen dataclass — immutable after creation, IDE-autocompletable,
no string-key dict lookups.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any

from perch.errors import ConfigurationError

_TRUE_VALUES = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES = frozenset({"0", "false", "no", "off", ""})


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Application configuration. Immutable after creation.

    All fields have sensible defaults. Override what you need::

        config = AppConfig(debug=True, port=3000, routes_dir="routes")
    """

    # Server
    host: str = "127.0.0.1"
    port: int = 8000
    debug: bool = False
    reload: bool = False
    log_level: str = "info"

    # Filesystem conventions (None disables discovery)
    routes_dir: str | Path | None = None
    modules_dir: str | Path | None = None

    # Resolve every injectable module during lifespan startup instead of
    # on first use
    eager_modules: bool = False

    # Limits
    max_content_length: int = 16 * 1024 * 1024  # 16 MB

    @classmethod
    def from_env(
        cls,
        prefix: str = "PERCH_",
        environ: Mapping[str, str] | None = None,
    ) -> AppConfig:
        """Build a config from environment variables.

        Each field maps to ``{prefix}{FIELD_NAME}`` (``PERCH_PORT``,
        ``PERCH_EAGER_MODULES``...). Values are coerced to the type of the
        field's default. Unset variables keep the default.

        Raises ``ConfigurationError`` for values that cannot be coerced.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, Any] = {}
        for f in fields(cls):
            raw = env.get(f"{prefix}{f.name.upper()}")
            if raw is None:
                continue
            overrides[f.name] = _coerce_env(f.name, raw, f.default)
        return cls(**overrides)


def _coerce_env(name: str, raw: str, default: Any) -> Any:
    """Coerce an environment string to the type of *default*."""
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        msg = f"Invalid boolean for {name}: {raw!r}"
        raise ConfigurationError(msg)
    if isinstance(default, int):
        try:
            return int(raw)
        except ValueError:
            msg = f"Invalid integer for {name}: {raw!r}"
            raise ConfigurationError(msg) from None
    if default is None:
        # Optional path settings: an empty string disables them
        return raw or None
    return raw
