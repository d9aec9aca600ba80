"""Tests for perch.injection.discovery — building the module table from disk."""

from pathlib import Path

import pytest

from perch.errors import ConfigurationError
from perch.injection import ModuleRegistry, discover_injectables


def _write(root: Path, relative: str, source: str) -> None:
    path = root / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(source, encoding="utf-8")


class TestDiscoverInjectables:
    def test_names_follow_relative_path(self, tmp_path: Path) -> None:
        _write(tmp_path, "mailer.py", "class Mailer: ...\ninjectable = Mailer\n")
        _write(tmp_path, "test/math.py", "injectable = lambda: {'add': 1}\n")
        table = discover_injectables(tmp_path)
        assert sorted(table) == ["mailer", "test_math"]

    def test_modules_without_injectable_skipped(self, tmp_path: Path) -> None:
        _write(tmp_path, "helpers.py", "VALUE = 1\n")
        assert discover_injectables(tmp_path) == {}

    def test_private_files_and_dirs_skipped(self, tmp_path: Path) -> None:
        _write(tmp_path, "_private.py", "injectable = object\n")
        _write(tmp_path, "_internal/thing.py", "injectable = object\n")
        _write(tmp_path, ".hidden/thing.py", "injectable = object\n")
        _write(tmp_path, "notes.txt", "injectable = object\n")
        assert discover_injectables(tmp_path) == {}

    def test_name_collision(self, tmp_path: Path) -> None:
        _write(tmp_path, "a_b.py", "injectable = object\n")
        _write(tmp_path, "a/b.py", "injectable = object\n")
        with pytest.raises(ConfigurationError, match="'a_b'"):
            discover_injectables(tmp_path)

    def test_missing_directory(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            discover_injectables(tmp_path / "nope")

    async def test_factories_resolve_lazily(self, tmp_path: Path) -> None:
        _write(
            tmp_path,
            "counter.py",
            "CALLS = []\n"
            "def injectable():\n"
            "    CALLS.append(1)\n"
            "    return {'calls': len(CALLS)}\n",
        )
        registry = ModuleRegistry(discover_injectables(tmp_path))
        assert not registry.is_resolved("counter")
        assert await registry.resolve("counter") == {"calls": 1}
        assert await registry.resolve("counter") == {"calls": 1}
