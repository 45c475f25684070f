"""Shared fixtures for testplan tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

MakeFiles = Callable[..., Path]


def _make_files(root: Path, rel_paths: tuple[str, ...]) -> Path:
    """Create empty files (with parent directories) under *root*."""
    for rel in rel_paths:
        f = root / rel
        f.parent.mkdir(parents=True, exist_ok=True)
        f.touch()
    return root


@pytest.fixture()
def make_files(tmp_path: Path) -> MakeFiles:
    """Return a helper that creates empty files under ``tmp_path``."""

    def _factory(*rel_paths: str) -> Path:
        return _make_files(tmp_path, rel_paths)

    return _factory


@pytest.fixture()
def scenario_project(make_files: MakeFiles) -> Path:
    """Project with two tests under ``a/`` and one under ``b/``."""
    return make_files("a/x.test.ts", "a/y.test.ts", "b/z.test.ts")
