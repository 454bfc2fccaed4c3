"""Test version information."""

from __future__ import annotations

import tomllib
from typing import TYPE_CHECKING

from sgfind import __version__

if TYPE_CHECKING:
    from pathlib import Path


def test_version_is_valid() -> None:
    """Version string follows semver format."""
    parts = __version__.split(".")
    assert len(parts) == 3
    assert all(part.isdigit() for part in parts)


def test_version_matches_pyproject(project_root: Path) -> None:
    """Version matches pyproject.toml."""
    with (project_root / "pyproject.toml").open("rb") as f:
        pyproject = tomllib.load(f)

    assert __version__ == pyproject["project"]["version"]
