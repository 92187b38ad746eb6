"""Shared test fixtures for pipelint."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path


@pytest.fixture()
def write_pipeline(tmp_path: Path) -> Callable[..., Path]:
    """Write YAML text to ``<tmp_path>/<name>`` and return the path."""

    def _write(text: str, name: str = "azure-pipelines.yml") -> Path:
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path

    return _write
