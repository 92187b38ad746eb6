# pipelint:domain=io
"""Read pipeline YAML files into generic trees and pipeline models."""

from __future__ import annotations

from typing import TYPE_CHECKING

import yaml

from pipelint.errors import PipelineLoadError
from pipelint.model.builder import build

if TYPE_CHECKING:
    from pathlib import Path

    from pipelint.model.document import Pipeline


def load_tree(path: Path) -> object:
    """Parse *path* with ``yaml.safe_load``; an empty file yields ``{}``."""
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"{path}: cannot read pipeline file: {exc}"
        raise PipelineLoadError(msg) from exc
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        msg = f"{path}: invalid YAML: {exc}"
        raise PipelineLoadError(msg) from exc
    return {} if data is None else data


def load_pipeline(path: Path) -> Pipeline:
    """Load and build the pipeline defined in *path*.

    A file without a top-level ``name`` is named after its stem.

    Raises ``PipelineLoadError`` for unreadable files and ``ModelError`` for
    structurally invalid pipelines.
    """
    tree = load_tree(path)
    if isinstance(tree, dict) and "name" not in tree:
        tree = {"name": path.stem, **tree}
    return build(tree)
