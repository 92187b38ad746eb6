# pipelint:domain=io
"""Lint orchestrator: resolve the overlay, load pipeline files, evaluate each one."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from pipelint.engine.evaluator import evaluate
from pipelint.engine.overlay import DEFAULT_OVERLAY_FILENAME, Overlay, load_overlay
from pipelint.errors import ModelError, PipelineLoadError, PipelintError
from pipelint.loader import load_pipeline
from pipelint.rules.base import Severity
from pipelint.rules.registry import DEFAULT_REGISTRY

if TYPE_CHECKING:
    from collections.abc import Iterable

    from pipelint.engine.evaluator import CancelToken
    from pipelint.engine.report import Report
    from pipelint.rules.registry import RuleRegistry

logger = logging.getLogger(__name__)


class LintError(PipelintError):
    """Raised when a pipeline file or the overlay cannot be used."""


@dataclass
class FileResult:
    """Report for one pipeline file."""

    path: Path
    report: Report


@dataclass
class LintResult:
    """Result of a lint run over one or more files."""

    files: list[FileResult] = field(default_factory=list)
    elapsed_ms: float = 0.0

    def count(self, severity: Severity) -> int:
        return sum(f.report.summary_counts[severity] for f in self.files)

    @property
    def incomplete(self) -> bool:
        return any(f.report.incomplete for f in self.files)


def resolve_overlay(config_path: Path | None, cwd: Path | None = None) -> Overlay:
    """Load *config_path*, else ``.pipelint.yml`` in *cwd* if present, else an empty overlay."""
    if config_path is None:
        candidate = (cwd or Path.cwd()) / DEFAULT_OVERLAY_FILENAME
        if not candidate.is_file():
            return Overlay()
        config_path = candidate
    logger.debug("Using overlay %s", config_path)
    return load_overlay(config_path)


def lint(
    paths: Iterable[Path],
    *,
    overlay: Overlay | None = None,
    registry: RuleRegistry = DEFAULT_REGISTRY,
    max_workers: int = 1,
    cancel: CancelToken | None = None,
) -> LintResult:
    """Load and evaluate every pipeline in *paths*, in the given order.

    Raises
    ------
    LintError
        When a file cannot be read or its pipeline is structurally invalid.
        No partial result is returned.
    """
    start = time.monotonic()
    overlay = overlay if overlay is not None else Overlay()
    for rule_id in overlay.unknown_rule_ids(registry):
        logger.warning("Overlay references unknown rule '%s'", rule_id)

    result = LintResult()
    for path in paths:
        try:
            pipeline = load_pipeline(path)
        except PipelineLoadError as exc:
            raise LintError(str(exc)) from exc
        except ModelError as exc:
            msg = f"{path}: {exc}"
            raise LintError(msg) from exc
        report = evaluate(pipeline, registry, overlay, cancel=cancel, max_workers=max_workers)
        result.files.append(FileResult(path=path, report=report))

    result.elapsed_ms = (time.monotonic() - start) * 1000
    return result
