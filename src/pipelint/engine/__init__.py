"""Engine domain: overlay, evaluation engine, report and formatters."""

# pipelint:domain=engine

from pipelint.engine.evaluator import CancelToken, evaluate, run_rule
from pipelint.engine.overlay import Overlay, load_overlay, overlay_from_mapping
from pipelint.engine.report import (
    Report,
    format_json,
    format_json_files,
    format_porcelain,
    format_rich,
)

__all__ = [
    "CancelToken",
    "Overlay",
    "Report",
    "evaluate",
    "format_json",
    "format_json_files",
    "format_porcelain",
    "format_rich",
    "load_overlay",
    "overlay_from_mapping",
    "run_rule",
]
