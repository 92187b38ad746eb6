"""Exception hierarchy shared by the model builder, overlay and loader."""

# pipelint:domain=core

from __future__ import annotations

from enum import Enum


class PipelintError(Exception):
    """Base class for every error raised by pipelint."""


class ModelErrorKind(str, Enum):
    """Structural problems that prevent a Pipeline from being built."""

    DUPLICATE_NAME = "DuplicateName"
    UNRESOLVED_REFERENCE = "UnresolvedReference"
    CYCLE_DETECTED = "CycleDetected"
    INVALID_STRUCTURE = "InvalidStructure"


class ModelError(PipelintError, ValueError):
    """Raised when a parsed pipeline tree violates a structural invariant.

    ``location`` is a dotted path into the tree (``stages[1].jobs[0]``).
    For :attr:`ModelErrorKind.CYCLE_DETECTED`, ``cycle`` holds the members
    of the detected cycle in traversal order.
    """

    def __init__(
        self,
        kind: ModelErrorKind,
        location: str,
        message: str,
        *,
        cycle: tuple[str, ...] = (),
    ) -> None:
        super().__init__(f"{kind.value} at {location}: {message}")
        self.kind = kind
        self.location = location
        self.message = message
        self.cycle = cycle


class OverlayError(PipelintError, ValueError):
    """Raised when an overlay document is malformed."""


class PipelineLoadError(PipelintError):
    """Raised when a pipeline file cannot be read or parsed as YAML."""
