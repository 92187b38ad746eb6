# pipelint:domain=rules
"""Rule capability set, severities, categories, and the Finding/Location records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import TYPE_CHECKING, ClassVar, Protocol, runtime_checkable

if TYPE_CHECKING:
    from collections.abc import Iterator

    from pipelint.engine.overlay import Overlay
    from pipelint.model.document import Job, Pipeline, Stage, Step

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class Severity(IntEnum):
    """Severity levels, ordered so that ``ERROR > WARNING > INFO``."""

    INFO = 0
    WARNING = 1
    ERROR = 2

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def parse(cls, value: str) -> Severity:
        """Parse ``info`` / ``warning`` (or ``warn``) / ``error``, case-insensitively."""
        key = str(value).strip().upper()
        if key == "WARN":
            key = "WARNING"
        try:
            return cls[key]
        except KeyError:
            msg = f"invalid severity '{value}', must be one of {[s.label for s in cls]}"
            raise ValueError(msg) from None


class Category(str, Enum):
    STRUCTURE = "structure"
    SECURITY = "security"
    PERFORMANCE = "performance"
    TESTING = "testing"
    DEPLOYMENT = "deployment"


# ---------------------------------------------------------------------------
# Findings
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Location:
    """Where in the pipeline a finding applies.

    Indices are ``None`` above the finding's scope: a job-level finding has
    ``step_index=None``, a pipeline-level finding has all three unset.
    """

    stage_index: int | None = None
    job_index: int | None = None
    step_index: int | None = None
    stage_path: str | None = None
    job_path: str | None = None
    step_path: str | None = None

    def sort_key(self) -> tuple[int, int, int]:
        """Ordering key; unset indices sort before any concrete index."""
        return (
            -1 if self.stage_index is None else self.stage_index,
            -1 if self.job_index is None else self.job_index,
            -1 if self.step_index is None else self.step_index,
        )

    def describe(self) -> str:
        parts = [p for p in (self.stage_path, self.job_path, self.step_path) if p is not None]
        return "/".join(parts) if parts else "<pipeline>"


PIPELINE_LOCATION = Location()


@dataclass(frozen=True)
class Finding:
    """A single rule violation or advisory."""

    rule_id: str
    severity: Severity
    location: Location
    message: str


# ---------------------------------------------------------------------------
# Rule capability set
# ---------------------------------------------------------------------------


@runtime_checkable
class Rule(Protocol):
    """Protocol every rule satisfies so the engine can treat rules uniformly."""

    id: str
    category: Category
    default_severity: Severity
    description: str

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]: ...


class BaseRule:
    """Convenience base for built-in rules.

    Subclasses set the class attributes and implement :meth:`evaluate`.
    Rules hold no per-run state; one instance is shared by every evaluation.
    """

    id: ClassVar[str]
    category: ClassVar[Category]
    default_severity: ClassVar[Severity]
    description: ClassVar[str] = ""

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        raise NotImplementedError

    def finding(self, location: Location, message: str) -> Finding:
        return Finding(
            rule_id=self.id,
            severity=self.default_severity,
            location=location,
            message=message,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


# ---------------------------------------------------------------------------
# Traversal helpers
# ---------------------------------------------------------------------------


def stage_location(stage_index: int, stage: Stage) -> Location:
    return Location(stage_index=stage_index, stage_path=stage.name)


def job_location(stage_index: int, stage: Stage, job_index: int, job: Job) -> Location:
    return Location(
        stage_index=stage_index,
        job_index=job_index,
        stage_path=stage.name,
        job_path=job.name,
    )


def step_location(
    stage_index: int, stage: Stage, job_index: int, job: Job, step_index: int
) -> Location:
    return Location(
        stage_index=stage_index,
        job_index=job_index,
        step_index=step_index,
        stage_path=stage.name,
        job_path=job.name,
        step_path=f"steps[{step_index}]",
    )


def iter_jobs(pipeline: Pipeline) -> Iterator[tuple[int, Stage, int, Job]]:
    for stage_index, stage in enumerate(pipeline.stages):
        for job_index, job in enumerate(stage.jobs):
            yield stage_index, stage, job_index, job


def iter_steps(pipeline: Pipeline) -> Iterator[tuple[Location, Step]]:
    """Yield every step with its location, in document order."""
    for stage_index, stage, job_index, job in iter_jobs(pipeline):
        for step_index, step in enumerate(job.steps):
            yield step_location(stage_index, stage, job_index, job, step_index), step
