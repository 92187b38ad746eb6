# pipelint:domain=model
"""In-memory document model of a pipeline definition.

Every type here is frozen: a Pipeline is built once per run by
:func:`pipelint.model.builder.build` and only read afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Mapping

_EMPTY: Mapping[str, object] = MappingProxyType({})

# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------


class LockBehavior(str, Enum):
    """Exclusive-lock behaviour of a stage."""

    NONE = "none"
    SEQUENTIAL = "sequential"
    RUN_ONCE = "runOnce"


class StepKind(str, Enum):
    TASK = "task"
    SCRIPT = "script"
    CHECKOUT = "checkout"


class PoolKind(str, Enum):
    HOSTED = "hosted"
    SELF_HOSTED = "self-hosted"


# ---------------------------------------------------------------------------
# Leaf types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Trigger:
    """A CI, PR or scheduled trigger with its branch filter."""

    kind: str  # "ci" | "pr" | "schedule"
    branches: tuple[str, ...] = ()
    enabled: bool = True


@dataclass(frozen=True)
class VariableRef:
    """A pipeline variable or a linked variable group."""

    name: str
    is_secret: bool = False
    is_group: bool = False


@dataclass(frozen=True)
class ResourceRef:
    """An entry under ``resources:`` (environment, repository, pipeline, ...)."""

    kind: str
    name: str
    approvals: tuple[str, ...] = ()
    checks: tuple[str, ...] = ()

    @property
    def is_protected(self) -> bool:
        return bool(self.approvals or self.checks)


@dataclass(frozen=True)
class EnvironmentRef:
    """Deployment target of a deployment job."""

    name: str
    approvals: tuple[str, ...] = ()


@dataclass(frozen=True)
class Pool:
    kind: PoolKind
    tag: str


@dataclass(frozen=True)
class EnvValue:
    """Value of a ``Step.env`` entry.

    ``is_secret_ref`` is True when the value is a ``$(name)`` macro that
    points at a secret variable.
    """

    value: str
    is_secret_ref: bool = False


# ---------------------------------------------------------------------------
# Tree types
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Step:
    """A single step of a job.

    ``task_version`` is ``None`` when a task was referenced without ``@N``.
    ``environment`` is the ``environment`` input of a deploy task, if any.
    """

    kind: StepKind
    task_name: str | None = None
    task_version: str | None = None
    script: str | None = None
    checkout: str | None = None
    fetch_depth: int | None = None
    display_name: str | None = None
    env: Mapping[str, EnvValue] = field(default_factory=lambda: _EMPTY)  # type: ignore[arg-type]
    inputs: Mapping[str, object] = field(default_factory=lambda: _EMPTY)
    environment: str | None = None

    @property
    def label(self) -> str:
        """Short human-readable identification of the step."""
        if self.display_name:
            return self.display_name
        if self.kind is StepKind.TASK:
            if self.task_version is None:
                return str(self.task_name)
            return f"{self.task_name}@{self.task_version}"
        if self.kind is StepKind.CHECKOUT:
            return f"checkout: {self.checkout}"
        first_line = (self.script or "").strip().splitlines()
        return first_line[0] if first_line else "script"

    def input_value(self, name: str) -> object | None:
        """Case-insensitive lookup of a task input."""
        lowered = name.lower()
        for key, value in self.inputs.items():
            if key.lower() == lowered:
                return value
        return None


@dataclass(frozen=True)
class Job:
    name: str
    steps: tuple[Step, ...] = ()
    pool: Pool | None = None
    depends_on: frozenset[str] = frozenset()
    timeout_in_minutes: int | None = None
    environment: EnvironmentRef | None = None
    approvals: tuple[str, ...] = ()


@dataclass(frozen=True)
class Stage:
    name: str
    jobs: tuple[Job, ...] = ()
    depends_on: frozenset[str] = frozenset()
    condition: str | None = None
    lock_behavior: LockBehavior = LockBehavior.NONE
    approvals: tuple[str, ...] = ()


@dataclass(frozen=True)
class Pipeline:
    """Root of the document model."""

    name: str
    stages: tuple[Stage, ...] = ()
    triggers: tuple[Trigger, ...] = ()
    variables: tuple[VariableRef, ...] = ()
    resources: tuple[ResourceRef, ...] = ()

    def secret_names(self) -> tuple[str, ...]:
        """Names of secret variables and secret variable groups, in declaration order."""
        return tuple(v.name for v in self.variables if v.is_secret)

    def environment_resource(self, name: str) -> ResourceRef | None:
        """Return the ``resources.environments`` entry called *name* (case-insensitive)."""
        lowered = name.lower()
        for resource in self.resources:
            if resource.kind == "environment" and resource.name.lower() == lowered:
                return resource
        return None
