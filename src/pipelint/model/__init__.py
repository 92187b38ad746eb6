"""Model domain: immutable pipeline document and the builder that validates it."""

# pipelint:domain=model

from pipelint.model.builder import build
from pipelint.model.document import (
    EnvironmentRef,
    EnvValue,
    Job,
    LockBehavior,
    Pipeline,
    Pool,
    PoolKind,
    ResourceRef,
    Stage,
    Step,
    StepKind,
    Trigger,
    VariableRef,
)

__all__ = [
    "EnvValue",
    "EnvironmentRef",
    "Job",
    "LockBehavior",
    "Pipeline",
    "Pool",
    "PoolKind",
    "ResourceRef",
    "Stage",
    "Step",
    "StepKind",
    "Trigger",
    "VariableRef",
    "build",
]
