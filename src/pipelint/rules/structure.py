# pipelint:domain=rules
"""Structure rules: task pinning, step naming, agent pools."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pipelint.model.document import StepKind
from pipelint.rules.base import BaseRule, Category, Severity, iter_jobs, iter_steps, job_location

if TYPE_CHECKING:
    from pipelint.engine.overlay import Overlay
    from pipelint.model.document import Pipeline
    from pipelint.rules.base import Finding


class TaskVersionPinned(BaseRule):
    id = "TaskVersionPinned"
    category = Category.STRUCTURE
    default_severity = Severity.WARNING
    description = "Task steps must reference an explicit major version (Name@N)."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            if step.kind is StepKind.TASK and step.task_version is None:
                findings.append(
                    self.finding(
                        location,
                        f"Task '{step.task_name}' is not pinned to a version; "
                        f"use '{step.task_name}@<major>'",
                    )
                )
        return findings


class DisplayNamePresent(BaseRule):
    id = "DisplayNamePresent"
    category = Category.STRUCTURE
    default_severity = Severity.INFO
    description = "Task and script steps should carry a displayName for readable logs."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            if step.kind is StepKind.CHECKOUT or step.display_name:
                continue
            findings.append(self.finding(location, f"Step '{step.label}' has no displayName"))
        return findings


class PoolDeclared(BaseRule):
    id = "PoolDeclared"
    category = Category.STRUCTURE
    default_severity = Severity.WARNING
    description = "Every job must run on an explicitly declared agent pool."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        return [
            self.finding(
                job_location(stage_index, stage, job_index, job),
                f"Job '{job.name}' does not declare a pool "
                "(set 'pool' on the job, its stage, or the pipeline)",
            )
            for stage_index, stage, job_index, job in iter_jobs(pipeline)
            if job.pool is None
        ]
