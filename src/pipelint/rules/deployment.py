# pipelint:domain=rules
"""Deployment rules: production approvals and exclusive locks."""

from __future__ import annotations

from typing import TYPE_CHECKING

from pipelint.model.document import LockBehavior
from pipelint.rules.base import (
    BaseRule,
    Category,
    Severity,
    job_location,
    stage_location,
    step_location,
)

if TYPE_CHECKING:
    from pipelint.engine.overlay import Overlay
    from pipelint.model.document import Job, Pipeline, Stage
    from pipelint.rules.base import Finding

PRODUCTION_ENVIRONMENT = "production"


def is_production(environment: str | None) -> bool:
    """True for ``production`` in any case, including ``production.<resource>`` targets."""
    if not environment:
        return False
    return environment.split(".", 1)[0].strip().lower() == PRODUCTION_ENVIRONMENT


def _is_approved(pipeline: Pipeline, stage: Stage, job: Job, environment: str) -> bool:
    if stage.approvals or job.approvals:
        return True
    env = job.environment
    if env is not None and env.approvals and is_production(env.name):
        return True
    resource = pipeline.environment_resource(environment.split(".", 1)[0])
    return resource is not None and resource.is_protected


def deploys_to_production(stage: Stage) -> bool:
    for job in stage.jobs:
        if job.environment is not None and is_production(job.environment.name):
            return True
        if any(is_production(step.environment) for step in job.steps):
            return True
    return False


class ApprovalRequiredForProd(BaseRule):
    """Production targets need an approval on the stage, job, environment or resource.

    A deployment job targeting production is reported once at the job;
    steps are checked individually only in jobs that do not themselves
    target production.
    """

    id = "ApprovalRequiredForProd"
    category = Category.DEPLOYMENT
    default_severity = Severity.ERROR
    description = "Deployments to production must be protected by an approval or check."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for stage_index, stage in enumerate(pipeline.stages):
            for job_index, job in enumerate(stage.jobs):
                if job.environment is not None and is_production(job.environment.name):
                    if not _is_approved(pipeline, stage, job, job.environment.name):
                        findings.append(
                            self.finding(
                                job_location(stage_index, stage, job_index, job),
                                f"Job '{job.name}' deploys to '{job.environment.name}' "
                                "without an approval or protection check",
                            )
                        )
                    continue
                for step_index, step in enumerate(job.steps):
                    environment = step.environment
                    if environment is None or not is_production(environment):
                        continue
                    if not _is_approved(pipeline, stage, job, environment):
                        findings.append(
                            self.finding(
                                step_location(stage_index, stage, job_index, job, step_index),
                                f"Step '{step.label}' targets '{environment}' "
                                "without an approval or protection check",
                            )
                        )
        return findings


class ProdStageLocked(BaseRule):
    id = "ProdStageLocked"
    category = Category.DEPLOYMENT
    default_severity = Severity.INFO
    description = "Stages deploying to production should serialize runs with lockBehavior."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        return [
            self.finding(
                stage_location(stage_index, stage),
                f"Stage '{stage.name}' deploys to production without an exclusive "
                "lockBehavior (sequential or runOnce)",
            )
            for stage_index, stage in enumerate(pipeline.stages)
            if stage.lock_behavior is LockBehavior.NONE and deploys_to_production(stage)
        ]
