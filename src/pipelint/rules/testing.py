# pipelint:domain=rules
"""Testing rules: published test results and coverage gates."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pipelint.model.document import StepKind
from pipelint.rules.base import BaseRule, Category, Severity, iter_jobs, iter_steps, step_location
from pipelint.rules.security import script_texts

if TYPE_CHECKING:
    from pipelint.engine.overlay import Overlay
    from pipelint.model.document import Pipeline, Step
    from pipelint.rules.base import Finding

DEFAULT_MIN_COVERAGE_PERCENT = 80.0
COVERAGE_INPUTS: tuple[str, ...] = (
    "minimumCoverage",
    "coverageThreshold",
    "failBelow",
    "threshold",
)

_TEST_COMMAND_RE = re.compile(
    r"\b(pytest|tox|jest|"
    r"npm\s+(?:run\s+)?test|yarn\s+test|dotnet\s+test|"
    r"mvn\b[^\n]*\b(?:test|verify)|gradlew?\b[^\n]*\btest|"
    r"go\s+test|cargo\s+test)\b",
    re.IGNORECASE,
)
_COV_FAIL_UNDER_RE = re.compile(r"--cov-fail-under[=\s]+(\d+(?:\.\d+)?)")


def _runs_tests(step: Step) -> bool:
    return any(_TEST_COMMAND_RE.search(text) for text in script_texts(step))


def _publishes_results(step: Step) -> bool:
    if step.kind is not StepKind.TASK:
        return False
    if (step.task_name or "").lower().startswith("publishtestresults"):
        return True
    return str(step.input_value("publishTestResults")).lower() == "true"


class TestResultsPublished(BaseRule):
    __test__ = False  # not a pytest test class

    id = "TestResultsPublished"
    category = Category.TESTING
    default_severity = Severity.WARNING
    description = "Jobs that run tests must publish their results with PublishTestResults."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for stage_index, stage, job_index, job in iter_jobs(pipeline):
            test_steps = [idx for idx, step in enumerate(job.steps) if _runs_tests(step)]
            if not test_steps or any(_publishes_results(step) for step in job.steps):
                continue
            findings.append(
                self.finding(
                    step_location(stage_index, stage, job_index, job, test_steps[0]),
                    f"Job '{job.name}' runs tests but never publishes test results",
                )
            )
        return findings


def coverage_minimum(step: Step) -> float | None:
    """The minimum coverage a step enforces, or None when it enforces none."""
    if step.kind is StepKind.TASK and "coverage" in (step.task_name or "").lower():
        for name in COVERAGE_INPUTS:
            value = step.input_value(name)
            if value is None:
                continue
            try:
                return float(str(value).rstrip("%"))
            except ValueError:
                continue
    for text in script_texts(step):
        match = _COV_FAIL_UNDER_RE.search(text)
        if match:
            return float(match.group(1))
    return None


class CoverageThreshold(BaseRule):
    id = "CoverageThreshold"
    category = Category.TESTING
    default_severity = Severity.WARNING
    description = "Coverage gates must require at least the minCoveragePercent threshold."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        required = overlay.threshold("minCoveragePercent", DEFAULT_MIN_COVERAGE_PERCENT)
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            minimum = coverage_minimum(step)
            if minimum is not None and minimum < required:
                findings.append(
                    self.finding(
                        location,
                        f"Coverage gate requires {minimum:g}%, below the {required:g}% minimum",
                    )
                )
        return findings
