# pipelint:domain=rules
"""Performance rules: job timeouts, cache keys, checkout depth."""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from pipelint.model.document import StepKind
from pipelint.rules.base import BaseRule, Category, Severity, iter_jobs, iter_steps, job_location

if TYPE_CHECKING:
    from pipelint.engine.overlay import Overlay
    from pipelint.model.document import Pipeline, Step
    from pipelint.rules.base import Finding

DEFAULT_MAX_TIMEOUT_MINUTES = 360.0
CACHE_TASKS: frozenset[str] = frozenset({"cache", "cachebeta"})

_FILE_SEGMENT_RE = re.compile(r"(/|\*|\.[A-Za-z0-9]+$)")


class TimeoutConfigured(BaseRule):
    id = "TimeoutConfigured"
    category = Category.PERFORMANCE
    default_severity = Severity.WARNING
    description = "Jobs must set timeoutInMinutes so hung builds release their agent."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        return [
            self.finding(
                job_location(stage_index, stage, job_index, job),
                f"Job '{job.name}' has no timeoutInMinutes configured",
            )
            for stage_index, stage, job_index, job in iter_jobs(pipeline)
            if job.timeout_in_minutes is None
        ]


class TimeoutWithinLimit(BaseRule):
    """Flags unlimited (``0``) timeouts and timeouts above ``maxTimeoutMinutes``."""

    id = "TimeoutWithinLimit"
    category = Category.PERFORMANCE
    default_severity = Severity.WARNING
    description = "Job timeouts must be finite and at most the maxTimeoutMinutes threshold."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        limit = overlay.threshold("maxTimeoutMinutes", DEFAULT_MAX_TIMEOUT_MINUTES)
        findings: list[Finding] = []
        for stage_index, stage, job_index, job in iter_jobs(pipeline):
            timeout = job.timeout_in_minutes
            if timeout is None:
                continue
            location = job_location(stage_index, stage, job_index, job)
            if timeout == 0:
                findings.append(
                    self.finding(location, f"Job '{job.name}' disables its timeout (0 = unlimited)")
                )
            elif timeout > limit:
                findings.append(
                    self.finding(
                        location,
                        f"Job '{job.name}' timeout {timeout}m exceeds the {limit:g}m limit",
                    )
                )
        return findings


def key_hashes_files(key: str) -> bool:
    """Return True if a cache key has a segment derived from file contents.

    Keys are ``|``-separated.  Quoted segments are literal strings and
    ``$(...)`` segments are variables; ``hashFiles(...)`` calls and bare
    file paths or globs (hashed by the cache task) count as content hashes.
    """
    for raw_segment in key.split("|"):
        segment = raw_segment.strip()
        if not segment:
            continue
        if "hashfiles(" in segment.lower():
            return True
        if segment[0] in "\"'" or segment.startswith("$("):
            continue
        if _FILE_SEGMENT_RE.search(segment):
            return True
    return False


class CacheKeyHashed(BaseRule):
    id = "CacheKeyHashed"
    category = Category.PERFORMANCE
    default_severity = Severity.WARNING
    description = "Cache keys must include a hash of dependency files so caches invalidate."

    @staticmethod
    def _is_cache_task(step: Step) -> bool:
        return step.kind is StepKind.TASK and (step.task_name or "").lower() in CACHE_TASKS

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            if not self._is_cache_task(step):
                continue
            key = step.input_value("key")
            if not isinstance(key, str) or not key.strip():
                findings.append(self.finding(location, "Cache task has no 'key' input"))
            elif not key_hashes_files(key):
                findings.append(
                    self.finding(
                        location,
                        f"Cache key '{key.strip()}' does not hash any file contents; "
                        "add a lock file segment or hashFiles(...)",
                    )
                )
        return findings


class ShallowCheckout(BaseRule):
    id = "ShallowCheckout"
    category = Category.PERFORMANCE
    default_severity = Severity.INFO
    description = "Checkout steps should limit history with a non-zero fetchDepth."

    def evaluate(self, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
        findings: list[Finding] = []
        for location, step in iter_steps(pipeline):
            if step.kind is not StepKind.CHECKOUT or (step.checkout or "").lower() == "none":
                continue
            if step.fetch_depth is None:
                findings.append(
                    self.finding(location, f"Checkout of '{step.checkout}' sets no fetchDepth")
                )
            elif step.fetch_depth == 0:
                findings.append(
                    self.finding(
                        location,
                        f"Checkout of '{step.checkout}' uses fetchDepth 0 (full history)",
                    )
                )
        return findings
