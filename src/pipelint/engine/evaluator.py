# pipelint:domain=engine
"""Evaluation engine: run every enabled rule against a pipeline and build a Report."""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from pipelint.engine.overlay import Overlay
from pipelint.engine.report import Report, count_by_severity
from pipelint.rules.base import PIPELINE_LOCATION, Finding, Severity

if TYPE_CHECKING:
    from concurrent.futures import Future

    from pipelint.model.document import Pipeline
    from pipelint.rules.base import Rule
    from pipelint.rules.registry import RuleRegistry

logger = logging.getLogger(__name__)


class CancelToken:
    """Cancellation signal that another thread may raise during a run."""

    __slots__ = ("_event",)

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


# ---------------------------------------------------------------------------
# Single rule execution
# ---------------------------------------------------------------------------


def run_rule(rule: Rule, pipeline: Pipeline, overlay: Overlay) -> list[Finding]:
    """Run one rule, isolating its faults and applying the severity override.

    An exception raised by the rule becomes a single pipeline-level
    ``ERROR`` finding, which a severity override for the rule also replaces.
    """
    try:
        findings = list(rule.evaluate(pipeline, overlay))
    except Exception as exc:  # noqa: BLE001
        logger.warning(
            "Rule %s failed: %s", rule.id, exc, exc_info=logger.isEnabledFor(logging.DEBUG)
        )
        findings = [
            Finding(
                rule_id=rule.id,
                severity=Severity.ERROR,
                location=PIPELINE_LOCATION,
                message=f"rule evaluation failed: {exc}",
            )
        ]

    override = overlay.severity_for(rule.id)
    if override is not None:
        findings = [
            f if f.severity is override else dataclasses.replace(f, severity=override)
            for f in findings
        ]
    return findings


def _finding_sort_key(finding: Finding) -> tuple[int, int, int, str]:
    return (*finding.location.sort_key(), finding.rule_id)


# ---------------------------------------------------------------------------
# Schedulers
# ---------------------------------------------------------------------------


def _run_sequential(
    rules: list[Rule],
    pipeline: Pipeline,
    overlay: Overlay,
    cancel: CancelToken | None,
) -> list[list[Finding] | None]:
    results: list[list[Finding] | None] = [None] * len(rules)
    for idx, rule in enumerate(rules):
        if cancel is not None and cancel.cancelled:
            break
        results[idx] = run_rule(rule, pipeline, overlay)
    return results


def _run_parallel(
    rules: list[Rule],
    pipeline: Pipeline,
    overlay: Overlay,
    cancel: CancelToken | None,
    max_workers: int,
) -> list[list[Finding] | None]:
    """Distribute rules over a thread pool, keeping at most *max_workers* in flight.

    Rules are submitted in registration order and only while the run is not
    cancelled, so a cancellation lets started rules finish and never starts
    the rest.  Results are slotted back by registration index.
    """
    results: list[list[Finding] | None] = [None] * len(rules)
    pending = iter(enumerate(rules))
    in_flight: dict[Future[list[Finding]], int] = {}

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="pipelint") as pool:
        while True:
            while len(in_flight) < max_workers and not (cancel is not None and cancel.cancelled):
                nxt = next(pending, None)
                if nxt is None:
                    break
                idx, rule = nxt
                in_flight[pool.submit(run_rule, rule, pipeline, overlay)] = idx
            if not in_flight:
                break
            done, _ = wait(list(in_flight), return_when=FIRST_COMPLETED)
            for fut in done:
                results[in_flight.pop(fut)] = fut.result()
    return results


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def evaluate(
    pipeline: Pipeline,
    registry: RuleRegistry,
    overlay: Overlay | None = None,
    *,
    cancel: CancelToken | None = None,
    max_workers: int = 1,
) -> Report:
    """Evaluate every enabled rule of *registry* against *pipeline*.

    Parameters
    ----------
    pipeline:
        A model produced by :func:`pipelint.model.build`.
    registry:
        Rules to run, in registration order.
    overlay:
        Disabled rules, severity overrides and thresholds; an empty overlay
        when *None*.
    cancel:
        Optional token; once cancelled no further rules start and the
        report comes back with ``incomplete=True``.
    max_workers:
        Values above 1 evaluate rules on a thread pool.  The report is
        identical to a sequential run.

    Returns
    -------
    Report
        Findings sorted by ``(stage, job, step, rule_id)``.
    """
    start = time.monotonic()
    overlay = overlay if overlay is not None else Overlay()
    rules = [rule for rule in registry if not overlay.is_disabled(rule.id)]

    if max_workers > 1 and len(rules) > 1:
        results = _run_parallel(rules, pipeline, overlay, cancel, max_workers)
    else:
        results = _run_sequential(rules, pipeline, overlay, cancel)

    findings: list[Finding] = []
    evaluated = 0
    for rule_findings in results:
        if rule_findings is None:
            continue
        evaluated += 1
        findings.extend(rule_findings)
    findings.sort(key=_finding_sort_key)

    incomplete = evaluated < len(rules)
    if incomplete:
        logger.info("Evaluation cancelled after %d of %d rules", evaluated, len(rules))

    logger.debug(
        "Evaluated %d rules against %r in %.1fms: %d findings",
        evaluated,
        pipeline.name,
        (time.monotonic() - start) * 1000,
        len(findings),
    )
    return Report(
        findings=tuple(findings),
        summary_counts=count_by_severity(findings),
        incomplete=incomplete,
        rules_evaluated=evaluated,
    )
