# pipelint:domain=engine
"""Evaluation report and its output formatters."""

from __future__ import annotations

import io
import json
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING

from pipelint.rules.base import Severity

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping

    from pipelint.rules.base import Finding


def count_by_severity(findings: Iterable[Finding]) -> Mapping[Severity, int]:
    """Count findings per severity; every severity is present, possibly with 0."""
    counts = dict.fromkeys(Severity, 0)
    for finding in findings:
        counts[finding.severity] += 1
    return MappingProxyType(counts)


@dataclass(frozen=True)
class Report:
    """Ordered findings of one evaluation run.

    ``incomplete`` is True when the run was cancelled before every rule ran;
    callers must check it before treating an empty report as clean.
    """

    findings: tuple[Finding, ...] = ()
    summary_counts: Mapping[Severity, int] = field(
        default_factory=lambda: count_by_severity(())
    )
    incomplete: bool = False
    rules_evaluated: int = 0

    @property
    def error_count(self) -> int:
        return self.summary_counts[Severity.ERROR]

    @property
    def warning_count(self) -> int:
        return self.summary_counts[Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return self.error_count > 0

    def to_dict(self) -> dict[str, object]:
        return {
            "findings": [
                {
                    "rule_id": f.rule_id,
                    "severity": f.severity.label,
                    "location": {
                        "stage_index": f.location.stage_index,
                        "job_index": f.location.job_index,
                        "step_index": f.location.step_index,
                        "stage_path": f.location.stage_path,
                        "job_path": f.location.job_path,
                        "step_path": f.location.step_path,
                    },
                    "message": f.message,
                }
                for f in self.findings
            ],
            "summary": {s.label: self.summary_counts[s] for s in Severity},
            "incomplete": self.incomplete,
            "rules_evaluated": self.rules_evaluated,
        }


# ---------------------------------------------------------------------------
# Formatters
# ---------------------------------------------------------------------------

_SEVERITY_STYLE = {
    Severity.ERROR: ("✗", "bold red"),
    Severity.WARNING: ("!", "yellow"),
    Severity.INFO: ("i", "cyan"),
}


def format_rich(report: Report, *, source: str | None = None, width: int = 100) -> str:
    """Render a report for a terminal.

    Example output::

        build.yml
        ! TaskVersionPinned  Build/Compile/steps[0]
          Task 'NodeTool' is not pinned to a version; use 'NodeTool@<major>'

        1 finding: 0 errors, 1 warning, 0 info (13 rules evaluated)
    """
    from rich.console import Console
    from rich.text import Text

    buf = io.StringIO()
    console = Console(file=buf, force_terminal=False, width=width, highlight=False)

    if source is not None:
        console.print(Text(source, style="bold"))

    for finding in report.findings:
        marker, style = _SEVERITY_STYLE[finding.severity]
        line = Text()
        line.append(f"{marker} ", style=style)
        line.append(finding.rule_id, style="bold")
        line.append(f"  {finding.location.describe()}", style="dim")
        console.print(line)
        console.print(Text(f"  {finding.message}"))

    counts = report.summary_counts
    total = len(report.findings)
    noun = "finding" if total == 1 else "findings"
    summary = (
        f"{total} {noun}: {counts[Severity.ERROR]} errors, "
        f"{counts[Severity.WARNING]} warnings, {counts[Severity.INFO]} info "
        f"({report.rules_evaluated} rules evaluated)"
    )
    if report.findings:
        console.print()
    if total == 0:
        console.print(Text(f"✓ No findings ({report.rules_evaluated} rules evaluated)"))
    else:
        console.print(Text(summary))
    if report.incomplete:
        console.print(Text("Evaluation was cancelled; the report is incomplete.", style="yellow"))

    return buf.getvalue().rstrip("\n")


def format_json(report: Report, *, source: str | None = None) -> str:
    """Format a report as a JSON document (``findings``, ``summary``, ``incomplete``)."""
    data = report.to_dict()
    if source is not None:
        data = {"source": source, **data}
    return json.dumps(data, indent=2)


def format_json_files(reports: Iterable[tuple[str, Report]]) -> str:
    """Format several reports as one document: ``{"files": [{"source": ..., ...}]}``."""
    files = [{"source": source, **report.to_dict()} for source, report in reports]
    return json.dumps({"files": files}, indent=2)


def format_porcelain(report: Report, *, source: str | None = None) -> str:
    """One line per finding: ``[source:]rule_id:severity:stage:job:step:message``.

    Unset location parts are empty strings.  Returns ``""`` for an empty report.
    """
    lines: list[str] = []
    for f in report.findings:
        loc = f.location
        fields = [
            f.rule_id,
            f.severity.label,
            loc.stage_path or "",
            loc.job_path or "",
            "" if loc.step_index is None else str(loc.step_index),
            f.message,
        ]
        if source is not None:
            fields.insert(0, source)
        lines.append(":".join(fields))
    return "\n".join(lines)
