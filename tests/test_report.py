"""Tests for pipelint.engine.report: counts and the three output formats."""

from __future__ import annotations

import json

from pipelint.engine.report import (
    Report,
    count_by_severity,
    format_json,
    format_json_files,
    format_porcelain,
    format_rich,
)
from pipelint.rules.base import PIPELINE_LOCATION, Finding, Location, Severity

_STEP = Location(0, 1, 2, stage_path="Build", job_path="Compile", step_path="steps[2]")
_JOB = Location(0, 1, stage_path="Build", job_path="Compile")


def _report(*findings: Finding, incomplete: bool = False) -> Report:
    return Report(
        findings=findings,
        summary_counts=count_by_severity(findings),
        incomplete=incomplete,
        rules_evaluated=13,
    )


_WARN = Finding("TaskVersionPinned", Severity.WARNING, _STEP, "Task 'NodeTool' is not pinned")
_ERR = Finding("TimeoutConfigured", Severity.ERROR, _JOB, "Job 'Compile' has no timeout")


class TestCounts:
    def test_every_severity_present(self) -> None:
        counts = count_by_severity([])
        assert dict(counts) == {Severity.INFO: 0, Severity.WARNING: 0, Severity.ERROR: 0}

    def test_counts_and_properties(self) -> None:
        report = _report(_WARN, _ERR, _WARN)
        assert report.warning_count == 2
        assert report.error_count == 1
        assert report.has_errors

    def test_default_report_is_clean(self) -> None:
        report = Report()
        assert report.findings == ()
        assert not report.has_errors
        assert report.summary_counts[Severity.INFO] == 0


class TestFormatPorcelain:
    def test_one_line_per_finding(self) -> None:
        out = format_porcelain(_report(_ERR, _WARN))
        assert out.splitlines() == [
            "TimeoutConfigured:error:Build:Compile::Job 'Compile' has no timeout",
            "TaskVersionPinned:warning:Build:Compile:2:Task 'NodeTool' is not pinned",
        ]

    def test_source_prefix(self) -> None:
        out = format_porcelain(_report(_WARN), source="ci.yml")
        assert out.startswith("ci.yml:TaskVersionPinned:warning:")

    def test_pipeline_level_fields_are_empty(self) -> None:
        finding = Finding("Faulty", Severity.ERROR, PIPELINE_LOCATION, "rule evaluation failed")
        assert format_porcelain(_report(finding)) == "Faulty:error::::rule evaluation failed"

    def test_empty_report(self) -> None:
        assert format_porcelain(_report()) == ""


class TestFormatJson:
    def test_structure(self) -> None:
        data = json.loads(format_json(_report(_WARN)))
        assert data["summary"] == {"info": 0, "warning": 1, "error": 0}
        assert data["incomplete"] is False
        assert data["rules_evaluated"] == 13
        (finding,) = data["findings"]
        assert finding["rule_id"] == "TaskVersionPinned"
        assert finding["severity"] == "warning"
        assert finding["location"]["step_index"] == 2
        assert finding["location"]["job_path"] == "Compile"

    def test_source_key(self) -> None:
        data = json.loads(format_json(_report(), source="ci.yml"))
        assert data["source"] == "ci.yml"
        assert data["findings"] == []

    def test_incomplete_flag(self) -> None:
        data = json.loads(format_json(_report(incomplete=True)))
        assert data["incomplete"] is True

    def test_several_files_form_one_document(self) -> None:
        data = json.loads(format_json_files([("a.yml", _report(_WARN)), ("b.yml", _report())]))
        assert [f["source"] for f in data["files"]] == ["a.yml", "b.yml"]
        assert data["files"][0]["summary"]["warning"] == 1
        assert data["files"][1]["findings"] == []


class TestFormatRich:
    def test_clean_report(self) -> None:
        out = format_rich(_report())
        assert "No findings (13 rules evaluated)" in out

    def test_findings_and_summary(self) -> None:
        out = format_rich(_report(_ERR, _WARN), source="ci.yml")
        lines = out.splitlines()
        assert lines[0] == "ci.yml"
        assert "TimeoutConfigured" in lines[1]
        assert "Build/Compile" in lines[1]
        assert "Build/Compile/steps[2]" in out
        assert "2 findings: 1 errors, 1 warnings, 0 info (13 rules evaluated)" in out

    def test_singular_noun(self) -> None:
        assert "1 finding:" in format_rich(_report(_WARN))

    def test_incomplete_notice(self) -> None:
        out = format_rich(_report(incomplete=True))
        assert "report is incomplete" in out

    def test_no_ansi_codes(self) -> None:
        assert "\x1b[" not in format_rich(_report(_ERR))
