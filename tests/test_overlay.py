"""Tests for pipelint.engine.overlay: overlay parsing and lookups."""

from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from pipelint.engine.overlay import Overlay, load_overlay, overlay_from_mapping
from pipelint.errors import OverlayError
from pipelint.rules.base import Severity
from pipelint.rules.registry import DEFAULT_REGISTRY

if TYPE_CHECKING:
    from pathlib import Path


class TestOverlayFromMapping:
    """Tests for overlay_from_mapping(): schema validation."""

    def test_none_is_empty(self) -> None:
        overlay = overlay_from_mapping(None)
        assert overlay == Overlay()
        assert overlay.disabled_rule_ids == frozenset()

    def test_full_document(self) -> None:
        overlay = overlay_from_mapping(
            {
                "version": 1,
                "disabled": ["ShallowCheckout"],
                "severity": {"TaskVersionPinned": "error", "PoolDeclared": "warn"},
                "thresholds": {"minCoveragePercent": 85, "maxTimeoutMinutes": 90.5},
            }
        )
        assert overlay.is_disabled("ShallowCheckout")
        assert overlay.severity_for("TaskVersionPinned") is Severity.ERROR
        assert overlay.severity_for("PoolDeclared") is Severity.WARNING
        assert overlay.severity_for("CacheKeyHashed") is None
        assert overlay.threshold("minCoveragePercent", 80) == 85.0
        assert overlay.threshold("maxTimeoutMinutes", 360) == 90.5
        assert overlay.threshold("missing", 7) == 7

    def test_unsupported_version(self) -> None:
        with pytest.raises(OverlayError, match="unsupported version 9"):
            overlay_from_mapping({"version": 9})

    def test_disabled_must_be_list(self) -> None:
        with pytest.raises(OverlayError, match="'disabled' must be a list"):
            overlay_from_mapping({"disabled": "ShallowCheckout"})

    def test_invalid_severity(self) -> None:
        with pytest.raises(OverlayError, match="invalid severity 'critical'"):
            overlay_from_mapping({"severity": {"TaskVersionPinned": "critical"}})

    @pytest.mark.parametrize("value", ["80", True, None, [80]])
    def test_non_numeric_threshold(self, value: object) -> None:
        with pytest.raises(OverlayError, match="must be a number"):
            overlay_from_mapping({"thresholds": {"minCoveragePercent": value}})

    def test_not_a_mapping(self) -> None:
        with pytest.raises(OverlayError):
            overlay_from_mapping(["disabled"])  # type: ignore[arg-type]

    def test_unknown_keys_are_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level("WARNING", logger="pipelint.engine.overlay"):
            overlay_from_mapping({"disable": ["X"]})
        assert "disable" in caplog.text

    def test_overlay_error_is_value_error(self) -> None:
        with pytest.raises(ValueError):
            overlay_from_mapping({"version": 2})


class TestOverlayHelpers:
    """Tests for Overlay.with_disabled() and unknown_rule_ids()."""

    def test_with_disabled_merges(self) -> None:
        base = overlay_from_mapping({"disabled": ["A"], "severity": {"B": "info"}})
        merged = base.with_disabled(["C"])
        assert merged.disabled_rule_ids == frozenset({"A", "C"})
        assert merged.severity_for("B") is Severity.INFO
        assert base.disabled_rule_ids == frozenset({"A"})

    def test_unknown_rule_ids(self) -> None:
        overlay = overlay_from_mapping(
            {"disabled": ["TaskVersionPinned", "NoSuchRule"], "severity": {"Other": "info"}}
        )
        assert overlay.unknown_rule_ids(DEFAULT_REGISTRY) == ["NoSuchRule", "Other"]

    def test_overlay_is_frozen(self) -> None:
        overlay = Overlay()
        with pytest.raises(AttributeError):
            overlay.disabled_rule_ids = frozenset({"X"})  # type: ignore[misc]


class TestLoadOverlay:
    """Tests for load_overlay(): reading YAML files."""

    def test_load_file(self, tmp_path: Path) -> None:
        path = tmp_path / ".pipelint.yml"
        path.write_text(
            "version: 1\n"
            "disabled: [DisplayNamePresent]\n"
            "severity:\n"
            "  TimeoutConfigured: error\n"
            "thresholds:\n"
            "  maxTimeoutMinutes: 120\n"
        )
        overlay = load_overlay(path)
        assert overlay.is_disabled("DisplayNamePresent")
        assert overlay.severity_for("TimeoutConfigured") is Severity.ERROR
        assert overlay.threshold("maxTimeoutMinutes", 0) == 120.0

    def test_empty_file_is_empty_overlay(self, tmp_path: Path) -> None:
        path = tmp_path / ".pipelint.yml"
        path.write_text("")
        assert load_overlay(path) == Overlay()

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / ".pipelint.yml"
        path.write_text("disabled: [unclosed\n")
        with pytest.raises(OverlayError, match="cannot read overlay"):
            load_overlay(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(OverlayError):
            load_overlay(tmp_path / "missing.yml")

    def test_error_message_names_file(self, tmp_path: Path) -> None:
        path = tmp_path / "custom.yml"
        path.write_text("version: 3\n")
        with pytest.raises(OverlayError, match="custom.yml"):
            load_overlay(path)
