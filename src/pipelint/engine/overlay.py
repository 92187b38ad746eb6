# pipelint:domain=engine
"""Per-run configuration overlay: disabled rules, severity overrides, thresholds."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TYPE_CHECKING, Any

import yaml

from pipelint.errors import OverlayError
from pipelint.rules.base import Severity

if TYPE_CHECKING:
    from collections.abc import Iterable
    from pathlib import Path

    from pipelint.rules.registry import RuleRegistry

logger = logging.getLogger(__name__)

SUPPORTED_OVERLAY_VERSIONS: frozenset[int] = frozenset({1})
DEFAULT_OVERLAY_FILENAME = ".pipelint.yml"


@dataclass(frozen=True)
class Overlay:
    """Read-only configuration shared by every rule invocation of a run.

    A rule listed in ``disabled_rule_ids`` emits nothing, even if it also
    has an entry in ``severity_overrides``.
    """

    disabled_rule_ids: frozenset[str] = frozenset()
    severity_overrides: Mapping[str, Severity] = field(
        default_factory=lambda: MappingProxyType({})
    )
    thresholds: Mapping[str, float] = field(default_factory=lambda: MappingProxyType({}))

    def is_disabled(self, rule_id: str) -> bool:
        return rule_id in self.disabled_rule_ids

    def severity_for(self, rule_id: str) -> Severity | None:
        return self.severity_overrides.get(rule_id)

    def threshold(self, key: str, default: float) -> float:
        return self.thresholds.get(key, default)

    def with_disabled(self, rule_ids: Iterable[str]) -> Overlay:
        """Return a copy with *rule_ids* added to the disabled set."""
        return Overlay(
            disabled_rule_ids=self.disabled_rule_ids | frozenset(rule_ids),
            severity_overrides=self.severity_overrides,
            thresholds=self.thresholds,
        )

    def unknown_rule_ids(self, registry: RuleRegistry) -> list[str]:
        """Rule ids referenced by this overlay that *registry* does not know."""
        referenced = set(self.disabled_rule_ids) | set(self.severity_overrides)
        return sorted(rule_id for rule_id in referenced if rule_id not in registry)


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


def _rule_id_list(raw: object, context: str) -> frozenset[str]:
    if raw is None:
        return frozenset()
    if not isinstance(raw, list):
        msg = f"{context}: 'disabled' must be a list of rule ids"
        raise OverlayError(msg)
    return frozenset(str(item) for item in raw)


def _severity_map(raw: object, context: str) -> Mapping[str, Severity]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, Mapping):
        msg = f"{context}: 'severity' must be a mapping of rule id to severity"
        raise OverlayError(msg)
    overrides: dict[str, Severity] = {}
    for rule_id, value in raw.items():
        try:
            overrides[str(rule_id)] = Severity.parse(str(value))
        except ValueError as exc:
            msg = f"{context}: rule '{rule_id}': {exc}"
            raise OverlayError(msg) from exc
    return MappingProxyType(overrides)


def _threshold_map(raw: object, context: str) -> Mapping[str, float]:
    if raw is None:
        return MappingProxyType({})
    if not isinstance(raw, Mapping):
        msg = f"{context}: 'thresholds' must be a mapping"
        raise OverlayError(msg)
    thresholds: dict[str, float] = {}
    for key, value in raw.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            msg = f"{context}: threshold '{key}' must be a number, got {value!r}"
            raise OverlayError(msg)
        thresholds[str(key)] = float(value)
    return MappingProxyType(thresholds)


def overlay_from_mapping(data: Mapping[str, Any] | None, *, context: str = "overlay") -> Overlay:
    """Build an :class:`Overlay` from its deserialized form.

    Recognised keys: ``version`` (optional, must be supported when given),
    ``disabled``, ``severity`` and ``thresholds``.  ``None`` yields an
    empty overlay.

    Raises ``OverlayError`` on malformed input.
    """
    if data is None:
        return Overlay()
    if not isinstance(data, Mapping):
        msg = f"{context}: must be a YAML mapping"
        raise OverlayError(msg)

    version = data.get("version")
    if version is not None and version not in SUPPORTED_OVERLAY_VERSIONS:
        expected = sorted(SUPPORTED_OVERLAY_VERSIONS)
        msg = f"{context}: unsupported version {version}, expected one of {expected}"
        raise OverlayError(msg)

    unknown_keys = set(data) - {"version", "disabled", "severity", "thresholds"}
    if unknown_keys:
        logger.warning("%s: ignoring unknown keys %s", context, sorted(unknown_keys))

    return Overlay(
        disabled_rule_ids=_rule_id_list(data.get("disabled"), context),
        severity_overrides=_severity_map(data.get("severity"), context),
        thresholds=_threshold_map(data.get("thresholds"), context),
    )


def load_overlay(path: Path) -> Overlay:
    """Read an overlay YAML file.

    Raises ``OverlayError`` when the file cannot be read or is invalid.
    """
    try:
        with path.open("r", encoding="utf-8") as fh:
            data = yaml.safe_load(fh)
    except (OSError, yaml.YAMLError) as exc:
        msg = f"{path}: cannot read overlay: {exc}"
        raise OverlayError(msg) from exc
    return overlay_from_mapping(data, context=str(path))
