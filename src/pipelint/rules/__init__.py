"""Rules domain: rule capability set, built-in rules, and the rule registry."""

# pipelint:domain=rules

from pipelint.rules.base import (
    PIPELINE_LOCATION,
    BaseRule,
    Category,
    Finding,
    Location,
    Rule,
    Severity,
)
from pipelint.rules.registry import BUILTIN_RULES, DEFAULT_REGISTRY, RuleRegistry

__all__ = [
    "BUILTIN_RULES",
    "DEFAULT_REGISTRY",
    "PIPELINE_LOCATION",
    "BaseRule",
    "Category",
    "Finding",
    "Location",
    "Rule",
    "RuleRegistry",
    "Severity",
]
