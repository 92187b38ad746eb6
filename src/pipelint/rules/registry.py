# pipelint:domain=rules
"""Immutable rule registry and the process-wide default instance."""

from __future__ import annotations

from types import MappingProxyType
from typing import TYPE_CHECKING

from pipelint.rules.deployment import ApprovalRequiredForProd, ProdStageLocked
from pipelint.rules.performance import (
    CacheKeyHashed,
    ShallowCheckout,
    TimeoutConfigured,
    TimeoutWithinLimit,
)
from pipelint.rules.security import SecretLiteralInEnv, SecretNotEchoed
from pipelint.rules.structure import DisplayNamePresent, PoolDeclared, TaskVersionPinned
from pipelint.rules.testing import CoverageThreshold, TestResultsPublished

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from pipelint.rules.base import Category, Rule


class RuleRegistry:
    """Rules keyed by id, fixed at construction.

    Iteration, :meth:`ids` and :meth:`by_category` all follow registration
    order, which the engine relies on for deterministic output.
    """

    __slots__ = ("_by_id", "_rules")

    def __init__(self, rules: Iterable[Rule]) -> None:
        ordered = tuple(rules)
        by_id: dict[str, Rule] = {}
        for rule in ordered:
            if rule.id in by_id:
                msg = f"Duplicate rule id '{rule.id}'"
                raise ValueError(msg)
            by_id[rule.id] = rule
        self._rules = ordered
        self._by_id = MappingProxyType(by_id)

    def get(self, rule_id: str) -> Rule:
        """Return the rule registered under *rule_id*; ``KeyError`` if unknown."""
        return self._by_id[rule_id]

    def by_category(self, category: Category) -> tuple[Rule, ...]:
        return tuple(rule for rule in self._rules if rule.category == category)

    def ids(self) -> tuple[str, ...]:
        return tuple(rule.id for rule in self._rules)

    def __contains__(self, rule_id: object) -> bool:
        return rule_id in self._by_id

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    def __repr__(self) -> str:
        return f"RuleRegistry({len(self._rules)} rules)"


BUILTIN_RULES: tuple[Rule, ...] = (
    TaskVersionPinned(),
    DisplayNamePresent(),
    PoolDeclared(),
    SecretNotEchoed(),
    SecretLiteralInEnv(),
    TimeoutConfigured(),
    TimeoutWithinLimit(),
    CacheKeyHashed(),
    ShallowCheckout(),
    TestResultsPublished(),
    CoverageThreshold(),
    ApprovalRequiredForProd(),
    ProdStageLocked(),
)

DEFAULT_REGISTRY = RuleRegistry(BUILTIN_RULES)
