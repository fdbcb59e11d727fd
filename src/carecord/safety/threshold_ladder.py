"""
Data-driven threshold ladders.

A ladder is an ordered list of ``(predicate, level)`` rules evaluated top-down;
the first rule whose predicate holds decides the level, otherwise the ladder's
default applies. Crisis severity, support level and moderation action are all
ladders, so a new threshold is a new rule rather than a new branch.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, Generic, Mapping, Optional, Sequence, Tuple, TypeVar

L = TypeVar("L")

Scores = Mapping[str, float]
Predicate = Callable[[Scores], bool]


@dataclass(frozen=True, slots=True)
class AnyAbove:
    """Predicate: any listed category scores strictly above its threshold."""

    thresholds: Tuple[Tuple[str, float], ...]

    def __call__(self, scores: Scores) -> bool:
        return any(scores.get(category, 0.0) > threshold for category, threshold in self.thresholds)


def any_above(thresholds: Mapping[str, float]) -> AnyAbove:
    return AnyAbove(tuple(thresholds.items()))


def group(categories: Sequence[str], threshold: float) -> Dict[str, float]:
    """Same threshold for every category of a group."""
    return {category: threshold for category in categories}


@dataclass(frozen=True, slots=True)
class LadderRule(Generic[L]):
    level: L
    predicate: Predicate

    def matches(self, scores: Scores) -> bool:
        return self.predicate(scores)


class ThresholdLadder(Generic[L]):
    """Ordered rules evaluated top-down."""

    def __init__(self, rules: Sequence[LadderRule[L]], default: L) -> None:
        self._rules: Tuple[LadderRule[L], ...] = tuple(rules)
        self._default = default

    @property
    def rules(self) -> Tuple[LadderRule[L], ...]:
        return self._rules

    @property
    def default(self) -> L:
        return self._default

    def first_match(self, scores: Scores) -> Optional[LadderRule[L]]:
        for rule in self._rules:
            if rule.matches(scores):
                return rule
        return None

    def evaluate(self, scores: Scores) -> L:
        rule = self.first_match(scores)
        return rule.level if rule is not None else self._default

    def with_rule(self, rule: LadderRule[L], position: int = 0) -> "ThresholdLadder[L]":
        """Return a new ladder with `rule` inserted at `position`."""
        rules = list(self._rules)
        rules.insert(position, rule)
        return ThresholdLadder(rules, self._default)

    @classmethod
    def from_thresholds(cls, table: Sequence[Tuple[L, Mapping[str, float]]], default: L) -> "ThresholdLadder[L]":
        """Build a ladder of :class:`AnyAbove` rules from ``(level, thresholds)`` rows."""
        return cls([LadderRule(level, any_above(thresholds)) for level, thresholds in table], default)
