"""Tests for the data-driven threshold ladder."""

from carecord.datatypes.safety_datatypes import ModerationLevel
from carecord.safety.threshold_ladder import LadderRule, ThresholdLadder, any_above, group


def _ladder():
    return ThresholdLadder.from_thresholds(
        [
            (ModerationLevel.BAN, {"a": 0.9}),
            (ModerationLevel.WARN, {"a": 0.3, "b": 0.5}),
        ],
        default=ModerationLevel.NONE,
    )


def test_first_matching_rule_wins():
    ladder = _ladder()

    assert ladder.evaluate({"a": 0.95}) is ModerationLevel.BAN
    assert ladder.evaluate({"a": 0.5}) is ModerationLevel.WARN
    assert ladder.evaluate({"b": 0.6}) is ModerationLevel.WARN


def test_thresholds_are_strict():
    assert _ladder().evaluate({"a": 0.9}) is ModerationLevel.WARN
    assert _ladder().evaluate({"a": 0.3}) is ModerationLevel.NONE


def test_missing_categories_read_as_zero():
    assert _ladder().evaluate({}) is ModerationLevel.NONE


def test_with_rule_is_additive_and_leaves_original_untouched():
    ladder = _ladder()
    extended = ladder.with_rule(LadderRule(ModerationLevel.KICK, any_above({"c": 0.1})))

    assert extended.evaluate({"c": 0.2}) is ModerationLevel.KICK
    assert ladder.evaluate({"c": 0.2}) is ModerationLevel.NONE
    assert len(extended.rules) == len(ladder.rules) + 1


def test_custom_predicates_are_supported():
    ladder = ThresholdLadder(
        [LadderRule(ModerationLevel.MUTE, lambda scores: sum(scores.values()) > 1.0)],
        default=ModerationLevel.NONE,
    )

    assert ladder.evaluate({"a": 0.6, "b": 0.6}) is ModerationLevel.MUTE
    assert ladder.first_match({"a": 0.1}) is None


def test_group_builds_shared_thresholds():
    assert group(("x", "y"), 0.4) == {"x": 0.4, "y": 0.4}
