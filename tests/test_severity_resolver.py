"""Tests for crisis and moderation severity resolution."""

import pytest

from carecord.datatypes.safety_datatypes import (
    ClassifierSignal,
    ConcernBucket,
    ConfidenceTier,
    ModerationLevel,
    PatternSignal,
    SeverityLevel,
    SupportAction,
    SupportLevel,
)
from carecord.safety.pattern_matcher import scan
from carecord.safety.severity_resolver import SeverityResolver, concern_areas, severity_resolver


def signal(**scores):
    return ClassifierSignal(categories=dict(scores))


def pattern(confidence, severity=SeverityLevel.LOW, forcing=False):
    return PatternSignal(confidence=confidence, severity=severity, forcing=forcing)


@pytest.mark.parametrize("score, expected", [
    (0.85, SeverityLevel.CRITICAL),
    (0.8, SeverityLevel.HIGH),
    (0.65, SeverityLevel.HIGH),
    (0.5, SeverityLevel.MEDIUM),
    (0.4, SeverityLevel.LOW),
])
def test_severity_ladder_on_self_harm_group(score, expected):
    assessment = severity_resolver.resolve(PatternSignal(), signal(self_harm_intent=score))

    assert assessment.level is expected


@pytest.mark.parametrize("scores, expected", [
    ({"self_harm": 0.95}, SupportLevel.URGENT),
    ({"self_harm": 0.75}, SupportLevel.ELEVATED),
    ({"violence": 0.85}, SupportLevel.ELEVATED),
    ({"harassment": 0.75}, SupportLevel.MODERATE),
    ({"violence": 0.45}, SupportLevel.MILD),
    ({"harassment": 0.4}, SupportLevel.STABLE),
])
def test_support_ladder(scores, expected):
    assessment = severity_resolver.resolve(PatternSignal(), signal(**scores))

    assert assessment.support_level is expected


def test_support_ladder_is_stricter_than_severity():
    assessment = severity_resolver.resolve(PatternSignal(), signal(self_harm=0.85))

    assert assessment.level is SeverityLevel.CRITICAL
    assert assessment.support_level is SupportLevel.ELEVATED
    assert assessment.support_action is SupportAction.ESCALATED_SUPPORT


def test_classifier_alone_can_reach_critical():
    assessment = severity_resolver.resolve(PatternSignal(), signal(self_harm=0.97))

    assert assessment.level is SeverityLevel.CRITICAL
    assert assessment.confidence is ConfidenceTier.NONE
    assert assessment.pattern_forced is False


def test_forcing_pattern_forces_critical_without_classifier():
    assessment = severity_resolver.resolve(scan("I want to kill myself tonight"), ClassifierSignal.unavailable())

    assert assessment.level is SeverityLevel.CRITICAL
    assert assessment.pattern_forced is True
    assert assessment.support_level >= SupportLevel.ELEVATED
    assert assessment.confidence is ConfidenceTier.HIGH


def test_strong_non_forcing_pattern_raises_one_tier():
    plan = pattern(ConfidenceTier.HIGH, SeverityLevel.HIGH)

    assert severity_resolver.resolve(plan, signal(self_harm=0.5)).level is SeverityLevel.HIGH
    assert severity_resolver.resolve(plan, signal()).level is SeverityLevel.MEDIUM


def test_medium_confidence_does_not_raise():
    keyword_only = pattern(ConfidenceTier.MEDIUM, SeverityLevel.HIGH)

    assert severity_resolver.resolve(keyword_only, signal(self_harm=0.5)).level is SeverityLevel.MEDIUM


@pytest.mark.parametrize("score", [0.0, 0.35, 0.5, 0.7, 0.9])
def test_raising_pattern_confidence_never_lowers_severity(score):
    classifier = signal(self_harm=score)
    levels = [
        severity_resolver.resolve(pattern(tier, SeverityLevel.CRITICAL, forcing=True), classifier).level
        for tier in ConfidenceTier
    ]

    assert levels == sorted(levels)


def test_unavailable_classifier_resolves_like_all_zero_scores():
    scanned = scan("I'm thinking about suicide")
    zeros = signal(self_harm=0.0, violence=0.0, harassment=0.0)

    assert severity_resolver.resolve(scanned, ClassifierSignal.unavailable()) == \
        severity_resolver.resolve(scanned, zeros)


def test_concern_areas_sorted_and_bucketed():
    areas = concern_areas({"hate": 0.65, "self_harm": 0.95, "violence": 0.85, "sexual": 0.6})

    assert [area.category for area in areas] == ["self_harm", "violence", "hate"]
    assert [area.bucket for area in areas] == [ConcernBucket.HIGH, ConcernBucket.MODERATE, ConcernBucket.MILD]


def test_concern_area_ties_sort_by_name():
    areas = concern_areas({"violence": 0.7, "hate": 0.7})

    assert [area.category for area in areas] == ["hate", "violence"]


@pytest.mark.parametrize("scores, expected", [
    ({"hate": 0.85}, ModerationLevel.KICK),
    ({"violence": 0.75}, ModerationLevel.KICK),
    ({"sexual": 0.75}, ModerationLevel.MUTE),
    ({"hate": 0.45}, ModerationLevel.WARN),
    ({"violence": 0.2}, ModerationLevel.NONE),
])
def test_moderation_ladder(scores, expected):
    assessment = severity_resolver.resolve_moderation(signal(**scores))

    assert assessment.level is expected
    assert assessment.forced_ban is False


@pytest.mark.parametrize("scores", [{"sexual_minors": 0.6}, {"violence": 0.95}])
def test_extreme_categories_force_ban(scores):
    assessment = severity_resolver.resolve_moderation(signal(**scores))

    assert assessment.level is ModerationLevel.BAN
    assert assessment.forced_ban is True


def test_moderation_top_category():
    assessment = severity_resolver.resolve_moderation(signal(hate=0.3, harassment=0.6, self_harm=0.99))

    assert assessment.top_category == "harassment"
    assert assessment.top_score == pytest.approx(0.6)


def test_moderation_with_no_scores_has_no_top_category():
    assessment = SeverityResolver().resolve_moderation(ClassifierSignal.unavailable())

    assert assessment.level is ModerationLevel.NONE
    assert assessment.top_category is None
    assert assessment.top_score == 0.0
