"""
Severity Resolver: turns pattern and classifier signals into ordered levels.

Crisis messages get two independent ladders. The severity ladder decides what
is logged and escalated; the support ladder (stricter thresholds for the same
categories) decides the conversational tone. A forcing contextual pattern
("... tonight", "... with pills") pushes severity to CRITICAL regardless of the
classifier; a weaker high-severity pattern may raise the classifier's answer by
one tier. Heuristics can only raise severity, never lower it.

Moderation maps category scores straight onto an action level, with extreme
categories forcing BAN ahead of the ladder.
"""

from __future__ import annotations

from typing import Dict, List, Mapping, Tuple

from carecord.datatypes.safety_datatypes import (
    ClassifierSignal,
    ConcernArea,
    ConcernBucket,
    ConfidenceTier,
    ModerationAssessment,
    ModerationLevel,
    PatternSignal,
    SeverityAssessment,
    SeverityLevel,
    SupportLevel,
)
from carecord.safety.threshold_ladder import ThresholdLadder, any_above, group
from carecord.util.logger import get_logger

logger = get_logger("severity_resolver")

SELF_HARM_GROUP = ("self_harm", "self_harm_intent", "self_harm_instructions")

MODERATION_CATEGORIES = (
    "hate",
    "hate_threatening",
    "harassment",
    "harassment_threatening",
    "sexual",
    "sexual_minors",
    "violence",
    "violence_graphic",
)

CONCERN_THRESHOLD = 0.6
CONCERN_HIGH = 0.9
CONCERN_MODERATE = 0.8


def _crisis_rule(self_harm: float, **others: float) -> Dict[str, float]:
    return {**group(SELF_HARM_GROUP, self_harm), **others}


SEVERITY_LADDER: ThresholdLadder[SeverityLevel] = ThresholdLadder.from_thresholds(
    [
        (SeverityLevel.CRITICAL, _crisis_rule(0.8, violence=0.8)),
        (SeverityLevel.HIGH, _crisis_rule(0.6, violence=0.6)),
        (SeverityLevel.MEDIUM, _crisis_rule(0.4, violence=0.4)),
    ],
    default=SeverityLevel.LOW,
)

SUPPORT_LADDER: ThresholdLadder[SupportLevel] = ThresholdLadder.from_thresholds(
    [
        (SupportLevel.URGENT, _crisis_rule(0.9)),
        (SupportLevel.ELEVATED, _crisis_rule(0.7, violence=0.8)),
        (SupportLevel.MODERATE, _crisis_rule(0.5, violence=0.6, harassment=0.7)),
        (SupportLevel.MILD, _crisis_rule(0.3, violence=0.4, harassment=0.5)),
    ],
    default=SupportLevel.STABLE,
)

FORCED_BAN = any_above({"sexual_minors": 0.5, "violence": 0.9})

MODERATION_LADDER: ThresholdLadder[ModerationLevel] = ThresholdLadder.from_thresholds(
    [
        (ModerationLevel.KICK, {"hate": 0.8, "violence": 0.7}),
        (ModerationLevel.MUTE, {"hate": 0.6, "sexual": 0.7, "violence": 0.5}),
        (ModerationLevel.WARN, {"hate": 0.4, "sexual": 0.5, "violence": 0.3}),
    ],
    default=ModerationLevel.NONE,
)


def concern_areas(categories: Mapping[str, float]) -> Tuple[ConcernArea, ...]:
    """Categories above the disclosure threshold, strongest first."""
    areas: List[ConcernArea] = []
    for category, score in categories.items():
        if score <= CONCERN_THRESHOLD:
            continue
        if score > CONCERN_HIGH:
            bucket = ConcernBucket.HIGH
        elif score > CONCERN_MODERATE:
            bucket = ConcernBucket.MODERATE
        else:
            bucket = ConcernBucket.MILD
        areas.append(ConcernArea(category=category, intensity=score, bucket=bucket))
    areas.sort(key=lambda area: (-area.intensity, area.category))
    return tuple(areas)


def _pattern_is_strong(pattern: PatternSignal) -> bool:
    return pattern.confidence is ConfidenceTier.HIGH and pattern.severity >= SeverityLevel.HIGH


class SeverityResolver:
    """Combines heuristic and classifier evidence using threshold ladders."""

    def __init__(
        self,
        severity_ladder: ThresholdLadder[SeverityLevel] = SEVERITY_LADDER,
        support_ladder: ThresholdLadder[SupportLevel] = SUPPORT_LADDER,
        moderation_ladder: ThresholdLadder[ModerationLevel] = MODERATION_LADDER,
    ) -> None:
        self.severity_ladder = severity_ladder
        self.support_ladder = support_ladder
        self.moderation_ladder = moderation_ladder

    def resolve(self, pattern: PatternSignal, classifier: ClassifierSignal) -> SeverityAssessment:
        """Crisis assessment for one message.

        Only the classifier's scores feed the ladders, so an unavailable
        classifier resolves exactly like one that returned all zeros.
        """
        scores = classifier.categories
        classifier_level = self.severity_ladder.evaluate(scores)
        support_level = self.support_ladder.evaluate(scores)

        forced = pattern.forcing and _pattern_is_strong(pattern)
        if forced:
            level = SeverityLevel.CRITICAL
            support_level = max(support_level, SupportLevel.ELEVATED)
        elif _pattern_is_strong(pattern):
            level = classifier_level.raised(1)
        else:
            level = classifier_level
        level = max(level, classifier_level)

        assessment = SeverityAssessment(
            level=level,
            support_level=support_level,
            confidence=pattern.confidence,
            concern_areas=concern_areas(scores),
            pattern_forced=forced,
        )
        logger.debug(
            "[SEVERITY RESOLVER] classifier=%s pattern=%s/%s -> severity=%s support=%s forced=%s",
            classifier_level, pattern.confidence, pattern.severity, level, support_level, forced,
        )
        return assessment

    def resolve_moderation(self, classifier: ClassifierSignal) -> ModerationAssessment:
        """Moderation action level from content scores alone."""
        scores = classifier.categories
        relevant = {category: scores.get(category, 0.0) for category in MODERATION_CATEGORIES}
        top_category, top_score = max(relevant.items(), key=lambda item: (item[1], item[0]))
        if top_score <= 0.0:
            top_category = None

        if FORCED_BAN(scores):
            logger.debug("[SEVERITY RESOLVER] Forced ban (top=%s %.2f)", top_category, top_score)
            return ModerationAssessment(
                level=ModerationLevel.BAN,
                forced_ban=True,
                top_category=top_category,
                top_score=top_score,
                categories=dict(scores),
            )

        return ModerationAssessment(
            level=self.moderation_ladder.evaluate(scores),
            top_category=top_category,
            top_score=top_score,
            categories=dict(scores),
        )


severity_resolver = SeverityResolver()
