"""
Decision Engine: turns assessments and policy into an action decision.

Crisis escalation needs heuristic corroboration: a HIGH or CRITICAL severity
alone is not enough unless the pattern matcher reached at least MEDIUM
confidence. Moderation scales its content threshold and spam bound with the
guild's auto-mod level (1 lenient .. 5 strict).
"""

from __future__ import annotations

from typing import List

from carecord.datatypes.policy_datatypes import PolicyDecision
from carecord.datatypes.safety_datatypes import (
    BehaviorAssessment,
    ConfidenceTier,
    Decision,
    DecisionKind,
    ModerationAssessment,
    ModerationLevel,
    SeverityAssessment,
    SeverityLevel,
    SupportAction,
)
from carecord.safety.behavior_tracker import SPAM_FREQUENCY_PER_MINUTE, SPAM_REPETITION_RATIO
from carecord.util.logger import get_logger

logger = get_logger("decision_engine")

MIN_AUTO_MOD_LEVEL = 1
MAX_AUTO_MOD_LEVEL = 5
BASE_CONTENT_THRESHOLD = 0.9
CONTENT_THRESHOLD_STEP = 0.175
SPAM_BOUND_STEP = 0.25

CORROBORATING_CONFIDENCE = (ConfidenceTier.MEDIUM, ConfidenceTier.HIGH)


def clamp_level(level: int) -> int:
    return max(MIN_AUTO_MOD_LEVEL, min(MAX_AUTO_MOD_LEVEL, int(level)))


def moderation_threshold(level: int) -> float:
    """Content score a message must exceed: 0.9 at level 1 down to 0.2 at level 5."""
    return BASE_CONTENT_THRESHOLD - (clamp_level(level) - 1) * CONTENT_THRESHOLD_STEP


def spam_bound(level: int) -> float:
    """Messages per minute above which spam counts: 30 at level 1 down to 15 at level 5."""
    return SPAM_FREQUENCY_PER_MINUTE * (2 - (clamp_level(level) - 1) * SPAM_BOUND_STEP)


def decide_crisis(assessment: SeverityAssessment, policy: PolicyDecision) -> Decision:
    if not policy.enabled:
        return Decision(DecisionKind.CRISIS, escalate=False, action=SupportAction.MONITOR, reason=policy.reason)

    severe = assessment.level >= SeverityLevel.HIGH
    corroborated = assessment.confidence in CORROBORATING_CONFIDENCE
    escalate = severe and corroborated

    if escalate:
        reason = f"severity={assessment.level} confidence={assessment.confidence}"
    elif severe:
        reason = "uncorroborated"
    else:
        reason = f"severity={assessment.level}"

    decision = Decision(
        DecisionKind.CRISIS,
        escalate=escalate,
        action=assessment.support_action,
        requires_immediate=severe,
        reason=reason,
    )
    logger.debug("[DECISION ENGINE] Crisis decision: %s", decision)
    return decision


def _content_action(assessment: ModerationAssessment, threshold: float) -> ModerationLevel:
    if assessment.forced_ban:
        return ModerationLevel.BAN
    if assessment.top_score > threshold:
        return max(assessment.level, ModerationLevel.WARN)
    return ModerationLevel.NONE


def _spam_triggered(behavior: BehaviorAssessment, bound: float) -> bool:
    if not behavior.is_spamming:
        return False
    return behavior.repetition_ratio < SPAM_REPETITION_RATIO or behavior.message_frequency > bound


def decide_moderation(
    assessment: ModerationAssessment,
    behavior: BehaviorAssessment,
    policy: PolicyDecision,
) -> Decision:
    if not policy.enabled:
        return Decision(DecisionKind.MODERATION, escalate=False, action=ModerationLevel.NONE, reason=policy.reason)

    threshold = moderation_threshold(policy.auto_mod_level)
    action = _content_action(assessment, threshold)
    spamming = _spam_triggered(behavior, spam_bound(policy.auto_mod_level))

    reasons: List[str] = []
    if assessment.forced_ban:
        reasons.append(f"forced ban ({assessment.top_category})")
    elif action is not ModerationLevel.NONE:
        reasons.append(f"{assessment.top_category} score {assessment.top_score:.2f} > {threshold:.2f}")

    if spamming:
        reasons.append(
            f"spam ({behavior.message_frequency:.1f}/min, repetition {behavior.repetition_ratio:.2f})"
        )
        if action is ModerationLevel.NONE:
            action = ModerationLevel.WARN
        elif action is ModerationLevel.WARN:
            action = ModerationLevel.MUTE

    if action is not ModerationLevel.NONE and behavior.is_repeat_offender and action < ModerationLevel.MUTE:
        action = ModerationLevel.MUTE
        reasons.append(f"repeat offender ({behavior.warnings} warnings, {behavior.mutes} mutes)")

    decision = Decision(
        DecisionKind.MODERATION,
        escalate=action is not ModerationLevel.NONE,
        action=action,
        requires_immediate=action >= ModerationLevel.KICK,
        reason="; ".join(reasons) if reasons else "no violation",
    )
    logger.debug("[DECISION ENGINE] Moderation decision: %s", decision)
    return decision
