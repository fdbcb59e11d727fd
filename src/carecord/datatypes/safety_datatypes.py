"""
Levels and per-stage result types for the safety pipeline.

Every stage hands the next one a fixed, frozen type (PatternSignal,
ClassifierSignal, SeverityAssessment, ModerationAssessment, BehaviorAssessment,
Decision, DispatchResult) instead of a free-form dict, so a producer cannot add
or rename a field without the consumer noticing.

All level enums are ordered by declaration: ``SeverityLevel.HIGH >
SeverityLevel.MEDIUM`` and ``max()`` work as expected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple, Union

from carecord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID


class RankedEnum(Enum):
    """Enum whose members compare by declaration order."""

    @property
    def rank(self) -> int:
        return list(type(self)).index(self)

    def raised(self, steps: int = 1):
        """Return the member `steps` above this one, capped at the top member."""
        members = list(type(self))
        return members[min(self.rank + steps, len(members) - 1)]

    def _check(self, other: object) -> bool:
        return type(other) is type(self)

    def __lt__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not self._check(other):
            return NotImplemented
        return self.rank >= other.rank

    def __str__(self) -> str:
        return str(self.value)


class ConfidenceTier(RankedEnum):
    """Strength of heuristic pattern evidence."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class SeverityLevel(RankedEnum):
    """Ordered danger classification for crisis handling."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class SupportLevel(RankedEnum):
    """Stricter-gated ordering that governs conversational tone."""

    STABLE = "stable"
    MILD = "mild"
    MODERATE = "moderate"
    ELEVATED = "elevated"
    URGENT = "urgent"


class ModerationLevel(RankedEnum):
    """Ordered moderation actions."""

    NONE = "none"
    WARN = "warn"
    MUTE = "mute"
    KICK = "kick"
    BAN = "ban"


class Sensitivity(RankedEnum):
    """Per-guild (or DM default) analysis sensitivity."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def parse(cls, value: object, default: "Sensitivity | None" = None) -> "Sensitivity":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return default or cls.MEDIUM


class SupportAction(Enum):
    """Recommended support action for a support level."""

    MONITOR = "monitor"
    GENTLE_SUPPORT = "gentle_support"
    ACTIVE_SUPPORT = "active_support"
    ESCALATED_SUPPORT = "escalated_support"
    IMMEDIATE_SUPPORT = "immediate_support"

    def __str__(self) -> str:
        return self.value


SUPPORT_ACTIONS: Dict[SupportLevel, SupportAction] = {
    SupportLevel.STABLE: SupportAction.MONITOR,
    SupportLevel.MILD: SupportAction.GENTLE_SUPPORT,
    SupportLevel.MODERATE: SupportAction.ACTIVE_SUPPORT,
    SupportLevel.ELEVATED: SupportAction.ESCALATED_SUPPORT,
    SupportLevel.URGENT: SupportAction.IMMEDIATE_SUPPORT,
}


class SignalSource(Enum):
    HEURISTIC = "heuristic"
    CLASSIFIER = "classifier"


class PatternKind(Enum):
    """Families of contextual crisis patterns."""

    IMMEDIATE_TEMPORAL = "immediate_temporal"
    METHOD_SPECIFIC = "method_specific"
    EXPLICIT_PLAN = "explicit_plan"
    INTENT_STATEMENT = "intent_statement"
    VIOLENCE_INTENT = "violence_intent"
    PASSIVE_IDEATION = "passive_ideation"


class ConcernBucket(Enum):
    MILD = "mild"
    MODERATE = "moderate"
    HIGH = "high"


class DecisionKind(Enum):
    CRISIS = "crisis"
    MODERATION = "moderation"


class PipelineStatus(Enum):
    SKIPPED = "skipped"
    EVALUATED = "evaluated"
    ESCALATED = "escalated"


SKIP_GENERIC_HELP = "generic_help_request"
SKIP_EMPTY_TEXT = "empty_text"

PREVIEW_LENGTH = 200


# ---------------------------------------------------------------------------
# Stage results
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class PatternSignal:
    """Output of the Pattern Matcher."""

    categories: Dict[str, float] = field(default_factory=dict)
    matched_patterns: FrozenSet[str] = frozenset()
    matched_keywords: FrozenSet[str] = frozenset()
    confidence: ConfidenceTier = ConfidenceTier.NONE
    severity: SeverityLevel = SeverityLevel.LOW
    forcing: bool = False
    skipped_reason: Optional[str] = None
    source: SignalSource = SignalSource.HEURISTIC

    @property
    def has_keywords(self) -> bool:
        return bool(self.matched_keywords)

    @property
    def has_patterns(self) -> bool:
        return bool(self.matched_patterns)

    @property
    def skipped(self) -> bool:
        return self.skipped_reason is not None

    @property
    def found_anything(self) -> bool:
        return self.has_keywords or self.has_patterns

    @classmethod
    def empty(cls, skipped_reason: Optional[str] = None) -> "PatternSignal":
        return cls(skipped_reason=skipped_reason)


@dataclass(frozen=True, slots=True)
class ClassifierSignal:
    """Normalized output of the external classifier."""

    categories: Dict[str, float] = field(default_factory=dict)
    available: bool = True
    source: SignalSource = SignalSource.CLASSIFIER

    def score(self, category: str) -> float:
        return self.categories.get(category, 0.0)

    @classmethod
    def unavailable(cls) -> "ClassifierSignal":
        """Zero-risk signal returned when the classifier cannot be reached."""
        return cls(categories={}, available=False)


@dataclass(frozen=True, slots=True)
class ConcernArea:
    category: str
    intensity: float
    bucket: ConcernBucket


@dataclass(frozen=True, slots=True)
class SeverityAssessment:
    """Combined crisis assessment for one message."""

    level: SeverityLevel
    support_level: SupportLevel
    confidence: ConfidenceTier
    concern_areas: Tuple[ConcernArea, ...] = ()
    pattern_forced: bool = False

    @property
    def support_action(self) -> SupportAction:
        return SUPPORT_ACTIONS[self.support_level]


@dataclass(frozen=True, slots=True)
class ModerationAssessment:
    """Content-only moderation assessment for one message."""

    level: ModerationLevel
    forced_ban: bool = False
    top_category: Optional[str] = None
    top_score: float = 0.0
    categories: Dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class BehaviorAssessment:
    """Sliding-window message statistics for one user."""

    is_spamming: bool = False
    analyzed: bool = False
    message_count: int = 0
    message_frequency: float = 0.0
    repetition_ratio: float = 1.0
    avg_length: float = 0.0
    warnings: int = 0
    mutes: int = 0
    last_warning_at: Optional[float] = None
    last_mute_at: Optional[float] = None

    @property
    def is_repeat_offender(self) -> bool:
        return self.warnings > 3 or self.mutes > 1


@dataclass(frozen=True, slots=True)
class Decision:
    """What the Decision Engine wants done for one message."""

    kind: DecisionKind
    escalate: bool
    action: Union[SupportAction, ModerationLevel]
    requires_immediate: bool = False
    reason: str = ""


@dataclass(slots=True)
class DispatchResult:
    """Which side effects the Escalation Dispatcher completed."""

    logged: bool = False
    alert_sent: bool = False
    response_sent: bool = False
    record_id: Optional[int] = None


@dataclass(frozen=True, slots=True)
class MessageRecord:
    """Inbound chat message as seen by the safety core."""

    message_id: MessageID
    author_id: UserID
    text: str
    guild_id: Optional[GuildID]
    channel_id: ChannelID
    created_at: datetime
    author_is_privileged: bool = False

    @property
    def is_direct_message(self) -> bool:
        return self.guild_id is None

    @property
    def preview(self) -> str:
        if len(self.text) <= PREVIEW_LENGTH:
            return self.text
        return self.text[:PREVIEW_LENGTH - 3] + "..."


@dataclass(slots=True)
class PipelineResult:
    """Everything the pipeline decided about one message."""

    status: PipelineStatus
    skip_reason: Optional[str] = None
    pattern_signal: Optional[PatternSignal] = None
    crisis_assessment: Optional[SeverityAssessment] = None
    crisis_decision: Optional[Decision] = None
    crisis_dispatch: Optional[DispatchResult] = None
    moderation_assessment: Optional[ModerationAssessment] = None
    behavior: Optional[BehaviorAssessment] = None
    moderation_decision: Optional[Decision] = None
    moderation_dispatch: Optional[DispatchResult] = None

    @property
    def escalated(self) -> bool:
        return self.status is PipelineStatus.ESCALATED
