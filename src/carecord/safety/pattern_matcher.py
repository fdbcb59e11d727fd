"""
Keyword and contextual-pattern scan for crisis language.

The matcher is pure and deterministic. It is the cheap pre-filter that
decides whether the external classifier needs to be called at all.

Scan order:
1. Empty or whitespace-only text -> zero signal.
2. Generic help requests ("can you help me with my homework") -> zero signal
   with ``skipped_reason="generic_help_request"``. Nothing else is matched.
3. Keyword tables (direct self-harm, direct violence, ambiguous danger).
4. Contextual patterns: an intent or verb phrase within a short gap of a
   crisis term, optionally followed by a time word or a method.

Confidence tiers:
- HIGH: an immediate-temporal, method-specific or explicit-plan pattern
- MEDIUM: direct keywords or intent statements
- LOW: only ambiguous keywords or passive ideation
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Pattern, Sequence, Set, Tuple

from carecord.datatypes.safety_datatypes import (
    SKIP_EMPTY_TEXT,
    SKIP_GENERIC_HELP,
    ConfidenceTier,
    PatternKind,
    PatternSignal,
    SeverityLevel,
)
from carecord.util.logger import get_logger

logger = get_logger("pattern_matcher")


CATEGORY_SELF_HARM = "self_harm"
CATEGORY_VIOLENCE = "violence"
CATEGORY_AMBIGUOUS = "ambiguous_danger"

TIER_SCORES: Dict[ConfidenceTier, float] = {
    ConfidenceTier.NONE: 0.0,
    ConfidenceTier.LOW: 0.3,
    ConfidenceTier.MEDIUM: 0.6,
    ConfidenceTier.HIGH: 0.9,
}


@dataclass(frozen=True, slots=True)
class KeywordGroup:
    category: str
    tier: ConfidenceTier
    severity: SeverityLevel
    keywords: Tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ContextPattern:
    name: str
    kind: PatternKind
    category: str
    tier: ConfidenceTier
    severity: SeverityLevel
    forcing: bool
    regex: Pattern[str]


# ---------------------------------------------------------------------------
# Pattern tables
# ---------------------------------------------------------------------------

_CRISIS_TERM = (
    r"(?:kill(?:ing)?\s+myself|end(?:ing)?\s+(?:it\s+all|it|my\s+life|things)|take\s+my\s+(?:own\s+)?life"
    r"|commit\s+suicide|suicide|die|hurt(?:ing)?\s+myself|not\s+be\s+here)"
)
_INTENT = (
    r"(?:going\s+to|gonna|will|want\s+to|wanna|plan(?:ning)?\s+to|about\s+to|decided\s+to|ready\s+to|i'?ll)"
)
_TEMPORAL = (
    r"(?:tonight|today|right\s+now|now|tomorrow|soon|this\s+(?:morning|afternoon|evening|weekend|week)"
    r"|in\s+(?:an?|a\s+few|\d+)\s+(?:minutes?|hours?))"
)
_METHOD_ACTION = (
    r"(?:hang\s+myself|shoot\s+myself|poison\s+myself|drown\s+myself|slit\s+my\s+wrists?|overdose"
    r"|jump\s+(?:off|from)\s+(?:a|the|this)\s+(?:bridge|building|roof|cliff)"
    r"|take\s+(?:all\s+)?(?:of\s+)?(?:my|the|these|those)\s+pills)"
)
_METHOD_MEANS = r"(?:pills|rope|noose|gun|razor|blade)"

EXCLUSION_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\b(?:can|could|would|will)\s+(?:you|u|someone|somebody|anyone|anybody)\s+(?:please\s+)?help\s+me\b"),
    re.compile(
        r"\bhelp\s+me\s+(?:with|study|understand|learn|find|figure|fix|write|choose|decide|pick|get|make|out)\b"
    ),
    re.compile(r"\b(?:need|want|looking\s+for)\s+(?:some\s+)?help\s+(?:with|on|for)\b"),
)

KEYWORD_GROUPS: Tuple[KeywordGroup, ...] = (
    KeywordGroup(
        category=CATEGORY_SELF_HARM,
        tier=ConfidenceTier.MEDIUM,
        severity=SeverityLevel.HIGH,
        keywords=(
            "kill myself", "end my life", "end it all", "want to die", "wanna die", "suicide",
            "suicidal", "self harm", "self-harm", "cut myself", "hurt myself", "take my own life",
            "better off dead", "don't want to live", "dont want to live", "no reason to live",
        ),
    ),
    KeywordGroup(
        category=CATEGORY_VIOLENCE,
        tier=ConfidenceTier.MEDIUM,
        severity=SeverityLevel.MEDIUM,
        keywords=(
            "hurt someone", "kill someone", "kill them", "kill him", "kill her", "shoot someone",
            "stab someone", "attack someone", "beat someone up",
        ),
    ),
    KeywordGroup(
        category=CATEGORY_AMBIGUOUS,
        tier=ConfidenceTier.LOW,
        severity=SeverityLevel.LOW,
        keywords=(
            "emergency", "urgent", "desperate", "help me", "can't go on", "cant go on", "give up",
            "no way out", "hopeless", "can't take it anymore", "violent",
        ),
    ),
)

_EXTRA_CRISIS_VERBS = (
    r"dying|dead|harm(?:ing)?\s+myself|cut(?:ting)?\s+myself|suicidal|not\s+wake\s+up|can'?t\s+go\s+on|disappear"
)


def build_crisis_verb_guard(keyword_groups: Sequence[KeywordGroup] = KEYWORD_GROUPS) -> Pattern[str]:
    """Phrases that cancel a generic-help exclusion when they follow the help phrase.

    Built from the same crisis terms, methods and self-harm keywords the scan
    matches on, so the two vocabularies stay in step.
    """
    keywords = sorted(
        {keyword for group in keyword_groups if group.category == CATEGORY_SELF_HARM for keyword in group.keywords},
        key=len,
        reverse=True,
    )
    alternatives = [_CRISIS_TERM, _METHOD_ACTION, _METHOD_MEANS, _EXTRA_CRISIS_VERBS]
    alternatives.extend(re.escape(keyword) for keyword in keywords)
    return re.compile(rf"(?<!\w)(?:{'|'.join(alternatives)})(?!\w)")


def _pattern(name: str, kind: PatternKind, category: str, tier: ConfidenceTier,
             severity: SeverityLevel, regex: str, forcing: bool = False) -> ContextPattern:
    return ContextPattern(
        name=name,
        kind=kind,
        category=category,
        tier=tier,
        severity=severity,
        forcing=forcing,
        regex=re.compile(regex),
    )


CONTEXT_PATTERNS: Tuple[ContextPattern, ...] = (
    _pattern(
        "intent_then_time", PatternKind.IMMEDIATE_TEMPORAL, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.CRITICAL,
        rf"\b{_INTENT}\b.{{0,30}}\b{_CRISIS_TERM}\b.{{0,30}}\b{_TEMPORAL}\b",
        forcing=True,
    ),
    _pattern(
        "time_then_intent", PatternKind.IMMEDIATE_TEMPORAL, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.CRITICAL,
        rf"\b{_TEMPORAL}\b.{{0,30}}\b{_INTENT}\b.{{0,30}}\b{_CRISIS_TERM}\b",
        forcing=True,
    ),
    _pattern(
        "intent_with_method", PatternKind.METHOD_SPECIFIC, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.CRITICAL,
        rf"\b{_INTENT}\b.{{0,30}}\b{_METHOD_ACTION}\b",
        forcing=True,
    ),
    _pattern(
        "means_for_crisis", PatternKind.METHOD_SPECIFIC, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.CRITICAL,
        rf"\b(?:have|got|bought|found|saved\s+up|collected)\b.{{0,20}}\b{_METHOD_MEANS}\b.{{0,30}}\b{_CRISIS_TERM}\b",
        forcing=True,
    ),
    _pattern(
        "made_a_plan", PatternKind.EXPLICIT_PLAN, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.HIGH,
        rf"\b(?:have|made|making|got)\s+(?:a\s+)?plan\b.{{0,30}}\b{_CRISIS_TERM}\b",
    ),
    _pattern(
        "goodbye_note", PatternKind.EXPLICIT_PLAN, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.HIGH,
        r"\b(?:wrote|writing|written)\s+(?:my\s+|a\s+)?(?:suicide|goodbye)\s+(?:note|letter)\b",
    ),
    _pattern(
        "giving_things_away", PatternKind.EXPLICIT_PLAN, CATEGORY_SELF_HARM,
        ConfidenceTier.HIGH, SeverityLevel.HIGH,
        r"\b(?:giving|gave)\s+away\s+(?:all\s+)?(?:of\s+)?my\s+(?:stuff|things|belongings)\b",
    ),
    _pattern(
        "first_person_intent", PatternKind.INTENT_STATEMENT, CATEGORY_SELF_HARM,
        ConfidenceTier.MEDIUM, SeverityLevel.HIGH,
        rf"\b(?:i|i'm|im|i\s+am)\b.{{0,20}}\b(?:want|wanna|going|gonna|thinking\s+(?:about|of)|plan(?:ning)?|ready|tempted)\b"
        rf".{{0,20}}\b{_CRISIS_TERM}\b",
    ),
    _pattern(
        "violence_against_others", PatternKind.VIOLENCE_INTENT, CATEGORY_VIOLENCE,
        ConfidenceTier.MEDIUM, SeverityLevel.HIGH,
        rf"\b{_INTENT}\b.{{0,20}}\b(?:kill|hurt|shoot|stab|attack|beat\s+up)\b.{{0,15}}"
        r"\b(?:him|her|them|someone|somebody|everyone|everybody|people|my\s+\w+)\b",
    ),
    _pattern(
        "wish_to_be_gone", PatternKind.PASSIVE_IDEATION, CATEGORY_SELF_HARM,
        ConfidenceTier.LOW, SeverityLevel.MEDIUM,
        r"\b(?:wish|wished|wishing)\b.{0,20}\b(?:dead|never\s+been\s+born|disappear|not\s+wake\s+up|wasn'?t\s+here)\b",
    ),
    _pattern(
        "pointless_life", PatternKind.PASSIVE_IDEATION, CATEGORY_SELF_HARM,
        ConfidenceTier.LOW, SeverityLevel.MEDIUM,
        r"\b(?:what'?s|whats)\s+the\s+point\s+of\s+(?:living|life|anything)\b",
    ),
)


def normalize_text(text: str) -> str:
    """Lowercase, unify apostrophes and collapse whitespace."""
    text = text.replace("’", "'").replace("‘", "'")
    return " ".join(text.lower().split())


class PatternMatcher:
    """Scans message text against exclusion, keyword and contextual tables."""

    def __init__(
        self,
        exclusions: Sequence[Pattern[str]] = EXCLUSION_PATTERNS,
        keyword_groups: Sequence[KeywordGroup] = KEYWORD_GROUPS,
        context_patterns: Sequence[ContextPattern] = CONTEXT_PATTERNS,
    ) -> None:
        self._exclusions = tuple(exclusions)
        self._keyword_groups = tuple(keyword_groups)
        self._context_patterns = tuple(context_patterns)
        self._crisis_guard = build_crisis_verb_guard(self._keyword_groups)
        self._keyword_regexes: List[Tuple[KeywordGroup, str, Pattern[str]]] = [
            (group, keyword, re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)"))
            for group in self._keyword_groups
            for keyword in group.keywords
        ]

    def is_generic_help_request(self, normalized: str) -> bool:
        """True when the text asks for ordinary help and no crisis verb follows."""
        for exclusion in self._exclusions:
            match = exclusion.search(normalized)
            if match and not self._crisis_guard.search(normalized, match.end()):
                return True
        return False

    def scan(self, text: str) -> PatternSignal:
        """Return the heuristic risk signal for `text`."""
        normalized = normalize_text(text or "")
        if not normalized:
            return PatternSignal.empty(SKIP_EMPTY_TEXT)

        if self.is_generic_help_request(normalized):
            logger.debug("[PATTERN MATCHER] Generic help request, skipping crisis matching")
            return PatternSignal.empty(SKIP_GENERIC_HELP)

        categories: Dict[str, float] = {}
        keywords: Set[str] = set()
        patterns: Set[str] = set()
        confidence = ConfidenceTier.NONE
        severity = SeverityLevel.LOW
        forcing = False

        for group, keyword, regex in self._keyword_regexes:
            if regex.search(normalized):
                keywords.add(keyword)
                categories[group.category] = max(categories.get(group.category, 0.0), TIER_SCORES[group.tier])
                confidence = max(confidence, group.tier)
                severity = max(severity, group.severity)

        for pattern in self._context_patterns:
            if pattern.regex.search(normalized):
                patterns.add(f"{pattern.kind.value}:{pattern.name}")
                categories[pattern.category] = max(categories.get(pattern.category, 0.0), TIER_SCORES[pattern.tier])
                confidence = max(confidence, pattern.tier)
                severity = max(severity, pattern.severity)
                forcing = forcing or pattern.forcing

        if keywords or patterns:
            logger.debug(
                "[PATTERN MATCHER] confidence=%s severity=%s patterns=%s keywords=%s",
                confidence, severity, sorted(patterns), sorted(keywords),
            )

        return PatternSignal(
            categories=categories,
            matched_patterns=frozenset(patterns),
            matched_keywords=frozenset(keywords),
            confidence=confidence,
            severity=severity,
            forcing=forcing,
        )


# Module-level singleton
pattern_matcher = PatternMatcher()


def scan(text: str) -> PatternSignal:
    """Scan `text` with the default tables."""
    return pattern_matcher.scan(text)
