"""
Safety pipeline: runs one message through both safety branches.

Crisis branch::

    Policy Gate -> Pattern Matcher -> [Classification Adapter] -> Severity Resolver
                -> Decision Engine -> Escalation Dispatcher

The classifier is only called when the pattern scan found something, or when
the guild asks for always-on classification (``Sensitivity.HIGH``). Generic
help requests and empty messages stop right after the scan.

Moderation branch::

    Policy Gate -> Behavior Tracker -> Classification Adapter
                -> Severity Resolver (moderation) -> Decision Engine -> Escalation Dispatcher

:meth:`SafetyPipeline.process_message` runs both branches and shares a single
classifier call between them. Expected failures never raise; only
:class:`~carecord.safety.errors.PersistenceFailure` reaches the caller.
"""

from __future__ import annotations

import asyncio
from typing import Optional

from carecord.datatypes.safety_datatypes import (
    ClassifierSignal,
    MessageRecord,
    PipelineResult,
    PipelineStatus,
    Sensitivity,
)
from carecord.safety.behavior_tracker import BehaviorTracker
from carecord.safety.classification_adapter import ClassificationAdapter
from carecord.safety.decision_engine import decide_crisis, decide_moderation
from carecord.safety.escalation_dispatcher import EscalationDispatcher
from carecord.safety.pattern_matcher import PatternMatcher, pattern_matcher
from carecord.safety.policy_gate import REASON_DIRECT_MESSAGE, PolicyGate
from carecord.safety.severity_resolver import SeverityResolver, severity_resolver
from carecord.util.logger import get_logger

logger = get_logger("safety_pipeline")

REASON_PRIVILEGED_AUTHOR = "privileged_author"


class SharedClassification:
    """Classifies a message at most once, however many branches ask for it."""

    def __init__(self, adapter: ClassificationAdapter, text: str) -> None:
        self._adapter = adapter
        self._text = text
        self._task: Optional[asyncio.Task] = None

    @property
    def requested(self) -> bool:
        return self._task is not None

    async def get(self) -> ClassifierSignal:
        if self._task is None:
            self._task = asyncio.ensure_future(self._adapter.classify(self._text))
        return await asyncio.shield(self._task)


class SafetyPipeline:
    """Wires the safety components together for each inbound message."""

    def __init__(
        self,
        policy_gate: PolicyGate,
        classifier: ClassificationAdapter,
        dispatcher: EscalationDispatcher,
        behavior_tracker: BehaviorTracker,
        matcher: PatternMatcher = pattern_matcher,
        resolver: SeverityResolver = severity_resolver,
    ) -> None:
        self.policy_gate = policy_gate
        self.classifier = classifier
        self.dispatcher = dispatcher
        self.behavior_tracker = behavior_tracker
        self.matcher = matcher
        self.resolver = resolver

    # ------------------------------------------------------------------
    # Crisis
    # ------------------------------------------------------------------

    async def process_crisis(
        self,
        message: MessageRecord,
        classification: Optional[SharedClassification] = None,
    ) -> PipelineResult:
        classification = classification or SharedClassification(self.classifier, message.text)

        policy = await self.policy_gate.authorize(message.author_id, message.guild_id)
        if not policy.enabled:
            return PipelineResult(PipelineStatus.SKIPPED, skip_reason=policy.reason)

        pattern = self.matcher.scan(message.text)
        if pattern.skipped:
            logger.debug("[SAFETY PIPELINE] Crisis scan skipped for %s: %s", message.message_id, pattern.skipped_reason)
            return PipelineResult(PipelineStatus.SKIPPED, skip_reason=pattern.skipped_reason, pattern_signal=pattern)

        if pattern.found_anything or policy.sensitivity is Sensitivity.HIGH:
            signal = await classification.get()
        else:
            signal = ClassifierSignal()

        assessment = self.resolver.resolve(pattern, signal)
        decision = decide_crisis(assessment, policy)
        result = PipelineResult(
            PipelineStatus.EVALUATED,
            pattern_signal=pattern,
            crisis_assessment=assessment,
            crisis_decision=decision,
        )
        if not decision.escalate:
            return result

        result.crisis_dispatch = await self.dispatcher.dispatch_crisis(decision, assessment, pattern, message, policy)
        result.status = PipelineStatus.ESCALATED
        return result

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    async def process_moderation(
        self,
        message: MessageRecord,
        classification: Optional[SharedClassification] = None,
    ) -> PipelineResult:
        if message.is_direct_message:
            return PipelineResult(PipelineStatus.SKIPPED, skip_reason=REASON_DIRECT_MESSAGE)
        if message.author_is_privileged:
            return PipelineResult(PipelineStatus.SKIPPED, skip_reason=REASON_PRIVILEGED_AUTHOR)

        classification = classification or SharedClassification(self.classifier, message.text)

        policy = await self.policy_gate.authorize_moderation(message.author_id, message.guild_id)
        if not policy.enabled:
            return PipelineResult(PipelineStatus.SKIPPED, skip_reason=policy.reason)

        behavior = self.behavior_tracker.record(
            message.author_id, message.text, message.created_at.timestamp()
        )

        signal = await classification.get()
        assessment = self.resolver.resolve_moderation(signal)
        decision = decide_moderation(assessment, behavior, policy)
        result = PipelineResult(
            PipelineStatus.EVALUATED,
            moderation_assessment=assessment,
            behavior=behavior,
            moderation_decision=decision,
        )
        if not decision.escalate:
            return result

        result.moderation_dispatch = await self.dispatcher.dispatch_moderation(decision, assessment, message, policy)
        result.status = PipelineStatus.ESCALATED
        return result

    # ------------------------------------------------------------------
    # Both
    # ------------------------------------------------------------------

    async def process_message(self, message: MessageRecord) -> PipelineResult:
        """Run both branches for `message` with one shared classifier call."""
        classification = SharedClassification(self.classifier, message.text)
        outcomes = await asyncio.gather(
            self.process_crisis(message, classification),
            self.process_moderation(message, classification),
            return_exceptions=True,
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        crisis, moderation = outcomes
        return merge_results(crisis, moderation)


def merge_results(crisis: PipelineResult, moderation: PipelineResult) -> PipelineResult:
    """Combine the two branch results into one."""
    if crisis.escalated or moderation.escalated:
        status = PipelineStatus.ESCALATED
    elif crisis.status is PipelineStatus.SKIPPED and moderation.status is PipelineStatus.SKIPPED:
        status = PipelineStatus.SKIPPED
    else:
        status = PipelineStatus.EVALUATED

    return PipelineResult(
        status=status,
        skip_reason=crisis.skip_reason if status is PipelineStatus.SKIPPED else None,
        pattern_signal=crisis.pattern_signal,
        crisis_assessment=crisis.crisis_assessment,
        crisis_decision=crisis.crisis_decision,
        crisis_dispatch=crisis.crisis_dispatch,
        moderation_assessment=moderation.moderation_assessment,
        behavior=moderation.behavior,
        moderation_decision=moderation.moderation_decision,
        moderation_dispatch=moderation.moderation_dispatch,
    )
