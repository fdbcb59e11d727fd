"""
Escalation Dispatcher: executes a decision's side effects in a fixed order.

1. Persist the event record. This must succeed; otherwise nothing else runs
   and :class:`PersistenceFailure` reaches the caller.
2. Ask for a moderator alert, if policy allows and a channel is configured.
3. Send the supportive direct message, or carry out the moderation action.

Steps 2 and 3 are isolated from each other and from step 1: each has its own
timeout, and a failure is logged and reported as "not sent" without undoing
the persisted record. When the decision requires immediate handling the
alert is awaited before step 3; otherwise both run concurrently.

The platform side (Discord) lives behind :class:`ActionExecutor`.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, Tuple

from carecord.configuration.safety_settings import SafetySettings
from carecord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from carecord.datatypes.policy_datatypes import DEFAULT_MUTED_ROLE_NAME, PolicyDecision
from carecord.datatypes.safety_datatypes import (
    Decision,
    DecisionKind,
    DispatchResult,
    MessageRecord,
    ModerationAssessment,
    ModerationLevel,
    PatternSignal,
    SeverityAssessment,
    SeverityLevel,
    SupportAction,
)
from carecord.safety.behavior_tracker import BehaviorTracker
from carecord.safety.errors import PersistenceFailure
from carecord.util.logger import get_logger

logger = get_logger("escalation_dispatcher")

RECENT_EVENT_LOOKUP_LIMIT = 10


@dataclass(frozen=True, slots=True)
class AlertRequest:
    """Moderator alert for one escalation."""

    kind: DecisionKind
    channel_id: ChannelID
    guild_id: Optional[GuildID]
    user_id: UserID
    severity: str
    action: str
    reason: str
    message_preview: str = ""
    recent_event_count: int = 0
    concern_areas: Tuple[str, ...] = ()


@dataclass(frozen=True, slots=True)
class SupportRequest:
    """Supportive direct message to the user at risk."""

    user_id: UserID
    severity: SeverityLevel
    support_action: SupportAction
    message: str
    has_recent_events: bool = False


@dataclass(frozen=True, slots=True)
class ModerationRequest:
    """Platform moderation action on a message and its author."""

    guild_id: GuildID
    channel_id: ChannelID
    message_id: MessageID
    user_id: UserID
    action: ModerationLevel
    reason: str
    muted_role_name: str = DEFAULT_MUTED_ROLE_NAME
    mute_duration_seconds: float = 3600.0
    warning_message: str = ""


class ActionExecutor(Protocol):
    """Performs alerts, direct messages and moderation actions on the platform.

    Each method returns True when the effect happened. It may also raise
    :class:`~carecord.safety.errors.DownstreamActionFailure`.
    """

    async def send_alert(self, request: AlertRequest) -> bool: ...

    async def send_support_message(self, request: SupportRequest) -> bool: ...

    async def apply_moderation(self, request: ModerationRequest) -> bool: ...


class CrisisEventStore(Protocol):
    async def create(self, user_id: UserID, details: Dict[str, Any], escalated: bool = True,
                     guild_id: Optional[GuildID] = None, detected_at: Any = None) -> Any: ...

    async def find_recent_by_user(self, user_id: UserID, limit: int = 10) -> Any: ...


class ModActionStore(Protocol):
    async def create(self, guild_id: GuildID, moderator_id: UserID, target_user_id: UserID,
                     action: ModerationLevel, reason: str, created_at: Any = None) -> Any: ...


def crisis_details(
    assessment: SeverityAssessment,
    pattern: PatternSignal,
    message: MessageRecord,
) -> Dict[str, Any]:
    """JSON-serialisable summary stored with a crisis event."""
    return {
        "severity": assessment.level.value,
        "support_level": assessment.support_level.value,
        "support_action": assessment.support_action.value,
        "confidence": assessment.confidence.value,
        "pattern_forced": assessment.pattern_forced,
        "concern_areas": [
            {"category": area.category, "intensity": round(area.intensity, 4), "bucket": area.bucket.value}
            for area in assessment.concern_areas
        ],
        "matched_patterns": sorted(pattern.matched_patterns),
        "matched_keywords": sorted(pattern.matched_keywords),
        "guild_id": str(message.guild_id) if message.guild_id is not None else None,
        "channel_id": str(message.channel_id),
        "message_preview": message.preview,
    }


class EscalationDispatcher:
    """Runs the ordered, fail-isolated side effects of an escalation."""

    def __init__(
        self,
        crisis_events: CrisisEventStore,
        mod_actions: ModActionStore,
        executor: ActionExecutor,
        behavior_tracker: BehaviorTracker,
        settings: SafetySettings | None = None,
    ) -> None:
        self._crisis_events = crisis_events
        self._mod_actions = mod_actions
        self._executor = executor
        self._behavior_tracker = behavior_tracker
        self._settings = settings or SafetySettings()

    # ------------------------------------------------------------------
    # Step helpers
    # ------------------------------------------------------------------

    async def _persist(self, what: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        timeout = self._settings.persistence_timeout
        try:
            return await asyncio.wait_for(factory(), timeout=timeout)
        except asyncio.TimeoutError as exc:
            logger.error("[ESCALATION DISPATCHER] Persisting %s timed out after %.1fs", what, timeout)
            raise PersistenceFailure(f"persisting {what} timed out") from exc
        except Exception as exc:
            logger.error("[ESCALATION DISPATCHER] Persisting %s failed: %s", what, exc, exc_info=True)
            raise PersistenceFailure(f"persisting {what} failed: {exc}") from exc

    async def _run_step(self, name: str, factory: Callable[[], Awaitable[bool]]) -> bool:
        timeout = self._settings.action_timeout
        try:
            return bool(await asyncio.wait_for(factory(), timeout=timeout))
        except asyncio.TimeoutError:
            logger.warning("[ESCALATION DISPATCHER] %s timed out after %.1fs", name, timeout)
        except Exception as exc:
            logger.warning("[ESCALATION DISPATCHER] %s failed: %s", name, exc, exc_info=True)
        return False

    async def _run_side_effects(
        self,
        immediate: bool,
        alert: Optional[Callable[[], Awaitable[bool]]],
        response: Optional[Callable[[], Awaitable[bool]]],
        response_name: str,
    ) -> Tuple[bool, bool]:
        async def noop() -> bool:
            return False

        alert_step = self._run_step("Moderator alert", alert) if alert else noop()
        response_step = self._run_step(response_name, response) if response else noop()

        if immediate:
            alert_sent = await alert_step
            response_sent = await response_step
        else:
            alert_sent, response_sent = await asyncio.gather(alert_step, response_step)
        return alert_sent, response_sent

    def _alert_channel(self, policy: PolicyDecision) -> Optional[ChannelID]:
        if not policy.alerts_allowed:
            return None
        if policy.alert_channel_id is None:
            logger.debug("[ESCALATION DISPATCHER] No alert channel configured; skipping moderator alert")
            return None
        return policy.alert_channel_id

    # ------------------------------------------------------------------
    # Crisis
    # ------------------------------------------------------------------

    async def dispatch_crisis(
        self,
        decision: Decision,
        assessment: SeverityAssessment,
        pattern: PatternSignal,
        message: MessageRecord,
        policy: PolicyDecision,
    ) -> DispatchResult:
        if not decision.escalate:
            return DispatchResult()

        details = crisis_details(assessment, pattern, message)
        record = await self._persist(
            "crisis event",
            lambda: self._crisis_events.create(
                user_id=message.author_id,
                details=details,
                escalated=True,
                guild_id=message.guild_id,
                detected_at=message.created_at,
            ),
        )
        result = DispatchResult(logged=True, record_id=getattr(record, "id", None))
        logger.info(
            "[ESCALATION DISPATCHER] Crisis event %s stored for user %s (severity=%s)",
            result.record_id, message.author_id, assessment.level,
        )

        recent_count = await self._recent_crisis_count(message.author_id)

        alert = None
        channel_id = self._alert_channel(policy)
        if channel_id is not None:
            request = AlertRequest(
                kind=DecisionKind.CRISIS,
                channel_id=channel_id,
                guild_id=message.guild_id,
                user_id=message.author_id,
                severity=assessment.level.value,
                action=assessment.support_action.value,
                reason=decision.reason,
                message_preview=message.preview,
                recent_event_count=recent_count,
                concern_areas=tuple(area.category for area in assessment.concern_areas),
            )
            alert = lambda: self._executor.send_alert(request)  # noqa: E731

        response = None
        if policy.support_dm_allowed:
            templates = self._settings.support_messages
            support = SupportRequest(
                user_id=message.author_id,
                severity=assessment.level,
                support_action=assessment.support_action,
                message=templates.get(assessment.level.value, templates["low"]),
                has_recent_events=recent_count > 1,
            )
            response = lambda: self._executor.send_support_message(support)  # noqa: E731

        result.alert_sent, result.response_sent = await self._run_side_effects(
            decision.requires_immediate, alert, response, "Support message"
        )
        return result

    async def _recent_crisis_count(self, user_id: UserID) -> int:
        try:
            events = await asyncio.wait_for(
                self._crisis_events.find_recent_by_user(user_id, RECENT_EVENT_LOOKUP_LIMIT),
                timeout=self._settings.persistence_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning("[ESCALATION DISPATCHER] Recent crisis lookup timed out for user %s", user_id)
            return 0
        except Exception as exc:
            logger.warning("[ESCALATION DISPATCHER] Recent crisis lookup failed for user %s: %s", user_id, exc)
            return 0
        return len(events)

    # ------------------------------------------------------------------
    # Moderation
    # ------------------------------------------------------------------

    async def dispatch_moderation(
        self,
        decision: Decision,
        assessment: ModerationAssessment,
        message: MessageRecord,
        policy: PolicyDecision,
    ) -> DispatchResult:
        if not decision.escalate or message.guild_id is None:
            return DispatchResult()

        action: ModerationLevel = decision.action  # type: ignore[assignment]
        guild_id = message.guild_id
        record = await self._persist(
            "moderation action",
            lambda: self._mod_actions.create(
                guild_id=guild_id,
                moderator_id=UserID(self._settings.system_actor_id),
                target_user_id=message.author_id,
                action=action,
                reason=decision.reason,
                created_at=message.created_at,
            ),
        )
        result = DispatchResult(logged=True, record_id=getattr(record, "id", None))
        logger.info(
            "[ESCALATION DISPATCHER] %s logged for user %s in guild %s (%s)",
            action.value.upper(), message.author_id, guild_id, decision.reason,
        )

        self._behavior_tracker.record_action(message.author_id, action, message.created_at.timestamp())

        alert = None
        channel_id = self._alert_channel(policy)
        if channel_id is not None:
            request = AlertRequest(
                kind=DecisionKind.MODERATION,
                channel_id=channel_id,
                guild_id=guild_id,
                user_id=message.author_id,
                severity=assessment.level.value,
                action=action.value,
                reason=decision.reason,
                message_preview=message.preview,
            )
            alert = lambda: self._executor.send_alert(request)  # noqa: E731

        moderation = ModerationRequest(
            guild_id=guild_id,
            channel_id=message.channel_id,
            message_id=message.message_id,
            user_id=message.author_id,
            action=action,
            reason=decision.reason,
            muted_role_name=policy.muted_role_name,
            mute_duration_seconds=self._settings.mute_duration_seconds,
            warning_message=self._settings.warning_message,
        )

        result.alert_sent, result.response_sent = await self._run_side_effects(
            decision.requires_immediate,
            alert,
            lambda: self._executor.apply_moderation(moderation),
            "Moderation action",
        )
        return result
