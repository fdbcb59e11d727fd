"""
Policy Gate: decides whether, and how, the safety pipeline may look at a message.

Crisis checks honour user opt-outs and guild flags; moderation checks honour
guild auto-mod settings only. Any failure to read settings (an exception or
a timeout) fails closed: the answer is ``enabled=False`` and nothing else
happens. Analysing private messages when we cannot confirm consent is the
wrong default here.
"""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional, Protocol

from carecord.datatypes.discord_datatypes import GuildID, UserID
from carecord.datatypes.policy_datatypes import (
    PRIVACY_MAXIMUM,
    GuildSafetySettings,
    PolicyDecision,
    UserSafetySettings,
)
from carecord.datatypes.safety_datatypes import Sensitivity
from carecord.safety.errors import PolicyReadFailure
from carecord.util.logger import get_logger

logger = get_logger("policy_gate")

REASON_USER_OPTED_OUT = "user_opted_out"
REASON_AI_OPTED_OUT = "ai_analysis_opted_out"
REASON_MAXIMUM_PRIVACY = "maximum_privacy"
REASON_GUILD_AI_DISABLED = "guild_ai_disabled"
REASON_DIRECT_MESSAGE = "direct_message"
REASON_AUTO_MOD_DISABLED = "auto_mod_disabled"
REASON_READ_FAILED = "policy_read_failed"


class PolicyReader(Protocol):
    """Read-only source of per-user and per-guild safety settings."""

    async def get_user_settings(self, user_id: UserID) -> UserSafetySettings: ...

    async def get_guild_settings(self, guild_id: GuildID) -> GuildSafetySettings: ...


class PolicyGate:
    """Fail-closed authorization for the crisis and moderation branches."""

    def __init__(
        self,
        reader: PolicyReader,
        timeout_seconds: float = 2.0,
        dm_sensitivity: Sensitivity = Sensitivity.MEDIUM,
    ) -> None:
        self._reader = reader
        self._timeout = timeout_seconds
        self._dm_sensitivity = dm_sensitivity

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    @property
    def dm_sensitivity(self) -> Sensitivity:
        return self._dm_sensitivity

    async def _read(self, what: str, factory: Callable[[], Awaitable[Any]], expected: type):
        try:
            settings = await asyncio.wait_for(factory(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            raise PolicyReadFailure(f"{what} read timed out after {self._timeout:.1f}s") from exc
        except Exception as exc:
            raise PolicyReadFailure(f"{what} read failed: {exc}") from exc
        if not isinstance(settings, expected):
            raise PolicyReadFailure(f"{what} read returned {type(settings).__name__}")
        return settings

    async def _user(self, user_id: UserID) -> UserSafetySettings:
        return await self._read(
            "user settings", lambda: self._reader.get_user_settings(user_id), UserSafetySettings
        )

    async def _guild(self, guild_id: GuildID) -> GuildSafetySettings:
        return await self._read(
            "guild settings", lambda: self._reader.get_guild_settings(guild_id), GuildSafetySettings
        )

    async def authorize(self, user_id: UserID, guild_id: Optional[GuildID]) -> PolicyDecision:
        """Whether crisis detection may run for `user_id` in `guild_id` (None for DMs)."""
        try:
            decision = await self._authorize_crisis(user_id, guild_id)
        except PolicyReadFailure as exc:
            logger.warning("[POLICY GATE] %s; crisis checks disabled for user %s", exc, user_id)
            return PolicyDecision.disabled(REASON_READ_FAILED)

        if not decision.enabled:
            logger.debug("[POLICY GATE] Crisis checks disabled for user %s: %s", user_id, decision.reason)
        return decision

    async def _authorize_crisis(self, user_id: UserID, guild_id: Optional[GuildID]) -> PolicyDecision:
        user = await self._user(user_id)
        if user.opt_out_crisis:
            return PolicyDecision.disabled(REASON_USER_OPTED_OUT)
        if user.opt_out_ai:
            return PolicyDecision.disabled(REASON_AI_OPTED_OUT)
        if user.privacy_mode == PRIVACY_MAXIMUM:
            return PolicyDecision.disabled(REASON_MAXIMUM_PRIVACY)

        support_dm_allowed = not user.opt_out_support_dms

        if guild_id is None:
            return PolicyDecision(
                enabled=True,
                sensitivity=self._dm_sensitivity,
                alerts_allowed=False,
                support_dm_allowed=support_dm_allowed,
            )

        guild = await self._guild(guild_id)
        if not guild.ai_enabled:
            return PolicyDecision.disabled(REASON_GUILD_AI_DISABLED)

        return PolicyDecision(
            enabled=True,
            sensitivity=guild.sensitivity,
            alerts_allowed=guild.crisis_alerts_enabled,
            support_dm_allowed=support_dm_allowed,
            alert_channel_id=guild.mod_alert_channel_id,
            auto_mod_level=guild.auto_mod_level,
            muted_role_name=guild.muted_role_name,
        )

    async def authorize_moderation(self, user_id: UserID, guild_id: Optional[GuildID]) -> PolicyDecision:
        """Whether auto-moderation applies. Users cannot opt out of it."""
        if guild_id is None:
            return PolicyDecision.disabled(REASON_DIRECT_MESSAGE)

        try:
            guild = await self._guild(guild_id)
        except PolicyReadFailure as exc:
            logger.warning("[POLICY GATE] %s; auto-moderation disabled for guild %s", exc, guild_id)
            return PolicyDecision.disabled(REASON_READ_FAILED)

        if not guild.auto_mod_enabled:
            return PolicyDecision.disabled(REASON_AUTO_MOD_DISABLED)

        return PolicyDecision(
            enabled=True,
            sensitivity=guild.sensitivity,
            alerts_allowed=guild.mod_alert_channel_id is not None,
            alert_channel_id=guild.mod_alert_channel_id,
            auto_mod_level=guild.auto_mod_level,
            muted_role_name=guild.muted_role_name,
        )
