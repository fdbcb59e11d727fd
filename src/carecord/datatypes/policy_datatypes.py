"""
Per-user and per-guild safety settings and the Policy Gate's answer.

The settings records are read-only to the safety core; they are written by
the settings commands of the host bot.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from carecord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from carecord.datatypes.safety_datatypes import Sensitivity

PRIVACY_STANDARD = "standard"
PRIVACY_MAXIMUM = "maximum"

DEFAULT_AUTO_MOD_LEVEL = 3
DEFAULT_MUTED_ROLE_NAME = "Muted"


@dataclass(slots=True)
class UserSafetySettings:
    """Opt-outs a user controls for themselves."""

    user_id: UserID
    opt_out_crisis: bool = False
    opt_out_ai: bool = False
    opt_out_support_dms: bool = False
    privacy_mode: str = PRIVACY_STANDARD


@dataclass(slots=True)
class GuildSafetySettings:
    """Safety configuration of one guild."""

    guild_id: GuildID
    ai_enabled: bool = True
    crisis_alerts_enabled: bool = True
    auto_mod_enabled: bool = False
    auto_mod_level: int = DEFAULT_AUTO_MOD_LEVEL
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    mod_alert_channel_id: Optional[ChannelID] = None
    muted_role_name: str = DEFAULT_MUTED_ROLE_NAME


@dataclass(frozen=True, slots=True)
class PolicyDecision:
    """Whether (and how) the pipeline may run for one message."""

    enabled: bool
    sensitivity: Sensitivity = Sensitivity.MEDIUM
    reason: str = ""
    alerts_allowed: bool = False
    support_dm_allowed: bool = False
    alert_channel_id: Optional[ChannelID] = None
    auto_mod_level: int = DEFAULT_AUTO_MOD_LEVEL
    muted_role_name: str = DEFAULT_MUTED_ROLE_NAME

    @classmethod
    def disabled(cls, reason: str) -> "PolicyDecision":
        return cls(enabled=False, reason=reason)
