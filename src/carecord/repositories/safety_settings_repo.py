"""
Per-user and per-guild safety settings.

This repository is the Policy Gate's reader. Missing rows read as the
documented defaults (no opt-outs; guild AI on, alerts on, auto-mod off at
level 3, medium sensitivity). The upserts are used by the host bot's settings
commands and by tests.
"""

from __future__ import annotations

from typing import Optional

from carecord.database.db_connection import ConnectionManager, db_connection
from carecord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from carecord.datatypes.policy_datatypes import GuildSafetySettings, UserSafetySettings
from carecord.datatypes.safety_datatypes import Sensitivity
from carecord.util.logger import get_logger

logger = get_logger("safety_settings_repo")


class SafetySettingsRepo:
    """Reads and upserts rows of ``user_safety_settings`` / ``guild_safety_settings``."""

    def __init__(self, db: ConnectionManager = db_connection) -> None:
        self._db = db

    async def get_user_settings(self, user_id: UserID) -> UserSafetySettings:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT opt_out_crisis, opt_out_ai, opt_out_support_dms, privacy_mode "
                "FROM user_safety_settings WHERE user_id = ?",
                (str(user_id),),
            )
            row = await cursor.fetchone()

        if row is None:
            return UserSafetySettings(user_id=user_id)

        return UserSafetySettings(
            user_id=user_id,
            opt_out_crisis=bool(row["opt_out_crisis"]),
            opt_out_ai=bool(row["opt_out_ai"]),
            opt_out_support_dms=bool(row["opt_out_support_dms"]),
            privacy_mode=row["privacy_mode"],
        )

    async def get_guild_settings(self, guild_id: GuildID) -> GuildSafetySettings:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT ai_enabled, crisis_alerts_enabled, auto_mod_enabled, auto_mod_level, "
                "sensitivity, mod_alert_channel_id, muted_role_name "
                "FROM guild_safety_settings WHERE guild_id = ?",
                (str(guild_id),),
            )
            row = await cursor.fetchone()

        if row is None:
            return GuildSafetySettings(guild_id=guild_id)

        channel: Optional[ChannelID] = None
        if row["mod_alert_channel_id"]:
            channel = ChannelID(row["mod_alert_channel_id"])

        return GuildSafetySettings(
            guild_id=guild_id,
            ai_enabled=bool(row["ai_enabled"]),
            crisis_alerts_enabled=bool(row["crisis_alerts_enabled"]),
            auto_mod_enabled=bool(row["auto_mod_enabled"]),
            auto_mod_level=int(row["auto_mod_level"]),
            sensitivity=Sensitivity.parse(row["sensitivity"]),
            mod_alert_channel_id=channel,
            muted_role_name=row["muted_role_name"],
        )

    async def upsert_user_settings(self, settings: UserSafetySettings) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO user_safety_settings
                    (user_id, opt_out_crisis, opt_out_ai, opt_out_support_dms, privacy_mode)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    opt_out_crisis      = excluded.opt_out_crisis,
                    opt_out_ai          = excluded.opt_out_ai,
                    opt_out_support_dms = excluded.opt_out_support_dms,
                    privacy_mode        = excluded.privacy_mode,
                    updated_at          = CURRENT_TIMESTAMP
                """,
                (
                    str(settings.user_id),
                    int(settings.opt_out_crisis),
                    int(settings.opt_out_ai),
                    int(settings.opt_out_support_dms),
                    settings.privacy_mode,
                ),
            )
        logger.debug("[SAFETY SETTINGS] Saved user settings for %s", settings.user_id)

    async def upsert_guild_settings(self, settings: GuildSafetySettings) -> None:
        async with self._db.transaction() as conn:
            await conn.execute(
                """
                INSERT INTO guild_safety_settings
                    (guild_id, ai_enabled, crisis_alerts_enabled, auto_mod_enabled, auto_mod_level,
                     sensitivity, mod_alert_channel_id, muted_role_name)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(guild_id) DO UPDATE SET
                    ai_enabled            = excluded.ai_enabled,
                    crisis_alerts_enabled = excluded.crisis_alerts_enabled,
                    auto_mod_enabled      = excluded.auto_mod_enabled,
                    auto_mod_level        = excluded.auto_mod_level,
                    sensitivity           = excluded.sensitivity,
                    mod_alert_channel_id  = excluded.mod_alert_channel_id,
                    muted_role_name       = excluded.muted_role_name,
                    updated_at            = CURRENT_TIMESTAMP
                """,
                (
                    str(settings.guild_id),
                    int(settings.ai_enabled),
                    int(settings.crisis_alerts_enabled),
                    int(settings.auto_mod_enabled),
                    int(settings.auto_mod_level),
                    settings.sensitivity.value,
                    str(settings.mod_alert_channel_id) if settings.mod_alert_channel_id is not None else None,
                    settings.muted_role_name,
                ),
            )
        logger.debug("[SAFETY SETTINGS] Saved guild settings for %s", settings.guild_id)


safety_settings_repo = SafetySettingsRepo()
