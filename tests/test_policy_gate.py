"""Tests for the fail-closed policy gate."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from carecord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from carecord.datatypes.policy_datatypes import PRIVACY_MAXIMUM, GuildSafetySettings, UserSafetySettings
from carecord.datatypes.safety_datatypes import Sensitivity
from carecord.safety.policy_gate import PolicyGate

USER = UserID(1)
GUILD = GuildID(2)


@pytest.mark.asyncio
async def test_defaults_enable_crisis_checks_in_guild(policy_reader):
    decision = await PolicyGate(policy_reader).authorize(USER, GUILD)

    assert decision.enabled is True
    assert decision.sensitivity is Sensitivity.MEDIUM
    assert decision.alerts_allowed is True
    assert decision.support_dm_allowed is True
    assert decision.alert_channel_id is None


@pytest.mark.asyncio
@pytest.mark.parametrize("settings, reason", [
    (dict(opt_out_crisis=True), "user_opted_out"),
    (dict(opt_out_ai=True), "ai_analysis_opted_out"),
    (dict(privacy_mode=PRIVACY_MAXIMUM), "maximum_privacy"),
])
async def test_user_opt_outs_disable_crisis_checks(policy_reader, settings, reason):
    policy_reader.users[USER] = UserSafetySettings(user_id=USER, **settings)

    decision = await PolicyGate(policy_reader).authorize(USER, GUILD)

    assert decision.enabled is False
    assert decision.reason == reason


@pytest.mark.asyncio
async def test_guild_ai_disabled(policy_reader):
    policy_reader.guilds[GUILD] = GuildSafetySettings(guild_id=GUILD, ai_enabled=False)

    decision = await PolicyGate(policy_reader).authorize(USER, GUILD)

    assert decision.enabled is False
    assert decision.reason == "guild_ai_disabled"


@pytest.mark.asyncio
async def test_guild_settings_flow_into_decision(policy_reader):
    policy_reader.guilds[GUILD] = GuildSafetySettings(
        guild_id=GUILD,
        crisis_alerts_enabled=False,
        sensitivity=Sensitivity.HIGH,
        mod_alert_channel_id=ChannelID(77),
    )
    policy_reader.users[USER] = UserSafetySettings(user_id=USER, opt_out_support_dms=True)

    decision = await PolicyGate(policy_reader).authorize(USER, GUILD)

    assert decision.enabled is True
    assert decision.alerts_allowed is False
    assert decision.support_dm_allowed is False
    assert decision.sensitivity is Sensitivity.HIGH
    assert decision.alert_channel_id == ChannelID(77)


@pytest.mark.asyncio
async def test_direct_messages_only_consult_user_settings(policy_reader):
    gate = PolicyGate(policy_reader, dm_sensitivity=Sensitivity.HIGH)

    decision = await gate.authorize(USER, None)

    assert decision.enabled is True
    assert decision.alerts_allowed is False
    assert decision.sensitivity is Sensitivity.HIGH
    assert policy_reader.guild_reads == 0


@pytest.mark.asyncio
async def test_read_failure_fails_closed_every_time():
    reader = AsyncMock()
    reader.get_user_settings.side_effect = ConnectionError("db down")
    gate = PolicyGate(reader)

    first = await gate.authorize(USER, GUILD)
    second = await gate.authorize(USER, GUILD)

    for decision in (first, second):
        assert decision.enabled is False
        assert decision.reason == "policy_read_failed"
        assert decision.alerts_allowed is False
        assert decision.support_dm_allowed is False
    reader.get_guild_settings.assert_not_awaited()


@pytest.mark.asyncio
async def test_read_timeout_fails_closed(policy_reader):
    async def hang(_guild_id):
        await asyncio.sleep(1)

    policy_reader.get_guild_settings = hang
    gate = PolicyGate(policy_reader, timeout_seconds=0.01)

    decision = await gate.authorize(USER, GUILD)

    assert decision.enabled is False
    assert decision.reason == "policy_read_failed"


@pytest.mark.asyncio
async def test_moderation_disabled_by_default(policy_reader):
    decision = await PolicyGate(policy_reader).authorize_moderation(USER, GUILD)

    assert decision.enabled is False
    assert decision.reason == "auto_mod_disabled"


@pytest.mark.asyncio
async def test_moderation_never_runs_in_direct_messages(policy_reader):
    decision = await PolicyGate(policy_reader).authorize_moderation(USER, None)

    assert decision.enabled is False
    assert decision.reason == "direct_message"


@pytest.mark.asyncio
async def test_moderation_ignores_user_opt_outs(policy_reader):
    policy_reader.users[USER] = UserSafetySettings(user_id=USER, opt_out_ai=True)
    policy_reader.guilds[GUILD] = GuildSafetySettings(
        guild_id=GUILD, auto_mod_enabled=True, auto_mod_level=5, mod_alert_channel_id=ChannelID(9)
    )

    decision = await PolicyGate(policy_reader).authorize_moderation(USER, GUILD)

    assert decision.enabled is True
    assert decision.auto_mod_level == 5
    assert decision.alerts_allowed is True
    assert policy_reader.user_reads == 0


@pytest.mark.asyncio
async def test_moderation_read_failure_fails_closed():
    reader = AsyncMock()
    reader.get_guild_settings.side_effect = RuntimeError("boom")

    decision = await PolicyGate(reader).authorize_moderation(USER, GUILD)

    assert decision.enabled is False
    assert decision.reason == "policy_read_failed"


class SyncRaisingReader:
    """Reader whose methods fail before returning an awaitable."""

    def get_user_settings(self, user_id):
        raise ConnectionError("pool exhausted")

    def get_guild_settings(self, guild_id):
        raise ConnectionError("pool exhausted")


@pytest.mark.asyncio
async def test_synchronous_reader_error_fails_closed():
    gate = PolicyGate(SyncRaisingReader())

    crisis = await gate.authorize(USER, GUILD)
    moderation = await gate.authorize_moderation(USER, GUILD)

    assert (crisis.enabled, crisis.reason) == (False, "policy_read_failed")
    assert (moderation.enabled, moderation.reason) == (False, "policy_read_failed")


@pytest.mark.asyncio
async def test_unexpected_settings_object_fails_closed():
    reader = AsyncMock()
    reader.get_user_settings.return_value = None
    reader.get_guild_settings.return_value = {"auto_mod_enabled": True}
    gate = PolicyGate(reader)

    crisis = await gate.authorize(USER, GUILD)
    moderation = await gate.authorize_moderation(USER, GUILD)

    assert (crisis.enabled, crisis.reason) == (False, "policy_read_failed")
    assert (moderation.enabled, moderation.reason) == (False, "policy_read_failed")
