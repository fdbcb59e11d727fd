"""
Tests for the SQLite repositories.

Each test gets a fresh database file under ``tmp_path``.
"""

import time
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from carecord.database.db_connection import ConnectionManager
from carecord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from carecord.datatypes.policy_datatypes import PRIVACY_MAXIMUM, GuildSafetySettings, UserSafetySettings
from carecord.datatypes.safety_datatypes import ModerationLevel, Sensitivity
from carecord.repositories.crisis_event_repo import CrisisEventRepo
from carecord.repositories.mod_action_repo import ModActionRepo
from carecord.repositories.safety_settings_repo import SafetySettingsRepo

USER = UserID(111)
GUILD = GuildID(222)


@pytest_asyncio.fixture
async def db(tmp_path):
    manager = ConnectionManager()
    await manager.open(tmp_path / "carecord.db")
    yield manager
    await manager.close()


@pytest.mark.asyncio
async def test_schema_creates_all_tables(db):
    async with db.read() as conn:
        cursor = await conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")
        tables = {row["name"] for row in await cursor.fetchall()}

    assert {"crisis_events", "mod_actions", "user_safety_settings", "guild_safety_settings", "schema_version"} <= tables


@pytest.mark.asyncio
async def test_reopening_is_ignored(db, tmp_path):
    await db.open(tmp_path / "other.db")

    assert db.is_open
    assert not (tmp_path / "other.db").exists()


def test_connection_requires_open():
    with pytest.raises(RuntimeError):
        ConnectionManager().connection


@pytest.mark.asyncio
async def test_crisis_event_roundtrip(db):
    repo = CrisisEventRepo(db)
    detected = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)

    created = await repo.create(USER, {"severity": "critical"}, guild_id=GUILD, detected_at=detected)
    events = await repo.find_recent_by_user(USER)

    assert len(events) == 1
    assert events[0].id == created.id
    assert events[0].user_id == USER
    assert events[0].guild_id == GUILD
    assert events[0].escalated is True
    assert events[0].detected_at == detected
    assert events[0].details == {"severity": "critical"}


@pytest.mark.asyncio
async def test_find_recent_is_newest_first_and_limited(db):
    repo = CrisisEventRepo(db)
    start = datetime(2024, 1, 1, tzinfo=timezone.utc)
    for day in range(5):
        await repo.create(USER, {"day": day}, detected_at=start + timedelta(days=day))
    await repo.create(UserID(999), {"other": True}, detected_at=start)

    events = await repo.find_recent_by_user(USER, limit=3)

    assert [event.details["day"] for event in events] == [4, 3, 2]
    assert events[0].guild_id is None


@pytest.mark.asyncio
async def test_crisis_stats_and_trend(db):
    repo = CrisisEventRepo(db)
    now = float(int(time.time()))
    recent = datetime.fromtimestamp(now - 3600, tz=timezone.utc)
    old = datetime.fromtimestamp(now - 60 * 24 * 3600, tz=timezone.utc)

    for _ in range(6):
        await repo.create(USER, {}, detected_at=recent)
    await repo.create(USER, {}, escalated=False, detected_at=old)

    stats = await repo.get_stats(USER, now=now)

    assert stats.total_events == 7
    assert stats.recent_events == 6
    assert stats.escalated_events == 6
    assert stats.recent_escalated == 6
    assert stats.trend == "increasing"
    assert stats.last_event_at == recent


@pytest.mark.asyncio
async def test_crisis_stats_for_unknown_user(db):
    stats = await CrisisEventRepo(db).get_stats(USER)

    assert stats.total_events == 0
    assert stats.last_event_at is None
    assert stats.trend == "decreasing"


@pytest.mark.asyncio
async def test_mod_action_log_queries(db):
    repo = ModActionRepo(db)
    start = datetime(2024, 3, 1, tzinfo=timezone.utc)
    await repo.create(GUILD, UserID(0), USER, ModerationLevel.WARN, "spam", created_at=start)
    await repo.create(GUILD, UserID(0), USER, ModerationLevel.WARN, "spam", created_at=start + timedelta(minutes=1))
    await repo.create(GUILD, UserID(5), UserID(333), ModerationLevel.BAN, "hate", created_at=start + timedelta(minutes=2))

    by_user = await repo.find_recent_by_user(USER)
    by_guild = await repo.recent_for_guild(GUILD, limit=2)
    counts = await repo.count_by_guild(GUILD)

    assert [record.action for record in by_user] == [ModerationLevel.WARN, ModerationLevel.WARN]
    assert by_user[0].created_at == start + timedelta(minutes=1)
    assert [record.action for record in by_guild] == [ModerationLevel.BAN, ModerationLevel.WARN]
    assert by_guild[0].moderator_id == UserID(5)
    assert counts == {ModerationLevel.WARN: 2, ModerationLevel.BAN: 1}


@pytest.mark.asyncio
async def test_missing_settings_read_as_defaults(db):
    repo = SafetySettingsRepo(db)

    user = await repo.get_user_settings(USER)
    guild = await repo.get_guild_settings(GUILD)

    assert user == UserSafetySettings(user_id=USER)
    assert guild == GuildSafetySettings(guild_id=GUILD)


@pytest.mark.asyncio
async def test_settings_upsert_and_update(db):
    repo = SafetySettingsRepo(db)

    await repo.upsert_user_settings(UserSafetySettings(user_id=USER, opt_out_ai=True))
    await repo.upsert_user_settings(UserSafetySettings(user_id=USER, privacy_mode=PRIVACY_MAXIMUM))
    await repo.upsert_guild_settings(GuildSafetySettings(
        guild_id=GUILD,
        auto_mod_enabled=True,
        auto_mod_level=5,
        sensitivity=Sensitivity.HIGH,
        mod_alert_channel_id=ChannelID(444),
        muted_role_name="Timeout",
    ))

    user = await repo.get_user_settings(USER)
    guild = await repo.get_guild_settings(GUILD)

    assert user.opt_out_ai is False
    assert user.privacy_mode == PRIVACY_MAXIMUM
    assert guild.auto_mod_enabled is True
    assert guild.auto_mod_level == 5
    assert guild.sensitivity is Sensitivity.HIGH
    assert guild.mod_alert_channel_id == ChannelID(444)
    assert guild.muted_role_name == "Timeout"
