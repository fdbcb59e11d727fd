"""
Pytest configuration and fixtures for carecord tests.
"""

import sys
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src directory to path so imports work
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from carecord.configuration.safety_settings import SafetySettings  # noqa: E402
from carecord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID  # noqa: E402
from carecord.datatypes.policy_datatypes import GuildSafetySettings, UserSafetySettings  # noqa: E402
from carecord.datatypes.safety_datatypes import MessageRecord  # noqa: E402

BASE_TIME = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_message(
    text: str,
    *,
    user_id: int = 1001,
    guild_id: int | None = 2002,
    channel_id: int = 3003,
    message_id: int = 4004,
    created_at: datetime = BASE_TIME,
    privileged: bool = False,
) -> MessageRecord:
    return MessageRecord(
        message_id=MessageID(message_id),
        author_id=UserID(user_id),
        text=text,
        guild_id=GuildID(guild_id) if guild_id is not None else None,
        channel_id=ChannelID(channel_id),
        created_at=created_at,
        author_is_privileged=privileged,
    )


class FakePolicyReader:
    """In-memory policy reader; missing entries read as defaults."""

    def __init__(self) -> None:
        self.users: dict = {}
        self.guilds: dict = {}
        self.user_reads = 0
        self.guild_reads = 0

    async def get_user_settings(self, user_id):
        self.user_reads += 1
        return self.users.get(user_id, UserSafetySettings(user_id=user_id))

    async def get_guild_settings(self, guild_id):
        self.guild_reads += 1
        return self.guilds.get(guild_id, GuildSafetySettings(guild_id=guild_id))


@pytest.fixture()
def policy_reader() -> FakePolicyReader:
    return FakePolicyReader()


@pytest.fixture()
def safety_settings() -> SafetySettings:
    return SafetySettings({
        "timeouts": {
            "policy_read_seconds": 0.2,
            "classifier_seconds": 0.2,
            "persistence_seconds": 0.2,
            "action_seconds": 0.2,
        },
        "system_actor_id": 999,
        "mute_duration_seconds": 60,
    })


@pytest.fixture()
def executor() -> AsyncMock:
    fake = AsyncMock()
    fake.send_alert.return_value = True
    fake.send_support_message.return_value = True
    fake.apply_moderation.return_value = True
    return fake
