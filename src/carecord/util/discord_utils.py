"""
discord_utils.py
================

Stateless Discord helpers for carecord: author filters, privilege checks and
lookups that fall back from the client cache to the API.
"""

from typing import Union

import discord

from carecord.datatypes.discord_datatypes import ChannelID, GuildID, UserID
from carecord.safety.errors import DownstreamActionFailure
from carecord.util.logger import get_logger

logger = get_logger("discord_utils")


def is_ignored_author(author: Union[discord.User, discord.Member]) -> bool:
    """
    Check if an author should be ignored entirely (bots and webhooks).

    Args:
        author (discord.User | discord.Member): The user or member to check.

    Returns:
        bool: True if the author is a bot.
    """
    return bool(getattr(author, "bot", False))


def has_elevated_permissions(member: Union[discord.User, discord.Member]) -> bool:
    """
    Check if a member has moderator-level privileges (administrator, manage guild, or moderate members).

    Privileged members are exempt from auto-moderation.

    Args:
        member (discord.User | discord.Member): The member to evaluate.

    Returns:
        bool: True if the member has elevated permissions, False otherwise.
    """
    if not isinstance(member, discord.Member):
        return False

    perms = member.guild_permissions
    return any(
        getattr(perms, attr, False)
        for attr in (
            "administrator",
            "manage_guild",
            "moderate_members",
        )
    )


async def resolve_channel(bot: discord.Client, channel_id: ChannelID) -> discord.abc.Messageable:
    """Cached channel, or fetched from the API."""
    channel = bot.get_channel(channel_id.to_int())
    if channel is not None:
        return channel
    try:
        return await bot.fetch_channel(channel_id.to_int())
    except discord.HTTPException as exc:
        raise DownstreamActionFailure(f"channel {channel_id} unavailable: {exc}") from exc


async def resolve_user(bot: discord.Client, user_id: UserID) -> discord.User:
    user = bot.get_user(user_id.to_int())
    if user is not None:
        return user
    try:
        return await bot.fetch_user(user_id.to_int())
    except discord.HTTPException as exc:
        raise DownstreamActionFailure(f"user {user_id} unavailable: {exc}") from exc


async def resolve_member(bot: discord.Client, guild_id: GuildID, user_id: UserID) -> tuple[discord.Guild, discord.Member]:
    """Guild and member for a moderation action."""
    guild = bot.get_guild(guild_id.to_int())
    if guild is None:
        raise DownstreamActionFailure(f"guild {guild_id} is not available")

    member = guild.get_member(user_id.to_int())
    if member is not None:
        return guild, member
    try:
        return guild, await guild.fetch_member(user_id.to_int())
    except discord.HTTPException as exc:
        raise DownstreamActionFailure(f"member {user_id} not found in guild {guild_id}: {exc}") from exc


async def safe_delete_message(message: Union[discord.Message, discord.PartialMessage]) -> bool:
    """
    Attempt to delete a Discord message, suppressing recoverable errors.

    Returns:
        bool: True if deletion succeeded, False otherwise.
    """
    try:
        await message.delete()
        return True
    except discord.NotFound:
        return False
    except discord.Forbidden:
        logger.warning("[DISCORD UTILS] No permission to delete message %s", message.id)
    except discord.HTTPException as exc:
        logger.error("[DISCORD UTILS] Error deleting message %s: %s", message.id, exc)
    return False
