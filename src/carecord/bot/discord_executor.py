"""
py-cord implementation of the Escalation Dispatcher's ActionExecutor.

Alerts are posted as embeds to the guild's moderator alert channel, support
messages go out as direct messages, and moderation actions delete the
offending message before warning, muting (via the guild's muted role),
kicking or banning the author. Mutes are lifted automatically after the
configured duration.
"""

from __future__ import annotations

import asyncio
import datetime
from typing import Dict, Tuple

import discord

from carecord.datatypes.discord_datatypes import GuildID, UserID
from carecord.datatypes.safety_datatypes import DecisionKind, ModerationLevel
from carecord.safety.errors import DownstreamActionFailure
from carecord.safety.escalation_dispatcher import AlertRequest, ModerationRequest, SupportRequest
from carecord.util import discord_utils
from carecord.util.logger import get_logger

logger = get_logger("discord_executor")

_ACTION_STYLE = {
    ModerationLevel.WARN: ("⚠️", "Warn", discord.Color.yellow()),
    ModerationLevel.MUTE: ("🔇", "Mute", discord.Color.blue()),
    ModerationLevel.KICK: ("👢", "Kick", discord.Color.orange()),
    ModerationLevel.BAN: ("🔨", "Ban", discord.Color.red()),
}


def build_alert_embed(request: AlertRequest) -> discord.Embed:
    """Moderator-facing summary of an escalation."""
    if request.kind is DecisionKind.CRISIS:
        embed = discord.Embed(
            title="🚨 Crisis Alert",
            description="A member may need support. Please check in with care.",
            color=discord.Color.dark_red(),
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )
        embed.add_field(name="Severity", value=request.severity.upper(), inline=True)
        embed.add_field(name="Recommended", value=request.action.replace("_", " "), inline=True)
        embed.add_field(name="Recent events", value=str(request.recent_event_count), inline=True)
        if request.concern_areas:
            embed.add_field(name="Concern areas", value=", ".join(request.concern_areas), inline=False)
    else:
        emoji, label, color = _ACTION_STYLE.get(
            ModerationLevel(request.action), ("❓", "No Action", discord.Color.light_grey())
        )
        embed = discord.Embed(
            title=f"{emoji} Auto-Mod {label}",
            color=color,
            timestamp=datetime.datetime.now(datetime.timezone.utc),
        )

    embed.add_field(name="User", value=f"<@{request.user_id}> (`{request.user_id}`)", inline=False)
    embed.add_field(name="Reason", value=request.reason or "n/a", inline=False)
    if request.message_preview:
        embed.add_field(name="Message", value=request.message_preview[:1024], inline=False)
    return embed


class DiscordActionExecutor:
    """Carries out alerts, support DMs and moderation actions through a py-cord bot."""

    def __init__(self, bot: discord.Client) -> None:
        self.bot = bot
        self._pending_unmutes: Dict[Tuple[GuildID, UserID], asyncio.Task] = {}

    async def send_alert(self, request: AlertRequest) -> bool:
        channel = await discord_utils.resolve_channel(self.bot, request.channel_id)
        try:
            await channel.send(embed=build_alert_embed(request))
        except discord.HTTPException as exc:
            raise DownstreamActionFailure(f"alert to channel {request.channel_id} failed: {exc}") from exc
        logger.debug("[DISCORD EXECUTOR] Sent %s alert to channel %s", request.kind.value, request.channel_id)
        return True

    async def send_support_message(self, request: SupportRequest) -> bool:
        user = await discord_utils.resolve_user(self.bot, request.user_id)
        try:
            await user.send(request.message)
        except discord.Forbidden:
            logger.info("[DISCORD EXECUTOR] User %s does not accept direct messages", request.user_id)
            return False
        except discord.HTTPException as exc:
            raise DownstreamActionFailure(f"support message to {request.user_id} failed: {exc}") from exc
        return True

    async def apply_moderation(self, request: ModerationRequest) -> bool:
        guild, member = await discord_utils.resolve_member(self.bot, request.guild_id, request.user_id)
        channel = await discord_utils.resolve_channel(self.bot, request.channel_id)

        if hasattr(channel, "get_partial_message"):
            await discord_utils.safe_delete_message(channel.get_partial_message(request.message_id.to_int()))

        audit_reason = f"Auto-Mod: {request.reason}"[:512]
        try:
            if request.action is ModerationLevel.WARN:
                await channel.send(f"{member.mention} {request.warning_message}")
            elif request.action is ModerationLevel.MUTE:
                await self._mute(guild, member, request, audit_reason)
            elif request.action is ModerationLevel.KICK:
                await guild.kick(member, reason=audit_reason)
            elif request.action is ModerationLevel.BAN:
                await guild.ban(member, reason=audit_reason)
            else:
                return False
        except discord.HTTPException as exc:
            raise DownstreamActionFailure(f"{request.action.value} on {request.user_id} failed: {exc}") from exc

        logger.debug("[DISCORD EXECUTOR] Applied %s to %s in guild %s", request.action.value, member.id, guild.id)
        return True

    async def _mute(
        self,
        guild: discord.Guild,
        member: discord.Member,
        request: ModerationRequest,
        audit_reason: str,
    ) -> None:
        role = discord.utils.get(guild.roles, name=request.muted_role_name)
        if role is None:
            raise DownstreamActionFailure(f"guild {guild.id} has no '{request.muted_role_name}' role")

        await member.add_roles(role, reason=audit_reason)
        self.schedule_unmute(guild, member, role, request.mute_duration_seconds)

    def schedule_unmute(
        self,
        guild: discord.Guild,
        member: discord.Member,
        role: discord.Role,
        delay_seconds: float,
    ) -> asyncio.Task:
        """Remove `role` from `member` after `delay_seconds`, replacing any pending removal."""
        key = (GuildID(guild.id), UserID(member.id))
        previous = self._pending_unmutes.pop(key, None)
        if previous is not None and not previous.done():
            previous.cancel()

        task = asyncio.get_running_loop().create_task(
            self._unmute_later(key, member, role, delay_seconds),
            name=f"carecord-unmute-{guild.id}-{member.id}",
        )
        self._pending_unmutes[key] = task
        return task

    async def _unmute_later(
        self,
        key: Tuple[GuildID, UserID],
        member: discord.Member,
        role: discord.Role,
        delay_seconds: float,
    ) -> None:
        try:
            await asyncio.sleep(max(0.0, delay_seconds))
            await member.remove_roles(role, reason="Auto-Mod: mute expired")
            logger.debug("[DISCORD EXECUTOR] Mute expired for %s", member.id)
        except discord.HTTPException as exc:
            logger.warning("[DISCORD EXECUTOR] Failed to remove mute role from %s: %s", member.id, exc)
        finally:
            if self._pending_unmutes.get(key) is asyncio.current_task():
                self._pending_unmutes.pop(key, None)

    @property
    def pending_unmutes(self) -> int:
        return len(self._pending_unmutes)

    async def shutdown(self) -> None:
        """Cancel pending mute removals."""
        tasks = list(self._pending_unmutes.values())
        self._pending_unmutes.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
