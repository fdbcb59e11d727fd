"""Message listener Cog for carecord.

Feeds every human-authored message (guild or DM) through the safety
pipeline. The cog only converts ``discord.Message`` into a
:class:`MessageRecord`; every decision lives in the pipeline.
"""

import discord
from discord.ext import commands

from carecord.datatypes.discord_datatypes import ChannelID, GuildID, MessageID, UserID
from carecord.datatypes.safety_datatypes import MessageRecord
from carecord.safety.errors import PersistenceFailure
from carecord.safety.safety_pipeline import SafetyPipeline
from carecord.util import discord_utils
from carecord.util.logger import get_logger

logger = get_logger("message_listener_cog")


def to_message_record(message: discord.Message) -> MessageRecord:
    """Convert a Discord message into the pipeline's input record."""
    return MessageRecord(
        message_id=MessageID.from_message(message),
        author_id=UserID.from_user(message.author),
        text=(message.content or "").strip(),
        guild_id=GuildID.from_guild(message.guild) if message.guild else None,
        channel_id=ChannelID.from_channel(message.channel),
        created_at=message.created_at,
        author_is_privileged=discord_utils.has_elevated_permissions(message.author),
    )


class MessageListenerCog(commands.Cog):
    """Cog that runs the safety pipeline on new messages."""

    def __init__(self, discord_bot_instance, pipeline: SafetyPipeline):
        """
        Initialize the message listener cog.

        Parameters
        ----------
        discord_bot_instance:
            The Discord bot instance to attach this cog to.
        pipeline:
            The safety pipeline every message is sent through.
        """
        self.bot = discord_bot_instance
        self.pipeline = pipeline
        logger.info("[MESSAGE LISTENER] Message listener cog loaded")

    @commands.Cog.listener(name='on_message')
    async def on_message(self, message: discord.Message):
        if discord_utils.is_ignored_author(message.author):
            return
        if not (message.content or "").strip():
            return

        record = to_message_record(message)
        try:
            result = await self.pipeline.process_message(record)
        except PersistenceFailure:
            logger.exception("[MESSAGE LISTENER] Escalation for message %s could not be recorded", record.message_id)
            return

        if result.escalated:
            logger.info(
                "[MESSAGE LISTENER] Message %s from %s escalated (crisis=%s, moderation=%s)",
                record.message_id,
                record.author_id,
                result.crisis_decision.action if result.crisis_decision and result.crisis_decision.escalate else "-",
                result.moderation_decision.action if result.moderation_decision and result.moderation_decision.escalate else "-",
            )


def setup(discord_bot_instance, pipeline: SafetyPipeline):
    """
    Register the MessageListenerCog with the bot.

    Parameters
    ----------
    discord_bot_instance:
        The Discord bot instance to add this cog to.
    pipeline:
        The safety pipeline the cog feeds.
    """
    cog = MessageListenerCog(discord_bot_instance, pipeline)
    discord_bot_instance.add_cog(cog)
    return cog
