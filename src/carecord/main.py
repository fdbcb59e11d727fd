"""
Carecord Bot
============

A Discord companion bot whose safety core watches every message for signs of
crisis (routing supportive messages and moderator alerts) and for community
rule violations (warnings, mutes, kicks and bans).
"""

import os
import sys
from pathlib import Path


def resolve_base_dir() -> Path:
    """Determine the base directory of the project.

    Resolution order:
    1. CARECORD_HOME environment variable, if set.
    2. If running in a frozen/compiled context, use the executable's directory.
    3. Otherwise, assume running from source and use the grandparent of this file's directory.
    """
    if env_home := os.getenv("CARECORD_HOME"):
        return Path(env_home).resolve()

    if getattr(sys, "frozen", False) or getattr(sys, "compiled", False):
        return Path(sys.argv[0]).resolve().parent

    return Path(__file__).resolve().parents[2]


BASE_DIR = resolve_base_dir()

import asyncio
import time

import discord
from dotenv import load_dotenv

from carecord.bot.discord_executor import DiscordActionExecutor
from carecord.configuration.app_configuration import AppConfig
from carecord.database.db_connection import db_connection
from carecord.datatypes.safety_datatypes import Sensitivity
from carecord.repositories.crisis_event_repo import crisis_event_repo
from carecord.repositories.mod_action_repo import mod_action_repo
from carecord.repositories.safety_settings_repo import safety_settings_repo
from carecord.safety.behavior_tracker import BehaviorTracker
from carecord.safety.classification_adapter import ClassificationAdapter, OpenAIModerationClassifier
from carecord.safety.escalation_dispatcher import EscalationDispatcher
from carecord.safety.policy_gate import PolicyGate
from carecord.safety.safety_pipeline import SafetyPipeline
from carecord.util.logger import get_logger, handle_exception

logger = get_logger("main")


def load_environment() -> str:
    """Load environment variables and return the Discord bot token.

    Raises
    ------
    SystemExit
        If the required ``DISCORD_BOT_TOKEN`` variable is missing.
    """
    load_dotenv(dotenv_path=BASE_DIR / ".env")
    token = os.getenv("DISCORD_BOT_TOKEN")
    if not token:
        logger.critical("'DISCORD_BOT_TOKEN' environment variable not set. Bot cannot start.")
        sys.exit(1)
    return token


def build_intents() -> discord.Intents:
    """Intents for guild and direct message content plus member lookups."""
    intents = discord.Intents.default()
    intents.message_content = True
    intents.guilds = True
    intents.messages = True
    intents.dm_messages = True
    intents.members = True
    return intents


def build_pipeline(
    config: AppConfig,
    executor: DiscordActionExecutor,
    behavior_tracker: BehaviorTracker,
) -> SafetyPipeline:
    """Wire repositories, classifier and safety components into one pipeline."""
    safety = config.safety
    policy_gate = PolicyGate(
        safety_settings_repo,
        timeout_seconds=safety.policy_read_timeout,
        dm_sensitivity=Sensitivity.parse(safety.dm_sensitivity),
    )
    classifier = ClassificationAdapter(
        OpenAIModerationClassifier(config.classifier),
        timeout_seconds=safety.classifier_timeout,
    )
    dispatcher = EscalationDispatcher(
        crisis_event_repo,
        mod_action_repo,
        executor,
        behavior_tracker,
        safety,
    )
    return SafetyPipeline(policy_gate, classifier, dispatcher, behavior_tracker)


def create_bot(config: AppConfig) -> tuple[discord.Bot, DiscordActionExecutor, BehaviorTracker]:
    """Instantiate the Discord bot with the safety pipeline attached."""
    from carecord.bot.cogs import message_listener

    bot = discord.Bot(intents=build_intents())
    executor = DiscordActionExecutor(bot)
    behavior_tracker = BehaviorTracker(max_users=config.safety.behavior_cache_size)
    pipeline = build_pipeline(config, executor, behavior_tracker)

    message_listener.setup(bot, pipeline)
    logger.info("All cogs loaded successfully.")
    return bot, executor, behavior_tracker


async def run_behavior_cleanup(tracker: BehaviorTracker, interval_seconds: float) -> None:
    """Periodically drop idle users from the behavior tracker."""
    while True:
        await asyncio.sleep(interval_seconds)
        try:
            tracker.cleanup(time.time())
        except Exception:
            logger.exception("[BEHAVIOR CLEANUP] Sweep failed")


async def start_bot(bot: discord.Bot, token: str) -> None:
    logger.info("Attempting to connect to Discord…")
    try:
        await bot.start(token)
    except asyncio.CancelledError:
        logger.info("Discord bot start cancelled; shutting down")
    finally:
        logger.info("Discord bot start routine finished.")


async def shutdown_runtime(bot: discord.Bot, executor: DiscordActionExecutor) -> None:
    """Stop the bot, pending mute removals and the database connection."""
    try:
        if not bot.is_closed():
            await bot.close()
    except Exception as exc:
        logger.exception("Error while closing the Discord client: %s", exc)

    await executor.shutdown()

    try:
        await db_connection.close()
    except Exception as exc:
        logger.exception("Error while closing the database: %s", exc)

    logger.info("Shutdown complete.")


async def async_main() -> int:
    """Bootstrap database, pipeline and bot, returning an exit code."""
    token = load_environment()
    config = AppConfig(BASE_DIR / "config" / "app_config.yml")

    try:
        logger.info("Initializing database...")
        await db_connection.open(config.database_path)
    except Exception as exc:
        logger.critical("Failed to initialize database: %s", exc)
        return 1

    try:
        bot, executor, behavior_tracker = create_bot(config)
    except Exception as exc:
        logger.critical("Failed to initialize Discord bot: %s", exc)
        await db_connection.close()
        return 1

    cleanup_task = asyncio.create_task(
        run_behavior_cleanup(behavior_tracker, config.behavior_cleanup_interval),
        name="carecord-behavior-cleanup",
    )

    exit_code = 0
    try:
        await start_bot(bot, token)
    except Exception as exc:
        logger.critical("Discord bot runtime error: %s", exc)
        exit_code = 1
    finally:
        cleanup_task.cancel()
        await asyncio.gather(cleanup_task, return_exceptions=True)
        await shutdown_runtime(bot, executor)

    return exit_code


def main() -> int:
    """Entrypoint that runs the async runtime and returns the process code."""
    sys.excepthook = handle_exception
    logger.info("Starting Carecord…")
    try:
        return asyncio.run(async_main())
    except KeyboardInterrupt:
        logger.info("Shutdown requested by user.")
        return 0
    except Exception as exc:
        logger.critical("An unexpected error occurred while running the bot: %s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
