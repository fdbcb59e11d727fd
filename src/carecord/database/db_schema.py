"""
Database schema creation and version tracking.

Timestamps are stored as REAL unix seconds (UTC).
"""

import aiosqlite

from carecord.util.logger import get_logger

logger = get_logger("database_schema")

SCHEMA_VERSION = 1


class SchemaManager:
    """Creates the tables and indexes used by the safety core."""

    @staticmethod
    async def initialize_schema(db: aiosqlite.Connection) -> None:
        """
        Create all tables and indexes if they do not exist yet.

        Args:
            db: Open database connection
        """
        await SchemaManager._create_tables(db)
        await SchemaManager._create_indexes(db)
        await SchemaManager._update_schema_version(db)
        await db.commit()
        logger.info("[SCHEMA] Database schema initialized (version %d)", SCHEMA_VERSION)

    @staticmethod
    async def _create_tables(db: aiosqlite.Connection) -> None:
        # Escalated crisis events; rows are never updated
        await db.execute("""
            CREATE TABLE IF NOT EXISTS crisis_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id TEXT NOT NULL,
                guild_id TEXT,
                detected_at REAL NOT NULL,
                escalated INTEGER NOT NULL DEFAULT 0,
                details TEXT NOT NULL DEFAULT '{}'
            )
        """)

        # Append-only moderation log
        await db.execute("""
            CREATE TABLE IF NOT EXISTS mod_actions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                guild_id TEXT NOT NULL,
                moderator_id TEXT NOT NULL,
                target_user_id TEXT NOT NULL,
                action TEXT NOT NULL,
                reason TEXT NOT NULL DEFAULT '',
                created_at REAL NOT NULL
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS user_safety_settings (
                user_id TEXT PRIMARY KEY,
                opt_out_crisis INTEGER NOT NULL DEFAULT 0,
                opt_out_ai INTEGER NOT NULL DEFAULT 0,
                opt_out_support_dms INTEGER NOT NULL DEFAULT 0,
                privacy_mode TEXT NOT NULL DEFAULT 'standard',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS guild_safety_settings (
                guild_id TEXT PRIMARY KEY,
                ai_enabled INTEGER NOT NULL DEFAULT 1,
                crisis_alerts_enabled INTEGER NOT NULL DEFAULT 1,
                auto_mod_enabled INTEGER NOT NULL DEFAULT 0,
                auto_mod_level INTEGER NOT NULL DEFAULT 3,
                sensitivity TEXT NOT NULL DEFAULT 'medium',
                mod_alert_channel_id TEXT,
                muted_role_name TEXT NOT NULL DEFAULT 'Muted',
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS schema_version (
                version INTEGER PRIMARY KEY,
                applied_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

    @staticmethod
    async def _create_indexes(db: aiosqlite.Connection) -> None:
        await db.execute("CREATE INDEX IF NOT EXISTS idx_crisis_events_user ON crisis_events(user_id, detected_at DESC)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mod_actions_target ON mod_actions(target_user_id, created_at DESC)")
        await db.execute("CREATE INDEX IF NOT EXISTS idx_mod_actions_guild ON mod_actions(guild_id, created_at DESC)")

    @staticmethod
    async def _update_schema_version(db: aiosqlite.Connection) -> None:
        await db.execute("INSERT OR IGNORE INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
