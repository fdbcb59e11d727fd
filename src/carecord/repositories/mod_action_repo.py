"""
Append-only log of moderation actions, automated or manual.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, List, Optional

import aiosqlite

from carecord.database.db_connection import ConnectionManager, db_connection
from carecord.datatypes.discord_datatypes import GuildID, UserID
from carecord.datatypes.safety_datatypes import ModerationLevel
from carecord.util.logger import get_logger

logger = get_logger("mod_action_repo")

_COLUMNS = "id, guild_id, moderator_id, target_user_id, action, reason, created_at"


@dataclass(slots=True)
class ModActionRecord:
    """A single row from the ``mod_actions`` table."""

    id: int
    guild_id: GuildID
    moderator_id: UserID
    target_user_id: UserID
    action: ModerationLevel
    reason: str
    created_at: datetime


def _row_to_record(row: aiosqlite.Row) -> ModActionRecord:
    return ModActionRecord(
        id=row["id"],
        guild_id=GuildID(row["guild_id"]),
        moderator_id=UserID(row["moderator_id"]),
        target_user_id=UserID(row["target_user_id"]),
        action=ModerationLevel(row["action"]),
        reason=row["reason"],
        created_at=datetime.fromtimestamp(row["created_at"], tz=timezone.utc),
    )


class ModActionRepo:
    """Writes and queries for the ``mod_actions`` table."""

    def __init__(self, db: ConnectionManager = db_connection) -> None:
        self._db = db

    async def create(
        self,
        guild_id: GuildID,
        moderator_id: UserID,
        target_user_id: UserID,
        action: ModerationLevel,
        reason: str,
        created_at: Optional[datetime] = None,
    ) -> ModActionRecord:
        moment = created_at or datetime.now(timezone.utc)
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO mod_actions (guild_id, moderator_id, target_user_id, action, reason, created_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (str(guild_id), str(moderator_id), str(target_user_id), action.value, reason, moment.timestamp()),
            )
            record_id = cursor.lastrowid

        logger.debug("[MOD ACTIONS] Logged %s on %s in guild %s", action, target_user_id, guild_id)
        return ModActionRecord(
            id=record_id,
            guild_id=guild_id,
            moderator_id=moderator_id,
            target_user_id=target_user_id,
            action=action,
            reason=reason,
            created_at=moment,
        )

    async def find_recent_by_user(self, user_id: UserID, limit: int = 10) -> List[ModActionRecord]:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                f"SELECT {_COLUMNS} FROM mod_actions WHERE target_user_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (str(user_id), int(limit)),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def recent_for_guild(self, guild_id: GuildID, limit: int = 25) -> List[ModActionRecord]:
        async with self._db.read() as conn:
            cursor = await conn.execute(
                f"SELECT {_COLUMNS} FROM mod_actions WHERE guild_id = ? "
                "ORDER BY created_at DESC, id DESC LIMIT ?",
                (str(guild_id), int(limit)),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def count_by_guild(self, guild_id: GuildID) -> Dict[ModerationLevel, int]:
        """Number of logged actions per action type."""
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT action, COUNT(*) AS n FROM mod_actions WHERE guild_id = ? GROUP BY action",
                (str(guild_id),),
            )
            rows = await cursor.fetchall()
        return {ModerationLevel(row["action"]): row["n"] for row in rows}


mod_action_repo = ModActionRepo()
