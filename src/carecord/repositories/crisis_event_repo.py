"""
Persistent storage for escalated crisis events.

Rows are written once, when the Decision Engine escalates, and never updated.
``details`` holds a JSON summary of the assessment.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiosqlite

from carecord.database.db_connection import ConnectionManager, db_connection
from carecord.datatypes.discord_datatypes import GuildID, UserID
from carecord.util.logger import get_logger

logger = get_logger("crisis_event_repo")

STATS_WINDOW_SECONDS = 30 * 24 * 3600
TREND_INCREASING_ABOVE = 5
TREND_DECREASING_BELOW = 2


@dataclass(slots=True)
class CrisisEventRecord:
    """A single row from the ``crisis_events`` table."""

    id: int
    user_id: UserID
    guild_id: Optional[GuildID]
    detected_at: datetime
    escalated: bool
    details: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class CrisisStats:
    total_events: int = 0
    recent_events: int = 0
    escalated_events: int = 0
    recent_escalated: int = 0
    last_event_at: Optional[datetime] = None
    trend: str = "stable"


def _trend(recent_events: int) -> str:
    if recent_events > TREND_INCREASING_ABOVE:
        return "increasing"
    if recent_events < TREND_DECREASING_BELOW:
        return "decreasing"
    return "stable"


def _row_to_record(row: aiosqlite.Row) -> CrisisEventRecord:
    try:
        details = json.loads(row["details"]) if row["details"] else {}
    except json.JSONDecodeError:
        logger.warning("[CRISIS EVENTS] Unreadable details on event %s", row["id"])
        details = {}
    return CrisisEventRecord(
        id=row["id"],
        user_id=UserID(row["user_id"]),
        guild_id=GuildID(row["guild_id"]) if row["guild_id"] is not None else None,
        detected_at=datetime.fromtimestamp(row["detected_at"], tz=timezone.utc),
        escalated=bool(row["escalated"]),
        details=details,
    )


class CrisisEventRepo:
    """CRUD for the ``crisis_events`` table."""

    def __init__(self, db: ConnectionManager = db_connection) -> None:
        self._db = db

    async def create(
        self,
        user_id: UserID,
        details: Dict[str, Any],
        escalated: bool = True,
        guild_id: Optional[GuildID] = None,
        detected_at: Optional[datetime] = None,
    ) -> CrisisEventRecord:
        """Insert one event and return the stored record."""
        moment = detected_at or datetime.now(timezone.utc)
        async with self._db.transaction() as conn:
            cursor = await conn.execute(
                """
                INSERT INTO crisis_events (user_id, guild_id, detected_at, escalated, details)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    str(user_id),
                    str(guild_id) if guild_id is not None else None,
                    moment.timestamp(),
                    int(escalated),
                    json.dumps(details, default=str),
                ),
            )
            record_id = cursor.lastrowid

        logger.debug("[CRISIS EVENTS] Stored event %s for user %s", record_id, user_id)
        return CrisisEventRecord(
            id=record_id,
            user_id=user_id,
            guild_id=guild_id,
            detected_at=moment,
            escalated=escalated,
            details=dict(details),
        )

    async def find_recent_by_user(self, user_id: UserID, limit: int = 10) -> List[CrisisEventRecord]:
        """Newest-first events for `user_id`."""
        async with self._db.read() as conn:
            cursor = await conn.execute(
                "SELECT id, user_id, guild_id, detected_at, escalated, details "
                "FROM crisis_events WHERE user_id = ? "
                "ORDER BY detected_at DESC, id DESC LIMIT ?",
                (str(user_id), int(limit)),
            )
            rows = await cursor.fetchall()
        return [_row_to_record(row) for row in rows]

    async def get_stats(self, user_id: UserID, now: Optional[float] = None) -> CrisisStats:
        """Totals, 30-day counts and trend for `user_id`."""
        since = (now if now is not None else time.time()) - STATS_WINDOW_SECONDS
        async with self._db.read() as conn:
            cursor = await conn.execute(
                """
                SELECT
                    COUNT(*) AS total,
                    SUM(CASE WHEN detected_at >= ? THEN 1 ELSE 0 END) AS recent,
                    SUM(escalated) AS escalated,
                    SUM(CASE WHEN detected_at >= ? AND escalated = 1 THEN 1 ELSE 0 END) AS recent_escalated,
                    MAX(detected_at) AS last_event
                FROM crisis_events WHERE user_id = ?
                """,
                (since, since, str(user_id)),
            )
            row = await cursor.fetchone()

        recent = row["recent"] or 0
        return CrisisStats(
            total_events=row["total"] or 0,
            recent_events=recent,
            escalated_events=row["escalated"] or 0,
            recent_escalated=row["recent_escalated"] or 0,
            last_event_at=(
                datetime.fromtimestamp(row["last_event"], tz=timezone.utc)
                if row["last_event"] is not None else None
            ),
            trend=_trend(recent),
        )


crisis_event_repo = CrisisEventRepo()
