"""Per-user sliding-window message statistics for auto-moderation.

Each user gets a :class:`BehaviorRecord` holding a bounded deque of their
most recent messages (at most 10, none older than an hour relative to the
newest) plus warning/mute counters. Records live in an LRU keyed by user id,
so inactive users are evicted once the tracker is full and periodically by
:meth:`BehaviorTracker.cleanup`.

:meth:`BehaviorTracker.record` never awaits: pruning and appending happen in
one synchronous step, so overlapping message tasks for the same user cannot
interleave inside the buffer update. State is per process; several bot
instances each keep their own independent view.
"""

from __future__ import annotations

from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Deque, Optional

from carecord.datatypes.discord_datatypes import UserID
from carecord.datatypes.safety_datatypes import BehaviorAssessment, ModerationLevel
from carecord.util.logger import get_logger

logger = get_logger("behavior_tracker")

MAX_RECENT_MESSAGES = 10
WINDOW_SECONDS = 3600.0
MIN_MESSAGES_FOR_ANALYSIS = 5
MIN_SPAN_SECONDS = 30.0
SPAM_FREQUENCY_PER_MINUTE = 15.0
SPAM_REPETITION_RATIO = 0.3
DEFAULT_MAX_USERS = 10_000


@dataclass(slots=True)
class TrackedMessage:
    content: str
    timestamp: float


@dataclass(slots=True)
class BehaviorRecord:
    """Rolling message window and moderation counters for one user."""

    recent_messages: Deque[TrackedMessage] = field(
        default_factory=lambda: deque(maxlen=MAX_RECENT_MESSAGES)
    )
    warnings: int = 0
    last_warning_at: Optional[float] = None
    mutes: int = 0
    last_mute_at: Optional[float] = None

    def prune(self, now: float) -> None:
        """Drop messages older than the window relative to `now`."""
        cutoff = now - WINDOW_SECONDS
        kept = [message for message in self.recent_messages if message.timestamp >= cutoff]
        if len(kept) != len(self.recent_messages):
            self.recent_messages.clear()
            self.recent_messages.extend(kept)

    def reset(self) -> None:
        self.recent_messages.clear()
        self.warnings = 0
        self.last_warning_at = None
        self.mutes = 0
        self.last_mute_at = None

    def is_idle(self, now: float) -> bool:
        """True when nothing about this user is still inside the window."""
        cutoff = now - WINDOW_SECONDS
        if any(message.timestamp >= cutoff for message in self.recent_messages):
            return False
        for moment in (self.last_warning_at, self.last_mute_at):
            if moment is not None and moment >= cutoff:
                return False
        return True


class BehaviorTracker:
    """Bounded, LRU-evicting owner of all BehaviorRecords."""

    def __init__(self, max_users: int = DEFAULT_MAX_USERS) -> None:
        """
        Parameters
        ----------
        max_users:
            Maximum number of users tracked at once; the least recently seen
            user is evicted when a new one arrives at capacity.
        """
        self.max_users = max(1, int(max_users))
        self._records: "OrderedDict[UserID, BehaviorRecord]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._records)

    def __contains__(self, user_id: UserID) -> bool:
        return user_id in self._records

    def get(self, user_id: UserID) -> Optional[BehaviorRecord]:
        return self._records.get(user_id)

    def _touch(self, user_id: UserID) -> BehaviorRecord:
        record = self._records.get(user_id)
        if record is None:
            record = BehaviorRecord()
            self._records[user_id] = record
            while len(self._records) > self.max_users:
                evicted, _ = self._records.popitem(last=False)
                logger.debug("[BEHAVIOR TRACKER] Evicted least recently seen user %s", evicted)
        else:
            self._records.move_to_end(user_id)
        return record

    def record(self, user_id: UserID, content: str, timestamp: float) -> BehaviorAssessment:
        """Append a message for `user_id` and assess the resulting window."""
        record = self._touch(user_id)
        newest = max([timestamp] + [message.timestamp for message in record.recent_messages])
        record.recent_messages.append(TrackedMessage(content=content, timestamp=timestamp))
        record.prune(newest)
        return self._assess(record)

    def assess(self, user_id: UserID) -> BehaviorAssessment:
        """Current assessment without recording anything."""
        record = self._records.get(user_id)
        if record is None:
            return BehaviorAssessment()
        return self._assess(record)

    @staticmethod
    def _assess(record: BehaviorRecord) -> BehaviorAssessment:
        messages = list(record.recent_messages)
        counters = dict(
            warnings=record.warnings,
            mutes=record.mutes,
            last_warning_at=record.last_warning_at,
            last_mute_at=record.last_mute_at,
        )
        if len(messages) < MIN_MESSAGES_FOR_ANALYSIS:
            return BehaviorAssessment(message_count=len(messages), **counters)

        timestamps = [message.timestamp for message in messages]
        span = max(timestamps) - min(timestamps)
        # A single burst is measured over at least MIN_SPAN_SECONDS.
        minutes = max(span, MIN_SPAN_SECONDS) / 60.0
        frequency = len(messages) / minutes
        repetition = len({message.content for message in messages}) / len(messages)
        avg_length = sum(len(message.content) for message in messages) / len(messages)

        return BehaviorAssessment(
            is_spamming=frequency > SPAM_FREQUENCY_PER_MINUTE or repetition < SPAM_REPETITION_RATIO,
            analyzed=True,
            message_count=len(messages),
            message_frequency=frequency,
            repetition_ratio=repetition,
            avg_length=avg_length,
            **counters,
        )

    def record_action(self, user_id: UserID, action: ModerationLevel, timestamp: float) -> None:
        """Update moderation counters after an action was taken against `user_id`."""
        record = self._touch(user_id)
        if action is ModerationLevel.WARN:
            record.warnings += 1
            record.last_warning_at = timestamp
        elif action is ModerationLevel.MUTE:
            record.mutes += 1
            record.last_mute_at = timestamp
        elif action in (ModerationLevel.KICK, ModerationLevel.BAN):
            record.reset()
            logger.debug("[BEHAVIOR TRACKER] Reset record for %s after %s", user_id, action)

    def cleanup(self, now: float) -> int:
        """Drop idle users; returns how many were removed."""
        idle = [user_id for user_id, record in self._records.items() if record.is_idle(now)]
        for user_id in idle:
            del self._records[user_id]
        if idle:
            logger.info("[BEHAVIOR TRACKER] Cleaned up %d idle users", len(idle))
        return len(idle)

    def clear(self) -> None:
        self._records.clear()
