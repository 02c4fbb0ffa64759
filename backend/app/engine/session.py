"""
Coding session rules: duration, context health and the status state machine.
Pure functions, no DB access.
"""
import json
import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

HEALTH_DECAY_PER_HOUR = 10


class SessionType(str, Enum):
    BUILDING = "BUILDING"
    EXPLORING = "EXPLORING"
    DEBUGGING = "DEBUGGING"
    SHIPPING = "SHIPPING"


class SessionStatus(str, Enum):
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ABANDONED = "ABANDONED"


TERMINAL = {SessionStatus.COMPLETED, SessionStatus.ABANDONED}

TRANSITIONS: dict[SessionStatus, set[SessionStatus]] = {
    SessionStatus.ACTIVE: {SessionStatus.PAUSED, SessionStatus.COMPLETED, SessionStatus.ABANDONED},
    SessionStatus.PAUSED: {SessionStatus.ACTIVE, SessionStatus.COMPLETED, SessionStatus.ABANDONED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.ABANDONED: set(),
}

STATUS_LABELS = {
    SessionStatus.ACTIVE: "In Progress",
    SessionStatus.PAUSED: "Paused",
    SessionStatus.COMPLETED: "Completed",
    SessionStatus.ABANDONED: "Abandoned",
}


class InvalidTransition(Exception):
    def __init__(self, current: SessionStatus, requested: SessionStatus):
        self.current = current
        self.requested = requested
        super().__init__(f"Cannot move session from {current.value} to {requested.value}")


def parse_timestamp(value: Any) -> datetime | None:
    """Accept datetimes or ISO strings (with a trailing Z); naive values are UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _field(session: Any, name: str) -> Any:
    if isinstance(session, dict):
        return session.get(name)
    return getattr(session, name, None)


def session_duration(session: Any) -> int:
    """Seconds from start to end once ended, otherwise the tracked counter."""
    started_at = parse_timestamp(_field(session, "started_at"))
    ended_at = parse_timestamp(_field(session, "ended_at"))
    if ended_at is not None and started_at is not None:
        return int((ended_at - started_at).total_seconds())
    return _field(session, "duration_seconds") or 0


def format_duration(total_seconds: int, long: bool = False) -> str:
    total_seconds = max(int(total_seconds), 0)
    hours = total_seconds // 3600
    minutes = (total_seconds % 3600) // 60

    if long:
        parts = []
        if hours > 0:
            parts.append(f"{hours} {'hour' if hours == 1 else 'hours'}")
        parts.append(f"{minutes} {'minute' if minutes == 1 else 'minutes'}")
        return " ".join(parts)

    if hours > 0:
        return f"{hours}h {minutes}m"
    return f"{minutes}m"


def context_health(elapsed_seconds: float, initial_health: int = 100) -> int:
    """Drops 10 points per elapsed hour (floored), clamped to [0, 100]."""
    degradation = math.floor(elapsed_seconds / 3600 * HEALTH_DECAY_PER_HOUR)
    return max(0, min(100, initial_health - degradation))


def is_terminal(status: SessionStatus | str) -> bool:
    return SessionStatus(status) in TERMINAL


def status_label(status: SessionStatus | str) -> str:
    return STATUS_LABELS[SessionStatus(status)]


def transition(session: Any, new_status: SessionStatus | str, now: datetime) -> dict:
    """
    Returns the field updates for moving `session` to `new_status`.
    Entering a terminal state stamps ended_at (if unset) and freezes duration_seconds.
    """
    current = SessionStatus(_field(session, "session_status"))
    requested = SessionStatus(new_status)
    if current == requested:
        return {}
    if requested not in TRANSITIONS[current]:
        raise InvalidTransition(current, requested)

    updates: dict[str, Any] = {"session_status": requested.value}
    if requested in TERMINAL:
        ended_at = parse_timestamp(_field(session, "ended_at")) or now
        started_at = parse_timestamp(_field(session, "started_at"))
        updates["ended_at"] = ended_at.isoformat()
        if started_at is not None:
            updates["duration_seconds"] = int((ended_at - started_at).total_seconds())
    return updates


def append_checkpoint(raw: str | None, text: str, now: datetime) -> str:
    """Append a timestamped checkpoint to the JSON list stored on the session."""
    checkpoints: list = []
    if raw:
        try:
            checkpoints = json.loads(raw)
        except ValueError as e:
            logger.warning("Discarding unreadable checkpoint notes: %s", e)
            checkpoints = []
        if not isinstance(checkpoints, list):
            checkpoints = []
    checkpoints.append({"timestamp": now.isoformat(), "text": text})
    return json.dumps(checkpoints)
