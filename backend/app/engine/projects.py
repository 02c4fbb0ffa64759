"""
Project momentum and display helpers — pure functions, no DB access.
"""
from datetime import date, datetime

HOT_WITHIN_HOURS = 24
ACTIVE_WITHIN_HOURS = 168  # 7 days

FEELS_RIGHT_LABELS = {
    1: "Struggling",
    2: "Uncertain",
    3: "Okay",
    4: "Good",
    5: "Nailing It",
}


def momentum(last_session_at: datetime | None, now: datetime) -> str:
    """HOT / ACTIVE / QUIET from how long ago the project was last worked on."""
    if last_session_at is None:
        return "QUIET"
    hours = (now - last_session_at).total_seconds() / 3600
    if hours < HOT_WITHIN_HOURS:
        return "HOT"
    if hours < ACTIVE_WITHIN_HOURS:
        return "ACTIVE"
    return "QUIET"


def feels_right_label(score: int) -> str:
    return FEELS_RIGHT_LABELS[max(1, min(5, score))]


def format_ship_target(target: date | None, today: date) -> str:
    if target is None:
        return "No target set"
    days = (target - today).days
    if days > 0:
        return f"Ships in {days} {'day' if days == 1 else 'days'}"
    if days < 0:
        return f"Shipped {-days} {'day' if days == -1 else 'days'} ago"
    return "Ships today"
