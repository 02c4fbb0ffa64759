"""
Streak tracking — pure functions, no DB access.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Iterable, Optional

import pytz


@dataclass(frozen=True)
class ShipDay:
    date: date
    ship_count: int


@dataclass(frozen=True)
class StreakData:
    current_streak: int
    longest_streak: int
    last_ship_date: Optional[date]

    def as_dict(self) -> dict:
        return {
            "current_streak": self.current_streak,
            "longest_streak": self.longest_streak,
            "last_ship_date": self.last_ship_date.isoformat() if self.last_ship_date else None,
        }


MILESTONES: dict[int, str] = {
    7: "Week streak!",
    14: "Two weeks!",
    30: "Month streak!",
    60: "Two months!",
    100: "Century!",
    365: "Full year!",
}

WEEKDAY_LABELS = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]


def compute_current_streak(records: Iterable[ShipDay], today: date) -> int:
    """Consecutive ship days ending today. A missing or zero-ship day ends the walk."""
    current = 0
    for record in sorted(records, key=lambda r: r.date, reverse=True):
        if record.date != today - timedelta(days=current):
            break
        if record.ship_count <= 0:
            break
        current += 1
    return current


def compute_longest_streak(records: Iterable[ShipDay]) -> int:
    longest = 0
    run = 0
    last_ship: date | None = None
    for record in sorted(records, key=lambda r: r.date):
        if record.ship_count <= 0:
            continue
        if last_ship is not None and record.date == last_ship + timedelta(days=1):
            run += 1
        else:
            run = 1
        last_ship = record.date
        longest = max(longest, run)
    return longest


def last_ship_date(records: Iterable[ShipDay]) -> date | None:
    ship_days = [r.date for r in records if r.ship_count > 0]
    return max(ship_days) if ship_days else None


def compute_streaks(records: Iterable[ShipDay], today: date) -> StreakData:
    """
    Returns current streak, longest streak and last ship date.
    Caller guarantees at most one record per day.
    """
    records = list(records)
    if not records:
        return StreakData(0, 0, None)
    return StreakData(
        current_streak=compute_current_streak(records, today),
        longest_streak=compute_longest_streak(records),
        last_ship_date=last_ship_date(records),
    )


def has_shipped_today(records: Iterable[ShipDay], today: date) -> bool:
    return any(r.date == today and r.ship_count > 0 for r in records)


def days_since_last_ship(last_ship: date | None, today: date) -> int | None:
    if last_ship is None:
        return None
    return (today - last_ship).days


def next_streak(last_date: date | None, current_streak: int, today: date) -> int:
    """
    Streak value after an activity today.
    Same day keeps the streak, yesterday extends it, anything older restarts at 1.
    """
    if last_date == today:
        return current_streak
    if last_date == today - timedelta(days=1):
        return current_streak + 1
    return 1


def streak_milestone(streak: int) -> str | None:
    return MILESTONES.get(streak)


def format_streak(streak: int) -> str:
    if streak == 0:
        return "No active streak"
    days = "day" if streak == 1 else "days"
    return f"{streak} {days} streak"


def should_celebrate(previous_streak: int, new_streak: int) -> bool:
    return new_streak > previous_streak or streak_milestone(new_streak) is not None


def _zone(tz_name: str | None):
    try:
        return pytz.timezone(tz_name or "UTC")
    except pytz.UnknownTimeZoneError:
        return pytz.utc


def local_today(tz_name: str | None, now: datetime | None = None) -> date:
    """Calendar date for `now` in the given timezone. Unknown zones count as UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(_zone(tz_name)).date()


def day_start_utc(tz_name: str | None, day: date) -> datetime:
    """UTC instant at which `day` begins in the given timezone."""
    tz = _zone(tz_name)
    return tz.localize(datetime.combine(day, time.min)).astimezone(timezone.utc)


def fill_week(rows: Iterable[ShipDay], today: date) -> list[dict]:
    """Last 7 days oldest first; days without a record get ship_count 0."""
    counts = {r.date: r.ship_count for r in rows}
    week = []
    for offset in range(6, -1, -1):
        day = today - timedelta(days=offset)
        week.append({
            "date": day.isoformat(),
            "ship_count": counts.get(day, 0),
            "day_of_week": WEEKDAY_LABELS[day.weekday()],
        })
    return week


def weekly_average(week: list[dict]) -> float:
    if not week:
        return 0
    total = sum(day["ship_count"] for day in week)
    return round(total / len(week), 1)
