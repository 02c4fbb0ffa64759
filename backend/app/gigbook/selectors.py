"""
Gig selectors. Gigs without a date never appear in date-based results.
Naive datetimes, on gigs or as arguments, are read as UTC.
"""
from datetime import datetime, timezone
from typing import Iterable, Optional

from .models import Gig


def _utc(value: datetime) -> datetime:
    return value.replace(tzinfo=timezone.utc) if value.tzinfo is None else value


def _dated(gigs: Iterable[Gig]) -> list[tuple[datetime, Gig]]:
    return [(_utc(g.date), g) for g in gigs if g.date]


def upcoming_gigs(gigs: Iterable[Gig], now: datetime) -> list[Gig]:
    """Dated gigs after `now`, soonest first."""
    now = _utc(now)
    upcoming = [(d, g) for d, g in _dated(gigs) if d > now]
    return [g for _, g in sorted(upcoming, key=lambda pair: pair[0])]


def past_gigs(gigs: Iterable[Gig], now: datetime) -> list[Gig]:
    """Dated gigs at or before `now`, most recent first."""
    now = _utc(now)
    past = [(d, g) for d, g in _dated(gigs) if d <= now]
    return [g for _, g in sorted(past, key=lambda pair: pair[0], reverse=True)]


def gigs_by_month(gigs: Iterable[Gig], year: int, month: int) -> list[Gig]:
    """`month` is 1-12."""
    return [g for g in gigs if g.date and g.date.year == year and g.date.month == month]


def gigs_within(gigs: Iterable[Gig], start: datetime, end: datetime) -> list[Gig]:
    start, end = _utc(start), _utc(end)
    return [g for d, g in _dated(gigs) if start <= d <= end]


def gig_by_id(gigs: Iterable[Gig], gig_id: str) -> Optional[Gig]:
    return next((g for g in gigs if g.id == gig_id), None)
