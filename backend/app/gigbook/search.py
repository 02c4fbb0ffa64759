"""
Case-insensitive substring search over tracker items.
"""
import re
from datetime import date, datetime
from typing import Any, Iterable, Sequence, TypeVar

from .models import Gig, PracticeTask, RehearsalEvent, RehearsalTask

T = TypeVar("T")

GIG_FIELDS = ("title", "venue_name", "address", "contact", "compensation", "notes")
PRACTICE_TASK_FIELDS = ("title", "note", "category")
REHEARSAL_TASK_FIELDS = ("title", "note")
REHEARSAL_EVENT_FIELDS = ("name", "location")

WORD_SPLIT = re.compile(r"[\s,.\-]+")


def _value(item: Any, field: str) -> Any:
    if isinstance(item, dict):
        return item.get(field)
    return getattr(item, field, None)


def _searchable(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return value.lower()
    if isinstance(value, (int, float)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()[:10]
    return None


def search_items(items: Iterable[T], query: str, fields: Sequence[str]) -> list[T]:
    items = list(items)
    needle = query.strip().lower()
    if not needle:
        return items

    def matches(item: T) -> bool:
        for field in fields:
            text = _searchable(_value(item, field))
            if text is not None and needle in text:
                return True
        return False

    return [item for item in items if matches(item)]


def search_gigs(gigs: Iterable[Gig], query: str) -> list[Gig]:
    return search_items(gigs, query, GIG_FIELDS)


def search_practice_tasks(tasks: Iterable[PracticeTask], query: str) -> list[PracticeTask]:
    return search_items(tasks, query, PRACTICE_TASK_FIELDS)


def search_rehearsal_tasks(tasks: Iterable[RehearsalTask], query: str) -> list[RehearsalTask]:
    return search_items(tasks, query, REHEARSAL_TASK_FIELDS)


def search_rehearsal_events(events: Iterable[RehearsalEvent], query: str) -> list[RehearsalEvent]:
    return search_items(events, query, REHEARSAL_EVENT_FIELDS)


def highlight(text: str, term: str) -> str:
    """Wrap every case-insensitive occurrence of `term` in `**`."""
    if not term.strip():
        return text
    return re.sub(f"({re.escape(term)})", r"**\1**", text, flags=re.IGNORECASE)


def search_suggestions(items: Iterable[Any], field: str, limit: int = 5) -> list[str]:
    """Distinct lowercased words longer than two characters, in first-seen order."""
    seen: dict[str, None] = {}
    for item in items:
        value = _value(item, field)
        if not isinstance(value, str) or not value.strip():
            continue
        for word in WORD_SPLIT.split(value):
            if len(word) > 2:
                seen.setdefault(word.lower(), None)
    return list(seen)[:limit]
