import os
import logging
from datetime import date
from functools import lru_cache
from typing import Any
from postgrest.exceptions import APIError
from supabase import create_client, Client

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NO_ROWS = "PGRST116"


@lru_cache(maxsize=1)
def get_client() -> Client:
    url = os.environ["SUPABASE_URL"]
    key = os.environ["SUPABASE_SERVICE_KEY"]
    return create_client(url, key)


# ── Auth / profile ────────────────────────────────────────────────────────────

def resolve_user(db: Client, token: str) -> str | None:
    """Return the auth provider's user id for a bearer token, or None if it is not valid."""
    try:
        res = db.auth.get_user(token)
    except Exception as e:
        logger.info("Rejected bearer token: %s", e)
        return None
    user = getattr(res, "user", None)
    return str(user.id) if user else None


def get_profile(db: Client, user_id: str) -> dict:
    res = db.table("profiles").select("*").eq("id", user_id).execute()
    return res.data[0] if res.data else {}


def update_profile(db: Client, user_id: str, updates: dict) -> None:
    db.table("profiles").upsert({"id": user_id, **updates}).execute()


# ── Generic row access ────────────────────────────────────────────────────────

def get_row(db: Client, table: str, row_id: str) -> dict | None:
    res = db.table(table).select("*").eq("id", row_id).execute()
    return res.data[0] if res.data else None


def insert_row(db: Client, table: str, data: dict) -> dict:
    res = db.table(table).insert(data).execute()
    return res.data[0] if res.data else data


def update_row(db: Client, table: str, row_id: str, updates: dict) -> dict:
    res = db.table(table).update(updates).eq("id", row_id).execute()
    return res.data[0] if res.data else {}


def delete_row(db: Client, table: str, row_id: str) -> None:
    db.table(table).delete().eq("id", row_id).execute()


# ── Sessions ──────────────────────────────────────────────────────────────────

def list_sessions(db: Client, user_id: str, filters: dict[str, Any], skip: int, limit: int) -> tuple[list[dict], int]:
    query = db.table("coding_sessions").select("*", count="exact").eq("user_id", user_id)
    if filters.get("session_type"):
        query = query.eq("session_type", filters["session_type"])
    if filters.get("project_id"):
        query = query.eq("project_id", filters["project_id"])
    if filters.get("start_date"):
        query = query.gte("started_at", filters["start_date"])
    if filters.get("end_date"):
        query = query.lte("started_at", filters["end_date"])
    res = query.order("started_at", desc=True).range(skip, skip + limit - 1).execute()
    return res.data or [], res.count or 0


def get_active_session(db: Client, user_id: str) -> dict | None:
    res = (
        db.table("coding_sessions").select("*")
        .eq("user_id", user_id).eq("session_status", "ACTIVE")
        .order("started_at", desc=True).limit(1).execute()
    )
    return res.data[0] if res.data else None


def get_sessions_since(db: Client, user_id: str, since_iso: str) -> list[dict]:
    res = db.table("coding_sessions").select("*").eq("user_id", user_id).gte("started_at", since_iso).execute()
    return res.data or []


def get_last_session_starts(db: Client, project_ids: list[str]) -> dict[str, str]:
    """Most recent started_at per project id."""
    if not project_ids:
        return {}
    res = (
        db.table("coding_sessions").select("project_id, started_at")
        .in_("project_id", project_ids).order("started_at", desc=True).execute()
    )
    latest: dict[str, str] = {}
    for row in res.data or []:
        latest.setdefault(row["project_id"], row["started_at"])
    return latest


def count_sessions_by_project(db: Client, project_ids: list[str]) -> dict[str, int]:
    if not project_ids:
        return {}
    res = db.table("coding_sessions").select("project_id").in_("project_id", project_ids).execute()
    counts: dict[str, int] = {}
    for row in res.data or []:
        counts[row["project_id"]] = counts.get(row["project_id"], 0) + 1
    return counts


# ── Analytics ─────────────────────────────────────────────────────────────────

def get_analytics(db: Client, user_id: str, since: date | None = None) -> list[dict]:
    query = db.table("analytics").select("date, ship_count").eq("user_id", user_id)
    if since is not None:
        query = query.gte("date", since.isoformat())
    res = query.order("date", desc=True).execute()
    return res.data or []


def get_analytics_day(db: Client, user_id: str, day: date) -> dict | None:
    res = db.table("analytics").select("*").eq("user_id", user_id).eq("date", day.isoformat()).execute()
    return res.data[0] if res.data else None


SHIP_RETRIES = 5


class ShipConflict(Exception):
    pass


def insert_analytics_day(db: Client, user_id: str, day: date, data: dict) -> dict:
    row = {"user_id": user_id, "date": day.isoformat(), **data}
    res = db.table("analytics").insert(row).execute()
    return res.data[0] if res.data else row


def update_analytics_day_if(db: Client, user_id: str, day: date, expected_count: int, updates: dict) -> dict | None:
    """Only writes when ship_count is still `expected_count`; returns None if another write got there first."""
    res = (
        db.table("analytics")
        .update(updates)
        .eq("user_id", user_id)
        .eq("date", day.isoformat())
        .eq("ship_count", expected_count)
        .execute()
    )
    return res.data[0] if res.data else None


def record_ship(db: Client, user_id: str, day: date, note: str | None) -> tuple[dict, int]:
    """
    Increments the user's ship_count for `day` and appends `note` to metadata.ship_notes.
    Each write is conditional on the count it read, so concurrent ships re-read and
    retry instead of overwriting each other. Returns (row, previous_count).
    """
    for _ in range(SHIP_RETRIES):
        existing = get_analytics_day(db, user_id, day)
        previous = (existing or {}).get("ship_count") or 0
        metadata = dict((existing or {}).get("metadata") or {})
        if note:
            metadata["ship_notes"] = [*metadata.get("ship_notes", []), note]
        updates = {"ship_count": previous + 1, "metadata": metadata}

        if existing is None:
            try:
                return insert_analytics_day(db, user_id, day, updates), previous
            except APIError as e:
                if e.code != UNIQUE_VIOLATION:
                    raise
                continue

        row = update_analytics_day_if(db, user_id, day, previous, updates)
        if row is not None:
            return row, previous
        logger.info("Ship count for %s... changed concurrently, retrying", user_id[:8])

    raise ShipConflict("Too many concurrent ship updates")


# ── Habits ────────────────────────────────────────────────────────────────────

def list_habits(db: Client, user_id: str) -> list[dict]:
    res = db.table("habits").select("*").eq("user_id", user_id).order("created_at").execute()
    return res.data or []


def get_habit_completions(db: Client, habit_id: str) -> list[str]:
    res = (
        db.table("habit_completions").select("completed_on")
        .eq("habit_id", habit_id).order("completed_on", desc=True).execute()
    )
    return [row["completed_on"] for row in (res.data or [])]


def add_habit_completion(db: Client, habit_id: str, day: date, notes: str | None) -> None:
    db.table("habit_completions").insert(
        {"habit_id": habit_id, "completed_on": day.isoformat(), "notes": notes}
    ).execute()


def delete_habit_completions(db: Client, habit_id: str) -> None:
    db.table("habit_completions").delete().eq("habit_id", habit_id).execute()


# ── Notes ─────────────────────────────────────────────────────────────────────

def list_notes(db: Client, user_id: str, filters: dict[str, Any], skip: int, limit: int) -> tuple[list[dict], int]:
    query = db.table("notes").select("*", count="exact").eq("user_id", user_id)
    for column in ("category", "project_id", "session_id"):
        if filters.get(column):
            query = query.eq(column, filters[column])
    if filters.get("tags"):
        query = query.overlaps("tags", filters["tags"])
    if filters.get("search"):
        term = filters["search"].replace(",", " ")
        query = query.or_(f"title.ilike.%{term}%,content.ilike.%{term}%")
    res = query.order("updated_at", desc=True).range(skip, skip + limit - 1).execute()
    return res.data or [], res.count or 0


# ── Projects ──────────────────────────────────────────────────────────────────

def list_projects(db: Client, user_id: str, is_active: bool | None, sort_by: str) -> list[dict]:
    query = db.table("projects").select("*").eq("user_id", user_id)
    if is_active is not None:
        query = query.eq("is_active", is_active)
    res = query.order(sort_by, desc=True).execute()
    return res.data or []


def count_active_projects(db: Client, user_id: str) -> int:
    res = db.table("projects").select("id", count="exact").eq("user_id", user_id).eq("is_active", True).execute()
    return res.count or 0


def detach_project(db: Client, project_id: str) -> None:
    """Clear references to a project on its sessions and notes; the rows themselves are kept."""
    db.table("coding_sessions").update({"project_id": None}).eq("project_id", project_id).execute()
    db.table("notes").update({"project_id": None}).eq("project_id", project_id).execute()
