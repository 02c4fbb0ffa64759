"""
Shipyard — FastAPI backend for the developer momentum dashboard
"""
import logging
import os
from datetime import date, datetime, timedelta, timezone
from typing import Any, Literal, Optional

from fastapi import FastAPI, Header, HTTPException, Depends, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from postgrest.exceptions import APIError
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.exceptions import HTTPException as StarletteHTTPException

from .db import (
    get_client, resolve_user, get_profile, update_profile,
    get_row, insert_row, update_row, delete_row,
    list_sessions, get_active_session, get_sessions_since,
    get_last_session_starts, count_sessions_by_project,
    get_analytics, get_analytics_day, record_ship, ShipConflict,
    list_habits, get_habit_completions, add_habit_completion, delete_habit_completions,
    list_notes, list_projects, count_active_projects, detach_project,
    UNIQUE_VIOLATION, FOREIGN_KEY_VIOLATION, NO_ROWS,
)
from .engine.projects import momentum, feels_right_label, format_ship_target
from .engine.session import (
    SessionStatus, SessionType, InvalidTransition,
    session_duration, format_duration, context_health,
    transition, is_terminal, append_checkpoint, parse_timestamp,
)
from .engine.streak import (
    ShipDay, compute_streaks, compute_current_streak, next_streak,
    streak_milestone, local_today, day_start_utc, fill_week, weekly_average,
)
from .models import (
    SessionCreate, SessionPatch, Checkpoint, MarkShip,
    HabitCreate, HabitPatch, HabitComplete,
    NoteCreate, NotePatch, NoteCategory,
    ProjectCreate, ProjectPatch, FeelsRightScore, Pivot,
)

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)
app = FastAPI(title="Shipyard API")
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

DEFAULT_ORIGINS = [
    "http://localhost:3000",
    "capacitor://localhost",
]
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()] or DEFAULT_ORIGINS
app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_methods=["GET", "POST", "PATCH", "DELETE"],
    allow_headers=["Authorization", "Content-Type"],
)


def ok(data: Any) -> dict:
    return {"success": True, "data": data}


def fail(status_code: int, message: str, errors: dict | None = None) -> JSONResponse:
    body: dict[str, Any] = {"success": False, "error": message}
    if errors:
        body["errors"] = errors
    return JSONResponse(body, status_code=status_code)


# ── Error envelope ────────────────────────────────────────────────────────────

@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return fail(exc.status_code, str(exc.detail))


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    errors: dict[str, list[str]] = {}
    for err in exc.errors():
        parts = [str(p) for p in err.get("loc", ()) if p not in ("body", "query", "path", "header")]
        errors.setdefault(".".join(parts) or "body", []).append(err.get("msg", "Invalid value"))
    return fail(422, "Validation failed", errors)


@app.exception_handler(InvalidTransition)
async def transition_error_handler(request: Request, exc: InvalidTransition):
    return fail(409, str(exc))


@app.exception_handler(ShipConflict)
async def ship_conflict_handler(request: Request, exc: ShipConflict):
    return fail(409, str(exc))


@app.exception_handler(APIError)
async def db_error_handler(request: Request, exc: APIError):
    if exc.code == UNIQUE_VIOLATION:
        return fail(409, "A record with this value already exists")
    if exc.code == NO_ROWS:
        return fail(404, "Record not found")
    if exc.code == FOREIGN_KEY_VIOLATION:
        return fail(400, "Invalid reference - related record does not exist")
    logger.error("Database error on %s %s: %s", request.method, request.url.path, exc)
    return fail(500, "Database error")


@app.get("/health")
def health():
    try:
        db = get_client()
        db.table("profiles").select("id").limit(1).execute()
        return {"status": "ok", "db": "ok"}
    except Exception as e:
        logger.error("Health check DB failure: %s", e)
        raise HTTPException(status_code=503, detail="DB unavailable")


# ── Auth ──────────────────────────────────────────────────────────────────────

def get_token(authorization: Optional[str] = Header(None)) -> str:
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Unauthorized - Please sign in")
    return authorization.removeprefix("Bearer ").strip()


def require_user(token: str = Depends(get_token)) -> str:
    user_id = resolve_user(get_client(), token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Unauthorized - Please sign in")
    return user_id


def _owned(table: str, row_id: str, user_id: str, label: str) -> dict:
    row = get_row(get_client(), table, row_id)
    if not row:
        raise HTTPException(status_code=404, detail=f"{label} not found")
    if row.get("user_id") != user_id:
        raise HTTPException(status_code=403, detail=f"Forbidden - You do not own this {label.lower()}")
    return row


# ── Sessions ──────────────────────────────────────────────────────────────────

@app.post("/api/sessions", status_code=201)
@limiter.limit("30/minute")
def create_session(request: Request, body: SessionCreate, user_id: str = Depends(require_user)):
    db = get_client()
    if get_active_session(db, user_id):
        raise HTTPException(status_code=409, detail="An active session is already running")
    if body.project_id:
        _owned("projects", body.project_id, user_id, "Project")

    row = insert_row(db, "coding_sessions", {
        "user_id": user_id,
        "session_type": body.session_type.value,
        "project_id": body.project_id,
        "ai_models_used": body.ai_models_used,
        "started_at": _now().isoformat(),
        "ai_context_health": 100,
        "session_status": SessionStatus.ACTIVE.value,
        "duration_seconds": 0,
    })
    logger.info("Session started for %s...: %s", user_id[:8], body.session_type.value)
    return ok(_present_session(row))


@app.get("/api/sessions")
def get_sessions(
    page: int = 1,
    limit: int = 20,
    session_type: Optional[SessionType] = None,
    project_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    user_id: str = Depends(require_user),
):
    page, limit, skip = _pagination(page, limit)
    filters = {
        "session_type": session_type.value if session_type else None,
        "project_id": project_id,
        "start_date": start_date.isoformat() if start_date else None,
        "end_date": end_date.isoformat() if end_date else None,
    }
    rows, total = list_sessions(get_client(), user_id, filters, skip, limit)
    return ok(_paginated([_present_session(r) for r in rows], total, page, limit))


@app.get("/api/sessions/{session_id}")
def get_session(session_id: str, user_id: str = Depends(require_user)):
    return ok(_present_session(_owned("coding_sessions", session_id, user_id, "Session")))


@app.patch("/api/sessions/{session_id}")
def patch_session(session_id: str, body: SessionPatch, user_id: str = Depends(require_user)):
    existing = _owned("coding_sessions", session_id, user_id, "Session")
    updates = body.model_dump(exclude_none=True, mode="json")
    new_status = updates.pop("session_status", None)

    if "duration_seconds" in updates and is_terminal(existing["session_status"]):
        raise HTTPException(status_code=409, detail="Session has ended - duration is frozen")
    if new_status:
        updates.update(transition({**existing, **updates}, new_status, _now()))
    if not updates:
        return ok(_present_session(existing))

    row = update_row(get_client(), "coding_sessions", session_id, updates)
    if new_status and is_terminal(new_status) and not is_terminal(existing["session_status"]):
        logger.info("Session %s... %s after %s", session_id[:8], new_status.lower(),
                    format_duration(row.get("duration_seconds", 0)))
    return ok(_present_session(row))


@app.delete("/api/sessions/{session_id}")
def abandon_session(session_id: str, user_id: str = Depends(require_user)):
    """Soft delete: the session is marked ABANDONED, never removed."""
    existing = _owned("coding_sessions", session_id, user_id, "Session")
    updates = transition(existing, SessionStatus.ABANDONED, _now())
    if updates:
        update_row(get_client(), "coding_sessions", session_id, updates)
    return ok({"id": session_id, "message": "Session abandoned successfully"})


@app.post("/api/sessions/{session_id}/checkpoint", status_code=201)
def save_checkpoint(session_id: str, body: Checkpoint, user_id: str = Depends(require_user)):
    existing = _owned("coding_sessions", session_id, user_id, "Session")
    notes = append_checkpoint(existing.get("checkpoint_notes"), body.checkpoint_text, _now())
    row = update_row(get_client(), "coding_sessions", session_id, {"checkpoint_notes": notes})
    return ok(_present_session(row))


# ── Analytics ─────────────────────────────────────────────────────────────────

@app.get("/api/analytics/streak")
def get_streak(user_id: str = Depends(require_user)):
    db = get_client()
    today = _user_today(get_profile(db, user_id))
    records = _ship_days(get_analytics(db, user_id))
    return ok(compute_streaks(records, today).as_dict())


@app.post("/api/analytics/ship")
@limiter.limit("30/minute")
def mark_ship(request: Request, body: MarkShip, user_id: str = Depends(require_user)):
    db = get_client()
    today = _user_today(get_profile(db, user_id))

    analytics, previous_count = record_ship(db, user_id, today, body.notes)
    first_ship_today = previous_count == 0

    current_streak = compute_current_streak(_ship_days(get_analytics(db, user_id)), today)
    update_profile(db, user_id, {"ship_streak": current_streak})

    milestone = streak_milestone(current_streak) if first_ship_today else None
    logger.info("Ship marked for %s...: day total %d, streak %d",
                user_id[:8], previous_count + 1, current_streak)
    return JSONResponse(
        ok({
            "analytics": analytics,
            "current_streak": current_streak,
            "extended_streak": first_ship_today and current_streak > 0,
            "milestone": milestone,
        }),
        status_code=201 if first_ship_today else 200,
    )


@app.get("/api/analytics/weekly")
def get_weekly(user_id: str = Depends(require_user)):
    db = get_client()
    today = _user_today(get_profile(db, user_id))
    rows = get_analytics(db, user_id, since=today - timedelta(days=6))
    week = fill_week(_ship_days(rows), today)
    return ok({"days": week, "average": weekly_average(week)})


# ── Habits ────────────────────────────────────────────────────────────────────

@app.get("/api/habits")
def get_habits(user_id: str = Depends(require_user)):
    db = get_client()
    today = _user_today(get_profile(db, user_id))
    habits = []
    for habit in list_habits(db, user_id):
        habits.append({**habit, "completed_today": _parse_day(habit.get("last_completed_on")) == today})
    return ok(habits)


@app.post("/api/habits", status_code=201)
def create_habit(body: HabitCreate, user_id: str = Depends(require_user)):
    row = insert_row(get_client(), "habits", {
        "user_id": user_id,
        **body.model_dump(mode="json"),
        "streak_count": 0,
        "longest_streak": 0,
        "is_active": True,
    })
    return ok(row)


@app.patch("/api/habits/{habit_id}")
def patch_habit(habit_id: str, body: HabitPatch, user_id: str = Depends(require_user)):
    existing = _owned("habits", habit_id, user_id, "Habit")
    updates = body.model_dump(exclude_none=True, mode="json")
    if not updates:
        return ok(existing)
    return ok(update_row(get_client(), "habits", habit_id, updates))


@app.delete("/api/habits/{habit_id}")
def delete_habit(habit_id: str, user_id: str = Depends(require_user)):
    _owned("habits", habit_id, user_id, "Habit")
    db = get_client()
    delete_habit_completions(db, habit_id)
    delete_row(db, "habits", habit_id)
    return ok({"id": habit_id})


@app.post("/api/habits/{habit_id}/complete")
def complete_habit(habit_id: str, body: HabitComplete, user_id: str = Depends(require_user)):
    habit = _owned("habits", habit_id, user_id, "Habit")
    db = get_client()
    today = _user_today(get_profile(db, user_id))

    last_completed = _parse_day(habit.get("last_completed_on"))
    if last_completed == today:
        raise HTTPException(status_code=409, detail="Habit already completed today")

    new_streak = next_streak(last_completed, habit.get("streak_count") or 0, today)
    add_habit_completion(db, habit_id, today, body.notes)
    updated = update_row(db, "habits", habit_id, {
        "last_completed_on": today.isoformat(),
        "streak_count": new_streak,
        "longest_streak": max(habit.get("longest_streak") or 0, new_streak),
    })

    milestone = streak_milestone(new_streak)
    return ok({
        "habit": updated,
        "new_streak": new_streak,
        "is_milestone": milestone is not None,
        "milestone_message": milestone,
    })


@app.get("/api/habits/{habit_id}/streak")
def get_habit_streak(habit_id: str, user_id: str = Depends(require_user)):
    habit = _owned("habits", habit_id, user_id, "Habit")
    db = get_client()
    today = _user_today(get_profile(db, user_id))

    days = sorted({_parse_day(d) for d in get_habit_completions(db, habit_id)})
    history = compute_streaks([ShipDay(d, 1) for d in days], today)

    # A habit done yesterday is still alive until today ends.
    last_completed = _parse_day(habit.get("last_completed_on"))
    alive = last_completed is not None and (today - last_completed).days <= 1
    current = (habit.get("streak_count") or 0) if alive else 0

    window_start = today - timedelta(days=29)
    recent = [d for d in days if d >= window_start]
    return ok({
        "current_streak": current,
        "longest_streak": max(
            history.longest_streak,
            habit.get("longest_streak") or 0,
            habit.get("streak_count") or 0,
        ),
        "completion_dates": [d.isoformat() for d in days],
        "completion_rate": round(len(recent) / 30 * 100),
        "last_completed_on": habit.get("last_completed_on"),
    })


# ── Notes ─────────────────────────────────────────────────────────────────────

@app.get("/api/notes")
def get_notes(
    page: int = 1,
    limit: int = 20,
    category: Optional[NoteCategory] = None,
    search: Optional[str] = Query(None, max_length=200),
    tags: Optional[str] = None,
    project_id: Optional[str] = None,
    session_id: Optional[str] = None,
    user_id: str = Depends(require_user),
):
    page, limit, skip = _pagination(page, limit)
    filters = {
        "category": category.value if category else None,
        "search": search.strip() if search else None,
        "tags": [t.strip() for t in tags.split(",") if t.strip()] if tags else None,
        "project_id": project_id,
        "session_id": session_id,
    }
    rows, total = list_notes(get_client(), user_id, filters, skip, limit)
    return ok(_paginated(rows, total, page, limit))


@app.post("/api/notes", status_code=201)
def create_note(body: NoteCreate, user_id: str = Depends(require_user)):
    data = body.model_dump(mode="json")
    data["title"] = data.get("title") or ""
    row = insert_row(get_client(), "notes", {"user_id": user_id, "is_template": False, **data})
    return ok(row)


@app.get("/api/notes/{note_id}")
def get_note(note_id: str, user_id: str = Depends(require_user)):
    return ok(_owned("notes", note_id, user_id, "Note"))


@app.patch("/api/notes/{note_id}")
def patch_note(note_id: str, body: NotePatch, user_id: str = Depends(require_user)):
    existing = _owned("notes", note_id, user_id, "Note")
    updates = body.model_dump(exclude_none=True, mode="json")
    if not updates:
        return ok(existing)
    return ok(update_row(get_client(), "notes", note_id, updates))


@app.delete("/api/notes/{note_id}")
def delete_note(note_id: str, user_id: str = Depends(require_user)):
    _owned("notes", note_id, user_id, "Note")
    delete_row(get_client(), "notes", note_id)
    return ok({"id": note_id})


# ── Projects ──────────────────────────────────────────────────────────────────

@app.get("/api/projects")
def get_projects(
    is_active: Optional[bool] = None,
    sort_by: Literal["updated_at", "feels_right_score"] = "updated_at",
    user_id: str = Depends(require_user),
):
    db = get_client()
    projects = list_projects(db, user_id, is_active, sort_by)
    ids = [p["id"] for p in projects]
    last_starts = get_last_session_starts(db, ids)
    counts = count_sessions_by_project(db, ids)
    now = _now()
    return ok([
        {
            **p,
            "momentum": momentum(parse_timestamp(last_starts.get(p["id"])), now),
            "total_sessions": counts.get(p["id"], 0),
        }
        for p in projects
    ])


@app.post("/api/projects", status_code=201)
def create_project(body: ProjectCreate, user_id: str = Depends(require_user)):
    row = insert_row(get_client(), "projects", {
        "user_id": user_id,
        **body.model_dump(mode="json"),
        "pivot_count": 0,
        "is_active": True,
    })
    return ok(row)


@app.get("/api/projects/{project_id}")
def get_project(project_id: str, user_id: str = Depends(require_user)):
    project = _owned("projects", project_id, user_id, "Project")
    db = get_client()
    today = _user_today(get_profile(db, user_id))
    last_start = get_last_session_starts(db, [project_id]).get(project_id)
    ship_target = parse_timestamp(project.get("ship_target"))
    return ok({
        **project,
        "momentum": momentum(parse_timestamp(last_start), _now()),
        "total_sessions": count_sessions_by_project(db, [project_id]).get(project_id, 0),
        "feels_right_label": feels_right_label(project.get("feels_right_score") or 3),
        "ship_target_display": format_ship_target(ship_target.date() if ship_target else None, today),
    })


@app.patch("/api/projects/{project_id}")
def patch_project(project_id: str, body: ProjectPatch, user_id: str = Depends(require_user)):
    existing = _owned("projects", project_id, user_id, "Project")
    updates = body.model_dump(exclude_none=True, mode="json")
    if not updates:
        return ok(existing)
    return ok(update_row(get_client(), "projects", project_id, updates))


@app.delete("/api/projects/{project_id}")
def delete_project(project_id: str, user_id: str = Depends(require_user)):
    _owned("projects", project_id, user_id, "Project")
    db = get_client()
    detach_project(db, project_id)
    delete_row(db, "projects", project_id)
    logger.info("Project deleted: %s...", project_id[:8])
    return ok({"id": project_id})


@app.post("/api/projects/{project_id}/feels-right")
def set_feels_right(project_id: str, body: FeelsRightScore, user_id: str = Depends(require_user)):
    _owned("projects", project_id, user_id, "Project")
    row = update_row(get_client(), "projects", project_id, {"feels_right_score": body.score})
    return ok({**row, "feels_right_label": feels_right_label(body.score)})


@app.post("/api/projects/{project_id}/pivot")
def record_pivot(project_id: str, body: Pivot, user_id: str = Depends(require_user)):
    project = _owned("projects", project_id, user_id, "Project")
    db = get_client()
    pivot_count = (project.get("pivot_count") or 0) + 1
    row = update_row(db, "projects", project_id, {"pivot_count": pivot_count})

    note = None
    if body.notes:
        try:
            note = insert_row(db, "notes", {
                "user_id": user_id,
                "project_id": project_id,
                "title": f"Pivot #{pivot_count}",
                "content": body.notes,
                "category": NoteCategory.INSIGHT.value,
                "tags": ["pivot"],
                "is_template": False,
            })
        except APIError as e:
            # pivot_count is already saved; the note is best-effort
            logger.error("Failed to save pivot note for project %s: %s", project_id[:8], e)

    return ok({"project": row, "pivot_count": pivot_count, "note": note})


# ── Dashboard ─────────────────────────────────────────────────────────────────

@app.get("/api/dashboard/stats")
def get_dashboard_stats(user_id: str = Depends(require_user)):
    db = get_client()
    profile = get_profile(db, user_id)
    today = _user_today(profile)

    active = get_active_session(db, user_id)
    since = day_start_utc(_user_timezone(profile), today).isoformat()
    todays_seconds = sum(session_duration(s) for s in get_sessions_since(db, user_id, since))
    today_record = get_analytics_day(db, user_id, today) or {}

    return ok({
        "active_session": _present_session(active) if active else None,
        "active_projects_count": count_active_projects(db, user_id),
        "todays_coding_seconds": todays_seconds,
        "todays_coding_display": format_duration(todays_seconds),
        "ship_streak": profile.get("ship_streak", 0),
        "shipped_today": (today_record.get("ship_count") or 0) > 0,
    })


# ── Helpers ───────────────────────────────────────────────────────────────────

def _now() -> datetime:
    return datetime.now(timezone.utc)


def _user_timezone(profile: dict) -> str:
    return profile.get("timezone") or os.getenv("DEFAULT_TIMEZONE", "UTC")


def _user_today(profile: dict) -> date:
    return local_today(_user_timezone(profile), _now())


def _parse_day(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _ship_days(rows: list[dict]) -> list[ShipDay]:
    return [ShipDay(_parse_day(r["date"]), r.get("ship_count") or 0) for r in rows]


def _pagination(page: int, limit: int) -> tuple[int, int, int]:
    page = max(1, page)
    limit = min(100, max(1, limit))
    return page, limit, (page - 1) * limit


def _paginated(items: list, total: int, page: int, limit: int) -> dict:
    return {"items": items, "total": total, "page": page, "limit": limit, "has_more": page * limit < total}


def _present_session(row: dict) -> dict:
    duration = session_duration(row)
    return {
        **row,
        "duration_display": format_duration(duration),
        "context_health": context_health(duration, 100),
    }
