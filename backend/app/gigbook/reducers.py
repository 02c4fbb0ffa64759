"""
Pure reducers for the gig tracker. Each takes a state and returns a new one.
Updating or deleting an id that does not exist leaves the state unchanged.
"""
from typing import Any, Callable, Iterable, TypeVar

from .models import Gig, PracticeTask, RehearsalEvent, RehearsalTask, TrackerState

T = TypeVar("T", RehearsalTask, RehearsalEvent, PracticeTask, Gig)


def _replace(items: Iterable[T], item_id: str, updates: dict[str, Any]) -> tuple[T, ...]:
    updates = {k: v for k, v in updates.items() if k != "id"}
    return tuple(i.model_copy(update=updates) if i.id == item_id else i for i in items)


def _without(items: Iterable[T], item_id: str) -> tuple[T, ...]:
    return tuple(i for i in items if i.id != item_id)


def _toggled(items: Iterable[T], item_id: str) -> tuple[T, ...]:
    return tuple(i.model_copy(update={"completed": not i.completed}) if i.id == item_id else i for i in items)


# ── Rehearsal tasks ───────────────────────────────────────────────────────────

def add_rehearsal_task(state: TrackerState, task: RehearsalTask) -> TrackerState:
    return state.model_copy(update={"rehearsal_tasks": (*state.rehearsal_tasks, task)})


def update_rehearsal_task(state: TrackerState, item_id: str, updates: dict[str, Any]) -> TrackerState:
    return state.model_copy(update={"rehearsal_tasks": _replace(state.rehearsal_tasks, item_id, updates)})


def delete_rehearsal_task(state: TrackerState, item_id: str) -> TrackerState:
    return state.model_copy(update={"rehearsal_tasks": _without(state.rehearsal_tasks, item_id)})


def toggle_rehearsal_task(state: TrackerState, item_id: str) -> TrackerState:
    return state.model_copy(update={"rehearsal_tasks": _toggled(state.rehearsal_tasks, item_id)})


def reorder_rehearsal_tasks(state: TrackerState, ids: list[str]) -> TrackerState:
    """Put tasks in the given id order; tasks not listed keep their relative order at the end."""
    by_id = {t.id: t for t in state.rehearsal_tasks}
    ordered = [by_id[i] for i in ids if i in by_id]
    listed = set(ids)
    ordered += [t for t in state.rehearsal_tasks if t.id not in listed]
    return state.model_copy(update={"rehearsal_tasks": tuple(ordered)})


# ── Rehearsal events ──────────────────────────────────────────────────────────

def add_rehearsal_event(state: TrackerState, event: RehearsalEvent) -> TrackerState:
    return state.model_copy(update={"rehearsal_events": (*state.rehearsal_events, event)})


def update_rehearsal_event(state: TrackerState, item_id: str, updates: dict[str, Any]) -> TrackerState:
    return state.model_copy(update={"rehearsal_events": _replace(state.rehearsal_events, item_id, updates)})


def delete_rehearsal_event(state: TrackerState, item_id: str) -> TrackerState:
    """Removes the event; tasks linked to it are kept with event_id cleared."""
    tasks = tuple(
        t.model_copy(update={"event_id": None}) if t.event_id == item_id else t
        for t in state.rehearsal_tasks
    )
    return state.model_copy(update={
        "rehearsal_events": _without(state.rehearsal_events, item_id),
        "rehearsal_tasks": tasks,
    })


# ── Practice tasks ────────────────────────────────────────────────────────────

def add_practice_task(state: TrackerState, task: PracticeTask) -> TrackerState:
    return state.model_copy(update={"practice_tasks": (*state.practice_tasks, task)})


def update_practice_task(state: TrackerState, item_id: str, updates: dict[str, Any]) -> TrackerState:
    return state.model_copy(update={"practice_tasks": _replace(state.practice_tasks, item_id, updates)})


def delete_practice_task(state: TrackerState, item_id: str) -> TrackerState:
    return state.model_copy(update={"practice_tasks": _without(state.practice_tasks, item_id)})


def toggle_practice_task(state: TrackerState, item_id: str) -> TrackerState:
    return state.model_copy(update={"practice_tasks": _toggled(state.practice_tasks, item_id)})


# ── Gigs ──────────────────────────────────────────────────────────────────────

def add_gig(state: TrackerState, gig: Gig) -> TrackerState:
    return state.model_copy(update={"gigs": (*state.gigs, gig)})


def update_gig(state: TrackerState, item_id: str, updates: dict[str, Any]) -> TrackerState:
    return state.model_copy(update={"gigs": _replace(state.gigs, item_id, updates)})


def delete_gig(state: TrackerState, item_id: str) -> TrackerState:
    return state.model_copy(update={"gigs": _without(state.gigs, item_id)})


REDUCERS: dict[str, Callable[..., TrackerState]] = {
    "rehearsal/add_task": add_rehearsal_task,
    "rehearsal/update_task": update_rehearsal_task,
    "rehearsal/delete_task": delete_rehearsal_task,
    "rehearsal/toggle_task": toggle_rehearsal_task,
    "rehearsal/reorder_tasks": reorder_rehearsal_tasks,
    "rehearsal/add_event": add_rehearsal_event,
    "rehearsal/update_event": update_rehearsal_event,
    "rehearsal/delete_event": delete_rehearsal_event,
    "practice/add_task": add_practice_task,
    "practice/update_task": update_practice_task,
    "practice/delete_task": delete_practice_task,
    "practice/toggle_task": toggle_practice_task,
    "gigs/add": add_gig,
    "gigs/update": update_gig,
    "gigs/delete": delete_gig,
}


def reduce(state: TrackerState, action: str, **payload: Any) -> TrackerState:
    try:
        reducer = REDUCERS[action]
    except KeyError:
        raise ValueError(f"Unknown action: {action}") from None
    return reducer(state, **payload)
