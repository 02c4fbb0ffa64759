"""
State container for the gig tracker.

The store owns the current TrackerState, applies reducers through `dispatch`,
keeps bounded undo/redo history and persists every change to key-value storage.
If a save still fails after retries the in-memory change stays and StorageError
is raised so the caller can surface it.
"""
import logging
import time
import uuid
from typing import Any, Callable, Optional

from pydantic import ValidationError

from .models import Gig, PracticeTask, RehearsalEvent, RehearsalTask, TrackerState
from .reducers import reduce
from . import selectors
from .retry import retry_storage
from .storage import KeyValueStorage, StorageError

logger = logging.getLogger(__name__)

STORAGE_KEY = "gigbook-state"
STATE_VERSION = 1
HISTORY_LIMIT = 50

Listener = Callable[[TrackerState], None]


class TrackerStore:
    def __init__(self, storage: KeyValueStorage, key: str = STORAGE_KEY,
                 sleep: Callable[[float], None] = time.sleep):
        self._storage = storage
        self._key = key
        self._sleep = sleep
        self._past: list[TrackerState] = []
        self._future: list[TrackerState] = []
        self._listeners: list[Listener] = []
        self.state = self._load()

    # ── Persistence ───────────────────────────────────────────────────────────

    def _load(self) -> TrackerState:
        try:
            raw = self._storage.get_item(self._key)
        except (OSError, ValueError) as e:
            logger.error("Error loading tracker data: %s", e)
            return TrackerState()
        if not isinstance(raw, dict):
            return TrackerState()
        try:
            return TrackerState.model_validate(raw.get("state") or {})
        except ValidationError as e:
            logger.error("Stored tracker data is invalid, starting empty: %s", e)
            return TrackerState()

    def _persist(self) -> None:
        value = {"state": self.state.model_dump(mode="json"), "version": STATE_VERSION}
        try:
            retry_storage(lambda: self._storage.set_item(self._key, value), "save", sleep=self._sleep)
        except Exception as e:
            logger.error("Error saving tracker data: %s", e)
            raise StorageError("Failed to save tracker data") from e

    def clear(self) -> None:
        try:
            retry_storage(lambda: self._storage.remove_item(self._key), "remove", sleep=self._sleep)
        except Exception as e:
            logger.error("Error clearing tracker data: %s", e)
            raise StorageError("Failed to clear tracker data") from e
        self._past.clear()
        self._future.clear()
        self._set(TrackerState())

    # ── Dispatch / history ────────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set(self, state: TrackerState) -> None:
        self.state = state
        for listener in list(self._listeners):
            listener(state)

    def dispatch(self, action: str, **payload: Any) -> TrackerState:
        new_state = reduce(self.state, action, **payload)
        if new_state == self.state:
            return self.state
        self._past.append(self.state)
        del self._past[:-HISTORY_LIMIT]
        self._future.clear()
        self._set(new_state)
        self._persist()
        return new_state

    def can_undo(self) -> bool:
        return bool(self._past)

    def can_redo(self) -> bool:
        return bool(self._future)

    def undo(self) -> TrackerState:
        if not self._past:
            return self.state
        self._future.append(self.state)
        self._set(self._past.pop())
        self._persist()
        return self.state

    def redo(self) -> TrackerState:
        if not self._future:
            return self.state
        self._past.append(self.state)
        self._set(self._future.pop())
        self._persist()
        return self.state

    # ── Convenience actions ───────────────────────────────────────────────────

    def add_rehearsal_task(self, title: str, **fields: Any) -> RehearsalTask:
        task = RehearsalTask(id=_new_id(), title=title, **fields)
        self.dispatch("rehearsal/add_task", task=task)
        return task

    def add_rehearsal_event(self, name: str, **fields: Any) -> RehearsalEvent:
        event = RehearsalEvent(id=_new_id(), name=name, **fields)
        self.dispatch("rehearsal/add_event", event=event)
        return event

    def add_practice_task(self, title: str, **fields: Any) -> PracticeTask:
        task = PracticeTask(id=_new_id(), title=title, **fields)
        self.dispatch("practice/add_task", task=task)
        return task

    def add_gig(self, title: str, venue_name: str, **fields: Any) -> Gig:
        gig = Gig(id=_new_id(), title=title, venue_name=venue_name, **fields)
        self.dispatch("gigs/add", gig=gig)
        return gig

    # ── Selectors ─────────────────────────────────────────────────────────────

    def gig_by_id(self, gig_id: str) -> Optional[Gig]:
        return selectors.gig_by_id(self.state.gigs, gig_id)

    def tasks_for_event(self, event_id: str) -> list[RehearsalTask]:
        return [t for t in self.state.rehearsal_tasks if t.event_id == event_id]


def _new_id() -> str:
    return str(uuid.uuid4())

