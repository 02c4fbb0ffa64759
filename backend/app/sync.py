"""
Background duration sync for a running coding session.

SessionTimer advances the elapsed counter once per interval while the session
is active and pushes the duration to the API every `sync_every` ticks.
Persistence is best-effort: failures are logged and the next sync tick tries
again. Stopping the timer sets its cancellation token.
"""
import logging
import os
import threading
from typing import Callable, Optional

import httpx

from .engine.session import context_health, format_duration

logger = logging.getLogger(__name__)

Persist = Callable[[str, int], None]


class SessionTimer:
    def __init__(
        self,
        session_id: str,
        persist: Persist,
        elapsed: int = 0,
        interval: float = 1.0,
        sync_every: int = 60,
        cancel_token: Optional[threading.Event] = None,
        initial_health: int = 100,
    ):
        self.session_id = session_id
        self.elapsed = elapsed
        self.interval = interval
        self.sync_every = sync_every
        self.initial_health = initial_health
        self.cancel_token = cancel_token or threading.Event()
        self._persist = persist
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self.cancel_token.is_set()

    @property
    def context_health(self) -> int:
        return context_health(self.elapsed, self.initial_health)

    @property
    def formatted(self) -> str:
        return format_duration(self.elapsed)

    def start(self) -> None:
        if self.running:
            return
        # A stopped run may still be inside persist; it must exit before the token is cleared.
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join()
        self.cancel_token.clear()
        self._thread = threading.Thread(
            target=self._run, name=f"session-timer-{self.session_id[:8]}", daemon=True
        )
        self._thread.start()

    def stop(self) -> None:
        self.cancel_token.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=self.interval * 2)
            if not self._thread.is_alive():
                self._thread = None

    def on_tick(self) -> int:
        self.elapsed += 1
        if self.sync_every and self.elapsed % self.sync_every == 0:
            self.sync()
        return self.elapsed

    def sync(self) -> bool:
        try:
            self._persist(self.session_id, self.elapsed)
            return True
        except Exception as e:
            logger.warning("Duration sync failed for session %s at %ds: %s",
                           self.session_id[:8], self.elapsed, e)
            return False

    def _run(self) -> None:
        while not self.cancel_token.wait(self.interval):
            self.on_tick()


class ApiDurationSync:
    """Persister that PATCHes the session's duration on the dashboard API."""

    def __init__(self, base_url: str, token: str | None = None, timeout: float = 10,
                 client: httpx.Client | None = None):
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.Client(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)

    @classmethod
    def from_env(cls) -> "ApiDurationSync":
        return cls(
            os.getenv("SHIPYARD_API_URL", "http://localhost:8000"),
            os.getenv("SHIPYARD_API_TOKEN"),
        )

    def __call__(self, session_id: str, duration_seconds: int) -> None:
        resp = self._client.patch(f"/api/sessions/{session_id}", json={"duration_seconds": duration_seconds})
        resp.raise_for_status()

    def close(self) -> None:
        self._client.close()
