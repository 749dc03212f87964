"""
Debounced autosave.

One timer slot per store. Each store change bumps a generation token and
replaces the pending timer; a timer whose token is no longer current does
nothing when it fires. The save always reads the store at fire time, so a
late timer persists the newest state, never a stale copy.

Failures are reported through `status` / `last_error` and are not retried
until the next change or an explicit `force_save()`.
"""

import threading
import time
from enum import Enum
from typing import Any, Callable, Optional

from app.canvas.types import Snapshot
from app.config import AUTOSAVE_DELAY_MS, AUTOSAVE_ENABLED
from app.persistence.gateway import PersistenceGateway, SaveOptions
from app.state.store import VersionedStateStore


class SaveStatus(Enum):
    IDLE = "idle"
    SAVING = "saving"
    SAVED = "saved"
    ERROR = "error"


# (delay_seconds, callback) -> object with start() / cancel(); threading.Timer fits
TimerFactory = Callable[[float, Callable[[], None]], Any]


class AutoSaveScheduler:
    def __init__(
        self,
        store: VersionedStateStore,
        gateway: PersistenceGateway,
        delay_ms: int = AUTOSAVE_DELAY_MS,
        save_options: Optional[SaveOptions] = None,
        enabled: bool = AUTOSAVE_ENABLED,
        timer_factory: TimerFactory = threading.Timer,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.gateway = gateway
        self.delay_ms = delay_ms
        self.save_options = save_options or SaveOptions()
        self.enabled = enabled
        self._timer_factory = timer_factory
        self._clock = clock

        self.status = SaveStatus.IDLE
        self.last_saved_at: Optional[float] = None
        self.last_error: Optional[str] = None
        self.is_dirty = False

        self._lock = threading.Lock()
        self._token = 0
        self._timer = None
        self._unsubscribe = store.subscribe(self._on_store_change)

    # ---------------------------------------------------------------
    # Scheduling
    # ---------------------------------------------------------------

    @property
    def has_pending(self) -> bool:
        return self._timer is not None

    @property
    def is_saving(self) -> bool:
        return self.status == SaveStatus.SAVING

    def _on_store_change(self, _snapshot: Snapshot) -> None:
        self.mark_dirty()

    def mark_dirty(self) -> None:
        """Restart the debounce window."""
        self.is_dirty = True
        if not self.enabled:
            return

        with self._lock:
            self._cancel_pending_unlocked()
            self._token += 1
            token = self._token

            timer = self._timer_factory(self.delay_ms / 1000.0, lambda: self._on_timer(token))
            if hasattr(timer, "daemon"):
                timer.daemon = True
            self._timer = timer

        timer.start()

    def cancel(self) -> None:
        with self._lock:
            self._cancel_pending_unlocked()
            self._token += 1

    def _cancel_pending_unlocked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _on_timer(self, token: int) -> None:
        with self._lock:
            if token != self._token:
                # superseded by a newer change, force_save or cancel
                return
            self._timer = None

        self._save()

    # ---------------------------------------------------------------
    # Saving
    # ---------------------------------------------------------------

    def force_save(self) -> bool:
        """Cancel any pending timer and save the current state now."""
        self.cancel()
        return self._save()

    def _save(self) -> bool:
        snapshot = self.store.get_state()
        self.status = SaveStatus.SAVING

        try:
            self.gateway.save_design(snapshot, self.save_options)
        except Exception as e:
            self.status = SaveStatus.ERROR
            self.last_error = str(e)
            print(f"[AUTOSAVE] ❌ Save failed: {e}")
            return False

        # A change that landed during the save keeps the scheduler dirty
        if snapshot is self.store.get_state():
            self.is_dirty = False
        self.status = SaveStatus.SAVED
        self.last_error = None
        self.last_saved_at = self._clock()
        return True

    def close(self) -> None:
        self.cancel()
        self._unsubscribe()

    def to_dict(self) -> dict:
        return {
            "status": self.status.value,
            "last_saved_at": self.last_saved_at,
            "last_error": self.last_error,
            "is_dirty": self.is_dirty,
            "pending": self.has_pending,
        }
