import threading
from contextlib import contextmanager
from dataclasses import replace
from typing import Any, Callable, Iterator, List, Mapping, Optional, Union

from app.canvas.errors import ContractViolation
from app.canvas.integrity import normalize_snapshot
from app.canvas.types import Snapshot
from app.config import HISTORY_MAX_SIZE
from app.state.history import HistoryManager


Listener = Callable[[Snapshot], None]
SnapshotUpdate = Union[Snapshot, Callable[[Snapshot], Snapshot], Mapping[str, Any]]


class VersionedStateStore:
    """
    Canonical canvas state with undo/redo.

    Every mutation (manual edit, frame operation, instruction batch) goes
    through `commit`, so all of them share one history and one save trigger.

    Usage:
        store = VersionedStateStore()
        store.commit({"active_tool": "pan"})
        store.commit(lambda s: replace(s, components=s.components + (c,)))
        store.undo()
    """

    def __init__(
        self,
        initial: Optional[Snapshot] = None,
        max_history: int = HISTORY_MAX_SIZE,
    ):
        initial = normalize_snapshot(initial if initial is not None else Snapshot.empty())
        self._history: HistoryManager[Snapshot] = HistoryManager(initial, max_size=max_history)
        self._listeners: List[Listener] = []
        self._lock = threading.RLock()
        self.version = 0

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    def get_state(self) -> Snapshot:
        return self._history.current

    @property
    def can_undo(self) -> bool:
        return self._history.can_undo

    @property
    def can_redo(self) -> bool:
        return self._history.can_redo

    @property
    def history(self) -> HistoryManager[Snapshot]:
        return self._history

    @contextmanager
    def transaction(self) -> Iterator[Snapshot]:
        """
        Hold the store lock across a read-check-commit sequence.

        Yields the current snapshot. Commits made inside the block build on
        it, and no other writer can publish in between.
        """
        with self._lock:
            yield self._history.current

    # ---------------------------------------------------------------
    # Mutations
    # ---------------------------------------------------------------

    def commit(self, update: SnapshotUpdate, source: Optional[str] = None) -> Snapshot:
        """
        Apply `update` and publish the result as the new current snapshot.

        `update` may be a full Snapshot, a function of the current snapshot,
        or a mapping of Snapshot fields to replace. Nothing is published if
        building or normalizing the new snapshot fails.
        """
        with self._lock:
            current = self._history.current
            candidate = self._resolve_update(current, update)
            candidate = normalize_snapshot(candidate)

            self._history.push_state(candidate)
            self.version += 1

        if source:
            print(f"[STORE] commit v{self.version} ({source})")

        self._notify(candidate)
        return candidate

    def undo(self) -> Optional[Snapshot]:
        with self._lock:
            state = self._history.undo()
            if state is not None:
                self.version += 1

        if state is not None:
            self._notify(state)
        return state

    def redo(self) -> Optional[Snapshot]:
        with self._lock:
            state = self._history.redo()
            if state is not None:
                self.version += 1

        if state is not None:
            self._notify(state)
        return state

    def clear_history(self) -> None:
        with self._lock:
            self._history.clear()

    def reset(self, snapshot: Snapshot) -> Snapshot:
        """Replace the state and drop history (e.g. after loading a design)."""
        with self._lock:
            snapshot = normalize_snapshot(snapshot)
            self._history.reset(snapshot)
            self.version += 1

        self._notify(snapshot)
        return snapshot

    # ---------------------------------------------------------------
    # Subscriptions
    # ---------------------------------------------------------------

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, snapshot: Snapshot) -> None:
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception as e:
                print(f"[STORE] ⚠️ listener failed: {e}")

    @staticmethod
    def _resolve_update(current: Snapshot, update: SnapshotUpdate) -> Snapshot:
        if isinstance(update, Snapshot):
            return update

        if callable(update):
            result = update(current)
            if not isinstance(result, Snapshot):
                raise ContractViolation(
                    f"Functional update must return a Snapshot, got {type(result).__name__}"
                )
            return result

        if isinstance(update, Mapping):
            try:
                return replace(current, **dict(update))
            except TypeError as e:
                raise ContractViolation(f"Invalid snapshot patch: {e}") from e

        raise ContractViolation(f"Unsupported update type: {type(update).__name__}")
