from collections import deque
from typing import Deque, Generic, List, Optional, TypeVar

from app.config import HISTORY_MAX_SIZE

T = TypeVar("T")


class HistoryManager(Generic[T]):
    """
    Bounded undo/redo over immutable states.

    past    -> states before `current`, oldest first (FIFO eviction at max_size)
    current -> the state callers see
    future  -> states undone from, most recent last (cleared on every push)

    States are never copied: they must be immutable.
    """

    def __init__(self, initial: T, max_size: int = HISTORY_MAX_SIZE):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.max_size = max_size
        self._past: Deque[T] = deque(maxlen=max_size)
        self._future: List[T] = []
        self._current = initial

    @property
    def current(self) -> T:
        return self._current

    @property
    def can_undo(self) -> bool:
        return len(self._past) > 0

    @property
    def can_redo(self) -> bool:
        return len(self._future) > 0

    @property
    def past_depth(self) -> int:
        return len(self._past)

    @property
    def future_depth(self) -> int:
        return len(self._future)

    def push_state(self, state: T) -> None:
        # deque(maxlen) drops the oldest entry once full
        self._past.append(self._current)
        self._current = state
        self._future.clear()

    def undo(self) -> Optional[T]:
        if not self._past:
            return None
        self._future.append(self._current)
        self._current = self._past.pop()
        return self._current

    def redo(self) -> Optional[T]:
        if not self._future:
            return None
        self._past.append(self._current)
        self._current = self._future.pop()
        return self._current

    def clear(self) -> None:
        self._past.clear()
        self._future.clear()

    def reset(self, state: T) -> None:
        self.clear()
        self._current = state
