import threading
from typing import Any, Dict, List, Optional, Sequence, Union

from app.canvas.actions import CanvasActions
from app.canvas.serializers import snapshot_to_dict
from app.canvas.types import Snapshot
from app.config import AUTOSAVE_DELAY_MS, AUTOSAVE_ENABLED, HISTORY_MAX_SIZE
from app.frames.organizer import FrameOrganizer
from app.instructions.engine import IdFactory, apply_instructions
from app.instructions.parser import parse_envelope
from app.instructions.types import InstructionBatchResult
from app.persistence.gateway import PersistenceGateway, SaveOptions
from app.state.autosave import AutoSaveScheduler, TimerFactory
from app.state.store import VersionedStateStore


class CanvasSession:
    """
    One editable canvas.

    Owns the store and everything that writes to it. Manual edits, frame
    operations and instruction batches all commit through the same store,
    so they share one undo history and one autosave timer.
    """

    def __init__(
        self,
        gateway: PersistenceGateway,
        initial: Optional[Snapshot] = None,
        max_history: int = HISTORY_MAX_SIZE,
        autosave_delay_ms: int = AUTOSAVE_DELAY_MS,
        autosave_enabled: bool = AUTOSAVE_ENABLED,
        save_options: Optional[SaveOptions] = None,
        timer_factory: TimerFactory = threading.Timer,
        id_factory: Optional[IdFactory] = None,
    ):
        self.gateway = gateway
        self.store = VersionedStateStore(initial, max_history=max_history)
        self.autosave = AutoSaveScheduler(
            self.store,
            gateway,
            delay_ms=autosave_delay_ms,
            save_options=save_options,
            enabled=autosave_enabled,
            timer_factory=timer_factory,
        )
        self.frames = FrameOrganizer(self.store)
        self.actions = CanvasActions(self.store)
        self._id_factory = id_factory

    def get_state(self) -> Snapshot:
        return self.store.get_state()

    # ---------------------------------------------------------------
    # Instruction batches
    # ---------------------------------------------------------------

    def apply_instructions(self, instructions: Sequence[Any]) -> InstructionBatchResult:
        """Run a batch against the current state; commit once if it changed anything."""
        with self.store.transaction() as snapshot:
            candidate, result = apply_instructions(
                snapshot, instructions, id_factory=self._id_factory
            )
            if result.changed:
                self.store.commit(candidate, source=f"instructions: {result.summary()}")
        return result

    def apply_envelope(self, source: Union[str, Dict[str, Any], List[Any]]) -> Dict[str, Any]:
        """Apply a generator reply; envelope warnings come first, then the engine's."""
        envelope = parse_envelope(source)
        result = self.apply_instructions(envelope.actions)

        report = result.to_dict()
        report["warnings"] = envelope.warnings + result.warnings
        report["summary"] = envelope.summary or result.summary()
        report["reasoning"] = envelope.reasoning
        return report

    # ---------------------------------------------------------------
    # History
    # ---------------------------------------------------------------

    def undo(self) -> Optional[Snapshot]:
        return self.store.undo()

    def redo(self) -> Optional[Snapshot]:
        return self.store.redo()

    # ---------------------------------------------------------------
    # Persistence
    # ---------------------------------------------------------------

    def load(self, project_id: Optional[str] = None) -> Snapshot:
        """Replace the state with the stored design (empty canvas when none)."""
        snapshot = self.gateway.load_design(project_id)
        if snapshot is None:
            print("[STORE] No saved design found, starting empty")
            snapshot = Snapshot.empty()

        with self.store.transaction():
            state = self.store.reset(snapshot)
            # freshly loaded state matches storage
            self.autosave.cancel()
            self.autosave.is_dirty = False
        return state

    def force_save(self) -> bool:
        return self.autosave.force_save()

    def status(self) -> Dict[str, Any]:
        snapshot = self.store.get_state()
        return {
            "version": self.store.version,
            "can_undo": self.store.can_undo,
            "can_redo": self.store.can_redo,
            "components": len(snapshot.components),
            "connections": len(snapshot.connections),
            "frames": len(snapshot.frames),
            "current_frame_id": self.frames.current_frame_id,
            "autosave": self.autosave.to_dict(),
        }

    def to_dict(self) -> Dict[str, Any]:
        return snapshot_to_dict(self.store.get_state())

    def close(self) -> None:
        self.autosave.close()
