from dataclasses import replace
from typing import Callable, Iterable, List, Optional, Sequence, Set

from app.canvas.errors import ContractViolation, FrameNotFoundError
from app.canvas.ids import new_frame_id
from app.canvas.types import (
    Bounds,
    Component,
    Frame,
    Snapshot,
    DEFAULT_COMPONENT_HEIGHT,
    DEFAULT_COMPONENT_WIDTH,
    DEFAULT_FRAME_COLOR,
)
from app.state.store import VersionedStateStore


FRAME_PADDING = 32


def derive_component_bounds(
    components: Iterable[Component],
    component_ids: Iterable[str],
    padding: float = FRAME_PADDING,
) -> Optional[Bounds]:
    """
    Smallest box around the listed components, grown by `padding` on every
    side. Returns None when none of the ids match a component.
    """
    wanted = set(component_ids)
    if not wanted:
        return None

    targets = [c for c in components if c.id in wanted]
    if not targets:
        return None

    min_x = min(c.x for c in targets)
    min_y = min(c.y for c in targets)
    max_x = max(c.x + (c.width or DEFAULT_COMPONENT_WIDTH) for c in targets)
    max_y = max(c.y + (c.height or DEFAULT_COMPONENT_HEIGHT) for c in targets)

    return Bounds(
        x=min_x - padding,
        y=min_y - padding,
        width=max_x - min_x + padding * 2,
        height=max_y - min_y + padding * 2,
    )


def _replace_frame(snapshot: Snapshot, frame: Frame) -> tuple:
    return tuple(frame if f.id == frame.id else f for f in snapshot.frames)


class FrameOrganizer:
    """
    Frame operations over a VersionedStateStore.

    Frames are organisational: moving one moves its members with it,
    resizing one never rescales them. Every operation is a single commit,
    so each is one undo step.
    """

    def __init__(
        self,
        store: VersionedStateStore,
        id_factory: Callable[[], str] = new_frame_id,
    ):
        self.store = store
        self._id_factory = id_factory
        self.current_frame_id: Optional[str] = None

    # ---------------------------------------------------------------
    # Reads
    # ---------------------------------------------------------------

    @property
    def frames(self) -> List[Frame]:
        return list(self.store.get_state().frames)

    def get_frame(self, frame_id: str) -> Optional[Frame]:
        return self.store.get_state().frame_by_id(frame_id)

    def select_frame(self, frame_id: Optional[str]) -> None:
        if frame_id is not None:
            self._require(self.store.get_state(), frame_id)
        self.current_frame_id = frame_id

    def _require(self, snapshot: Snapshot, frame_id: str) -> Frame:
        frame = snapshot.frame_by_id(frame_id)
        if frame is None:
            raise FrameNotFoundError(frame_id)
        return frame

    # ---------------------------------------------------------------
    # Creation / deletion
    # ---------------------------------------------------------------

    def create_frame(
        self,
        name: str,
        bounds: Bounds,
        component_ids: Sequence[str] = (),
        color: Optional[str] = None,
        locked: bool = False,
    ) -> str:
        if bounds is None:
            raise ContractViolation("create_frame requires bounds")

        frame_id = self._id_factory()

        def update(snapshot: Snapshot) -> Snapshot:
            existing = set(snapshot.component_ids)
            members = tuple(dict.fromkeys(cid for cid in component_ids if cid in existing))
            member_set = set(members)

            # A component belongs to at most one frame
            frames = tuple(
                replace(f, component_ids=tuple(cid for cid in f.component_ids if cid not in member_set))
                for f in snapshot.frames
            )
            frame = Frame(
                id=frame_id,
                name=name,
                bounds=bounds,
                component_ids=members,
                color=color or DEFAULT_FRAME_COLOR,
                locked=locked,
            )
            return replace(
                snapshot,
                frames=frames + (frame,),
                components=self._set_parent(snapshot.components, member_set, frame_id),
            )

        self.store.commit(update, source=f"frame:create {frame_id}")
        self.current_frame_id = frame_id
        print(f"[FRAMES] ✅ Created frame '{name}' ({frame_id})")
        return frame_id

    def create_frame_from_selection(
        self,
        name: Optional[str] = None,
        selection_box: Optional[Bounds] = None,
    ) -> Optional[str]:
        """
        Frame the current selection. Bounds come from the selected
        components, else from `selection_box`; with neither, no frame is
        created and None is returned.
        """
        with self.store.transaction() as snapshot:
            selected = list(snapshot.selected_component_ids)

            bounds = derive_component_bounds(snapshot.components, selected) or selection_box
            if bounds is None:
                return None

            frame_name = name or (f"Frame ({len(selected)})" if selected else "Frame")
            return self.create_frame(frame_name, bounds, selected)

    def wrap_selection(self, name: Optional[str] = None) -> Optional[str]:
        return self.create_frame_from_selection(name)

    def delete_frame(self, frame_id: str) -> None:
        """Remove the frame; its members stay on the canvas, detached."""

        def update(s: Snapshot) -> Snapshot:
            return replace(
                s,
                frames=tuple(f for f in s.frames if f.id != frame_id),
                components=tuple(
                    replace(c, parent_frame_id=None) if c.parent_frame_id == frame_id else c
                    for c in s.components
                ),
            )

        with self.store.transaction() as snapshot:
            self._require(snapshot, frame_id)
            self.store.commit(update, source=f"frame:delete {frame_id}")
        if self.current_frame_id == frame_id:
            self.current_frame_id = None

    # ---------------------------------------------------------------
    # Geometry
    # ---------------------------------------------------------------

    def move_frame(self, frame_id: str, x: float, y: float) -> None:
        """Translate the frame to (x, y); members move by the same delta."""
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)

            dx = x - frame.bounds.x
            dy = y - frame.bounds.y
            if not dx and not dy:
                return

            members = set(frame.component_ids)
            moved = replace(frame, bounds=replace(frame.bounds, x=x, y=y))

            def update(s: Snapshot) -> Snapshot:
                return replace(
                    s,
                    frames=_replace_frame(s, moved),
                    components=tuple(
                        replace(c, x=c.x + dx, y=c.y + dy) if c.id in members else c
                        for c in s.components
                    ),
                )

            self.store.commit(update, source=f"frame:move {frame_id}")

    def resize_frame(self, frame_id: str, bounds: Bounds) -> None:
        """Change the frame's bounds only; members keep their geometry."""
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)
            self._commit_frame(replace(frame, bounds=bounds), "resize")

    def fit_frame_to_components(self, frame_id: str, padding: float = FRAME_PADDING) -> None:
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)

            bounds = derive_component_bounds(snapshot.components, frame.component_ids, padding)
            if bounds is None or bounds == frame.bounds:
                return
            self._commit_frame(replace(frame, bounds=bounds), "fit")

    # ---------------------------------------------------------------
    # Flags
    # ---------------------------------------------------------------

    def collapse_frame(self, frame_id: str) -> None:
        self._set_collapsed(frame_id, True)

    def expand_frame(self, frame_id: str) -> None:
        self._set_collapsed(frame_id, False)

    def toggle_frame_collapse(self, frame_id: str) -> None:
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)
            self._set_collapsed(frame_id, not frame.collapsed)

    def _set_collapsed(self, frame_id: str, collapsed: bool) -> None:
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)
            if frame.collapsed == collapsed:
                return
            self._commit_frame(replace(frame, collapsed=collapsed), "collapse" if collapsed else "expand")

    def update_frame(
        self,
        frame_id: str,
        name: Optional[str] = None,
        color: Optional[str] = None,
        locked: Optional[bool] = None,
    ) -> None:
        changes = {}
        if name is not None:
            changes["name"] = name
        if color is not None:
            changes["color"] = color
        if locked is not None:
            changes["locked"] = locked

        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)
            if not changes:
                return
            self._commit_frame(replace(frame, **changes), "update")

    # ---------------------------------------------------------------
    # Membership
    # ---------------------------------------------------------------

    def add_components_to_frame(self, frame_id: str, component_ids: Sequence[str]) -> None:
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)

            existing = set(snapshot.component_ids)
            incoming = [cid for cid in component_ids if cid in existing]
            if not incoming:
                return

            incoming_set = set(incoming)
            members = tuple(dict.fromkeys(list(frame.component_ids) + incoming))

            def update(s: Snapshot) -> Snapshot:
                frames = tuple(
                    replace(f, component_ids=members)
                    if f.id == frame_id
                    else replace(f, component_ids=tuple(c for c in f.component_ids if c not in incoming_set))
                    for f in s.frames
                )
                return replace(
                    s,
                    frames=frames,
                    components=self._set_parent(s.components, incoming_set, frame_id),
                )

            self.store.commit(update, source=f"frame:add-members {frame_id}")

    def remove_components_from_frame(self, frame_id: str, component_ids: Sequence[str]) -> None:
        with self.store.transaction() as snapshot:
            frame = self._require(snapshot, frame_id)

            outgoing = set(component_ids) & set(frame.component_ids)
            if not outgoing:
                return

            trimmed = replace(
                frame, component_ids=tuple(c for c in frame.component_ids if c not in outgoing)
            )

            def update(s: Snapshot) -> Snapshot:
                return replace(
                    s,
                    frames=_replace_frame(s, trimmed),
                    components=tuple(
                        replace(c, parent_frame_id=None)
                        if c.id in outgoing and c.parent_frame_id == frame_id
                        else c
                        for c in s.components
                    ),
                )

            self.store.commit(update, source=f"frame:remove-members {frame_id}")

    # ---------------------------------------------------------------
    # Helpers
    # ---------------------------------------------------------------

    def _commit_frame(self, frame: Frame, action: str) -> None:
        self.store.commit(
            lambda s: replace(s, frames=_replace_frame(s, frame)),
            source=f"frame:{action} {frame.id}",
        )

    @staticmethod
    def _set_parent(components: Iterable[Component], ids: Set[str], frame_id: str) -> tuple:
        return tuple(
            replace(c, parent_frame_id=frame_id) if c.id in ids else c
            for c in components
        )
