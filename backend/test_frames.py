"""Tests for frame organisation over the canvas store"""

from dataclasses import replace

import pytest

from app.canvas.errors import FrameNotFoundError
from app.canvas.types import Bounds, Component, Snapshot
from app.frames.organizer import FrameOrganizer, derive_component_bounds
from app.state.store import VersionedStateStore


def make_store() -> VersionedStateStore:
    snapshot = replace(
        Snapshot.empty(),
        components=(
            Component(id="a", type="service", x=0, y=0),
            Component(id="b", type="service", x=300, y=300),
            Component(id="c", type="database", x=900, y=900),
        ),
    )
    return VersionedStateStore(snapshot)


def test_derive_bounds_with_padding():
    store = make_store()
    bounds = derive_component_bounds(store.get_state().components, ["a", "b"], padding=32)

    # (0,0)-(460,396) grown by 32 on every side
    assert bounds == Bounds(x=-32, y=-32, width=524, height=460)


def test_derive_bounds_without_matches():
    store = make_store()
    assert derive_component_bounds(store.get_state().components, ["zzz"]) is None
    assert derive_component_bounds(store.get_state().components, []) is None


def test_create_frame_sets_membership():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 500, 500), ["a", "b", "ghost"])

    frame = frames.get_frame(frame_id)
    assert frame.component_ids == ("a", "b")
    assert frame.color == "#3b82f6"
    assert store.get_state().component_by_id("a").parent_frame_id == frame_id
    assert store.get_state().component_by_id("c").parent_frame_id is None
    assert frames.current_frame_id == frame_id


def test_move_frame_shifts_members_only():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(-32, -32, 524, 460), ["a", "b"])

    frames.move_frame(frame_id, -22, -12)  # delta (10, 20)

    state = store.get_state()
    assert state.frame_by_id(frame_id).bounds == Bounds(-22, -12, 524, 460)
    assert (state.component_by_id("a").x, state.component_by_id("a").y) == (10, 20)
    assert (state.component_by_id("b").x, state.component_by_id("b").y) == (310, 320)
    assert (state.component_by_id("c").x, state.component_by_id("c").y) == (900, 900)


def test_zero_move_is_noop():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 100, 100), ["a"])
    version = store.version

    frames.move_frame(frame_id, 0, 0)
    assert store.version == version


def test_resize_does_not_touch_members():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 100, 100), ["a"])
    before = store.get_state().components

    frames.resize_frame(frame_id, Bounds(0, 0, 1000, 50))

    assert store.get_state().frame_by_id(frame_id).bounds == Bounds(0, 0, 1000, 50)
    assert store.get_state().components == before


def test_collapse_expand_toggle():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 100, 100), ["a"])

    frames.collapse_frame(frame_id)
    assert frames.get_frame(frame_id).collapsed
    frames.expand_frame(frame_id)
    assert not frames.get_frame(frame_id).collapsed
    frames.toggle_frame_collapse(frame_id)
    assert frames.get_frame(frame_id).collapsed
    assert frames.get_frame(frame_id).component_ids == ("a",)


def test_fit_frame_to_components():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 10, 10), ["a", "b"])

    frames.fit_frame_to_components(frame_id)
    assert frames.get_frame(frame_id).bounds == Bounds(-32, -32, 524, 460)


def test_membership_changes_are_idempotent():
    store = make_store()
    frames = FrameOrganizer(store)
    first = frames.create_frame("One", Bounds(0, 0, 10, 10), ["a"])
    second = frames.create_frame("Two", Bounds(0, 0, 10, 10), [])

    frames.add_components_to_frame(second, ["a", "b"])
    frames.add_components_to_frame(second, ["a"])

    assert frames.get_frame(second).component_ids == ("a", "b")
    # a component belongs to one frame at a time
    assert frames.get_frame(first).component_ids == ()
    assert store.get_state().component_by_id("a").parent_frame_id == second

    frames.remove_components_from_frame(second, ["a", "missing"])
    assert frames.get_frame(second).component_ids == ("b",)
    assert store.get_state().component_by_id("a").parent_frame_id is None


def test_delete_frame_detaches_members():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 100, 100), ["a", "b"])

    frames.delete_frame(frame_id)

    state = store.get_state()
    assert state.frames == ()
    assert len(state.components) == 3
    assert all(c.parent_frame_id is None for c in state.components)
    assert frames.current_frame_id is None


def test_wrap_selection():
    store = make_store()
    frames = FrameOrganizer(store)

    assert frames.wrap_selection() is None

    store.commit({"selected_component_ids": ("a", "b")})
    frame_id = frames.wrap_selection()
    frame = frames.get_frame(frame_id)
    assert frame.name == "Frame (2)"
    assert frame.bounds == Bounds(-32, -32, 524, 460)


def test_frame_from_selection_box():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame_from_selection(selection_box=Bounds(5, 5, 50, 50))

    frame = frames.get_frame(frame_id)
    assert frame.name == "Frame"
    assert frame.component_ids == ()


def test_frame_operations_are_undoable():
    store = make_store()
    frames = FrameOrganizer(store)
    frame_id = frames.create_frame("Backend", Bounds(0, 0, 100, 100), ["a"])
    frames.move_frame(frame_id, 50, 50)

    store.undo()
    assert store.get_state().component_by_id("a").x == 0
    store.undo()
    assert store.get_state().frames == ()


def test_unknown_frame_raises():
    frames = FrameOrganizer(make_store())

    with pytest.raises(FrameNotFoundError):
        frames.move_frame("nope", 1, 1)
    with pytest.raises(FrameNotFoundError):
        frames.delete_frame("nope")
    with pytest.raises(FrameNotFoundError):
        frames.collapse_frame("nope")
