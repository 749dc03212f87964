"""Tests for VersionedStateStore commit / undo / subscription behaviour"""

import threading
from dataclasses import replace

import pytest

from app.canvas.errors import ContractViolation
from app.canvas.types import Component, Connection, Snapshot
from app.state.store import VersionedStateStore


def make_component(id: str, x: float = 0, y: float = 0) -> Component:
    return Component(id=id, type="service", x=x, y=y, label=id)


def add(component: Component):
    return lambda s: replace(s, components=s.components + (component,))


def test_commit_accepts_snapshot_callable_and_mapping():
    store = VersionedStateStore()

    store.commit(add(make_component("a")))
    store.commit({"active_tool": "pan"})
    full = replace(store.get_state(), selected_component_ids=("a",))
    store.commit(full)

    state = store.get_state()
    assert state.component_ids == ("a",)
    assert state.active_tool == "pan"
    assert state.selected_component_ids == ("a",)
    assert store.version == 3


def test_commit_prunes_orphan_connections():
    store = VersionedStateStore()
    store.commit(add(make_component("a")))
    store.commit(
        lambda s: replace(s, connections=(Connection(id="c1", from_id="a", to_id="ghost"),))
    )

    assert store.get_state().connections == ()


def test_duplicate_ids_are_rejected_and_state_untouched():
    store = VersionedStateStore()
    store.commit(add(make_component("a")))
    before = store.get_state()

    with pytest.raises(ContractViolation):
        store.commit(add(make_component("a")))

    assert store.get_state() is before
    assert store.history.past_depth == 1


def test_failed_update_notifies_nobody():
    store = VersionedStateStore()
    seen = []
    store.subscribe(seen.append)

    def broken(_snapshot):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        store.commit(broken)

    with pytest.raises(ContractViolation):
        store.commit({"no_such_field": 1})

    assert seen == []


def test_undo_then_commit_drops_redo():
    store = VersionedStateStore()
    store.commit(add(make_component("a")))
    store.commit(add(make_component("b")))

    store.undo()
    assert store.can_redo

    store.commit(add(make_component("c")))
    assert not store.can_redo
    assert store.get_state().component_ids == ("a", "c")


def test_undo_and_redo_notify_listeners():
    store = VersionedStateStore()
    seen = []
    unsubscribe = store.subscribe(seen.append)

    store.commit(add(make_component("a")))
    store.undo()
    store.redo()
    assert len(seen) == 3
    assert seen[-1].component_ids == ("a",)

    unsubscribe()
    store.undo()
    assert len(seen) == 3


def test_undo_at_boundary_does_not_notify():
    store = VersionedStateStore()
    seen = []
    store.subscribe(seen.append)

    assert store.undo() is None
    assert store.redo() is None
    assert seen == []


def test_listener_errors_do_not_break_commit():
    store = VersionedStateStore()

    def bad_listener(_snapshot):
        raise RuntimeError("listener failed")

    seen = []
    store.subscribe(bad_listener)
    store.subscribe(seen.append)

    store.commit({"active_tool": "pan"})
    assert store.get_state().active_tool == "pan"
    assert len(seen) == 1


def test_history_is_bounded():
    store = VersionedStateStore(max_history=50)
    for i in range(60):
        store.commit(add(make_component(f"c{i}")))

    undos = 0
    while store.undo() is not None:
        undos += 1
    assert undos == 50


def test_reset_clears_history():
    store = VersionedStateStore()
    store.commit(add(make_component("a")))

    loaded = Snapshot.empty()
    store.reset(loaded)

    assert store.get_state().components == ()
    assert not store.can_undo


def test_unsupported_update_type():
    store = VersionedStateStore()
    with pytest.raises(ContractViolation):
        store.commit(42)
    with pytest.raises(ContractViolation):
        store.commit(lambda s: None)


def test_transaction_serialises_read_and_commit():
    store = VersionedStateStore()
    inside = threading.Event()
    release = threading.Event()

    def slow_writer():
        with store.transaction() as snapshot:
            inside.set()
            release.wait(1)
            store.commit(replace(snapshot, components=snapshot.components + (make_component("a"),)))

    thread = threading.Thread(target=slow_writer)
    thread.start()
    inside.wait(1)

    other = threading.Thread(target=lambda: store.commit(add(make_component("b"))))
    other.start()
    release.set()
    thread.join(1)
    other.join(1)

    assert [c.id for c in store.get_state().components] == ["a", "b"]
    assert store.history.past_depth == 2
