"""Tests for manual canvas edits and the session commit path"""

import threading
import time

import pytest

from app.canvas.actions import CanvasActions
from app.canvas.errors import ContractViolation
from app.canvas.ids import new_id
from app.canvas.session import CanvasSession
from app.canvas.types import Bounds, GridConfig, Snapshot
from app.frames.organizer import FrameOrganizer
from app.state.store import VersionedStateStore

from test_autosave import ManualTimer, RecordingGateway


def make_actions():
    store = VersionedStateStore()
    return store, CanvasActions(store)


def test_add_update_move_component():
    store, actions = make_actions()
    component_id = actions.add_component({"type": "service", "label": "API", "x": 10, "y": 20})

    component = store.get_state().component_by_id(component_id)
    assert component.layer_id == "default"
    assert (component.width, component.height) == (160, 96)

    actions.update_component(component_id, {"label": "Gateway"})
    actions.move_component(component_id, 100, 200)

    component = store.get_state().component_by_id(component_id)
    assert component.label == "Gateway"
    assert (component.x, component.y) == (100, 200)
    assert store.history.past_depth == 3


def test_add_component_validation():
    _, actions = make_actions()

    with pytest.raises(ContractViolation):
        actions.add_component({"label": "no type"})
    with pytest.raises(ContractViolation):
        actions.add_component({"type": "service", "colour": "red"})

    actions.add_component({"id": "a", "type": "service"})
    with pytest.raises(ContractViolation):
        actions.add_component({"id": "a", "type": "service"})


def test_patches_cannot_change_ids_or_unknown_fields():
    _, actions = make_actions()
    actions.add_component({"id": "a", "type": "service"})

    with pytest.raises(ContractViolation):
        actions.update_component("a", {"id": "b"})
    with pytest.raises(ContractViolation):
        actions.update_component("a", {"size": 3})
    with pytest.raises(ContractViolation):
        actions.update_component("missing", {"label": "x"})


def test_batch_operations_are_single_commits():
    store, actions = make_actions()
    ids = actions.add_multiple_components([
        {"id": "a", "type": "service"},
        {"id": "b", "type": "service", "x": 100},
    ])
    assert ids == ["a", "b"]

    actions.batch_update_components([("a", {"label": "A"}), {"id": "b", "patch": {"label": "B"}}])
    actions.move_multiple_components(["a", "b"], 5, 5)

    state = store.get_state()
    assert [c.label for c in state.components] == ["A", "B"]
    assert [c.x for c in state.components] == [5, 105]
    assert store.history.past_depth == 3


def test_delete_component_cascades():
    store, actions = make_actions()
    actions.add_multiple_components([{"id": "a", "type": "service"}, {"id": "b", "type": "database"}])
    actions.add_connection({"from": "a", "to": "b"})
    actions.select_component("a")

    actions.delete_component("a")

    state = store.get_state()
    assert state.component_ids == ("b",)
    assert state.connections == ()
    assert state.selected_component_ids == ()


def test_duplicate_component():
    store, actions = make_actions()
    actions.add_component({"id": "a", "type": "service", "label": "API", "x": 10, "y": 10})

    copy_id = actions.duplicate_component("a")
    copy = store.get_state().component_by_id(copy_id)

    assert copy_id != "a"
    assert (copy.x, copy.y) == (30, 30)
    assert copy.label == "API Copy"
    assert actions.duplicate_component("missing") is None


def test_connection_crud():
    store, actions = make_actions()
    actions.add_multiple_components([{"id": "a", "type": "service"}, {"id": "b", "type": "database"}])

    with pytest.raises(ContractViolation):
        actions.add_connection({"from": "a", "to": "ghost"})

    connection_id = actions.add_connection({"id": "c1", "from": "a", "to": "b"})
    with pytest.raises(ContractViolation):
        actions.add_connection({"id": "c1", "from": "b", "to": "a"})

    actions.update_connection(connection_id, {"protocol": "sql", "label": "reads"})
    assert store.get_state().connection_by_id("c1").protocol == "sql"

    actions.delete_connection(connection_id)
    assert store.get_state().connections == ()


def test_selection_layers_tool_grid():
    store, actions = make_actions()
    actions.add_multiple_components([{"id": "a", "type": "service"}, {"id": "b", "type": "service"}])

    actions.select_component("a")
    actions.select_component("b", multi=True)
    assert store.get_state().selected_component_ids == ("a", "b")
    actions.select_component("b")
    assert store.get_state().selected_component_ids == ("b",)
    actions.clear_selection()
    assert store.get_state().selected_component_ids == ()

    actions.add_layer({"id": "infra", "name": "Infrastructure"})
    actions.set_active_layer("infra")
    assert store.get_state().layers[-1].order == 1
    assert store.get_state().active_layer_id == "infra"
    with pytest.raises(ContractViolation):
        actions.set_active_layer("nope")

    actions.set_tool("pan")
    actions.set_grid_config({"visible": True})
    state = store.get_state()
    assert state.active_tool == "pan"
    assert state.grid_config == GridConfig(visible=True, spacing=20, snap_to_grid=False)


# -------------------------
# Session
# -------------------------

def make_session(**kwargs):
    ManualTimer.created = []
    gateway = RecordingGateway()
    session = CanvasSession(gateway, timer_factory=ManualTimer, autosave_enabled=True, **kwargs)
    return session, gateway


def test_instruction_batch_is_one_undo_step():
    session, _ = make_session()
    session.actions.add_component({"id": "existing", "type": "service"})

    result = session.apply_instructions([
        {"type": "add_component", "component": {"id": "A"}},
        {"type": "add_component", "component": {"id": "B"}},
        {"type": "add_connection", "connection": {"from": "A", "to": "B"}},
    ])
    assert result.added_components == 2
    assert len(session.get_state().components) == 3

    session.undo()
    assert session.get_state().component_ids == ("existing",)


def test_batch_without_changes_does_not_commit():
    session, _ = make_session()
    version = session.store.version

    result = session.apply_instructions([{"type": "annotate", "message": "hello"}])

    assert session.store.version == version
    assert len(result.warnings) == 1
    assert ManualTimer.created == []


def test_manual_edits_and_batches_share_autosave():
    session, gateway = make_session()
    session.actions.add_component({"id": "a", "type": "service"})
    session.apply_instructions([{"type": "add_component", "component": {"id": "B"}}])

    assert len(ManualTimer.created) == 2
    assert ManualTimer.created[0].cancelled
    ManualTimer.created[-1].fire()
    assert len(gateway.saved) == 1
    assert len(gateway.saved[0].components) == 2


def test_apply_envelope_merges_warnings():
    session, _ = make_session()
    report = session.apply_envelope(
        'Sure! {"summary": "Added API", "warnings": ["assumed REST"], '
        '"actions": [{"type": "add_component", "component": {"id": "api"}}, '
        '{"type": "add_connection", "connection": {"from": "api", "to": "ghost"}}]}'
    )

    assert report["summary"] == "Added API"
    assert report["warnings"][0] == "assumed REST"
    assert len(report["warnings"]) == 2
    assert report["added_components"] == 1


def test_load_resets_state_and_history():
    session, gateway = make_session()
    session.actions.add_component({"id": "a", "type": "service"})
    session.force_save()
    session.actions.add_component({"id": "b", "type": "service"})

    loaded = session.load()

    assert loaded.component_ids == ("a",)
    assert not session.store.can_undo
    assert not session.autosave.has_pending
    assert not session.autosave.is_dirty


def test_load_without_saved_design_starts_empty():
    session, _ = make_session()
    session.actions.add_component({"id": "a", "type": "service"})

    assert session.load() == Snapshot.empty()
    assert session.status()["components"] == 0


def test_concurrent_batches_both_land():
    def slow_ids(prefix):
        time.sleep(0.05)
        return new_id(prefix)

    session, _ = make_session(id_factory=slow_ids)
    threads = [
        threading.Thread(
            target=session.apply_instructions,
            args=([{"type": "add_component", "component": {"id": name}}],),
        )
        for name in ("A", "B")
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(2)

    assert len(session.get_state().components) == 2
    assert session.store.history.past_depth == 2


def test_concurrent_frame_moves_keep_both_deltas():
    store, actions = make_actions()
    organizer = FrameOrganizer(store)
    actions.add_multiple_components([{"id": "a", "type": "service"}, {"id": "b", "type": "service", "x": 500}])
    left = organizer.create_frame("Left", Bounds(0, 0, 100, 100), ["a"])
    right = organizer.create_frame("Right", Bounds(500, 0, 100, 100), ["b"])

    threads = [
        threading.Thread(target=organizer.move_frame, args=(left, 10, 10)),
        threading.Thread(target=organizer.move_frame, args=(right, 510, 10)),
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(2)

    state = store.get_state()
    assert (state.component_by_id("a").x, state.component_by_id("b").x) == (10, 510)
    assert {f.bounds.x for f in state.frames} == {10, 510}


def test_component_properties_are_read_only_per_snapshot():
    store, actions = make_actions()
    actions.add_component({"id": "a", "type": "service", "properties": {"port": 80}})
    before = store.get_state()

    actions.update_component("a", {"properties": {"port": 443}})

    assert before.component_by_id("a").properties == {"port": 80}
    with pytest.raises(TypeError):
        store.get_state().component_by_id("a").properties["port"] = 1
