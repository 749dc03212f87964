from dataclasses import fields, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from app.canvas.errors import ContractViolation
from app.canvas.ids import new_component_id, new_connection_id
from app.canvas.types import Component, Connection, GridConfig, Layer, Snapshot
from app.state.store import VersionedStateStore


DUPLICATE_OFFSET = 20

_COMPONENT_FIELDS = {f.name for f in fields(Component)}
_CONNECTION_FIELDS = {f.name for f in fields(Connection)}
_GRID_FIELDS = {f.name for f in fields(GridConfig)}


def _checked_patch(patch: Mapping[str, Any], allowed: set, kind: str) -> Dict[str, Any]:
    patch = dict(patch or {})
    if "id" in patch:
        raise ContractViolation(f"{kind} id cannot be patched")
    unknown = set(patch) - allowed
    if unknown:
        raise ContractViolation(f"Unknown {kind.lower()} fields: {', '.join(sorted(unknown))}")
    return patch


class CanvasActions:
    """
    Manual editing operations.

    Each call is one commit on the store (one undo step). Unknown ids raise
    ContractViolation; the store prunes whatever a removal orphans.
    """

    def __init__(self, store: VersionedStateStore):
        self.store = store

    # ============================================================
    # COMPONENTS
    # ============================================================

    def _build_component(self, snapshot: Snapshot, data: Union[Component, Mapping[str, Any]]) -> Component:
        if isinstance(data, Component):
            return data

        data = dict(data)
        unknown = set(data) - _COMPONENT_FIELDS
        if unknown:
            raise ContractViolation(f"Unknown component fields: {', '.join(sorted(unknown))}")
        if not data.get("type"):
            raise ContractViolation("Component requires a type")

        data.setdefault("x", 0)
        data.setdefault("y", 0)
        data.setdefault("layer_id", snapshot.active_layer_id)
        data["id"] = data.get("id") or new_component_id()
        return Component(**data)

    def add_component(self, component: Union[Component, Mapping[str, Any]]) -> str:
        with self.store.transaction() as snapshot:
            built = self._build_component(snapshot, component)
            self.store.commit(
                lambda s: replace(s, components=s.components + (built,)),
                source=f"component:add {built.id}",
            )
        return built.id

    def add_multiple_components(
        self, components: Iterable[Union[Component, Mapping[str, Any]]]
    ) -> List[str]:
        with self.store.transaction() as snapshot:
            built = tuple(self._build_component(snapshot, c) for c in components)
            if not built:
                return []

            self.store.commit(
                lambda s: replace(s, components=s.components + built),
                source=f"component:add x{len(built)}",
            )
        return [c.id for c in built]

    def update_component(self, component_id: str, patch: Mapping[str, Any]) -> None:
        self.batch_update_components([(component_id, patch)])

    def batch_update_components(self, updates: Sequence[Any]) -> None:
        """`updates` holds (id, patch) pairs or {"id": ..., "patch": {...}} dicts."""
        patches: Dict[str, Dict[str, Any]] = {}
        for update in updates:
            if isinstance(update, Mapping):
                component_id, patch = update.get("id"), update.get("patch")
            else:
                component_id, patch = update
            patches.setdefault(component_id, {}).update(
                _checked_patch(patch, _COMPONENT_FIELDS, "Component")
            )

        with self.store.transaction() as snapshot:
            missing = [cid for cid in patches if snapshot.component_by_id(cid) is None]
            if missing:
                raise ContractViolation(f"Unknown component ids: {', '.join(missing)}")
            if not patches:
                return

            self.store.commit(
                lambda s: replace(
                    s,
                    components=tuple(
                        replace(c, **patches[c.id]) if c.id in patches else c
                        for c in s.components
                    ),
                ),
                source=f"component:update x{len(patches)}",
            )

    def move_component(self, component_id: str, x: float, y: float) -> None:
        self.update_component(component_id, {"x": x, "y": y})

    def move_multiple_components(self, component_ids: Sequence[str], dx: float, dy: float) -> None:
        ids = set(component_ids)
        if not ids or (not dx and not dy):
            return

        self.store.commit(
            lambda s: replace(
                s,
                components=tuple(
                    replace(c, x=c.x + dx, y=c.y + dy) if c.id in ids else c
                    for c in s.components
                ),
            ),
            source=f"component:move x{len(ids)}",
        )

    def delete_component(self, component_id: str) -> None:
        """Remove a component; its connections, memberships and selection go with it."""
        with self.store.transaction() as snapshot:
            if snapshot.component_by_id(component_id) is None:
                raise ContractViolation(f"Unknown component id: {component_id}")

            self.store.commit(
                lambda s: replace(
                    s,
                    components=tuple(c for c in s.components if c.id != component_id),
                    connections=tuple(
                        c for c in s.connections
                        if c.from_id != component_id and c.to_id != component_id
                    ),
                ),
                source=f"component:delete {component_id}",
            )

    def duplicate_component(self, component_id: str) -> Optional[str]:
        with self.store.transaction() as snapshot:
            original = snapshot.component_by_id(component_id)
            if original is None:
                return None

            copy = replace(
                original,
                id=new_component_id(),
                x=original.x + DUPLICATE_OFFSET,
                y=original.y + DUPLICATE_OFFSET,
                label=f"{original.label} Copy",
            )
            self.store.commit(
                lambda s: replace(s, components=s.components + (copy,)),
                source=f"component:duplicate {component_id}",
            )
        return copy.id

    # ============================================================
    # CONNECTIONS
    # ============================================================

    def add_connection(self, connection: Union[Connection, Mapping[str, Any]]) -> str:
        if not isinstance(connection, Connection):
            data = dict(connection)
            # wire names are accepted
            if "from" in data:
                data["from_id"] = data.pop("from")
            if "to" in data:
                data["to_id"] = data.pop("to")
            unknown = set(data) - _CONNECTION_FIELDS
            if unknown:
                raise ContractViolation(f"Unknown connection fields: {', '.join(sorted(unknown))}")
            data["id"] = data.get("id") or new_connection_id()
            try:
                connection = Connection(**data)
            except TypeError as e:
                raise ContractViolation(f"Invalid connection: {e}") from e

        with self.store.transaction() as snapshot:
            for endpoint in (connection.from_id, connection.to_id):
                if snapshot.component_by_id(endpoint) is None:
                    raise ContractViolation(f"Connection endpoint '{endpoint}' does not exist")
            if snapshot.connection_by_id(connection.id) is not None:
                raise ContractViolation(f"Connection id '{connection.id}' already exists")

            self.store.commit(
                lambda s: replace(s, connections=s.connections + (connection,)),
                source=f"connection:add {connection.id}",
            )
        return connection.id

    def update_connection(self, connection_id: str, patch: Mapping[str, Any]) -> None:
        patch = _checked_patch(patch, _CONNECTION_FIELDS, "Connection")
        with self.store.transaction() as snapshot:
            if snapshot.connection_by_id(connection_id) is None:
                raise ContractViolation(f"Unknown connection id: {connection_id}")

            self.store.commit(
                lambda s: replace(
                    s,
                    connections=tuple(
                        replace(c, **patch) if c.id == connection_id else c
                        for c in s.connections
                    ),
                ),
                source=f"connection:update {connection_id}",
            )

    def delete_connection(self, connection_id: str) -> None:
        with self.store.transaction() as snapshot:
            if snapshot.connection_by_id(connection_id) is None:
                raise ContractViolation(f"Unknown connection id: {connection_id}")

            self.store.commit(
                lambda s: replace(s, connections=tuple(c for c in s.connections if c.id != connection_id)),
                source=f"connection:delete {connection_id}",
            )

    # ============================================================
    # SELECTION / VIEW
    # ============================================================

    def select_component(self, component_id: Optional[str], multi: bool = False) -> None:
        if not component_id:
            self.clear_selection()
            return

        def update(s: Snapshot) -> Snapshot:
            if multi:
                selection = tuple(dict.fromkeys(s.selected_component_ids + (component_id,)))
            else:
                selection = (component_id,)
            return replace(s, selected_component_ids=selection)

        with self.store.transaction() as snapshot:
            if snapshot.component_by_id(component_id) is None:
                raise ContractViolation(f"Unknown component id: {component_id}")
            self.store.commit(update)

    def set_selection(self, component_ids: Sequence[str]) -> None:
        self.store.commit({"selected_component_ids": tuple(dict.fromkeys(component_ids))})

    def clear_selection(self) -> None:
        self.store.commit({"selected_component_ids": ()})

    def add_layer(self, layer: Union[Layer, Mapping[str, Any]]) -> str:
        with self.store.transaction() as snapshot:
            if not isinstance(layer, Layer):
                data = dict(layer)
                if not data.get("id"):
                    raise ContractViolation("Layer requires an id")
                data.setdefault("name", data["id"])
                data.setdefault("order", len(snapshot.layers))
                layer = Layer(**data)

            if any(existing.id == layer.id for existing in snapshot.layers):
                raise ContractViolation(f"Layer '{layer.id}' already exists")

            self.store.commit(lambda s: replace(s, layers=s.layers + (layer,)), source=f"layer:add {layer.id}")
        return layer.id

    def set_active_layer(self, layer_id: str) -> None:
        with self.store.transaction() as snapshot:
            if not any(layer.id == layer_id for layer in snapshot.layers):
                raise ContractViolation(f"Unknown layer id: {layer_id}")
            self.store.commit({"active_layer_id": layer_id})

    def set_tool(self, tool: str) -> None:
        self.store.commit({"active_tool": tool})

    def set_grid_config(self, config: Union[GridConfig, Mapping[str, Any]]) -> None:
        if not isinstance(config, GridConfig):
            patch = dict(config)
            unknown = set(patch) - _GRID_FIELDS
            if unknown:
                raise ContractViolation(f"Unknown grid fields: {', '.join(sorted(unknown))}")
            self.store.commit(
                lambda s: replace(s, grid_config=replace(s.grid_config, **patch)),
                source="grid:config",
            )
            return

        self.store.commit({"grid_config": config}, source="grid:config")
