"""
Design data validation and repair.

Errors mean the design cannot be trusted as-is (missing ids, duplicate ids,
non-numeric positions, connections without endpoints). Warnings are advisory:
orphaned or self connections, stale frame members, missing labels or layers.
"""

from dataclasses import dataclass, field, replace
from numbers import Real
from typing import List, Set

from app.canvas.ids import new_component_id, new_connection_id, new_frame_id
from app.canvas.integrity import normalize_snapshot
from app.canvas.types import (
    Layer,
    Snapshot,
    DEFAULT_COMPONENT_HEIGHT,
    DEFAULT_COMPONENT_WIDTH,
    DEFAULT_LAYER_ID,
)


@dataclass
class DesignValidationResult:
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, warnings: List[str] = None):
        return cls(is_valid=True, errors=[], warnings=list(warnings or []))

    @classmethod
    def failure(cls, errors: List[str], warnings: List[str] = None):
        return cls(is_valid=False, errors=errors, warnings=list(warnings or []))

    def to_dict(self) -> dict:
        return {
            "is_valid": self.is_valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool)


def validate_data(snapshot: Snapshot) -> DesignValidationResult:
    errors: List[str] = []
    warnings: List[str] = []

    if snapshot is None:
        return DesignValidationResult.failure(["Data is not a valid snapshot"])

    # -------------------------
    # Components
    # -------------------------
    seen: Set[str] = set()
    for index, component in enumerate(snapshot.components):
        if not component.id or not isinstance(component.id, str):
            errors.append(f"Component {index}: Missing or invalid id")
        elif component.id in seen:
            errors.append(f"Component {index}: Duplicate id '{component.id}'")
        else:
            seen.add(component.id)

        if not component.type or not isinstance(component.type, str):
            errors.append(f"Component {index}: Missing or invalid type")
        if not _is_number(component.x) or not _is_number(component.y):
            errors.append(f"Component {index}: Invalid position coordinates")
        if not component.label:
            warnings.append(f"Component {index}: Missing label")

    # -------------------------
    # Connections
    # -------------------------
    for index, connection in enumerate(snapshot.connections):
        if not connection.id or not isinstance(connection.id, str):
            errors.append(f"Connection {index}: Missing or invalid id")
        if not connection.from_id or not connection.to_id:
            errors.append(f"Connection {index}: Missing from or to reference")
            continue
        if not isinstance(connection.from_id, str) or not isinstance(connection.to_id, str):
            errors.append(f"Connection {index}: Invalid from or to reference")
            continue
        if connection.from_id not in seen:
            warnings.append(
                f"Connection {index}: References non-existent component '{connection.from_id}'"
            )
        if connection.to_id not in seen:
            warnings.append(
                f"Connection {index}: References non-existent component '{connection.to_id}'"
            )
        if connection.from_id == connection.to_id:
            warnings.append(f"Connection {index}: Self-connection detected")

    # -------------------------
    # Frames / layers
    # -------------------------
    for frame in snapshot.frames:
        if not all(isinstance(cid, str) for cid in frame.component_ids):
            errors.append(f"Frame '{frame.name}': Invalid component ids")
            continue
        missing = [cid for cid in frame.component_ids if cid not in seen]
        if missing:
            warnings.append(
                f"Frame '{frame.name}': References non-existent components {', '.join(missing)}"
            )

    if not snapshot.layers:
        warnings.append("Layers are missing, using default")

    if errors:
        return DesignValidationResult.failure(errors, warnings)
    return DesignValidationResult.success(warnings)


def repair_data(snapshot: Snapshot) -> Snapshot:
    """Fix common data issues so the snapshot passes validation."""

    # -------------------------
    # Components
    # -------------------------
    components = []
    seen: Set[str] = set()
    for component in snapshot.components:
        component_id = component.id if isinstance(component.id, str) and component.id else ""
        if not component_id or component_id in seen:
            component_id = new_component_id()
        seen.add(component_id)

        component_type = component.type if isinstance(component.type, str) and component.type else "server"
        components.append(
            replace(
                component,
                id=component_id,
                type=component_type,
                x=component.x if _is_number(component.x) else 0,
                y=component.y if _is_number(component.y) else 0,
                width=component.width if _is_number(component.width) else DEFAULT_COMPONENT_WIDTH,
                height=component.height if _is_number(component.height) else DEFAULT_COMPONENT_HEIGHT,
                label=component.label or component_type or "Unknown",
            )
        )

    # -------------------------
    # Connections: drop invalid ones
    # -------------------------
    connections = []
    connection_ids: Set[str] = set()
    for connection in snapshot.connections:
        if not isinstance(connection.from_id, str) or not isinstance(connection.to_id, str):
            continue
        if connection.from_id not in seen or connection.to_id not in seen:
            continue

        connection_id = connection.id if isinstance(connection.id, str) and connection.id else ""
        if not connection_id or connection_id in connection_ids:
            connection_id = new_connection_id()
        connection_ids.add(connection_id)

        connections.append(
            replace(
                connection,
                id=connection_id,
                label=connection.label or "",
                type=connection.type or "data",
            )
        )

    # -------------------------
    # Layers / frames
    # -------------------------
    layers = tuple(snapshot.layers)
    if not layers:
        layers = (Layer(id=DEFAULT_LAYER_ID, name="Default Layer"),)

    layer_ids = {layer.id for layer in layers}
    active_layer_id = snapshot.active_layer_id
    if active_layer_id not in layer_ids:
        active_layer_id = layers[0].id

    frames = []
    frame_ids: Set[str] = set()
    for frame in snapshot.frames:
        frame_id = frame.id if isinstance(frame.id, str) and frame.id and frame.id not in frame_ids else new_frame_id()
        frame_ids.add(frame_id)
        members = tuple(cid for cid in frame.component_ids if isinstance(cid, str))
        frames.append(replace(frame, id=frame_id, component_ids=members))

    repaired = replace(
        snapshot,
        components=tuple(components),
        connections=tuple(connections),
        layers=layers,
        frames=tuple(frames),
        active_layer_id=active_layer_id,
    )
    return normalize_snapshot(repaired)
