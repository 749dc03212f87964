from collections.abc import Mapping
from enum import Enum
from typing import Any, Dict, List, Optional

from app.canvas.types import (
    Bounds,
    Component,
    Connection,
    Frame,
    GridConfig,
    Layer,
    Snapshot,
    DEFAULT_COMPONENT_HEIGHT,
    DEFAULT_COMPONENT_WIDTH,
    DEFAULT_FRAME_COLOR,
    DEFAULT_TOOL,
)


PRIMITIVE_TYPES = (str, int, float, bool, type(None))

SNAPSHOT_FORMAT_VERSION = "1.0"


def serialize_state(obj: Any):
    """
    Safely serialize canvas objects into JSON-compatible structures.
    Deterministic.
    Tolerant to primitives.
    """

    # ✅ Primitive values pass through
    if isinstance(obj, PRIMITIVE_TYPES):
        return obj

    if isinstance(obj, Enum):
        return obj.value

    # ✅ Lists / tuples: serialize each element
    if isinstance(obj, (list, tuple)):
        return [serialize_state(item) for item in obj]

    # ✅ Mappings (dicts, read-only properties): serialize values
    if isinstance(obj, Mapping):
        return {k: serialize_state(v) for k, v in obj.items()}

    # Connections keep the wire names for their endpoints
    if isinstance(obj, Connection):
        return connection_to_dict(obj)

    if isinstance(obj, Snapshot):
        return snapshot_to_dict(obj)

    # ✅ dataclass-like objects
    if hasattr(obj, "__dict__"):
        return {
            key: serialize_state(value)
            for key, value in obj.__dict__.items()
            if not key.startswith("_")
        }

    # 🔴 Fallback (should rarely happen)
    return str(obj)


def connection_to_dict(connection: Connection) -> Dict[str, Any]:
    return {
        "id": connection.id,
        "from": connection.from_id,
        "to": connection.to_id,
        "type": connection.type,
        "label": connection.label,
        "protocol": connection.protocol,
        "direction": connection.direction,
    }


def snapshot_to_dict(snapshot: Snapshot) -> Dict[str, Any]:
    return {
        "version": SNAPSHOT_FORMAT_VERSION,
        "components": [serialize_state(c) for c in snapshot.components],
        "connections": [connection_to_dict(c) for c in snapshot.connections],
        "layers": [serialize_state(layer) for layer in snapshot.layers],
        "frames": [serialize_state(f) for f in snapshot.frames],
        "selected_component_ids": list(snapshot.selected_component_ids),
        "active_layer_id": snapshot.active_layer_id,
        "active_tool": snapshot.active_tool,
        "grid_config": serialize_state(snapshot.grid_config),
    }


# ============================================================
# DECODING (lenient: validation decides what is acceptable)
# ============================================================

def _list(data: Dict[str, Any], key: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise ValueError(f"'{key}' must be a list")
    return value


def _first(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default


def component_from_dict(raw: Dict[str, Any]) -> Component:
    properties = raw.get("properties")
    return Component(
        id=raw.get("id") or "",
        type=raw.get("type") or "",
        # Positions are kept as given; validation flags non-numeric ones
        x=raw.get("x"),
        y=raw.get("y"),
        width=_first(raw, "width", default=DEFAULT_COMPONENT_WIDTH),
        height=_first(raw, "height", default=DEFAULT_COMPONENT_HEIGHT),
        label=raw.get("label") or "",
        properties=dict(properties) if isinstance(properties, dict) else {},
        parent_frame_id=_first(raw, "parent_frame_id", "parentFrameId"),
        layer_id=_first(raw, "layer_id", "layerId"),
        description=raw.get("description"),
    )


def connection_from_dict(raw: Dict[str, Any]) -> Connection:
    return Connection(
        id=raw.get("id") or "",
        from_id=_first(raw, "from", "from_id", default=""),
        to_id=_first(raw, "to", "to_id", default=""),
        type=raw.get("type") or "data",
        label=raw.get("label") or "",
        protocol=raw.get("protocol"),
        direction=raw.get("direction"),
    )


def frame_from_dict(raw: Dict[str, Any]) -> Frame:
    bounds = raw.get("bounds") if isinstance(raw.get("bounds"), dict) else raw
    return Frame(
        id=raw.get("id") or "",
        name=raw.get("name") or "Frame",
        bounds=Bounds(
            x=bounds.get("x", 0),
            y=bounds.get("y", 0),
            width=bounds.get("width", 0),
            height=bounds.get("height", 0),
        ),
        component_ids=tuple(_first(raw, "component_ids", "componentIds", default=[])),
        collapsed=bool(raw.get("collapsed", False)),
        color=raw.get("color") or DEFAULT_FRAME_COLOR,
        locked=bool(raw.get("locked", False)),
    )


def snapshot_from_dict(data: Optional[Dict[str, Any]]) -> Snapshot:
    """Rebuild a Snapshot from its dict form. Raises ValueError on malformed structure."""
    if not isinstance(data, dict):
        raise ValueError("Snapshot data is not an object")

    grid = data.get("grid_config") or data.get("gridConfig") or {}
    if not isinstance(grid, dict):
        raise ValueError("'grid_config' must be an object")

    try:
        return Snapshot(
            components=tuple(component_from_dict(c) for c in _list(data, "components")),
            connections=tuple(connection_from_dict(c) for c in _list(data, "connections")),
            layers=tuple(
                Layer(
                    id=layer.get("id") or "",
                    name=layer.get("name") or "",
                    visible=bool(layer.get("visible", True)),
                    order=int(layer.get("order", 0)),
                )
                for layer in _list(data, "layers")
            ),
            frames=tuple(frame_from_dict(f) for f in _list(data, "frames")),
            selected_component_ids=tuple(
                _first(data, "selected_component_ids", "selectedComponentIds", default=[])
            ),
            active_layer_id=_first(data, "active_layer_id", "activeLayerId"),
            active_tool=_first(data, "active_tool", "activeTool", default=DEFAULT_TOOL),
            grid_config=GridConfig(
                visible=bool(grid.get("visible", False)),
                spacing=int(grid.get("spacing", 20)),
                snap_to_grid=bool(_first(grid, "snap_to_grid", "snapToGrid", default=False)),
            ),
        )
    except (AttributeError, TypeError) as e:
        raise ValueError(f"Malformed snapshot entry: {e}") from e
