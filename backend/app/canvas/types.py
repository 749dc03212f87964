from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Mapping, Optional, Tuple


DEFAULT_COMPONENT_WIDTH = 160
DEFAULT_COMPONENT_HEIGHT = 96

DEFAULT_LAYER_ID = "default"
DEFAULT_FRAME_COLOR = "#3b82f6"
DEFAULT_TOOL = "select"


@dataclass(frozen=True)
class Component:
    id: str
    type: str
    x: float
    y: float
    width: float = DEFAULT_COMPONENT_WIDTH
    height: float = DEFAULT_COMPONENT_HEIGHT
    label: str = ""
    properties: Mapping[str, Any] = field(default_factory=dict)
    parent_frame_id: Optional[str] = None
    layer_id: Optional[str] = None
    description: Optional[str] = None

    def __post_init__(self):
        # snapshots in history share components, so properties are a read-only copy
        object.__setattr__(self, "properties", MappingProxyType(dict(self.properties or {})))


@dataclass(frozen=True)
class Connection:
    id: str
    from_id: str
    to_id: str
    type: str = "data"                  # data | control | sync | async
    label: str = ""
    protocol: Optional[str] = None
    direction: Optional[str] = None     # none | end | both


@dataclass(frozen=True)
class Layer:
    id: str
    name: str
    visible: bool = True
    order: int = 0


@dataclass(frozen=True)
class GridConfig:
    visible: bool = False
    spacing: int = 20
    snap_to_grid: bool = False


@dataclass(frozen=True)
class Bounds:
    x: float
    y: float
    width: float
    height: float


@dataclass(frozen=True)
class Frame:
    id: str
    name: str
    bounds: Bounds
    component_ids: Tuple[str, ...] = ()
    collapsed: bool = False
    color: str = DEFAULT_FRAME_COLOR
    locked: bool = False


@dataclass(frozen=True)
class Snapshot:
    """
    Immutable canvas state at one point in history.

    Every committed mutation produces a new Snapshot; nothing ever edits one
    in place, so history stacks can hold plain references.
    """
    components: Tuple[Component, ...] = ()
    connections: Tuple[Connection, ...] = ()
    layers: Tuple[Layer, ...] = ()
    frames: Tuple[Frame, ...] = ()
    selected_component_ids: Tuple[str, ...] = ()
    active_layer_id: Optional[str] = None
    active_tool: str = DEFAULT_TOOL
    grid_config: GridConfig = field(default_factory=GridConfig)

    @classmethod
    def empty(cls) -> "Snapshot":
        return cls(
            layers=(Layer(id=DEFAULT_LAYER_ID, name="Default Layer"),),
            active_layer_id=DEFAULT_LAYER_ID,
        )

    def component_by_id(self, component_id: str) -> Optional[Component]:
        for component in self.components:
            if component.id == component_id:
                return component
        return None

    def connection_by_id(self, connection_id: str) -> Optional[Connection]:
        for connection in self.connections:
            if connection.id == connection_id:
                return connection
        return None

    def frame_by_id(self, frame_id: str) -> Optional[Frame]:
        for frame in self.frames:
            if frame.id == frame_id:
                return frame
        return None

    @property
    def component_ids(self) -> Tuple[str, ...]:
        return tuple(c.id for c in self.components)
