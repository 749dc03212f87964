from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, List, Optional, Union


# ============================================================
# DRAFTS (payloads; every field optional)
# ============================================================

@dataclass
class ComponentDraft:
    id: Optional[str] = None            # alias when creating, ignored in patches
    type: Optional[str] = None
    label: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    properties: Optional[Dict[str, Any]] = None
    layer_id: Optional[str] = None
    description: Optional[str] = None


@dataclass
class ConnectionDraft:
    id: Optional[str] = None
    from_id: Optional[str] = None
    to_id: Optional[str] = None
    type: Optional[str] = None
    label: Optional[str] = None
    protocol: Optional[str] = None
    direction: Optional[str] = None


# ============================================================
# INSTRUCTIONS (tagged variants)
# ============================================================

@dataclass
class AddComponent:
    tag: ClassVar[str] = "add_component"
    component: ComponentDraft = field(default_factory=ComponentDraft)


@dataclass
class UpdateComponent:
    tag: ClassVar[str] = "update_component"
    component_id: str = ""
    patch: ComponentDraft = field(default_factory=ComponentDraft)


@dataclass
class RemoveComponent:
    tag: ClassVar[str] = "remove_component"
    component_id: str = ""


@dataclass
class AddConnection:
    tag: ClassVar[str] = "add_connection"
    connection: ConnectionDraft = field(default_factory=ConnectionDraft)


@dataclass
class UpdateConnection:
    tag: ClassVar[str] = "update_connection"
    connection_id: str = ""
    patch: ConnectionDraft = field(default_factory=ConnectionDraft)


@dataclass
class RemoveConnection:
    tag: ClassVar[str] = "remove_connection"
    connection_id: str = ""


@dataclass
class Annotate:
    tag: ClassVar[str] = "annotate"
    message: str = ""
    target_component_id: Optional[str] = None


Instruction = Union[
    AddComponent,
    UpdateComponent,
    RemoveComponent,
    AddConnection,
    UpdateConnection,
    RemoveConnection,
    Annotate,
]

INSTRUCTION_TYPES = (
    AddComponent,
    UpdateComponent,
    RemoveComponent,
    AddConnection,
    UpdateConnection,
    RemoveConnection,
    Annotate,
)

INSTRUCTION_TAGS = tuple(t.tag for t in INSTRUCTION_TYPES)


# ============================================================
# RESULTS
# ============================================================

def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


@dataclass
class InstructionBatchResult:
    """Outcome of one batch: counts, alias map and ordered warnings."""
    added_components: int = 0
    updated_components: int = 0
    removed_components: int = 0
    added_connections: int = 0
    updated_connections: int = 0
    removed_connections: int = 0
    cascaded_connections: int = 0       # included in removed_connections
    skipped_components: int = 0
    skipped_connections: int = 0
    warnings: List[str] = field(default_factory=list)
    id_map: Dict[str, str] = field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return any((
            self.added_components,
            self.updated_components,
            self.removed_components,
            self.added_connections,
            self.updated_connections,
            self.removed_connections,
        ))

    @property
    def success(self) -> bool:
        return self.changed

    def summary(self) -> str:
        parts = []
        if self.added_components:
            parts.append(f"{_plural(self.added_components, 'component')} added")
        if self.updated_components:
            parts.append(f"{_plural(self.updated_components, 'component')} updated")
        if self.removed_components:
            parts.append(f"{_plural(self.removed_components, 'component')} removed")
        if self.added_connections:
            parts.append(f"{_plural(self.added_connections, 'connection')} added")
        if self.updated_connections:
            parts.append(f"{_plural(self.updated_connections, 'connection')} updated")
        if self.removed_connections:
            parts.append(f"{_plural(self.removed_connections, 'connection')} removed")
        if self.skipped_components:
            parts.append(f"{_plural(self.skipped_components, 'component')} skipped")
        if self.skipped_connections:
            parts.append(f"{_plural(self.skipped_connections, 'connection')} skipped")

        return ", ".join(parts) if parts else "No changes applied"

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message": self.summary(),
            "added_components": self.added_components,
            "updated_components": self.updated_components,
            "removed_components": self.removed_components,
            "added_connections": self.added_connections,
            "updated_connections": self.updated_connections,
            "removed_connections": self.removed_connections,
            "cascaded_connections": self.cascaded_connections,
            "skipped_components": self.skipped_components,
            "skipped_connections": self.skipped_connections,
            "warnings": list(self.warnings),
            "id_map": dict(self.id_map),
        }
