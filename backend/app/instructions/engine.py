"""
Instruction application engine.

Applies an ordered batch of edit instructions to a snapshot and returns a
candidate snapshot plus a result report. Nothing is committed here; the
caller decides whether to publish the candidate.

Two passes:
    1. Every instruction in input order. AddComponent always succeeds and
       registers its alias. Anything referencing an id that cannot be
       resolved yet is deferred.
    2. Deferred instructions are retried once, in order. Whatever still
       cannot be resolved is dropped with one warning.

References resolve through the batch alias table first, then as literal
ids of entities that currently exist in the working state.
"""

from collections.abc import Sequence
from dataclasses import replace
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.canvas.errors import ContractViolation, InstructionFormatError
from app.canvas.ids import new_id
from app.canvas.integrity import normalize_snapshot
from app.canvas.types import (
    Component,
    Connection,
    Snapshot,
    DEFAULT_COMPONENT_HEIGHT,
    DEFAULT_COMPONENT_WIDTH,
)
from app.instructions.parser import parse_instruction
from app.instructions.types import (
    AddComponent,
    AddConnection,
    Annotate,
    Instruction,
    InstructionBatchResult,
    INSTRUCTION_TAGS,
    RemoveComponent,
    RemoveConnection,
    UpdateComponent,
    UpdateConnection,
)


IdFactory = Callable[[str], str]

DEFAULT_COMPONENT_TYPE = "component"
DEFAULT_COMPONENT_LABEL = "AI Component"
DEFAULT_CONNECTION_TYPE = "data"

# Grid fallback for components added without a position
GRID_COLUMNS = 3
GRID_ORIGIN_X = 240
GRID_ORIGIN_Y = 180
GRID_STEP_X = 240
GRID_STEP_Y = 180


def fallback_position(index: int) -> Tuple[int, int]:
    column = index % GRID_COLUMNS
    row = index // GRID_COLUMNS
    return GRID_ORIGIN_X + column * GRID_STEP_X, GRID_ORIGIN_Y + row * GRID_STEP_Y


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _raw_tag(raw: Any) -> Optional[str]:
    if not isinstance(raw, dict):
        return None
    tag = raw.get("type")
    if isinstance(tag, str):
        return tag
    return next((key for key in raw if key in INSTRUCTION_TAGS), None)


def _skip_kind(tag: Optional[str]) -> Optional[str]:
    if not tag:
        return None
    if "component" in tag:
        return "component"
    if "connection" in tag:
        return "connection"
    return None


class _Batch:
    """Working state for one apply_instructions call."""

    def __init__(self, snapshot: Snapshot, id_factory: IdFactory):
        self.snapshot = snapshot
        self.id_factory = id_factory
        self.components: Dict[str, Component] = {c.id: c for c in snapshot.components}
        self.connections: Dict[str, Connection] = {c.id: c for c in snapshot.connections}
        self.aliases: Dict[str, str] = {}
        self.connection_aliases: Dict[str, str] = {}
        self.added_in_batch = 0
        self.result = InstructionBatchResult()

        self.handlers = {
            AddComponent: self.add_component,
            UpdateComponent: self.update_component,
            RemoveComponent: self.remove_component,
            AddConnection: self.add_connection,
            UpdateConnection: self.update_connection,
            RemoveConnection: self.remove_connection,
            Annotate: self.annotate,
        }

    # -------------------------
    # Resolution
    # -------------------------

    def resolve_component(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        real = self.aliases.get(ref)
        if real is not None and real in self.components:
            return real
        if ref in self.components:
            return ref
        return None

    def resolve_connection(self, ref: Optional[str]) -> Optional[str]:
        if not ref:
            return None
        real = self.connection_aliases.get(ref)
        if real is not None and real in self.connections:
            return real
        if ref in self.connections:
            return ref
        return None

    def allocate(self, prefix: str, taken: Dict[str, Any]) -> str:
        new = self.id_factory(prefix)
        while new in taken:
            new = self.id_factory(prefix)
        return new

    # -------------------------
    # Handlers: None when applied, else the unresolved references
    # -------------------------

    def add_component(self, instruction: AddComponent) -> Optional[List[str]]:
        draft = instruction.component
        index = self.added_in_batch
        alias = draft.id or f"ai-component-{index + 1}"
        grid_x, grid_y = fallback_position(index)

        real_id = self.allocate("component", self.components)
        self.components[real_id] = Component(
            id=real_id,
            type=draft.type or DEFAULT_COMPONENT_TYPE,
            x=draft.x if _is_number(draft.x) else grid_x,
            y=draft.y if _is_number(draft.y) else grid_y,
            width=draft.width if _is_number(draft.width) else DEFAULT_COMPONENT_WIDTH,
            height=draft.height if _is_number(draft.height) else DEFAULT_COMPONENT_HEIGHT,
            label=draft.label or DEFAULT_COMPONENT_LABEL,
            properties=dict(draft.properties or {}),
            layer_id=draft.layer_id or self.snapshot.active_layer_id,
            description=draft.description,
        )

        self.aliases[alias] = real_id
        self.result.id_map[alias] = real_id
        self.added_in_batch += 1
        self.result.added_components += 1
        return None

    def update_component(self, instruction: UpdateComponent) -> Optional[List[str]]:
        real_id = self.resolve_component(instruction.component_id)
        if real_id is None:
            return [instruction.component_id]

        patch = instruction.patch
        current = self.components[real_id]
        changes: Dict[str, Any] = {}

        if patch.label:
            changes["label"] = patch.label
        if patch.type:
            changes["type"] = patch.type
        for name in ("x", "y", "width", "height"):
            value = getattr(patch, name)
            if _is_number(value):
                changes[name] = value
        if patch.properties:
            changes["properties"] = {**current.properties, **patch.properties}
        if patch.layer_id:
            changes["layer_id"] = patch.layer_id
        if patch.description is not None:
            changes["description"] = patch.description

        self.components[real_id] = replace(current, **changes)
        self.result.updated_components += 1
        return None

    def remove_component(self, instruction: RemoveComponent) -> Optional[List[str]]:
        real_id = self.resolve_component(instruction.component_id)
        if real_id is None:
            return [instruction.component_id]

        del self.components[real_id]
        self.result.removed_components += 1

        for connection_id, connection in list(self.connections.items()):
            if connection.from_id == real_id or connection.to_id == real_id:
                del self.connections[connection_id]
                self.result.removed_connections += 1
                self.result.cascaded_connections += 1
        return None

    def add_connection(self, instruction: AddConnection) -> Optional[List[str]]:
        draft = instruction.connection
        from_id = self.resolve_component(draft.from_id)
        to_id = self.resolve_component(draft.to_id)

        missing = []
        if from_id is None:
            missing.append(draft.from_id or "<from>")
        if to_id is None:
            missing.append(draft.to_id or "<to>")
        if missing:
            return missing

        if draft.id and draft.id not in self.connections:
            connection_id = draft.id
        else:
            connection_id = self.allocate("connection", self.connections)
        if draft.id:
            self.connection_aliases[draft.id] = connection_id

        self.connections[connection_id] = Connection(
            id=connection_id,
            from_id=from_id,
            to_id=to_id,
            type=draft.type or DEFAULT_CONNECTION_TYPE,
            label=draft.label or "",
            protocol=draft.protocol,
            direction=draft.direction,
        )
        self.result.added_connections += 1
        return None

    def update_connection(self, instruction: UpdateConnection) -> Optional[List[str]]:
        real_id = self.resolve_connection(instruction.connection_id)
        patch = instruction.patch

        missing = []
        if real_id is None:
            missing.append(instruction.connection_id)

        changes: Dict[str, Any] = {}
        if patch.from_id:
            from_id = self.resolve_component(patch.from_id)
            if from_id is None:
                missing.append(patch.from_id)
            changes["from_id"] = from_id
        if patch.to_id:
            to_id = self.resolve_component(patch.to_id)
            if to_id is None:
                missing.append(patch.to_id)
            changes["to_id"] = to_id
        if missing:
            return missing

        if patch.label:
            changes["label"] = patch.label
        if patch.type:
            changes["type"] = patch.type
        if patch.protocol:
            changes["protocol"] = patch.protocol
        if patch.direction:
            changes["direction"] = patch.direction

        self.connections[real_id] = replace(self.connections[real_id], **changes)
        self.result.updated_connections += 1
        return None

    def remove_connection(self, instruction: RemoveConnection) -> Optional[List[str]]:
        real_id = self.resolve_connection(instruction.connection_id)
        if real_id is None:
            return [instruction.connection_id]

        del self.connections[real_id]
        self.result.removed_connections += 1
        return None

    def annotate(self, instruction: Annotate) -> Optional[List[str]]:
        target = f" on '{instruction.target_component_id}'" if instruction.target_component_id else ""
        self.result.warnings.append(
            f"Annotation \"{instruction.message}\"{target} was not applied automatically"
        )
        return None

    # -------------------------
    # Driver
    # -------------------------

    def apply(self, instruction: Instruction) -> Optional[List[str]]:
        return self.handlers[type(instruction)](instruction)

    def skip(self, instruction: Instruction, index: int, missing: List[str]) -> None:
        refs = ", ".join(f"'{ref}'" for ref in missing)
        self.result.warnings.append(
            f"Skipping {instruction.tag} at index {index}: unresolved reference(s) {refs}"
        )
        self.count_skip(instruction.tag)

    def count_skip(self, tag: Optional[str]) -> None:
        kind = _skip_kind(tag)
        if kind == "component":
            self.result.skipped_components += 1
        elif kind == "connection":
            self.result.skipped_connections += 1

    def build(self) -> Snapshot:
        if not self.result.changed:
            return self.snapshot

        candidate = replace(
            self.snapshot,
            components=tuple(self.components.values()),
            connections=tuple(self.connections.values()),
        )
        return normalize_snapshot(candidate)


def apply_instructions(
    snapshot: Snapshot,
    instructions: Sequence,
    id_factory: Optional[IdFactory] = None,
) -> Tuple[Snapshot, InstructionBatchResult]:
    """
    Apply `instructions` to `snapshot` and return (candidate, result).

    `instructions` may mix Instruction objects and raw wire-format dicts.
    Malformed or unknown entries become warnings. Raises ContractViolation
    only when there is no snapshot or the batch is not a sequence.
    """
    if snapshot is None:
        raise ContractViolation("apply_instructions requires a snapshot")
    if isinstance(instructions, (str, bytes)) or not isinstance(instructions, Sequence):
        raise ContractViolation(
            f"Instructions must be a list, got {type(instructions).__name__}"
        )

    batch = _Batch(snapshot, id_factory or new_id)
    deferred: List[Tuple[int, Instruction]] = []

    # -------------------------
    # Pass 1
    # -------------------------
    for index, raw in enumerate(instructions):
        try:
            instruction = parse_instruction(raw, index)
        except InstructionFormatError as e:
            batch.result.warnings.append(str(e))
            batch.count_skip(_raw_tag(raw))
            continue

        if batch.apply(instruction) is not None:
            deferred.append((index, instruction))

    # -------------------------
    # Pass 2: one retry each
    # -------------------------
    for index, instruction in deferred:
        missing = batch.apply(instruction)
        if missing is not None:
            batch.skip(instruction, index, missing)

    return batch.build(), batch.result
