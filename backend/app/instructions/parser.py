"""
Wire-format parsing for instruction batches.

Accepted shapes per instruction:
    {"type": "add_component", "component": {...}}
    {"type": "update_component", "componentId": "...", "patch": {...}}
    {"add_component": {...}}                     # single tag key

Payload fields are validated with pydantic; unusable values (a non-numeric
x, a non-dict properties) are dropped to None instead of failing the whole
instruction. Structural problems raise InstructionFormatError.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from app.canvas.errors import InstructionFormatError
from app.instructions.types import (
    AddComponent,
    AddConnection,
    Annotate,
    ComponentDraft,
    ConnectionDraft,
    Instruction,
    INSTRUCTION_TAGS,
    INSTRUCTION_TYPES,
    RemoveComponent,
    RemoveConnection,
    UpdateComponent,
    UpdateConnection,
)
from app.utils.json_extract import extract_json


# ============================================================
# PAYLOAD MODELS
# ============================================================

def _coerce_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _coerce_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (str, int, float)) and not isinstance(value, bool):
        return str(value)
    return None


class ComponentDraftModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    type: Optional[str] = None
    label: Optional[str] = None
    x: Optional[float] = None
    y: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    properties: Optional[Dict[str, Any]] = None
    layer_id: Optional[str] = Field(default=None, alias="layerId")
    description: Optional[str] = None

    @field_validator("x", "y", "width", "height", mode="before")
    @classmethod
    def _numbers(cls, value):
        return _coerce_number(value)

    @field_validator("id", "type", "label", "layer_id", "description", mode="before")
    @classmethod
    def _texts(cls, value):
        return _coerce_text(value)

    @field_validator("properties", mode="before")
    @classmethod
    def _properties(cls, value):
        return value if isinstance(value, dict) else None

    def to_draft(self) -> ComponentDraft:
        return ComponentDraft(
            id=self.id,
            type=self.type,
            label=self.label,
            x=self.x,
            y=self.y,
            width=self.width,
            height=self.height,
            properties=dict(self.properties) if self.properties is not None else None,
            layer_id=self.layer_id,
            description=self.description,
        )


class ConnectionDraftModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    from_id: Optional[str] = Field(default=None, alias="from")
    to_id: Optional[str] = Field(default=None, alias="to")
    type: Optional[str] = None
    label: Optional[str] = None
    protocol: Optional[str] = None
    direction: Optional[str] = None

    @field_validator("id", "from_id", "to_id", "type", "label", "protocol", "direction", mode="before")
    @classmethod
    def _texts(cls, value):
        return _coerce_text(value)

    def to_draft(self) -> ConnectionDraft:
        return ConnectionDraft(
            id=self.id,
            from_id=self.from_id,
            to_id=self.to_id,
            type=self.type,
            label=self.label,
            protocol=self.protocol,
            direction=self.direction,
        )


def _component_draft(payload: Any, index: int, tag: str) -> ComponentDraft:
    if not isinstance(payload, dict):
        raise InstructionFormatError(f"Instruction {index} ({tag}): payload must be an object", index)
    try:
        return ComponentDraftModel.model_validate(payload).to_draft()
    except ValidationError as e:
        raise InstructionFormatError(f"Instruction {index} ({tag}): {e}", index) from e


def _connection_draft(payload: Any, index: int, tag: str) -> ConnectionDraft:
    if not isinstance(payload, dict):
        raise InstructionFormatError(f"Instruction {index} ({tag}): payload must be an object", index)

    payload = dict(payload)
    # snake_case endpoints are accepted too
    for wire, name in (("from", "from_id"), ("to", "to_id")):
        if wire not in payload and name in payload:
            payload[wire] = payload.pop(name)
    try:
        return ConnectionDraftModel.model_validate(payload).to_draft()
    except ValidationError as e:
        raise InstructionFormatError(f"Instruction {index} ({tag}): {e}", index) from e


def _reference(raw: Dict[str, Any], index: int, tag: str, *keys: str) -> str:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, (str, int)) and not isinstance(value, bool) and str(value):
            return str(value)
    raise InstructionFormatError(
        f"Instruction {index} ({tag}): missing '{keys[0]}'", index
    )


# ============================================================
# INSTRUCTIONS
# ============================================================

def _unwrap(raw: Dict[str, Any], index: int) -> Tuple[str, Dict[str, Any]]:
    """Return (tag, body) for either wire shape."""
    tag = raw.get("type")
    if isinstance(tag, str) and tag:
        return tag, raw

    tagged = [key for key in raw if key in INSTRUCTION_TAGS]
    if len(tagged) == 1:
        tag = tagged[0]
        payload = raw[tag]
        if tag in ("add_component", "add_connection"):
            key = "component" if tag == "add_component" else "connection"
            return tag, {key: payload}
        if not isinstance(payload, dict):
            raise InstructionFormatError(
                f"Instruction {index} ({tag}): payload must be an object", index
            )
        return tag, payload

    raise InstructionFormatError(f"Instruction {index}: missing instruction type", index)


def parse_instruction(raw: Any, index: int = -1) -> Instruction:
    """Build one Instruction from its wire form. Raises InstructionFormatError."""
    if isinstance(raw, INSTRUCTION_TYPES):
        return raw

    if not isinstance(raw, dict):
        raise InstructionFormatError(
            f"Instruction {index}: expected an object, got {type(raw).__name__}", index
        )

    tag, body = _unwrap(raw, index)

    if tag == "add_component":
        payload = body.get("component", body.get("payload"))
        return AddComponent(component=_component_draft(payload, index, tag))

    if tag == "update_component":
        return UpdateComponent(
            component_id=_reference(body, index, tag, "componentId", "component_id", "id"),
            patch=_component_draft(body.get("patch", {}), index, tag),
        )

    if tag == "remove_component":
        return RemoveComponent(
            component_id=_reference(body, index, tag, "componentId", "component_id", "id"),
        )

    if tag == "add_connection":
        payload = body.get("connection", body.get("payload"))
        return AddConnection(connection=_connection_draft(payload, index, tag))

    if tag == "update_connection":
        return UpdateConnection(
            connection_id=_reference(body, index, tag, "connectionId", "connection_id", "id"),
            patch=_connection_draft(body.get("patch", {}), index, tag),
        )

    if tag == "remove_connection":
        return RemoveConnection(
            connection_id=_reference(body, index, tag, "connectionId", "connection_id", "id"),
        )

    if tag == "annotate":
        message = body.get("message")
        target = body.get("targetComponentId", body.get("target_component_id"))
        return Annotate(
            message=str(message) if message is not None else "",
            target_component_id=str(target) if target is not None else None,
        )

    raise InstructionFormatError(f"Instruction {index}: unknown instruction type '{tag}'", index)


# ============================================================
# ENVELOPES
# ============================================================

@dataclass
class InstructionEnvelope:
    """A generator reply: free-text summary plus the instruction list."""
    actions: List[Any] = field(default_factory=list)
    summary: str = ""
    reasoning: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


def _text_list(value: Any) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item is not None]


def parse_envelope(source: Union[str, Dict[str, Any], List[Any]]) -> InstructionEnvelope:
    """
    Read an envelope `{summary, reasoning, warnings, actions}`.

    `source` may be the decoded payload or raw text with the JSON embedded in
    prose. Actions are returned in wire form; the engine parses each one so a
    bad action becomes a warning instead of failing the batch.
    """
    payload = extract_json(source) if isinstance(source, str) else source

    if isinstance(payload, list):
        return InstructionEnvelope(actions=list(payload))

    if not isinstance(payload, dict) or not payload:
        return InstructionEnvelope(warnings=["No instructions found in response"])

    warnings = _text_list(payload.get("warnings"))
    actions = payload.get("actions", payload.get("instructions"))
    if actions is None:
        if "type" in payload or any(tag in payload for tag in INSTRUCTION_TAGS):
            warnings.append("Response is a single instruction without 'actions', ignoring it")
        actions = []
    elif not isinstance(actions, list):
        warnings.append("Response 'actions' is not a list, ignoring it")
        actions = []

    summary = payload.get("summary")
    reasoning = payload.get("reasoning")

    return InstructionEnvelope(
        actions=list(actions),
        summary=str(summary) if summary else "",
        reasoning=str(reasoning) if reasoning else None,
        warnings=warnings,
    )
