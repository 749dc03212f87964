# Instruction batches: wire parsing and application to a snapshot

from app.instructions.types import (
    AddComponent,
    AddConnection,
    Annotate,
    ComponentDraft,
    ConnectionDraft,
    InstructionBatchResult,
    RemoveComponent,
    RemoveConnection,
    UpdateComponent,
    UpdateConnection,
)
from app.instructions.parser import parse_envelope, parse_instruction
from app.instructions.engine import apply_instructions

__all__ = [
    "AddComponent",
    "AddConnection",
    "Annotate",
    "ComponentDraft",
    "ConnectionDraft",
    "InstructionBatchResult",
    "RemoveComponent",
    "RemoveConnection",
    "UpdateComponent",
    "UpdateConnection",
    "parse_envelope",
    "parse_instruction",
    "apply_instructions",
]
