from pydantic import BaseModel
from typing import Optional, Dict, Any, List


class InstructionBatchRequest(BaseModel):
    """Either a raw instruction list or a generator reply (text or decoded envelope)"""
    instructions: Optional[List[Any]] = None
    envelope: Optional[Dict[str, Any]] = None
    response_text: Optional[str] = None


class SelectionRequest(BaseModel):
    component_ids: Optional[List[str]] = None  # replaces the whole selection
    component_id: Optional[str] = None  # single select / toggle-in
    multi: bool = False


class LoadRequest(BaseModel):
    project_id: Optional[str] = None


class ValidateRequest(BaseModel):
    design: Optional[Dict[str, Any]] = None  # defaults to the live canvas


class BoundsModel(BaseModel):
    x: float
    y: float
    width: float
    height: float


class CreateFrameRequest(BaseModel):
    name: str
    bounds: BoundsModel
    component_ids: List[str] = []
    color: Optional[str] = None
    locked: bool = False


class WrapSelectionRequest(BaseModel):
    name: Optional[str] = None
    selection_box: Optional[BoundsModel] = None  # used when nothing is selected


class MoveFrameRequest(BaseModel):
    x: float
    y: float


class UpdateFrameRequest(BaseModel):
    name: Optional[str] = None
    color: Optional[str] = None
    locked: Optional[bool] = None


class FrameMembersRequest(BaseModel):
    component_ids: List[str]


class FitFrameRequest(BaseModel):
    padding: float = 32
