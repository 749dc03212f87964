from typing import Optional

from fastapi import APIRouter, Depends

from app.canvas.errors import FrameNotFoundError
from app.canvas.serializers import serialize_state, snapshot_from_dict
from app.canvas.session import CanvasSession
from app.canvas.types import Bounds
from app.db.session import SessionLocal
from app.persistence.sql_gateway import SqlPersistenceGateway
from app.schemas import (
    CreateFrameRequest,
    FitFrameRequest,
    FrameMembersRequest,
    InstructionBatchRequest,
    LoadRequest,
    MoveFrameRequest,
    SelectionRequest,
    UpdateFrameRequest,
    ValidateRequest,
    WrapSelectionRequest,
    BoundsModel,
)

router = APIRouter(prefix="/canvas")

_session: Optional[CanvasSession] = None


def get_session() -> CanvasSession:
    global _session
    if _session is None:
        _session = CanvasSession(SqlPersistenceGateway(SessionLocal))
    return _session


def close_session() -> None:
    global _session
    if _session is not None:
        _session.close()
        _session = None


def _bounds(model: BoundsModel) -> Bounds:
    return Bounds(x=model.x, y=model.y, width=model.width, height=model.height)


def _canvas_payload(session: CanvasSession, status: str = "success", **extra) -> dict:
    payload = {
        "status": status,
        "canvas": session.to_dict(),
        "history": {
            "can_undo": session.store.can_undo,
            "can_redo": session.store.can_redo,
            "version": session.store.version,
        },
    }
    payload.update(extra)
    return payload


# ============================================================
# CANVAS
# ============================================================

@router.get("")
def get_canvas(session: CanvasSession = Depends(get_session)):
    return _canvas_payload(session)


@router.get("/status")
def get_status(session: CanvasSession = Depends(get_session)):
    return {"status": "success", **session.status()}


@router.post("/instructions")
def apply_instructions(request: InstructionBatchRequest, session: CanvasSession = Depends(get_session)):
    if request.instructions is not None:
        report = session.apply_instructions(request.instructions).to_dict()
    elif request.envelope is not None:
        report = session.apply_envelope(request.envelope)
    elif request.response_text is not None:
        report = session.apply_envelope(request.response_text)
    else:
        return {"status": "error", "message": "No instructions provided"}

    print(f"[API] Instructions applied: {report['message']}")
    status = "warning" if report["warnings"] else "success"
    return _canvas_payload(session, status, result=report)


@router.post("/undo")
def undo(session: CanvasSession = Depends(get_session)):
    if session.undo() is None:
        return _canvas_payload(session, "warning", message="Nothing to undo")
    return _canvas_payload(session)


@router.post("/redo")
def redo(session: CanvasSession = Depends(get_session)):
    if session.redo() is None:
        return _canvas_payload(session, "warning", message="Nothing to redo")
    return _canvas_payload(session)


@router.post("/save")
def save(session: CanvasSession = Depends(get_session)):
    if session.force_save():
        return {"status": "success", "autosave": session.autosave.to_dict()}
    return {
        "status": "error",
        "message": session.autosave.last_error,
        "autosave": session.autosave.to_dict(),
    }


@router.post("/load")
def load(request: LoadRequest, session: CanvasSession = Depends(get_session)):
    session.load(request.project_id)
    return _canvas_payload(session)


@router.post("/validate")
def validate(request: ValidateRequest, session: CanvasSession = Depends(get_session)):
    if request.design is None:
        snapshot = session.get_state()
    else:
        try:
            snapshot = snapshot_from_dict(request.design)
        except ValueError as e:
            return {"status": "error", "message": str(e)}

    result = session.gateway.validate_data(snapshot)
    if not result.is_valid:
        status = "error"
    elif result.warnings:
        status = "warning"
    else:
        status = "success"
    return {"status": status, "validation": result.to_dict()}


@router.post("/selection")
def select(request: SelectionRequest, session: CanvasSession = Depends(get_session)):
    if request.component_ids is not None:
        session.actions.set_selection(request.component_ids)
    else:
        session.actions.select_component(request.component_id, multi=request.multi)
    return _canvas_payload(session)


# ============================================================
# FRAMES
# ============================================================

@router.get("/frames")
def list_frames(session: CanvasSession = Depends(get_session)):
    return {
        "status": "success",
        "frames": serialize_state(session.frames.frames),
        "current_frame_id": session.frames.current_frame_id,
    }


@router.post("/frames")
def create_frame(request: CreateFrameRequest, session: CanvasSession = Depends(get_session)):
    frame_id = session.frames.create_frame(
        request.name,
        _bounds(request.bounds),
        request.component_ids,
        color=request.color,
        locked=request.locked,
    )
    return _canvas_payload(session, frame_id=frame_id)


@router.post("/frames/wrap")
def wrap_selection(request: WrapSelectionRequest, session: CanvasSession = Depends(get_session)):
    selection_box = _bounds(request.selection_box) if request.selection_box else None
    frame_id = session.frames.create_frame_from_selection(request.name, selection_box)
    if frame_id is None:
        return _canvas_payload(session, "warning", message="Nothing selected to frame", frame_id=None)
    return _canvas_payload(session, frame_id=frame_id)


@router.get("/frames/{frame_id}")
def get_frame(frame_id: str, session: CanvasSession = Depends(get_session)):
    frame = session.frames.get_frame(frame_id)
    if frame is None:
        raise FrameNotFoundError(frame_id)
    return {"status": "success", "frame": serialize_state(frame)}


@router.patch("/frames/{frame_id}")
def update_frame(frame_id: str, request: UpdateFrameRequest, session: CanvasSession = Depends(get_session)):
    session.frames.update_frame(frame_id, name=request.name, color=request.color, locked=request.locked)
    return _canvas_payload(session)


@router.delete("/frames/{frame_id}")
def delete_frame(frame_id: str, session: CanvasSession = Depends(get_session)):
    session.frames.delete_frame(frame_id)
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/move")
def move_frame(frame_id: str, request: MoveFrameRequest, session: CanvasSession = Depends(get_session)):
    session.frames.move_frame(frame_id, request.x, request.y)
    return _canvas_payload(session)


@router.put("/frames/{frame_id}/bounds")
def resize_frame(frame_id: str, request: BoundsModel, session: CanvasSession = Depends(get_session)):
    session.frames.resize_frame(frame_id, _bounds(request))
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/fit")
def fit_frame(frame_id: str, request: FitFrameRequest, session: CanvasSession = Depends(get_session)):
    session.frames.fit_frame_to_components(frame_id, padding=request.padding)
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/collapse")
def collapse_frame(frame_id: str, session: CanvasSession = Depends(get_session)):
    session.frames.collapse_frame(frame_id)
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/expand")
def expand_frame(frame_id: str, session: CanvasSession = Depends(get_session)):
    session.frames.expand_frame(frame_id)
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/toggle")
def toggle_frame(frame_id: str, session: CanvasSession = Depends(get_session)):
    session.frames.toggle_frame_collapse(frame_id)
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/members")
def add_frame_members(frame_id: str, request: FrameMembersRequest, session: CanvasSession = Depends(get_session)):
    session.frames.add_components_to_frame(frame_id, request.component_ids)
    return _canvas_payload(session)


@router.post("/frames/{frame_id}/members/remove")
def remove_frame_members(frame_id: str, request: FrameMembersRequest, session: CanvasSession = Depends(get_session)):
    session.frames.remove_components_from_frame(frame_id, request.component_ids)
    return _canvas_payload(session)
