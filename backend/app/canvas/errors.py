class CanvasError(Exception):
    """Base error for the canvas state core."""


class ContractViolation(CanvasError):
    """A caller broke an API contract (missing snapshot, duplicate ids, bad argument)."""


class FrameNotFoundError(CanvasError, KeyError):
    def __init__(self, frame_id: str):
        self.frame_id = frame_id
        super().__init__(f"Frame '{frame_id}' not found")

    def __str__(self) -> str:
        return f"Frame '{self.frame_id}' not found"


class InstructionFormatError(CanvasError):
    """A single instruction could not be read from the wire format."""

    def __init__(self, message: str, index: int = -1):
        self.index = index
        super().__init__(message)


class PersistenceError(CanvasError):
    """Saving or loading a design failed."""
