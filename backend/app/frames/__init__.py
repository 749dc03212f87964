from app.frames.organizer import FrameOrganizer, derive_component_bounds

__all__ = ["FrameOrganizer", "derive_component_bounds"]
