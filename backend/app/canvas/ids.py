import uuid


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


def new_component_id() -> str:
    return new_id("component")


def new_connection_id() -> str:
    return new_id("connection")


def new_frame_id() -> str:
    return new_id("frame")
