"""
Snapshot integrity rules.

Applied on every commit and to every instruction-batch candidate:
- component ids are unique (violations raise, nothing is guessed)
- connections whose endpoints do not exist are pruned
- frame membership and selection only reference existing components
- components never point at a frame that no longer exists
"""

from dataclasses import replace
from collections import Counter
from typing import Iterable, List, Set, Tuple

from app.canvas.errors import ContractViolation
from app.canvas.types import Component, Connection, Snapshot


def find_duplicate_ids(components: Iterable[Component]) -> List[str]:
    counts = Counter(c.id for c in components)
    return [component_id for component_id, count in counts.items() if count > 1]


def prune_orphan_connections(
    connections: Iterable[Connection],
    component_ids: Set[str],
) -> Tuple[Tuple[Connection, ...], List[Connection]]:
    kept: List[Connection] = []
    dropped: List[Connection] = []

    for connection in connections:
        if connection.from_id in component_ids and connection.to_id in component_ids:
            kept.append(connection)
        else:
            dropped.append(connection)

    return tuple(kept), dropped


def _ordered_unique(ids: Iterable[str]) -> Tuple[str, ...]:
    seen: Set[str] = set()
    result = []
    for item in ids:
        if item in seen:
            continue
        seen.add(item)
        result.append(item)
    return tuple(result)


def normalize_snapshot(snapshot: Snapshot) -> Snapshot:
    """
    Return a snapshot that satisfies every integrity rule.

    The input is returned unchanged (same object) when it is already
    consistent.
    """
    duplicates = find_duplicate_ids(snapshot.components)
    if duplicates:
        raise ContractViolation(
            f"Duplicate component ids in snapshot: {', '.join(sorted(duplicates))}"
        )

    component_ids = {c.id for c in snapshot.components}
    frame_ids = {f.id for f in snapshot.frames}
    changes = {}

    connections, dropped = prune_orphan_connections(snapshot.connections, component_ids)
    if dropped:
        changes["connections"] = connections

    frames = []
    frames_changed = False
    for frame in snapshot.frames:
        members = _ordered_unique(cid for cid in frame.component_ids if cid in component_ids)
        if members != frame.component_ids:
            frame = replace(frame, component_ids=members)
            frames_changed = True
        frames.append(frame)
    if frames_changed:
        changes["frames"] = tuple(frames)

    components = []
    components_changed = False
    for component in snapshot.components:
        if component.parent_frame_id is not None and component.parent_frame_id not in frame_ids:
            component = replace(component, parent_frame_id=None)
            components_changed = True
        components.append(component)
    if components_changed:
        changes["components"] = tuple(components)

    selection = _ordered_unique(
        cid for cid in snapshot.selected_component_ids if cid in component_ids
    )
    if selection != snapshot.selected_component_ids:
        changes["selected_component_ids"] = selection

    if not changes:
        return snapshot

    return replace(snapshot, **changes)
