from __future__ import annotations

from typing import List, Mapping

from zeppelin_state import Activity, Diff, Node

EVENT_POLECAT_SPAWNED = "polecat_spawned"
EVENT_POLECAT_NUKED = "polecat_nuked"
EVENT_BEAD_OPENED = "bead_opened"
EVENT_BEAD_CLOSED = "bead_closed"
EVENT_BEAD_HOOKED = "bead_hooked"
EVENT_STATE_CHANGE = "state_change"


def derive_activity(diff: Diff, previous_states: Mapping[str, str]) -> List[Activity]:
    """Activity entries describing a diff; ``previous_states`` maps node id to state."""
    timestamp = diff.timestamp
    entries: List[Activity] = []

    for node in diff.nodes_added:
        if node.type == "polecat":
            entries.append(Activity(timestamp=timestamp, event=EVENT_POLECAT_SPAWNED, agent=node.id, detail=node.state))
        elif node.type == "bead":
            entries.append(
                Activity(
                    timestamp=timestamp,
                    event=EVENT_BEAD_OPENED,
                    agent=node.metadata.get("assignee", ""),
                    detail=_bead_detail(node),
                )
            )

    for node in diff.nodes_updated:
        before = previous_states.get(node.id)
        if before is None or before == node.state:
            continue
        if node.type == "bead" and node.state == "closed":
            event = EVENT_BEAD_CLOSED
        elif node.type == "bead" and node.state == "hooked":
            event = EVENT_BEAD_HOOKED
        else:
            event = EVENT_STATE_CHANGE
        agent = node.metadata.get("assignee", "") if node.type == "bead" else node.id
        detail = _bead_detail(node) if node.type == "bead" else f"{before} -> {node.state}"
        entries.append(Activity(timestamp=timestamp, event=event, agent=agent, detail=detail))

    for node_id in diff.nodes_removed:
        if "/polecats/" in node_id:
            entries.append(Activity(timestamp=timestamp, event=EVENT_POLECAT_NUKED, agent=node_id, detail=""))

    return entries


def _bead_detail(node: Node) -> str:
    title = node.metadata.get("title", "")
    return f"{node.label}: {title}" if title else node.label
