from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from zeppelin_state import Edge, Node, Summary

MAYOR_ID = "mayor"
BEAD_PREFIX = "bead:"

EDGE_ASSIGNMENT = "assignment"
EDGE_MONITORING = "monitoring"

_HEADER_NAMES = {"NAME", "name", "Polecat"}

Graph = Tuple[List[Node], List[Edge]]


def load_json(text: str) -> Optional[Any]:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError:
        return None


def mayor_node() -> Node:
    return Node(id=MAYOR_ID, type="mayor", label="Mayor", state="running")


def witness_id(rig: str) -> str:
    return f"{rig}/witness"


def refinery_id(rig: str) -> str:
    return f"{rig}/refinery"


def polecat_id(rig: str, name: str) -> str:
    return f"{rig}/polecats/{name}"


def crew_id(rig: str, name: str) -> str:
    return f"{rig}/crew/{name}"


def bead_id(raw_id: str) -> str:
    return f"{BEAD_PREFIX}{raw_id}"


def status_rigs(payload: Any) -> List[Mapping[str, Any]]:
    """Rigs from ``gt status --json``; empty when the payload is unusable."""
    if not isinstance(payload, Mapping):
        return []
    rigs = payload.get("rigs")
    if not isinstance(rigs, list):
        return []
    return [rig for rig in rigs if isinstance(rig, Mapping) and _text(rig.get("name"))]


def build_from_status(rigs: Iterable[Mapping[str, Any]]) -> Graph:
    nodes: List[Node] = [mayor_node()]
    edges: List[Edge] = []

    for rig in rigs:
        rig_name = _text(rig.get("name"))
        witness = _agent(rig.get("witness"))
        has_witness = bool(_text(witness.get("name")))
        if has_witness:
            nodes.append(
                Node(
                    id=witness_id(rig_name),
                    type="witness",
                    label="Witness",
                    rig=rig_name,
                    state=_text(witness.get("state")) or "running",
                )
            )

        refinery = _agent(rig.get("refinery"))
        if _text(refinery.get("name")):
            nodes.append(
                Node(
                    id=refinery_id(rig_name),
                    type="refinery",
                    label="Refinery",
                    rig=rig_name,
                    state=_text(refinery.get("state")) or "running",
                )
            )

        for polecat in _agents(rig.get("polecats")):
            name = _text(polecat.get("name"))
            if not name:
                continue
            details = _string_map(polecat.get("details"))
            pc_id = polecat_id(rig_name, name)
            nodes.append(
                Node(
                    id=pc_id,
                    type="polecat",
                    label=name,
                    rig=rig_name,
                    state=_text(polecat.get("state")) or "idle",
                    metadata=details,
                )
            )
            hooked_bead = details.get("hooked_bead", "")
            if hooked_bead:
                edges.append(Edge(source=MAYOR_ID, target=pc_id, type=EDGE_ASSIGNMENT, label=hooked_bead))
            if has_witness:
                edges.append(Edge(source=witness_id(rig_name), target=pc_id, type=EDGE_MONITORING))

        for member in _agents(rig.get("crew")):
            name = _text(member.get("name"))
            if not name:
                continue
            nodes.append(
                Node(
                    id=crew_id(rig_name, name),
                    type="crew",
                    label=name,
                    rig=rig_name,
                    state=_text(member.get("state")) or "idle",
                )
            )

    return nodes, edges


def polecat_rows(payload: Any) -> Optional[List[Dict[str, str]]]:
    """Rows from ``gt polecat list --all --json``; None when not a JSON list."""
    if not isinstance(payload, list):
        return None
    rows: List[Dict[str, str]] = []
    for raw in payload:
        if not isinstance(raw, Mapping):
            continue
        name = _text(raw.get("name"))
        rig = _text(raw.get("rig"))
        if not name or not rig:
            continue
        rows.append(
            {
                "name": name,
                "rig": rig,
                "state": _text(raw.get("state")),
                "hook": _text(raw.get("hook")),
            }
        )
    return rows


def parse_polecat_text(text: str) -> List[Dict[str, str]]:
    """Parse ``gt polecat list --all`` columns: NAME RIG STATE [HOOK]."""
    rows: List[Dict[str, str]] = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#") or line.startswith("─"):
            continue
        fields = line.split()
        if len(fields) < 3 or fields[0] in _HEADER_NAMES:
            continue
        rows.append(
            {
                "name": fields[0],
                "rig": fields[1],
                "state": fields[2],
                "hook": fields[3] if len(fields) >= 4 else "",
            }
        )
    return rows


def build_from_polecat_rows(rows: Iterable[Mapping[str, str]]) -> Graph:
    nodes: List[Node] = [mayor_node()]
    edges: List[Edge] = []
    rigs: Dict[str, List[str]] = {}

    for row in rows:
        name = row["name"]
        rig = row["rig"]
        hook = row.get("hook", "")
        pc_id = polecat_id(rig, name)
        rigs.setdefault(rig, []).append(pc_id)
        nodes.append(
            Node(
                id=pc_id,
                type="polecat",
                label=name,
                rig=rig,
                state=row.get("state") or "idle",
                metadata={"hooked_bead": hook},
            )
        )
        if hook:
            edges.append(Edge(source=MAYOR_ID, target=pc_id, type=EDGE_ASSIGNMENT, label=hook))

    for rig, polecat_ids in rigs.items():
        nodes.append(Node(id=witness_id(rig), type="witness", label="Witness", rig=rig, state="running"))
        nodes.append(Node(id=refinery_id(rig), type="refinery", label="Refinery", rig=rig, state="running"))
        for pc_id in polecat_ids:
            edges.append(Edge(source=witness_id(rig), target=pc_id, type=EDGE_MONITORING))

    return nodes, edges


def map_bead_status(status: str) -> str:
    normalized = status.strip().lower()
    if normalized in ("open", ""):
        return "unassigned"
    if normalized in ("in_progress", "in-progress"):
        return "in_progress"
    if normalized in ("closed", "done"):
        return "closed"
    if normalized == "hooked":
        return "hooked"
    return status


def build_beads(payload: Any) -> Graph:
    nodes: List[Node] = []
    edges: List[Edge] = []
    if not isinstance(payload, list):
        return nodes, edges

    for raw in payload:
        if not isinstance(raw, Mapping):
            continue
        raw_id = _text(raw.get("id"))
        if not raw_id:
            continue
        assignee = _text(raw.get("assignee"))
        node_id = bead_id(raw_id)
        nodes.append(
            Node(
                id=node_id,
                type="bead",
                label=raw_id,
                state=map_bead_status(_text(raw.get("status"))),
                metadata={
                    "title": _text(raw.get("title")),
                    "assignee": assignee,
                },
            )
        )
        if assignee:
            edges.append(Edge(source=node_id, target=assignee, type=EDGE_ASSIGNMENT))

    return nodes, edges


def summarize(nodes: Iterable[Node]) -> Summary:
    rig_count = 0
    active_polecats = 0
    open_beads = 0
    for node in nodes:
        if node.type == "witness":
            rig_count += 1
        elif node.type == "polecat" and node.state == "working":
            active_polecats += 1
        elif node.type == "bead":
            open_beads += 1
    return Summary(rig_count=rig_count, active_polecats=active_polecats, open_beads=open_beads)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _agent(raw: Any) -> Mapping[str, Any]:
    return raw if isinstance(raw, Mapping) else {}


def _agents(raw: Any) -> List[Mapping[str, Any]]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, Mapping)]


def _string_map(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): "" if value is None else str(value) for key, value in raw.items()}
