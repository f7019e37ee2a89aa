from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Tuple

ACTIVITY_LIMIT = 100

EdgeIdentity = Tuple[str, str, str]


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(slots=True)
class Node:
    """Agent, bead or convoy in the fleet topology."""

    id: str
    type: str
    label: str
    state: str
    rig: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "label": self.label,
        }
        if self.rig:
            out["rig"] = self.rig
        out["state"] = self.state
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out

    def copy(self) -> "Node":
        return Node(
            id=self.id,
            type=self.type,
            label=self.label,
            state=self.state,
            rig=self.rig,
            metadata=dict(self.metadata),
        )

    @classmethod
    def coerce(cls, raw: Any) -> "Node":
        if isinstance(raw, cls):
            return raw.copy()
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported node type for coercion: {type(raw)!r}")
        node_id = raw.get("id")
        if not isinstance(node_id, str) or not node_id.strip():
            raise ValueError("Node must include a non-empty id.")
        return cls(
            id=node_id,
            type=str(raw.get("type") or ""),
            label=str(raw.get("label") or ""),
            state=str(raw.get("state") or ""),
            rig=str(raw.get("rig") or ""),
            metadata=_string_map(raw.get("metadata")),
        )


@dataclass(slots=True)
class Edge:
    """Directed relationship; identity is (type, source, target)."""

    source: str
    target: str
    type: str
    label: str = ""
    metadata: Dict[str, str] = field(default_factory=dict)

    @property
    def identity(self) -> EdgeIdentity:
        return (self.type, self.source, self.target)

    @property
    def key(self) -> str:
        return edge_key(self.type, self.source, self.target)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "source": self.source,
            "target": self.target,
            "type": self.type,
        }
        if self.label:
            out["label"] = self.label
        if self.metadata:
            out["metadata"] = dict(self.metadata)
        return out

    def copy(self) -> "Edge":
        return Edge(
            source=self.source,
            target=self.target,
            type=self.type,
            label=self.label,
            metadata=dict(self.metadata),
        )

    @classmethod
    def coerce(cls, raw: Any) -> "Edge":
        if isinstance(raw, cls):
            return raw.copy()
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported edge type for coercion: {type(raw)!r}")
        return cls(
            source=str(raw.get("source") or ""),
            target=str(raw.get("target") or ""),
            type=str(raw.get("type") or ""),
            label=str(raw.get("label") or ""),
            metadata=_string_map(raw.get("metadata")),
        )


@dataclass(slots=True)
class Activity:
    timestamp: str = field(default_factory=iso_now)
    event: str = ""
    agent: str = ""
    detail: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "event": self.event,
            "agent": self.agent,
            "detail": self.detail,
        }

    @classmethod
    def coerce(cls, raw: Any) -> "Activity":
        if isinstance(raw, cls):
            return cls(timestamp=raw.timestamp, event=raw.event, agent=raw.agent, detail=raw.detail)
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported activity type for coercion: {type(raw)!r}")
        timestamp = raw.get("timestamp")
        if not isinstance(timestamp, str) or not timestamp.strip():
            timestamp = iso_now()
        return cls(
            timestamp=timestamp,
            event=str(raw.get("event") or ""),
            agent=str(raw.get("agent") or ""),
            detail=str(raw.get("detail") or ""),
        )


@dataclass(slots=True, frozen=True)
class Summary:
    """Aggregate counters for the status bar."""

    rig_count: int = 0
    active_polecats: int = 0
    open_beads: int = 0
    active_convoys: int = 0

    def to_dict(self) -> Dict[str, int]:
        return {
            "rig_count": self.rig_count,
            "active_polecats": self.active_polecats,
            "open_beads": self.open_beads,
            "active_convoys": self.active_convoys,
        }

    @classmethod
    def coerce(cls, raw: Any) -> "Summary":
        if raw is None:
            return cls()
        if isinstance(raw, cls):
            return raw
        if not isinstance(raw, Mapping):
            raise TypeError(f"Unsupported summary type for coercion: {type(raw)!r}")
        return cls(
            rig_count=_as_int(raw.get("rig_count")),
            active_polecats=_as_int(raw.get("active_polecats")),
            open_beads=_as_int(raw.get("open_beads")),
            active_convoys=_as_int(raw.get("active_convoys")),
        )


@dataclass(slots=True)
class Snapshot:
    timestamp: str = field(default_factory=iso_now)
    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    activity: List[Activity] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)

    type = "snapshot"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type,
            "timestamp": self.timestamp,
            "nodes": [node.to_dict() for node in self.nodes],
            "edges": [edge.to_dict() for edge in self.edges],
            "activity": [entry.to_dict() for entry in self.activity],
            "summary": self.summary.to_dict(),
        }


@dataclass(slots=True)
class Diff:
    """Delta between two consecutive observations."""

    timestamp: str = field(default_factory=iso_now)
    nodes_added: List[Node] = field(default_factory=list)
    nodes_removed: List[str] = field(default_factory=list)
    nodes_updated: List[Node] = field(default_factory=list)
    edges_added: List[Edge] = field(default_factory=list)
    edges_removed: List[str] = field(default_factory=list)
    activity_append: List[Activity] = field(default_factory=list)
    summary: Optional[Summary] = None

    type = "diff"

    def is_empty(self) -> bool:
        return (
            not self.nodes_added
            and not self.nodes_removed
            and not self.nodes_updated
            and not self.edges_added
            and not self.edges_removed
            and not self.activity_append
            and self.summary is None
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"type": self.type, "timestamp": self.timestamp}
        if self.nodes_added:
            out["nodes_added"] = [node.to_dict() for node in self.nodes_added]
        if self.nodes_removed:
            out["nodes_removed"] = list(self.nodes_removed)
        if self.nodes_updated:
            out["nodes_updated"] = [node.to_dict() for node in self.nodes_updated]
        if self.edges_added:
            out["edges_added"] = [edge.to_dict() for edge in self.edges_added]
        if self.edges_removed:
            out["edges_removed"] = list(self.edges_removed)
        if self.activity_append:
            out["activity_append"] = [entry.to_dict() for entry in self.activity_append]
        if self.summary is not None:
            out["summary"] = self.summary.to_dict()
        return out


def edge_key(edge_type: str, source: str, target: str) -> str:
    return f"{edge_type}:{source}:{target}"


def _string_map(raw: Any) -> Dict[str, str]:
    if not isinstance(raw, Mapping):
        return {}
    return {str(key): "" if value is None else str(value) for key, value in raw.items()}


def _as_int(value: Any) -> int:
    try:
        return max(0, int(value))
    except Exception:
        return 0
