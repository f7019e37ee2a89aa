from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Dict, Iterable, List, Optional, Sequence

from .locks import ReadWriteLock
from .types import ACTIVITY_LIMIT, Activity, Diff, Edge, EdgeIdentity, Node, Snapshot, Summary, iso_now

logger = logging.getLogger("zeppelin.state")


class TopologyStore:
    """Holds the live topology snapshot and computes diffs between observations.

    ``apply`` replaces nodes, edges and summary wholesale under the write lock
    and returns the delta against the replaced state. No diff is returned for
    the first populated observation (readers fetch a full snapshot instead) or
    when nothing changed. Edges are compared by identity only, so a label or
    metadata change on an existing edge produces no delta.
    """

    def __init__(self, *, activity_limit: int = ACTIVITY_LIMIT) -> None:
        self._lock = ReadWriteLock()
        self._nodes: List[Node] = []
        self._edges: List[Edge] = []
        self._summary = Summary()
        self._activity: Deque[Activity] = deque(maxlen=max(1, int(activity_limit)))
        self._last_updated_at: Optional[str] = None

    def get_snapshot(self) -> Snapshot:
        with self._lock.read():
            return Snapshot(
                timestamp=iso_now(),
                nodes=[node.copy() for node in self._nodes],
                edges=[edge.copy() for edge in self._edges],
                activity=[Activity.coerce(entry) for entry in self._activity],
                summary=self._summary,
            )

    def apply(
        self,
        nodes: Iterable[Any],
        edges: Iterable[Any],
        summary: Any = None,
    ) -> Optional[Diff]:
        new_nodes = _unique_nodes(Node.coerce(node) for node in nodes or ())
        new_edges = _unique_edges(Edge.coerce(edge) for edge in edges or ())
        new_summary = Summary.coerce(summary)

        with self._lock.write():
            was_empty = not self._nodes
            diff = compute_diff(
                self._nodes,
                new_nodes,
                self._edges,
                new_edges,
                self._summary,
                new_summary,
            )
            self._nodes = new_nodes
            self._edges = new_edges
            self._summary = new_summary
            self._last_updated_at = iso_now()

        if was_empty:
            logger.debug("TOPOLOGY_COLD_START nodes=%d edges=%d", len(new_nodes), len(new_edges))
            return None
        if diff.is_empty():
            return None

        logger.debug(
            "TOPOLOGY_DIFF added=%d removed=%d updated=%d edges_added=%d edges_removed=%d summary=%s",
            len(diff.nodes_added),
            len(diff.nodes_removed),
            len(diff.nodes_updated),
            len(diff.edges_added),
            len(diff.edges_removed),
            diff.summary is not None,
        )
        return diff

    def append_activity(self, entry: Any) -> None:
        activity = Activity.coerce(entry)
        with self._lock.write():
            self._activity.append(activity)

    def node_count(self) -> int:
        with self._lock.read():
            return len(self._nodes)

    def last_updated_at(self) -> Optional[str]:
        with self._lock.read():
            return self._last_updated_at


def compute_diff(
    old_nodes: Sequence[Node],
    new_nodes: Sequence[Node],
    old_edges: Sequence[Edge],
    new_edges: Sequence[Edge],
    old_summary: Summary,
    new_summary: Summary,
) -> Diff:
    diff = Diff()

    old_by_id: Dict[str, Node] = {node.id: node for node in old_nodes}
    new_ids = {node.id for node in new_nodes}

    for node in new_nodes:
        previous = old_by_id.get(node.id)
        if previous is None:
            diff.nodes_added.append(node.copy())
        elif previous != node:
            diff.nodes_updated.append(node.copy())

    for node in old_nodes:
        if node.id not in new_ids:
            diff.nodes_removed.append(node.id)

    old_identities = {edge.identity for edge in old_edges}
    new_identities = {edge.identity for edge in new_edges}

    for edge in new_edges:
        if edge.identity not in old_identities:
            diff.edges_added.append(edge.copy())

    for edge in old_edges:
        if edge.identity not in new_identities:
            diff.edges_removed.append(edge.key)

    if old_summary != new_summary:
        diff.summary = new_summary

    return diff


def _unique_nodes(nodes: Iterable[Node]) -> List[Node]:
    by_id: Dict[str, Node] = {}
    for node in nodes:
        by_id[node.id] = node
    return list(by_id.values())


def _unique_edges(edges: Iterable[Edge]) -> List[Edge]:
    by_identity: Dict[EdgeIdentity, Edge] = {}
    for edge in edges:
        by_identity[edge.identity] = edge
    return list(by_identity.values())
