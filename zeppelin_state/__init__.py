"""Topology state and diff engine for the Zeppelin fleet view."""

from .store import TopologyStore, compute_diff
from .types import ACTIVITY_LIMIT, Activity, Diff, Edge, Node, Snapshot, Summary, edge_key

__all__ = [
    "ACTIVITY_LIMIT",
    "Activity",
    "Diff",
    "Edge",
    "Node",
    "Snapshot",
    "Summary",
    "TopologyStore",
    "compute_diff",
    "edge_key",
]
