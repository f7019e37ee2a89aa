"""Topology collector: polls the gt/bd CLIs and feeds observations to the store."""

from .collector import CollectionError, Observation, TopologyCollector
from .commands import CommandResult, CommandRunner
from .poller import Poller

__all__ = [
    "CollectionError",
    "CommandResult",
    "CommandRunner",
    "Observation",
    "Poller",
    "TopologyCollector",
]
