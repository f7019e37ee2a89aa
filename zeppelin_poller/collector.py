from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List

from zeppelin_state import Edge, Node, Summary

from . import parsing
from .commands import CommandRunner

logger = logging.getLogger("zeppelin.poller")


class CollectionError(RuntimeError):
    """Raised when a polling cycle cannot produce a complete observation."""


@dataclass(slots=True)
class Observation:
    """One full (nodes, edges, summary) triple for a polling cycle."""

    nodes: List[Node] = field(default_factory=list)
    edges: List[Edge] = field(default_factory=list)
    summary: Summary = field(default_factory=Summary)


class TopologyCollector:
    """Builds an observation from ``gt`` and ``bd`` command output.

    ``gt status --json`` is preferred. When it yields no rigs the collector
    falls back to ``gt polecat list --all --json`` and then to the plain text
    listing. Beads from ``bd list --json`` are appended in every case.

    A partial observation is never returned: if the agent listing or the bead
    listing cannot be read, ``collect`` raises ``CollectionError`` so the
    previous topology stays in place.
    """

    def __init__(self, runner: CommandRunner) -> None:
        self._runner = runner

    def collect(self) -> Observation:
        status_out = self._runner.output("gt", "status", "--json")
        rigs = parsing.status_rigs(parsing.load_json(status_out or ""))
        if rigs:
            nodes, edges = parsing.build_from_status(rigs)
        else:
            nodes, edges = self._collect_from_polecat_list()

        bead_nodes, bead_edges = self._collect_beads()
        nodes.extend(bead_nodes)
        edges.extend(bead_edges)

        return Observation(nodes=nodes, edges=edges, summary=parsing.summarize(nodes))

    def _collect_from_polecat_list(self) -> parsing.Graph:
        json_out = self._runner.output("gt", "polecat", "list", "--all", "--json")
        rows = parsing.polecat_rows(parsing.load_json(json_out or ""))
        if rows is None:
            logger.debug("POLECAT_LIST_TEXT_FALLBACK")
            text_out = self._runner.output("gt", "polecat", "list", "--all")
            if text_out is None:
                raise CollectionError("gt status and gt polecat list all failed")
            rows = parsing.parse_polecat_text(text_out)
        return parsing.build_from_polecat_rows(rows)

    def _collect_beads(self) -> parsing.Graph:
        out = self._runner.output("bd", "list", "--json")
        if out is None:
            raise CollectionError("bd list failed")
        if not out:
            return [], []
        payload = parsing.load_json(out)
        if not isinstance(payload, list):
            raise CollectionError("bd list returned malformed JSON")
        return parsing.build_beads(payload)
