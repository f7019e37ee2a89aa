from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Callable, Dict, Optional

from zeppelin_state import Diff, TopologyStore

from .activity import derive_activity
from .collector import CollectionError, TopologyCollector

logger = logging.getLogger("zeppelin.poller")

ChangeCallback = Callable[[Diff], Any]


class Poller:
    """Fixed-interval collector loop feeding the topology store.

    Collection runs in a worker thread. The store is updated and
    ``on_change`` invoked back on the event loop, after the store lock has
    been released.
    """

    def __init__(
        self,
        *,
        store: TopologyStore,
        collector: TopologyCollector,
        on_change: Optional[ChangeCallback] = None,
        interval_seconds: float = 5.0,
        record_activity: bool = True,
    ) -> None:
        self._store = store
        self._collector = collector
        self._on_change = on_change
        self._interval_seconds = max(0.5, float(interval_seconds))
        self._record_activity = bool(record_activity)
        self._states: Dict[str, str] = {}
        self._running = False
        self._wake = asyncio.Event()

    @property
    def interval_seconds(self) -> float:
        return self._interval_seconds

    async def run(self) -> None:
        self._running = True
        self._wake = asyncio.Event()
        logger.info("POLLER_START interval=%.1fs", self._interval_seconds)
        try:
            while self._running:
                try:
                    await self.poll_once()
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception("POLL_FAILED")
                try:
                    await asyncio.wait_for(self._wake.wait(), timeout=self._interval_seconds)
                except asyncio.TimeoutError:
                    pass
        finally:
            self._running = False
            logger.info("POLLER_STOP")

    def stop(self) -> None:
        self._running = False
        self._wake.set()

    async def poll_once(self) -> Optional[Diff]:
        try:
            observation = await asyncio.to_thread(self._collector.collect)
        except CollectionError as exc:
            logger.warning("POLL_SKIPPED reason=%s", exc)
            return None
        diff = self._store.apply(observation.nodes, observation.edges, observation.summary)

        previous_states = self._states
        self._states = {node.id: node.state for node in observation.nodes}
        if diff is None:
            return None

        if self._record_activity:
            entries = derive_activity(diff, previous_states)
            for entry in entries:
                self._store.append_activity(entry)
            diff.activity_append.extend(entries)

        if self._on_change is not None:
            result = self._on_change(diff)
            if inspect.isawaitable(result):
                await result
        return diff
