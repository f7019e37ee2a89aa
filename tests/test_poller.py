from __future__ import annotations

import asyncio
import json
import unittest
from typing import Dict, List, Optional, Tuple

from zeppelin.app import make_diff_publisher
from zeppelin_poller.activity import derive_activity
from zeppelin_poller.collector import Observation, TopologyCollector
from zeppelin_poller.poller import Poller
from zeppelin_state import Diff, Edge, Node, Summary, TopologyStore
from zeppelin_stream.broker import EventBroker


def _mayor() -> Node:
    return Node(id="mayor", type="mayor", label="Mayor", state="running")


def _polecat(name: str, state: str = "working") -> Node:
    return Node(id=f"zeppelin/polecats/{name}", type="polecat", label=name, rig="zeppelin", state=state)


def _bead(raw_id: str, state: str, title: str = "", assignee: str = "") -> Node:
    return Node(
        id=f"bead:{raw_id}",
        type="bead",
        label=raw_id,
        state=state,
        metadata={"title": title, "assignee": assignee},
    )


class ScriptedCollector:
    def __init__(self, observations: List[Observation]) -> None:
        self.observations = list(observations)
        self.calls = 0

    def collect(self) -> Observation:
        self.calls += 1
        if len(self.observations) > 1:
            return self.observations.pop(0)
        return self.observations[0]


class FailingCollector:
    def __init__(self) -> None:
        self.calls = 0

    def collect(self) -> Observation:
        self.calls += 1
        raise RuntimeError("gt exploded")


GT_STATUS = ("gt", "status", "--json")
BD_LIST = ("bd", "list", "--json")

STATUS_JSON = json.dumps(
    {
        "rigs": [
            {
                "name": "zeppelin",
                "witness": {"name": "witness", "state": "running"},
                "polecats": [{"name": "rust", "state": "working"}],
            }
        ]
    }
)
BEADS_JSON = json.dumps([{"id": "zep-1", "status": "open"}, {"id": "zep-2", "status": "hooked"}])


class SwitchableRunner:
    """Command output keyed by argv; a missing key is a failed command."""

    def __init__(self, outputs: Dict[Tuple[str, ...], str]) -> None:
        self.outputs = dict(outputs)

    def output(self, *argv: str) -> Optional[str]:
        return self.outputs.get(tuple(argv))


class TestPollOnce(unittest.IsolatedAsyncioTestCase):
    async def test_cold_start_then_diff_with_activity(self) -> None:
        store = TopologyStore()
        published: List[Diff] = []
        collector = ScriptedCollector(
            [
                Observation(nodes=[_mayor()], summary=Summary(rig_count=1)),
                Observation(
                    nodes=[_mayor(), _polecat("rust")],
                    edges=[Edge(source="mayor", target="zeppelin/polecats/rust", type="assignment")],
                    summary=Summary(rig_count=1, active_polecats=1),
                ),
            ]
        )
        poller = Poller(store=store, collector=collector, on_change=published.append)

        self.assertIsNone(await poller.poll_once())
        self.assertEqual(published, [])
        self.assertEqual(len(store.get_snapshot().nodes), 1)

        diff = await poller.poll_once()
        self.assertIsNotNone(diff)
        self.assertEqual(published, [diff])
        self.assertEqual([node.id for node in diff.nodes_added], ["zeppelin/polecats/rust"])
        self.assertEqual(diff.summary.active_polecats, 1)
        self.assertEqual([entry.event for entry in diff.activity_append], ["polecat_spawned"])
        self.assertEqual(store.get_snapshot().activity[0].agent, "zeppelin/polecats/rust")

    async def test_unchanged_observation_publishes_nothing(self) -> None:
        store = TopologyStore()
        published: List[Diff] = []
        collector = ScriptedCollector([Observation(nodes=[_mayor()])])
        poller = Poller(store=store, collector=collector, on_change=published.append)

        await poller.poll_once()
        self.assertIsNone(await poller.poll_once())
        self.assertIsNone(await poller.poll_once())
        self.assertEqual(published, [])
        self.assertEqual(store.get_snapshot().activity, [])

    async def test_async_callback_is_awaited(self) -> None:
        store = TopologyStore()
        seen: List[Diff] = []

        async def on_change(diff: Diff) -> None:
            await asyncio.sleep(0)
            seen.append(diff)

        collector = ScriptedCollector(
            [Observation(nodes=[_mayor(), _polecat("rust", "idle")]), Observation(nodes=[_mayor(), _polecat("rust")])]
        )
        poller = Poller(store=store, collector=collector, on_change=on_change)
        await poller.poll_once()
        diff = await poller.poll_once()

        self.assertEqual(seen, [diff])
        self.assertEqual(diff.activity_append[0].event, "state_change")
        self.assertEqual(diff.activity_append[0].detail, "idle -> working")

    async def test_activity_recording_can_be_disabled(self) -> None:
        store = TopologyStore()
        collector = ScriptedCollector([Observation(nodes=[_mayor()]), Observation(nodes=[_mayor(), _polecat("rust")])])
        poller = Poller(store=store, collector=collector, record_activity=False)
        await poller.poll_once()
        diff = await poller.poll_once()
        self.assertEqual(diff.activity_append, [])
        self.assertEqual(store.get_snapshot().activity, [])

    async def test_diff_reaches_subscribers_through_publisher(self) -> None:
        store = TopologyStore()
        broker = EventBroker()
        subscription = broker.subscribe()
        collector = ScriptedCollector([Observation(nodes=[_mayor()]), Observation(nodes=[])])
        poller = Poller(store=store, collector=collector, on_change=make_diff_publisher(broker))
        try:
            await poller.poll_once()
            await poller.poll_once()
            data = await asyncio.wait_for(subscription.get(), timeout=1.0)
            self.assertIn(b'"nodes_removed":["mayor"]', data)
            self.assertIn(b'"type":"diff"', data)
        finally:
            broker.unsubscribe(subscription)

    async def test_failed_bead_listing_keeps_prior_topology(self) -> None:
        store = TopologyStore()
        published: List[Diff] = []
        runner = SwitchableRunner({GT_STATUS: STATUS_JSON, BD_LIST: BEADS_JSON})
        poller = Poller(store=store, collector=TopologyCollector(runner), on_change=published.append)

        await poller.poll_once()
        await poller.poll_once()
        before = [node.id for node in store.get_snapshot().nodes]
        self.assertIn("bead:zep-1", before)

        del runner.outputs[BD_LIST]
        with self.assertLogs("zeppelin.poller", level="WARNING") as captured:
            self.assertIsNone(await poller.poll_once())

        self.assertEqual([node.id for node in store.get_snapshot().nodes], before)
        self.assertEqual(published, [])
        self.assertTrue(any("POLL_SKIPPED" in line for line in captured.output))

        runner.outputs[BD_LIST] = BEADS_JSON
        self.assertIsNone(await poller.poll_once())
        self.assertEqual(published, [])

    async def test_failed_first_tick_does_not_seed_the_store(self) -> None:
        store = TopologyStore()
        published: List[Diff] = []
        runner = SwitchableRunner({})
        poller = Poller(store=store, collector=TopologyCollector(runner), on_change=published.append)

        with self.assertLogs("zeppelin.poller", level="WARNING"):
            self.assertIsNone(await poller.poll_once())
        self.assertEqual(store.get_snapshot().nodes, [])

        runner.outputs.update({GT_STATUS: STATUS_JSON, BD_LIST: BEADS_JSON})
        self.assertIsNone(await poller.poll_once())
        self.assertEqual(published, [])
        self.assertEqual(len(store.get_snapshot().nodes), 5)

    async def test_failed_gt_listing_keeps_prior_topology(self) -> None:
        store = TopologyStore()
        published: List[Diff] = []
        runner = SwitchableRunner({GT_STATUS: STATUS_JSON, BD_LIST: BEADS_JSON})
        poller = Poller(store=store, collector=TopologyCollector(runner), on_change=published.append)
        await poller.poll_once()
        before = store.get_snapshot()

        del runner.outputs[GT_STATUS]
        with self.assertLogs("zeppelin.poller", level="WARNING"):
            self.assertIsNone(await poller.poll_once())

        after = store.get_snapshot()
        self.assertEqual(after.nodes, before.nodes)
        self.assertEqual(after.edges, before.edges)
        self.assertEqual(after.summary, before.summary)
        self.assertEqual(published, [])

    async def test_publisher_skips_without_subscribers(self) -> None:
        broker = EventBroker()
        publish = make_diff_publisher(broker)
        self.assertEqual(publish(Diff(nodes_removed=["mayor"])), 0)


class TestPollerLoop(unittest.IsolatedAsyncioTestCase):
    async def test_run_survives_failures_until_stopped(self) -> None:
        collector = FailingCollector()
        poller = Poller(store=TopologyStore(), collector=collector, interval_seconds=0.5)

        with self.assertLogs("zeppelin.poller", level="ERROR") as captured:
            task = asyncio.create_task(poller.run())
            for _ in range(200):
                if collector.calls >= 1:
                    break
                await asyncio.sleep(0.01)
            poller.stop()
            await asyncio.wait_for(task, timeout=2.0)

        self.assertGreaterEqual(collector.calls, 1)
        self.assertTrue(any("POLL_FAILED" in line for line in captured.output))

    async def test_interval_is_clamped(self) -> None:
        poller = Poller(store=TopologyStore(), collector=ScriptedCollector([Observation()]), interval_seconds=0.01)
        self.assertEqual(poller.interval_seconds, 0.5)


class TestDeriveActivity(unittest.TestCase):
    def test_added_polecat_and_bead(self) -> None:
        diff = Diff(nodes_added=[_polecat("rust"), _bead("zep-1", "unassigned", title="Wire stream")])
        entries = derive_activity(diff, {})
        self.assertEqual([entry.event for entry in entries], ["polecat_spawned", "bead_opened"])
        self.assertEqual(entries[1].detail, "zep-1: Wire stream")
        self.assertEqual(entries[0].timestamp, diff.timestamp)

    def test_bead_transitions(self) -> None:
        diff = Diff(
            nodes_updated=[
                _bead("zep-1", "closed", assignee="zeppelin/polecats/rust"),
                _bead("zep-2", "hooked"),
                _bead("zep-3", "in_progress"),
            ]
        )
        entries = derive_activity(diff, {"bead:zep-1": "in_progress", "bead:zep-2": "unassigned", "bead:zep-3": "hooked"})
        self.assertEqual([entry.event for entry in entries], ["bead_closed", "bead_hooked", "state_change"])
        self.assertEqual(entries[0].agent, "zeppelin/polecats/rust")
        self.assertEqual(entries[1].detail, "zep-2")

    def test_metadata_only_update_has_no_activity(self) -> None:
        diff = Diff(nodes_updated=[_polecat("rust")])
        self.assertEqual(derive_activity(diff, {"zeppelin/polecats/rust": "working"}), [])
        self.assertEqual(derive_activity(diff, {}), [])

    def test_removed_polecat_is_nuked(self) -> None:
        diff = Diff(nodes_removed=["zeppelin/polecats/rust", "bead:zep-1", "zeppelin/witness"])
        entries = derive_activity(diff, {})
        self.assertEqual([(entry.event, entry.agent) for entry in entries], [("polecat_nuked", "zeppelin/polecats/rust")])


if __name__ == "__main__":
    unittest.main()
