from __future__ import annotations

from typing import Callable

from fastapi import FastAPI

from zeppelin_poller import CommandRunner, Poller, TopologyCollector
from zeppelin_state import Diff, TopologyStore
from zeppelin_stream import DiffResponse, EventBroker
from zeppelin_stream.server import create_app

from .config import ZeppelinConfig


def make_diff_publisher(broker: EventBroker) -> Callable[[Diff], int]:
    def _publish(diff: Diff) -> int:
        if broker.subscriber_count() == 0:
            return 0
        return broker.broadcast(DiffResponse.from_diff(diff))

    return _publish


def build_app(config: ZeppelinConfig) -> FastAPI:
    store = TopologyStore()
    broker = EventBroker(subscriber_queue_size=config.subscriber_queue_size)
    collector = TopologyCollector(CommandRunner(root=config.root, timeout_seconds=config.command_timeout))
    poller = Poller(
        store=store,
        collector=collector,
        on_change=make_diff_publisher(broker),
        interval_seconds=config.poll_interval,
    )
    app = create_app(store=store, broker=broker, poller=poller, static_dir=config.static_dir)
    app.state.config = config
    return app
