from __future__ import annotations

import asyncio
import logging
from contextlib import aclosing, asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Optional, Tuple

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse
from fastapi.staticfiles import StaticFiles

from zeppelin_state import TopologyStore

from .broker import EventBroker, SubscriptionClosed
from .models import EVENT_CONNECTED, SnapshotResponse, encode_payload

logger = logging.getLogger("zeppelin.server")

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "Access-Control-Allow-Origin": "*",
}

SessionMessage = Tuple[Optional[str], bytes]


def format_sse(data: bytes, *, event: Optional[str] = None) -> bytes:
    prefix = f"event: {event}\n".encode("utf-8") if event else b""
    return prefix + b"data: " + data + b"\n\n"


async def session_messages(store: TopologyStore, broker: EventBroker) -> AsyncIterator[SessionMessage]:
    """Yield the handshake, the initial snapshot, then queued broadcasts.

    The subscription is registered before the snapshot is read, so a diff
    broadcast in between is queued rather than lost. It is released on
    every exit path.
    """
    subscription = broker.subscribe()
    try:
        yield (EVENT_CONNECTED, b"{}")
        snapshot = SnapshotResponse.from_snapshot(store.get_snapshot())
        yield (None, encode_payload(snapshot))
        while True:
            try:
                data = await subscription.get()
            except SubscriptionClosed:
                return
            yield (None, data)
    finally:
        broker.unsubscribe(subscription)


def create_app(
    *,
    store: TopologyStore,
    broker: EventBroker,
    poller: Optional[Any] = None,
    static_dir: Optional[str | Path] = None,
) -> FastAPI:
    @asynccontextmanager
    async def _lifespan(_: FastAPI):
        poll_task: Optional[asyncio.Task[Any]] = None
        if poller is not None:
            poll_task = asyncio.create_task(poller.run(), name="zeppelin-poller")
        try:
            yield
        finally:
            if poll_task is not None:
                poller.stop()
                poll_task.cancel()
                await asyncio.gather(poll_task, return_exceptions=True)
            broker.close()

    app = FastAPI(
        title="Zeppelin",
        description="Live topology view of a Gas Town fleet with streamed diffs.",
        version="1.0.0",
        lifespan=_lifespan,
    )
    app.add_middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["GET"], allow_headers=["*"])
    app.state.store = store
    app.state.broker = broker
    app.state.poller = poller

    @app.get("/api/snapshot", response_model=SnapshotResponse, response_model_exclude_none=True)
    async def snapshot() -> SnapshotResponse:
        return SnapshotResponse.from_snapshot(store.get_snapshot())

    @app.get("/api/events")
    async def events() -> StreamingResponse:
        async def _stream() -> AsyncIterator[bytes]:
            async with aclosing(session_messages(store, broker)) as messages:
                async for event, data in messages:
                    yield format_sse(data, event=event)

        return StreamingResponse(_stream(), media_type="text/event-stream", headers=dict(SSE_HEADERS))

    @app.websocket("/ws/events")
    async def ws_events(websocket: WebSocket) -> None:
        await websocket.accept()
        messages = session_messages(store, broker)
        watcher = asyncio.create_task(_wait_for_disconnect(websocket))
        try:
            while True:
                pending = asyncio.ensure_future(messages.__anext__())
                done, _ = await asyncio.wait({pending, watcher}, return_when=asyncio.FIRST_COMPLETED)
                if pending not in done:
                    pending.cancel()
                    await asyncio.gather(pending, return_exceptions=True)
                    return
                try:
                    event, data = pending.result()
                except StopAsyncIteration:
                    await websocket.close()
                    return
                if event is not None:
                    await websocket.send_json({"event": event})
                else:
                    await websocket.send_text(data.decode("utf-8"))
        except WebSocketDisconnect:
            return
        finally:
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            await messages.aclose()

    @app.get("/api/health")
    async def health() -> dict:
        return {
            "status": "ok",
            "subscribers": broker.subscriber_count(),
            "nodes": store.node_count(),
            "last_updated_at": store.last_updated_at(),
        }

    static_path = Path(static_dir) if static_dir is not None else None
    if static_path is not None and static_path.is_dir():
        app.mount("/", StaticFiles(directory=str(static_path), html=True), name="static")
    else:
        if static_path is not None:
            logger.warning("STATIC_DIR_MISSING path=%s", static_path)

        # Without frontend assets the root lists the API instead.
        @app.get("/")
        async def index() -> dict:
            return {
                "service": "zeppelin",
                "frontend": None,
                "endpoints": {
                    "snapshot": "/api/snapshot",
                    "events": "/api/events",
                    "websocket": "/ws/events",
                    "health": "/api/health",
                },
            }

    return app


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    while True:
        message = await websocket.receive()
        if message.get("type") == "websocket.disconnect":
            return
