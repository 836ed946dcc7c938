from __future__ import annotations

import asyncio
import logging

from fastapi import WebSocket


logger = logging.getLogger(__name__)


class GameWebSocketHub:
    """In-process WebSocket fan-out for the single local game.

    Contract:
      - register a connection with `connect(websocket)`.
      - push lightweight events with `broadcast(payload)`, or `publish(payload)`
        from synchronous engine callbacks running on the event loop.

    Payloads should be JSON-serializable dicts. Clients re-read `GET /state`.
    """

    def __init__(self) -> None:
        self._conns: set[WebSocket] = set()
        self._lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    async def connect(self, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._conns.add(websocket)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            self._conns.discard(websocket)

    @property
    def connection_count(self) -> int:
        return len(self._conns)

    async def broadcast(self, payload: dict[str, object]) -> None:
        async with self._lock:
            conns = list(self._conns)

        if not conns:
            return

        dead: list[WebSocket] = []
        for ws in conns:
            try:
                await ws.send_json(payload)
            except Exception:
                dead.append(ws)

        if dead:
            logger.debug("Dropping %s dead websocket(s)", len(dead))
            async with self._lock:
                for ws in dead:
                    self._conns.discard(ws)

    def publish(self, payload: dict[str, object]) -> None:
        """Schedule a broadcast. A no-op when no connection or no running loop."""

        if not self._conns:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(self.broadcast(payload))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
