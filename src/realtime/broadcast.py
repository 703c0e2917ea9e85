"""
Realtime Broadcast Channel
===========================
Shared WebSocket fan-out for live dashboard widgets.

Per connection: Connecting -> Open -> Closed.
- On open the client receives a ``connected`` acknowledgement
- Every inbound JSON message is echoed back in an ``echo`` envelope
- A single process-wide loop pushes an ``iot_update`` reading to every open
  client each interval; clients that are not open are skipped, never queued

There is no replay: a client that misses a tick misses it for good.
"""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Sequence, Set

import numpy as np
from fastapi import WebSocket, WebSocketDisconnect
from loguru import logger
from pydantic import Field
from starlette.websockets import WebSocketState

from entity_store import CamelModel

CONNECTED_MESSAGE = "Connected to digital twin platform"


class IotReading(CamelModel):
    """Synthetic sensor reading pushed with each tick."""
    device_id: int
    value: float
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


Sampler = Callable[[], IotReading]


def uniform_sampler(
    device_ids: Sequence[int] = (1, 2, 3, 4),
    value_min: float = 0.0,
    value_max: float = 100.0,
    rng: Optional[np.random.Generator] = None,
) -> Sampler:
    """
    Build the default sampler.

    Picks a device uniformly from ``device_ids`` and a value uniformly from
    ``[value_min, value_max)``.
    """
    if not device_ids:
        raise ValueError("device_ids must not be empty")
    if value_max < value_min:
        raise ValueError("value_max must be >= value_min")

    generator = rng or np.random.default_rng()
    ids = list(device_ids)

    def sample() -> IotReading:
        return IotReading(
            device_id=int(ids[int(generator.integers(0, len(ids)))]),
            value=float(generator.uniform(value_min, value_max)),
        )

    return sample


def _is_open(websocket: WebSocket) -> bool:
    return (
        websocket.client_state == WebSocketState.CONNECTED
        and websocket.application_state == WebSocketState.CONNECTED
    )


class BroadcastChannel:
    """
    Connection registry and periodic broadcaster for the ``/ws`` endpoint.

    The tick loop runs on the event loop, and each tick iterates a snapshot
    of the client set so connects/disconnects during a send are harmless.
    """

    def __init__(self, interval_s: float = 5.0, sampler: Optional[Sampler] = None):
        """
        Args:
            interval_s: Seconds between broadcast ticks
            sampler: Reading source (defaults to ``uniform_sampler()``)
        """
        if interval_s <= 0:
            raise ValueError("interval_s must be positive")

        self.interval_s = interval_s
        self.sampler = sampler or uniform_sampler()
        self.clients: Set[WebSocket] = set()

        self._task: Optional[asyncio.Task] = None
        self._tick_count = 0

    @property
    def tick_count(self) -> int:
        return self._tick_count

    # -------------------------------------------------------------------------
    # Connection lifecycle
    # -------------------------------------------------------------------------

    async def connect(self, websocket: WebSocket) -> bool:
        """
        Accept the socket, register it and send the acknowledgement.

        Returns:
            False if the peer went away before the acknowledgement was sent
        """
        await websocket.accept()
        self.clients.add(websocket)
        logger.info(f"WebSocket client connected. Total clients: {len(self.clients)}")
        try:
            await websocket.send_text(json.dumps({"type": "connected", "message": CONNECTED_MESSAGE}))
        except Exception as e:
            logger.warning(f"Dropping client after failed acknowledgement: {e}")
            self.disconnect(websocket)
            return False
        return True

    def disconnect(self, websocket: WebSocket) -> None:
        if websocket in self.clients:
            self.clients.discard(websocket)
            logger.info(f"WebSocket client disconnected. Total clients: {len(self.clients)}")

    async def handle_message(self, websocket: WebSocket, raw: str) -> None:
        """Echo a JSON message back to its sender; log and drop anything else."""
        try:
            message: Any = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Ignoring malformed WebSocket message: {e}")
            return

        logger.debug(f"Received WebSocket message: {message}")
        await websocket.send_text(json.dumps({"type": "echo", "data": message}))

    async def serve(self, websocket: WebSocket) -> None:
        """Run one connection from accept until either side closes it."""
        try:
            if not await self.connect(websocket):
                return
            while True:
                frame = await websocket.receive()
                if frame["type"] == "websocket.disconnect":
                    break
                raw = frame.get("text")
                if raw is None and frame.get("bytes") is not None:
                    raw = frame["bytes"].decode("utf-8", errors="replace")
                if raw is not None:
                    await self.handle_message(websocket, raw)
        except WebSocketDisconnect:
            pass
        finally:
            self.disconnect(websocket)

    # -------------------------------------------------------------------------
    # Broadcasting
    # -------------------------------------------------------------------------

    def build_update(self) -> Dict[str, Any]:
        """Sample one reading and wrap it in an ``iot_update`` envelope."""
        reading = self.sampler()
        return {"type": "iot_update", "data": reading.model_dump(mode="json", by_alias=True)}

    async def tick(self) -> int:
        """
        Send one reading to every open client.

        Returns:
            Number of clients the update was sent to
        """
        self._tick_count += 1
        if not self.clients:
            return 0

        message = json.dumps(self.build_update())
        sent = 0
        closed = set()

        for client in list(self.clients):
            # State check is not atomic with the send below
            if not _is_open(client):
                continue
            try:
                await client.send_text(message)
                sent += 1
            except Exception as e:
                logger.warning(f"Dropping client after failed send: {e}")
                closed.add(client)

        self.clients -= closed
        return sent

    async def run_loop(self) -> None:
        """Tick every ``interval_s`` until cancelled; a failed tick is logged and skipped."""
        logger.info(f"Broadcast loop started (interval={self.interval_s}s)")
        while True:
            await asyncio.sleep(self.interval_s)
            try:
                await self.tick()
            except Exception:
                logger.exception("Broadcast tick failed")

    def start(self) -> None:
        """Start the process-wide broadcast task (idempotent)."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run_loop())

    async def stop(self) -> None:
        """Cancel the broadcast task."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
            logger.info("Broadcast loop stopped")
