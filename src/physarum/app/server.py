from __future__ import annotations

import asyncio
import json
import logging
import os
from collections import deque
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, Set

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse

from ..config import SimulationConfig
from ..sim.core.world import World

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class QueuedSnapshot:
    step: int
    payload: str


class SimulationController:
    def __init__(
        self,
        config: SimulationConfig,
        broadcast_interval: int = 1,
        frame_seconds: float = 1.0 / 30.0,
        max_queued_snapshots: int = 64,
    ):
        self.config = config
        self.world = World(config)
        self.broadcast_interval = max(1, broadcast_interval)
        self.frame_seconds = frame_seconds
        self.running = False
        self.speed_multiplier = 1.0
        self.clients: Set[WebSocket] = set()
        self._client_last_sent: Dict[WebSocket, int] = {}
        self._snapshot_queue: deque[QueuedSnapshot] = deque(maxlen=max(1, max_queued_snapshots))
        self._lock = asyncio.Lock()
        self._queue_lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    @property
    def step(self) -> int:
        return self.world.steps_taken

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
        self.running = True

    async def stop(self) -> None:
        self.running = False

    async def reset(self) -> None:
        async with self._lock:
            self.world.reset()
        async with self._queue_lock:
            self._snapshot_queue.clear()
        for client in self._client_last_sent:
            self._client_last_sent[client] = -1
        await self._broadcast_snapshot()

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.frame_seconds / self.speed_multiplier)
            if not self.running:
                continue
            if self.step >= self.config.step_count:
                logger.info("reached %d steps, pausing", self.step)
                self.running = False
                continue
            async with self._lock:
                self.world.step()
            if self.step % self.broadcast_interval == 0:
                await self._broadcast_snapshot()

    async def acknowledge(self, step: int) -> None:
        async with self._queue_lock:
            while self._snapshot_queue and self._snapshot_queue[0].step <= step:
                self._snapshot_queue.popleft()

    def _serialize_snapshot(self) -> QueuedSnapshot:
        snapshot = self.world.snapshot()
        payload = {
            "type": "snapshot",
            "step": snapshot.step,
            "payload": {
                "field": snapshot.to_payload(),
                "metrics": asdict(snapshot.metrics) if snapshot.metrics is not None else None,
                "metadata": asdict(snapshot.metadata),
            },
        }
        return QueuedSnapshot(step=snapshot.step, payload=json.dumps(payload))

    async def _send_pending_snapshots(self, client: WebSocket) -> None:
        last_sent = self._client_last_sent.get(client, -1)
        async with self._queue_lock:
            pending = [item for item in self._snapshot_queue if item.step > last_sent]
        for item in pending:
            await client.send_text(item.payload)
            last_sent = item.step
        self._client_last_sent[client] = last_sent

    async def _broadcast_snapshot(self) -> None:
        # Unacked snapshots are only kept while someone can receive them.
        if not self.clients:
            return
        queued = self._serialize_snapshot()
        async with self._queue_lock:
            self._snapshot_queue.append(queued)
        stale: Set[WebSocket] = set()
        for client in list(self.clients):
            try:
                await self._send_pending_snapshots(client)
            except WebSocketDisconnect:
                stale.add(client)
        for client in stale:
            self.clients.discard(client)
            self._client_last_sent.pop(client, None)


def _load_server_config() -> SimulationConfig:
    path = os.environ.get("PHYSARUM_CONFIG")
    if path:
        return SimulationConfig.from_yaml(Path(path))
    return SimulationConfig(width=128, height=128, agent_count=2000)


app = FastAPI(title="Physarum Trail Simulation")
controller = SimulationController(_load_server_config())


@app.on_event("startup")
async def _startup() -> None:
    await controller.start()


@app.get("/api/status")
async def status() -> JSONResponse:
    metrics = controller.world.metrics
    return JSONResponse(
        {
            "running": controller.running,
            "step": controller.step,
            "agents": len(controller.world.agents),
            "metrics": asdict(metrics) if metrics is not None else None,
        }
    )


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    controller.running = True
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    controller.running = False
    return JSONResponse({"running": False})


@app.post("/api/control/reset")
async def reset_simulation() -> JSONResponse:
    await controller.reset()
    return JSONResponse({"running": controller.running, "step": controller.step})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    speed = float(payload.get("multiplier", 1.0))
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    controller._client_last_sent[websocket] = -1
    await controller._broadcast_snapshot()
    try:
        while True:
            message = await websocket.receive_text()
            try:
                payload = json.loads(message)
            except json.JSONDecodeError:
                continue
            if payload.get("type") == "ack":
                step = payload.get("step")
                if isinstance(step, int):
                    await controller.acknowledge(step)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        controller._client_last_sent.pop(websocket, None)


__all__ = ["app", "controller"]
