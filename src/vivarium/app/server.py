from __future__ import annotations

import asyncio
import json
import logging
import math
import os
from collections import deque
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Optional, Set

from fastapi import FastAPI, HTTPException, WebSocket, WebSocketDisconnect
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from ..config import AppConfig, load_app_config
from ..logging_config import setup_logging
from ..sim.core.entity import Entity
from ..sim.core.world import SimulationLoop, log_notifier

logger = logging.getLogger(__name__)


class SimulationController:
    """Relays creature descriptors between viewers and drives the shared environment."""

    def __init__(self, config: AppConfig):
        self.config = config
        self.world = SimulationLoop(config.simulation, notifier=self._queue_notification)
        self.broadcast_interval = max(1, config.broadcast_interval)
        self.running = False
        self.tick = 0
        self.speed_multiplier = 1.0
        self.clients: Set[Any] = set()
        self._notifications: deque[Dict[str, str]] = deque(maxlen=32)
        self._admissions: Set[asyncio.Task] = set()
        self._lock = asyncio.Lock()
        self._loop_task: asyncio.Task | None = None

    async def start(self) -> None:
        if self._loop_task is None:
            self._loop_task = asyncio.create_task(self._loop())
        self.running = True
        self.world.resume()

    async def stop(self) -> None:
        self.running = False
        self.world.pause()

    async def clear(self) -> int:
        async with self._lock:
            removed = self.world.clear()
        await self._flush_notifications()
        await self._broadcast_snapshot()
        return removed

    async def _loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.simulation.time_step / self.speed_multiplier)
            if not self.running:
                continue
            async with self._lock:
                self.world.step()
                self.tick += 1
            if self.tick % self.broadcast_interval == 0:
                await self._broadcast_snapshot()
            await self._flush_notifications()

    async def admit(self, payload: Dict[str, Any]) -> Optional[Entity]:
        entity = await self.world.admit_descriptor(payload)
        await self._flush_notifications()
        return entity

    def schedule_admission(self, payload: Dict[str, Any]) -> asyncio.Task:
        task = asyncio.create_task(self.admit(payload))
        self._admissions.add(task)
        task.add_done_callback(self._admissions.discard)
        return task

    async def relay(self, sender: Any, payload: Dict[str, Any]) -> asyncio.Task:
        """Forward a created creature to every other viewer and spawn it locally."""
        await self._broadcast({"type": "new-cube", "payload": payload}, exclude=sender)
        logger.info("Creature relayed to %d viewer(s)", max(0, len(self.clients) - 1))
        return self.schedule_admission(payload)

    async def handle_message(self, sender: Any, message: str) -> None:
        try:
            payload = json.loads(message)
        except json.JSONDecodeError:
            return
        if not isinstance(payload, dict):
            return
        kind = payload.get("type")
        if kind == "cube-created" and isinstance(payload.get("payload"), dict):
            await self.relay(sender, payload["payload"])
        elif kind == "tickle":
            entity_id = payload.get("id")
            if isinstance(entity_id, int):
                self.world.tickle(entity_id)

    def _queue_notification(self, message: str, level: str) -> None:
        log_notifier(message, level)
        if self.config.notify_clients:
            self._notifications.append({"type": "notification", "level": level, "message": message})

    async def _flush_notifications(self) -> None:
        while self._notifications:
            await self._broadcast(self._notifications.popleft())

    def _serialize_snapshot(self) -> Dict[str, Any]:
        snapshot = self.world.snapshot()
        return {
            "type": "snapshot",
            "tick": self.tick,
            "payload": {
                "frame": snapshot.frame,
                "metrics": asdict(snapshot.metrics),
                "entities": snapshot.entities,
                "bounds": asdict(snapshot.bounds),
                "metadata": asdict(snapshot.metadata),
            },
        }

    async def _broadcast_snapshot(self) -> None:
        if not self.clients:
            return
        await self._broadcast(self._serialize_snapshot())

    async def _broadcast(self, message: Dict[str, Any], exclude: Any = None) -> None:
        text = json.dumps(message)
        stale: Set[Any] = set()
        for client in list(self.clients):
            if client is exclude:
                continue
            try:
                await client.send_text(text)
            except (WebSocketDisconnect, RuntimeError):
                stale.add(client)
        for client in stale:
            self.clients.discard(client)


def _load_config() -> AppConfig:
    path = os.environ.get("VIVARIUM_CONFIG")
    if path:
        return load_app_config(Path(path))
    return AppConfig()


app = FastAPI(title="Vivarium Shared Environment")
controller = SimulationController(_load_config())
app.mount(
    "/assets",
    StaticFiles(directory=controller.config.simulation.assets.root, check_dir=False),
    name="assets",
)


@app.on_event("startup")
async def _startup() -> None:
    setup_logging()
    await controller.start()


@app.get("/api/status")
async def status() -> JSONResponse:
    snapshot = controller.world.snapshot()
    return JSONResponse(
        {
            "running": controller.running,
            "tick": controller.tick,
            "viewers": len(controller.clients),
            "stats": controller.world.stats(),
            "metrics": asdict(snapshot.metrics),
        }
    )


@app.post("/api/creatures", status_code=202)
async def create_creature(payload: dict) -> JSONResponse:
    await controller.relay(None, payload)
    return JSONResponse({"accepted": True}, status_code=202)


@app.post("/api/control/start")
async def start_simulation() -> JSONResponse:
    await controller.start()
    return JSONResponse({"running": True})


@app.post("/api/control/stop")
async def stop_simulation() -> JSONResponse:
    await controller.stop()
    return JSONResponse({"running": False})


@app.post("/api/control/clear")
async def clear_simulation() -> JSONResponse:
    removed = await controller.clear()
    return JSONResponse({"removed": removed})


@app.post("/api/control/speed")
async def set_speed(payload: dict) -> JSONResponse:
    try:
        speed = float(payload.get("multiplier", 1.0))
    except (TypeError, ValueError):
        raise HTTPException(status_code=422, detail="multiplier must be a number")
    if not math.isfinite(speed):
        raise HTTPException(status_code=422, detail="multiplier must be finite")
    controller.speed_multiplier = max(0.1, min(5.0, speed))
    return JSONResponse({"multiplier": controller.speed_multiplier})


@app.post("/api/entities/{entity_id}/tickle")
async def tickle_entity(entity_id: int) -> JSONResponse:
    if not controller.world.tickle(entity_id):
        raise HTTPException(status_code=404, detail="unknown entity")
    return JSONResponse({"tickled": entity_id})


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket) -> None:
    await websocket.accept()
    controller.clients.add(websocket)
    logger.info("Viewer connected")
    try:
        while True:
            message = await websocket.receive_text()
            await controller.handle_message(websocket, message)
    except WebSocketDisconnect:
        controller.clients.discard(websocket)
        logger.info("Viewer disconnected")


__all__ = ["app", "controller", "SimulationController"]
