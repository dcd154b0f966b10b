"""
Dashboard server — HTTP + WebSocket via aiohttp.

  GET /api/config  → public policy view, read once by clients
  GET /ws          → live ``positionUpdate`` stream
  GET /health      → distributor health
  GET /            → static dashboard files, when a static dir is configured
"""
from __future__ import annotations

import asyncio
import contextlib
import logging
from pathlib import Path
from typing import Any

import aiohttp
from aiohttp import web

from ..config import AppConfig
from ..services import Distributor

logger = logging.getLogger(__name__)

CONFIG_KEY = web.AppKey("config", AppConfig)
DISTRIBUTOR_KEY = web.AppKey("distributor", Distributor)
UPDATES_TASK_KEY = web.AppKey("updates_task", asyncio.Task)


class WebSocketSubscriber:
    """Adapts one WebSocket connection to the Subscriber protocol."""

    def __init__(self, ws: web.WebSocketResponse, peer: str = "") -> None:
        self._ws = ws
        self.peer = peer

    async def send(self, event: str, payload: dict[str, Any]) -> None:
        if self._ws.closed:
            raise ConnectionResetError(f"WebSocket to {self.peer or 'client'} is closed")
        await self._ws.send_json({"event": event, "data": payload})

    def __repr__(self) -> str:
        return f"WebSocketSubscriber({self.peer!r})"


async def _handle_config(request: web.Request) -> web.Response:
    return web.json_response(request.app[CONFIG_KEY].policy.public_view())


async def _handle_health(request: web.Request) -> web.Response:
    return web.json_response(request.app[DISTRIBUTOR_KEY].health())


async def _handle_ws(request: web.Request) -> web.WebSocketResponse:
    distributor = request.app[DISTRIBUTOR_KEY]
    ws = web.WebSocketResponse(heartbeat=30.0)
    await ws.prepare(request)

    subscriber = WebSocketSubscriber(ws, peer=request.remote or "")
    distributor.subscribe(subscriber)
    try:
        # Clients only connect and disconnect; inbound frames are ignored.
        async for msg in ws:
            if msg.type == aiohttp.WSMsgType.ERROR:
                logger.warning("WebSocket error from %s: %s", subscriber.peer, ws.exception())
                break
    finally:
        distributor.unsubscribe(subscriber)
    return ws


def _add_static_routes(app: web.Application, static_dir: str) -> None:
    root = Path(static_dir)
    if not root.is_dir():
        logger.warning("Static directory %s not found; not serving files", root)
        return

    index = root / "index.html"
    if index.is_file():
        async def _handle_index(request: web.Request) -> web.FileResponse:
            return web.FileResponse(index)

        app.router.add_get("/", _handle_index)
    app.router.add_static("/", root)


async def _start_updates(app: web.Application) -> None:
    app[UPDATES_TASK_KEY] = asyncio.create_task(app[DISTRIBUTOR_KEY].run())


async def _stop_updates(app: web.Application) -> None:
    task = app.get(UPDATES_TASK_KEY)
    if task is not None:
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
    await app[DISTRIBUTOR_KEY].close()


def create_app(
    config: AppConfig, distributor: Distributor, start_updates: bool = True
) -> web.Application:
    """Build the aiohttp application.

    Args:
        start_updates: run the distributor's timer for the app's lifetime.
    """
    app = web.Application()
    app[CONFIG_KEY] = config
    app[DISTRIBUTOR_KEY] = distributor

    app.router.add_get("/api/config", _handle_config)
    app.router.add_get("/health", _handle_health)
    app.router.add_get("/ws", _handle_ws)
    if config.server.static_dir:
        _add_static_routes(app, config.server.static_dir)

    if start_updates:
        app.on_startup.append(_start_updates)
    app.on_cleanup.append(_stop_updates)
    return app
