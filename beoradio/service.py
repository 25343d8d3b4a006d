# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
RadioService — HTTP + WebSocket front for the playback controller.

Intents come in as HTTP POSTs; state goes out as JSON and as WebSocket
pushes.  The service constructs and owns exactly one PlaybackController and
passes it to nothing but its own route handlers.

    POST /player/play       POST /player/pause     POST /player/stop
    POST /player/toggle     POST /player/refresh
    POST /player/stream     {"stream": "radio-t"}
    POST /player/volume     {"volume": 0.4}
    GET  /player/state      GET  /player/streams
    GET  /ws                ← state_update / media_update / badge pushes
"""

import asyncio
import logging
import math
import signal

import aiohttp
from aiohttp import web

from .catalog import StreamCatalog
from .controller import (
    DEFAULT_USER_AGENT,
    PREFLIGHT_TIMEOUT,
    REFRESH_INTERVAL,
    PlaybackController,
    RestartPolicy,
)
from .errors import UnknownStreamError
from .lib.config import cfg, cfg_number
from .lib.engine import EngineFactory, create_engine_factory
from .lib.now_playing import ARTWORK_SIZE, WebSocketPublisher, load_artwork
from .lib.volume_store import VolumeStore
from .metadata import create_metadata_acquisition
from .models import PlayerSnapshot

log = logging.getLogger(__name__)

DEFAULT_PORT = 8780


class RadioService:
    def __init__(self, *, port: int | None = None,
                 engine_factory: EngineFactory | None = None,
                 catalog: StreamCatalog | None = None,
                 volume_store: VolumeStore | None = None):
        if port is None:
            port = cfg_number("port", default=DEFAULT_PORT, cast=int)
        self.port = port
        self._engine_factory = engine_factory
        self._catalog = catalog
        self._volume_store = volume_store
        self._runner: web.AppRunner | None = None
        self._http_session: aiohttp.ClientSession | None = None
        self.publisher: WebSocketPublisher | None = None
        self.controller: PlaybackController | None = None
        self._unsubscribe = None

    # ── Wiring ──

    async def setup(self) -> web.Application:
        """Build the controller and the aiohttp app (no listening socket yet)."""
        user_agent = cfg("user_agent", default=DEFAULT_USER_AGENT)
        self._http_session = aiohttp.ClientSession()
        self.publisher = WebSocketPublisher()
        self.controller = PlaybackController(
            catalog=self._catalog or StreamCatalog.from_config(),
            engine_factory=self._engine_factory or create_engine_factory(),
            metadata=create_metadata_acquisition(self._http_session, user_agent),
            session=self._http_session,
            publisher=self.publisher,
            volume_store=self._volume_store or VolumeStore(),
            user_agent=user_agent,
            preflight_timeout=cfg_number("preflight", "timeout", default=PREFLIGHT_TIMEOUT),
            refresh_interval=cfg_number("metadata", "refresh_interval", default=REFRESH_INTERVAL),
            restart_policy=RestartPolicy.from_config(),
        )
        self._unsubscribe = self.controller.subscribe(self._on_state_change)

        artwork_path = cfg("artwork", "path")
        if artwork_path:
            size = cfg_number("artwork", "size", default=ARTWORK_SIZE, cast=int)
            loop = asyncio.get_running_loop()
            artwork = await loop.run_in_executor(None, load_artwork, artwork_path, size)
            self.controller.set_artwork(artwork)

        return self.create_app()

    def create_app(self) -> web.Application:
        app = web.Application(middlewares=[self._error_middleware])
        app.router.add_get("/ws", self._handle_ws)
        app.router.add_post("/player/play", self._handle_play)
        app.router.add_post("/player/pause", self._handle_pause)
        app.router.add_post("/player/stop", self._handle_stop)
        app.router.add_post("/player/toggle", self._handle_toggle)
        app.router.add_post("/player/refresh", self._handle_refresh)
        app.router.add_post("/player/stream", self._handle_stream)
        app.router.add_post("/player/volume", self._handle_volume)
        app.router.add_get("/player/state", self._handle_state)
        app.router.add_get("/player/streams", self._handle_streams)
        app.router.add_route("OPTIONS", "/player/{tail:.*}", self._handle_cors)
        return app

    def _on_state_change(self, snapshot: PlayerSnapshot):
        self.publisher.broadcast("state_update", snapshot.to_dict())

    # ── Lifecycle ──

    async def start(self):
        app = await self.setup()
        self._runner = web.AppRunner(app)
        await self._runner.setup()
        site = web.TCPSite(self._runner, "0.0.0.0", self.port)
        await site.start()
        log.info("Radio: HTTP + WebSocket on port %d (stream %s, volume %.2f)",
                 self.port, self.controller.current_stream.title, self.controller.volume)

    async def run(self):
        """Convenience entry-point: start + wait for signal + stop."""
        await self.start()
        stop_event = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, stop_event.set)
        try:
            await stop_event.wait()
        finally:
            await self.shutdown()

    async def shutdown(self):
        """Clean up resources."""
        if self._unsubscribe:
            self._unsubscribe()
            self._unsubscribe = None
        if self.controller:
            await self.controller.shutdown()
        if self.publisher:
            await self.publisher.close()
        if self._http_session:
            await self._http_session.close()
            self._http_session = None
        if self._runner:
            await self._runner.cleanup()
            self._runner = None

    # ── WebSocket handler ──

    async def _handle_ws(self, request: web.Request) -> web.WebSocketResponse:
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        await self.publisher.add_client(ws)
        try:
            await ws.send_json({
                "type": "state_update",
                "reason": "client_connect",
                "data": self.controller.snapshot().to_dict(),
            })
            # Push-only, incoming messages are ignored
            async for _msg in ws:
                pass
        finally:
            self.publisher.remove_client(ws)
        return ws

    # ── HTTP route handlers ──

    def _cors_headers(self):
        return {
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type",
        }

    def _ok(self) -> web.Response:
        return web.json_response(
            {"status": "ok", "state": self.controller.snapshot().to_dict()},
            headers=self._cors_headers())

    def _error(self, message: str, status: int = 400) -> web.Response:
        return web.json_response(
            {"status": "error", "message": message},
            status=status, headers=self._cors_headers())

    @web.middleware
    async def _error_middleware(self, request: web.Request, handler):
        try:
            return await handler(request)
        except web.HTTPException:
            raise
        except Exception as e:
            log.exception("Command error")
            return self._error(str(e), status=500)

    async def _json_body(self, request: web.Request) -> dict:
        try:
            data = await request.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def _handle_cors(self, request: web.Request) -> web.Response:
        return web.Response(headers=self._cors_headers())

    async def _handle_play(self, request: web.Request) -> web.Response:
        self.controller.play()
        return self._ok()

    async def _handle_pause(self, request: web.Request) -> web.Response:
        self.controller.pause()
        return self._ok()

    async def _handle_stop(self, request: web.Request) -> web.Response:
        self.controller.stop()
        return self._ok()

    async def _handle_toggle(self, request: web.Request) -> web.Response:
        self.controller.play_pause()
        return self._ok()

    async def _handle_refresh(self, request: web.Request) -> web.Response:
        self.controller.refresh_metadata()
        return self._ok()

    async def _handle_stream(self, request: web.Request) -> web.Response:
        data = await self._json_body(request)
        stream_id = data.get("stream")
        if not isinstance(stream_id, str):
            return self._error("Missing 'stream'")
        try:
            self.controller.switch_stream(stream_id)
        except UnknownStreamError as e:
            return self._error(str(e))
        return self._ok()

    async def _handle_volume(self, request: web.Request) -> web.Response:
        data = await self._json_body(request)
        value = data.get("volume")
        if isinstance(value, bool) or not isinstance(value, (int, float)) \
                or not math.isfinite(value):
            return self._error("'volume' must be a number")
        self.controller.set_volume(float(value))
        return self._ok()

    async def _handle_state(self, request: web.Request) -> web.Response:
        return web.json_response(self.controller.snapshot().to_dict(),
                                 headers=self._cors_headers())

    async def _handle_streams(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"default": self.controller.catalog.default_id,
             "streams": [s.to_dict() for s in self.controller.catalog]},
            headers=self._cors_headers())


def main():
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    service = RadioService()
    asyncio.run(service.run())


if __name__ == "__main__":
    main()
