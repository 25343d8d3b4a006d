# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
Now-playing sinks.

The controller only ever writes to a NowPlayingPublisher: the current
record, a "cleared" notice when playback stops, and the playing badge.
WebSocketPublisher pushes those to every connected UI client as
``media_update`` messages (same shape the player services use), in the
order they were issued, and replays the last record to new clients.
"""

import asyncio
import base64
import json
import logging
from abc import ABC, abstractmethod
from io import BytesIO

from aiohttp import web
from PIL import Image, ImageOps

from ..models import NowPlayingRecord

log = logging.getLogger(__name__)

ARTWORK_SIZE = 300
BADGE_PLAYING = "▶"


def load_artwork(path: str, size: int = ARTWORK_SIZE) -> bytes | None:
    """Load *path*, crop/scale to a size × size square, return JPEG bytes.

    CPU-bound; run in an executor.  Returns None on failure.
    """
    try:
        with Image.open(path) as image:
            if image.mode in ("RGBA", "LA", "P"):
                image = image.convert("RGB")
            square = ImageOps.fit(image, (size, size))
            buf = BytesIO()
            square.save(buf, "JPEG", quality=85)
            return buf.getvalue()
    except (OSError, ValueError) as e:
        log.warning("Error loading artwork %s: %s", path, e)
        return None


def record_to_dict(record: NowPlayingRecord) -> dict:
    artwork = None
    if record.artwork:
        artwork = "data:image/jpeg;base64," + base64.b64encode(record.artwork).decode("ascii")
    return {
        "title": record.title,
        "artist": record.artist,
        "album": record.album,
        "rate": record.rate,
        "state": "playing" if record.rate > 0 else "paused",
        "artwork": artwork,
    }


class NowPlayingPublisher(ABC):
    """Write-only sink for the OS/UI now-playing surface."""

    @abstractmethod
    def publish(self, record: NowPlayingRecord) -> None: ...

    @abstractmethod
    def clear(self) -> None: ...

    @abstractmethod
    def set_badge(self, playing: bool) -> None: ...


class WebSocketPublisher(NowPlayingPublisher):
    def __init__(self):
        self._ws_clients: set[web.WebSocketResponse] = set()
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self._sender_task: asyncio.Task | None = None
        self._cached_media_data: dict | None = None
        self.badge: str | None = None

    # ── NowPlayingPublisher ──

    def publish(self, record: NowPlayingRecord) -> None:
        data = record_to_dict(record)
        self._cached_media_data = data
        self._enqueue("media_update", "update", data)

    def clear(self) -> None:
        self._cached_media_data = None
        self._enqueue("media_update", "cleared", None)

    def set_badge(self, playing: bool) -> None:
        badge = BADGE_PLAYING if playing else None
        if badge == self.badge:
            return
        self.badge = badge
        self._enqueue("badge", "badge", {"label": badge})

    # ── Generic broadcast (state feed) ──

    def broadcast(self, msg_type: str, data, reason: str = "update") -> None:
        self._enqueue(msg_type, reason, data)

    def _enqueue(self, msg_type: str, reason: str, data):
        message = json.dumps({"type": msg_type, "reason": reason, "data": data})
        self._queue.put_nowait(message)
        if self._sender_task is None or self._sender_task.done():
            self._sender_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self):
        while not self._queue.empty():
            message = self._queue.get_nowait()
            disconnected = set()
            for ws in list(self._ws_clients):
                try:
                    await ws.send_str(message)
                except (ConnectionError, RuntimeError):
                    disconnected.add(ws)
            self._ws_clients -= disconnected

    # ── Client management ──

    @property
    def client_count(self) -> int:
        return len(self._ws_clients)

    async def add_client(self, ws: web.WebSocketResponse):
        self._ws_clients.add(ws)
        log.info("WebSocket client connected (%d total)", len(self._ws_clients))
        if self._cached_media_data:
            try:
                await ws.send_json({
                    "type": "media_update",
                    "reason": "client_connect",
                    "data": self._cached_media_data,
                })
            except (ConnectionError, RuntimeError) as e:
                log.error("Error sending media update: %s", e)

    def remove_client(self, ws: web.WebSocketResponse):
        self._ws_clients.discard(ws)
        log.info("WebSocket client disconnected (%d remaining)", len(self._ws_clients))

    async def close(self):
        if self._sender_task:
            self._sender_task.cancel()
            try:
                await self._sender_task
            except asyncio.CancelledError:
                pass
            self._sender_task = None
        for ws in list(self._ws_clients):
            await ws.close()
        self._ws_clients.clear()
