# BeoSound 5c
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""
PlaybackController — the playback state machine.

One controller owns one playback session at a time: the media engine, the
metadata refresh timer, the in-flight metadata fetch and the published
state.  All of it lives on the asyncio event loop:

  - intents (play, pause, stop, play_pause, switch_stream, set_volume,
    refresh_metadata) are plain methods called on the loop; they change
    state immediately and spawn tasks for anything slow
  - every spawned task remembers the session generation it was started
    for; stop/switch/restart bump the generation, so late completions and
    events from a torn-down engine are dropped instead of applied
  - engine teardown runs as a task; the next startup awaits it before a new
    engine is constructed

States:

    STOPPED ──play──▶ PREFLIGHTING ──live──▶ LOADING ──ready──▶ PLAYING ⇄ PAUSED
       ▲                   │ not live                ▲              │
       └───────────────────┘                         └──── ended ───┘
    any ──engine failure──▶ FAILED          any ──stop──▶ STOPPED
"""

import asyncio
import functools
import logging
from typing import Callable

import aiohttp

from .catalog import StreamCatalog
from .errors import EngineFailed, PreflightFailed, RadioError
from .lib.config import cfg_number
from .lib.engine import EngineEvent, EngineEventKind, EngineFactory, MediaEngine
from .lib.now_playing import NowPlayingPublisher
from .lib.volume_store import VolumeStore, clamp_volume
from .metadata import MetadataAcquisition
from .models import (
    NowPlayingRecord,
    PlaybackState,
    PlayerSnapshot,
    StreamDescriptor,
    TrackInfo,
)

log = logging.getLogger(__name__)

DEFAULT_USER_AGENT = "Radio/1.0 (beoradio)"
PREFLIGHT_TIMEOUT = 4.0
REFRESH_INTERVAL = 10.0
LIVE_STATUSES = range(200, 207)

StateCallback = Callable[[PlayerSnapshot], None]


class RestartPolicy:
    """What to do when a stream that should be infinite reaches its end.

    max_consecutive_restarts: None means restart forever.  The count is
    reset whenever the user starts playback.
    backoff: seconds to wait before each restart.
    """

    def __init__(self, max_consecutive_restarts: int | None = None, backoff: float = 0.0):
        self.max_consecutive_restarts = max_consecutive_restarts
        self.backoff = backoff

    @classmethod
    def from_config(cls) -> "RestartPolicy":
        limit = cfg_number("restart", "max_consecutive", default=None, cast=int)
        if limit is not None and limit < 0:
            limit = None
        return cls(
            max_consecutive_restarts=limit,
            backoff=max(0.0, cfg_number("restart", "backoff", default=0.0)),
        )

    def allows(self, restarts_so_far: int) -> bool:
        if self.max_consecutive_restarts is None:
            return True
        return restarts_so_far < self.max_consecutive_restarts


class PlaybackController:
    def __init__(
        self,
        catalog: StreamCatalog,
        engine_factory: EngineFactory,
        metadata: MetadataAcquisition,
        session: aiohttp.ClientSession,
        publisher: NowPlayingPublisher,
        volume_store: VolumeStore,
        *,
        user_agent: str = DEFAULT_USER_AGENT,
        preflight_timeout: float = PREFLIGHT_TIMEOUT,
        refresh_interval: float = REFRESH_INTERVAL,
        restart_policy: RestartPolicy | None = None,
    ):
        self.catalog = catalog
        self._engine_factory = engine_factory
        self._metadata = metadata
        self._session = session
        self._publisher = publisher
        self._volume_store = volume_store
        self.user_agent = user_agent
        self.preflight_timeout = preflight_timeout
        self.refresh_interval = refresh_interval
        self.restart_policy = restart_policy or RestartPolicy()

        self._stream: StreamDescriptor = catalog.default
        self._state = PlaybackState.STOPPED
        self._error: RadioError | None = None
        self._track = TrackInfo()
        self._volume = volume_store.load()
        self._artwork: bytes | None = None

        self._engine: MediaEngine | None = None
        self._generation = 0
        self._restarts = 0
        self._ticket = 0
        self._applied_ticket = 0

        self._preflight_task: asyncio.Task | None = None
        self._startup_task: asyncio.Task | None = None
        self._timer_task: asyncio.Task | None = None
        self._fetch_task: asyncio.Task | None = None
        self._teardown_task: asyncio.Task | None = None

        self._subscribers: list[StateCallback] = []

    # ── Observable state ──

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def is_playing(self) -> bool:
        return self._state is PlaybackState.PLAYING

    @property
    def is_loading(self) -> bool:
        return self._state in (PlaybackState.PREFLIGHTING, PlaybackState.LOADING)

    @property
    def error_message(self) -> str | None:
        return self._error.message if self._error else None

    @property
    def current_stream(self) -> StreamDescriptor:
        return self._stream

    @property
    def current_track_info(self) -> TrackInfo:
        return self._track

    @property
    def volume(self) -> float:
        return self._volume

    @property
    def engine(self) -> MediaEngine | None:
        return self._engine

    def snapshot(self) -> PlayerSnapshot:
        return PlayerSnapshot(
            state=self._state,
            is_playing=self.is_playing,
            is_loading=self.is_loading,
            error_message=self.error_message,
            error_kind=self._error.kind if self._error else None,
            stream=self._stream,
            track=self._track,
            volume=self._volume,
        )

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Call *callback* with a snapshot after every change.  Returns unsubscribe."""
        self._subscribers.append(callback)

        def unsubscribe():
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def set_artwork(self, artwork: bytes | None):
        """Default artwork for the now-playing record."""
        self._artwork = artwork
        self._publish_now_playing()

    # ── Intents ──

    def play(self):
        if self._state in (PlaybackState.PLAYING, PlaybackState.PREFLIGHTING,
                           PlaybackState.LOADING):
            return

        if self._state is PlaybackState.PAUSED and self._engine is not None:
            self._engine.resume()
            self._transition(PlaybackState.PLAYING)
            self._publish_now_playing()
            self.refresh_metadata()
            return

        self._restarts = 0
        self._error = None
        stream = self._stream
        if stream.requires_preflight:
            self._transition(PlaybackState.PREFLIGHTING)
            self._preflight_task = self._spawn(self._preflight(stream, self._generation))
        else:
            self._start_loading()

    def pause(self):
        if self._state is not PlaybackState.PLAYING or self._engine is None:
            return
        self._engine.pause()
        self._transition(PlaybackState.PAUSED)
        self._publish_now_playing()

    def play_pause(self):
        if self.is_playing:
            self.pause()
        else:
            self.play()

    def stop(self):
        self._teardown_session()
        self._track = TrackInfo()
        self._transition(PlaybackState.STOPPED)
        self._publisher.clear()
        self._publisher.set_badge(False)

    def switch_stream(self, stream_id: str):
        """Select another stream; restart playback if a session was active."""
        stream = self.catalog.get(stream_id)
        resume = self._state in (PlaybackState.PLAYING, PlaybackState.LOADING,
                                 PlaybackState.PREFLIGHTING)
        if self._state is not PlaybackState.STOPPED and self._state is not PlaybackState.FAILED:
            self.stop()
        self._stream = stream
        log.info("Stream → %s%s", stream.title, " (restarting)" if resume else "")
        if resume:
            self.play()
        else:
            self._notify()

    def set_volume(self, value: float):
        volume = clamp_volume(value)
        self._volume = volume
        if self._engine is not None:
            self._engine.set_volume(volume)
        self._volume_store.save(volume)
        self._notify()

    def refresh_metadata(self):
        """Start one metadata fetch for the current stream (cancels the previous one)."""
        if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return
        if self._fetch_task is not None:
            self._fetch_task.cancel()
        self._fetch_task = self._spawn(
            self._fetch_metadata(self._stream, self._next_ticket(), self._generation))

    async def shutdown(self):
        self.stop()
        if self._teardown_task is not None:
            await asyncio.shield(self._teardown_task)

    # ── Preflight ──

    async def probe_live(self, stream: StreamDescriptor) -> bool:
        """True when the stream answers 200–206 within the preflight timeout."""
        try:
            async with self._session.get(
                stream.url,
                headers={"Range": "bytes=0-1", "User-Agent": self.user_agent},
                timeout=aiohttp.ClientTimeout(total=self.preflight_timeout),
            ) as resp:
                live = resp.status in LIVE_STATUSES
                log.info("Preflight %s: HTTP %d (%s)", stream.id, resp.status,
                         "live" if live else "not live")
                return live
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            log.info("Preflight %s failed: %r", stream.id, e)
            return False

    async def _preflight(self, stream: StreamDescriptor, gen: int):
        live = await self.probe_live(stream)
        if gen != self._generation:
            return
        self._preflight_task = None
        if live:
            self._start_loading()
        else:
            self._error = PreflightFailed(stream.id)
            self._transition(PlaybackState.STOPPED)

    # ── Engine lifecycle ──

    def _start_loading(self, delay: float = 0.0):
        self._track = TrackInfo()
        self._transition(PlaybackState.LOADING)
        self._startup_task = self._spawn(
            self._start_engine(self._stream, self._generation, delay))

    async def _start_engine(self, stream: StreamDescriptor, gen: int, delay: float):
        if delay:
            await asyncio.sleep(delay)
        if self._teardown_task is not None:
            await asyncio.shield(self._teardown_task)
        if gen != self._generation:
            return

        try:
            engine = self._engine_factory(
                stream.url, {"User-Agent": self.user_agent},
                functools.partial(self._on_engine_event, gen))
            self._engine = engine
            engine.set_volume(self._volume)
            await engine.start()
        except EngineFailed as e:
            if gen == self._generation:
                self._fail(e)
            return
        except Exception as e:
            log.exception("Engine startup error")
            if gen == self._generation:
                self._fail(EngineFailed(str(e)))
            return

        if gen != self._generation:
            return
        self._startup_task = None
        self._timer_task = self._spawn(self._refresh_loop(gen))
        log.info("Engine started for %s", stream.title)

    def _on_engine_event(self, gen: int, event: EngineEvent):
        if gen != self._generation:
            log.debug("Dropping %s from a torn-down engine", event.kind.value)
            return
        if event.kind is EngineEventKind.READY:
            self._on_ready()
        elif event.kind is EngineEventKind.ENDED:
            self._on_ended()
        elif event.kind is EngineEventKind.FAILED:
            self._fail(EngineFailed(event.reason or "unknown error"))
        elif event.kind is EngineEventKind.METADATA:
            self._apply_track(self._metadata.from_embedded(event.values),
                              self._next_ticket(), gen)

    def _on_ready(self):
        if self._state is not PlaybackState.LOADING:
            return
        self._transition(PlaybackState.PLAYING)
        self._publish_now_playing()
        self.refresh_metadata()

    def _on_ended(self):
        if self._state not in (PlaybackState.PLAYING, PlaybackState.LOADING):
            return
        if not self.restart_policy.allows(self._restarts):
            log.warning("Stream ended %d times in a row — giving up", self._restarts)
            self._fail(EngineFailed("stream ended"))
            return
        self._restarts += 1
        log.info("Stream ended — restarting (%d)", self._restarts)
        self._teardown_session()
        self._start_loading(self.restart_policy.backoff)

    def _fail(self, error: EngineFailed):
        log.error("%s", error.message)
        self._teardown_session()
        self._track = TrackInfo()
        self._error = error
        self._transition(PlaybackState.FAILED)
        self._publisher.clear()
        self._publisher.set_badge(False)

    def _teardown_session(self):
        """Invalidate the current session and hand its engine to a teardown task."""
        self._generation += 1
        for name in ("_preflight_task", "_startup_task", "_timer_task", "_fetch_task"):
            task = getattr(self, name)
            if task is not None:
                task.cancel()
                setattr(self, name, None)
        engine, self._engine = self._engine, None
        if engine is not None:
            self._teardown_task = self._spawn(self._close_engine(engine, self._teardown_task))

    async def _close_engine(self, engine: MediaEngine, previous: asyncio.Task | None):
        if previous is not None:
            await asyncio.shield(previous)
        try:
            await engine.close()
        except Exception:
            log.exception("Engine teardown error")

    # ── Metadata ──

    async def _refresh_loop(self, gen: int):
        while gen == self._generation:
            await asyncio.sleep(self.refresh_interval)
            if self._state is PlaybackState.PLAYING:
                self.refresh_metadata()

    async def _fetch_metadata(self, stream: StreamDescriptor, ticket: int, gen: int):
        track = await self._metadata.refresh(stream)
        if self._fetch_task is asyncio.current_task():
            self._fetch_task = None
        self._apply_track(track, ticket, gen)

    def _next_ticket(self) -> int:
        self._ticket += 1
        return self._ticket

    def _apply_track(self, track: TrackInfo | None, ticket: int, gen: int):
        """The single place track info changes after a metadata result."""
        if track is None or gen != self._generation:
            return
        if ticket <= self._applied_ticket:
            log.debug("Dropping stale metadata #%d (have #%d)", ticket, self._applied_ticket)
            return
        self._applied_ticket = ticket
        if track != self._track:
            log.info("Now playing: %s — %s", track.artist or "—", track.title or "—")
        self._track = track
        self._notify()
        self._publish_now_playing()

    # ── Publishing ──

    def _transition(self, state: PlaybackState):
        if state is not self._state:
            log.info("%s → %s", self._state.value, state.value)
        self._state = state
        self._notify()

    def _notify(self):
        snapshot = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception:
                log.exception("State subscriber failed")

    def _publish_now_playing(self):
        if self._state not in (PlaybackState.PLAYING, PlaybackState.PAUSED):
            return
        self._publisher.publish(NowPlayingRecord.build(
            self._stream, self._track, self.is_playing, self._artwork))
        self._publisher.set_badge(self.is_playing)

    # ── Task plumbing ──

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        task.add_done_callback(self._task_done)
        return task

    @staticmethod
    def _task_done(task: asyncio.Task):
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error("Background task failed: %r", exc, exc_info=exc)
