"""
Pytest fixtures: a fake media engine, a recording now-playing sink, stub
metadata fetchers and a real aiohttp server for preflight/metadata HTTP.
"""

import asyncio

import aiohttp
import pytest
import pytest_asyncio
from aiohttp import web
from aiohttp.test_utils import TestServer

from beoradio.catalog import StreamCatalog
from beoradio.controller import PlaybackController
from beoradio.lib import config
from beoradio.lib.engine import EngineEvent, MediaEngine
from beoradio.lib.now_playing import NowPlayingPublisher
from beoradio.lib.volume_store import VolumeStore
from beoradio.metadata import MetadataAcquisition, MetadataFetcher
from beoradio.models import MetadataStrategy, StreamDescriptor, TrackInfo


async def wait_until(predicate, timeout: float = 2.0):
    """Let the event loop run until *predicate()* is true."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.01)


async def settle(rounds: int = 20):
    for _ in range(rounds):
        await asyncio.sleep(0)


class FakeEngine(MediaEngine):
    def __init__(self, url, headers, on_event, *, auto_ready=True, fail_start=None):
        super().__init__(url, headers, on_event)
        self.auto_ready = auto_ready
        self.fail_start = fail_start
        self.started = False
        self.closed = False
        self.paused = False
        self.volume_calls: list[float] = []

    async def start(self):
        await asyncio.sleep(0)
        if self.fail_start:
            raise self.fail_start
        self.started = True
        if self.auto_ready:
            asyncio.get_running_loop().call_soon(self.emit, EngineEvent.ready())

    def pause(self):
        self.paused = True

    def resume(self):
        self.paused = False

    def set_volume(self, volume):
        self.volume_calls.append(volume)

    async def close(self):
        self.closed = True


class EngineRecorder:
    """Engine factory that remembers every engine it built."""

    def __init__(self):
        self.instances: list[FakeEngine] = []
        self.auto_ready = True
        self.fail_start = None

    def __call__(self, url, headers, on_event):
        engine = FakeEngine(url, headers, on_event,
                            auto_ready=self.auto_ready, fail_start=self.fail_start)
        self.instances.append(engine)
        return engine

    @property
    def alive(self) -> list[FakeEngine]:
        return [e for e in self.instances if not e.closed]

    @property
    def last(self) -> FakeEngine:
        return self.instances[-1]


class RecordingPublisher(NowPlayingPublisher):
    def __init__(self):
        self.records = []
        self.clears = 0
        self.badge = False

    def publish(self, record):
        self.records.append(record)

    def clear(self):
        self.clears += 1

    def set_badge(self, playing):
        self.badge = playing


class StubFetcher(MetadataFetcher):
    def __init__(self, track: TrackInfo | None = None):
        self.track = track
        self.calls = 0
        self.gate: asyncio.Event | None = None

    async def fetch(self, stream):
        self.calls += 1
        if self.gate is not None:
            await self.gate.wait()
        return self.track


class StubServer:
    """Live-stream probe endpoint with a configurable answer."""

    def __init__(self):
        self.live_status = 206
        self.live_delay = 0.0
        self.probe_headers = []
        self.app = web.Application()
        self.app.router.add_get("/live", self._handle_live)
        self.app.router.add_get("/stream", self._handle_live)
        self.server: TestServer | None = None

    async def _handle_live(self, request):
        self.probe_headers.append(dict(request.headers))
        if self.live_delay:
            await asyncio.sleep(self.live_delay)
        return web.Response(status=self.live_status, body=b"\xff\xfb")

    def url(self, path: str) -> str:
        return str(self.server.make_url(path))


@pytest.fixture(autouse=True)
def empty_config(monkeypatch):
    monkeypatch.setattr(config, "_config", {})


@pytest_asyncio.fixture
async def session():
    async with aiohttp.ClientSession() as s:
        yield s


@pytest_asyncio.fixture
async def stub_server():
    stub = StubServer()
    stub.server = TestServer(stub.app)
    await stub.server.start_server()
    yield stub
    await stub.server.close()


@pytest.fixture
def engines():
    return EngineRecorder()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def icy_fetcher():
    return StubFetcher(TrackInfo(title="Song Y", artist="Artist X"))


@pytest.fixture
def episode_fetcher():
    return StubFetcher(TrackInfo(title="Radio", artist="Episode 42"))


@pytest.fixture
def volume_store(tmp_path):
    return VolumeStore(str(tmp_path / "state.json"))


@pytest.fixture
def catalog(stub_server):
    return StreamCatalog((
        StreamDescriptor(id="music", url=stub_server.url("/stream"), title="Music FM",
                         metadata=MetadataStrategy.ICY),
        StreamDescriptor(id="jazz", url=stub_server.url("/jazz"), title="Jazz FM",
                         metadata=MetadataStrategy.ICY),
        StreamDescriptor(id="show", url=stub_server.url("/live"), title="The Show",
                         metadata=MetadataStrategy.EPISODES, requires_preflight=True),
    ), default_id="music")


@pytest_asyncio.fixture
async def controller(catalog, engines, session, publisher, volume_store,
                     icy_fetcher, episode_fetcher):
    ctrl = PlaybackController(
        catalog=catalog,
        engine_factory=engines,
        metadata=MetadataAcquisition({
            MetadataStrategy.ICY: icy_fetcher,
            MetadataStrategy.EPISODES: episode_fetcher,
        }),
        session=session,
        publisher=publisher,
        volume_store=volume_store,
        preflight_timeout=0.3,
        refresh_interval=3600,
    )
    yield ctrl
    await ctrl.shutdown()
