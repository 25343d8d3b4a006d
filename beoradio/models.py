"""
Value types shared by the controller, the metadata fetchers and the service.

Everything here is immutable; the controller replaces values wholesale
instead of mutating them.
"""

from dataclasses import dataclass, field
from enum import Enum


class MetadataStrategy(Enum):
    """How a stream's track description is acquired."""

    ICY = "icy"              # in-band SHOUTcast/Icecast frames
    EPISODES = "episodes"    # JSON episode listing, polled
    EMBEDDED = "embedded"    # only what the engine surfaces while demuxing


class PlaybackState(Enum):
    STOPPED = "stopped"
    PREFLIGHTING = "preflighting"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    FAILED = "failed"


class ErrorKind(Enum):
    PREFLIGHT_FAILED = "preflight_failed"
    ENGINE_FAILED = "engine_failed"
    METADATA_UNAVAILABLE = "metadata_unavailable"


@dataclass(frozen=True)
class StreamDescriptor:
    id: str
    url: str
    title: str
    metadata: MetadataStrategy = MetadataStrategy.EMBEDDED
    metadata_url: str = ""
    requires_preflight: bool = False

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "url": self.url,
            "title": self.title,
            "metadata": self.metadata.value,
            "requires_preflight": self.requires_preflight,
        }


@dataclass(frozen=True)
class TrackInfo:
    """Current track description.  Artwork never makes a track "new"."""

    title: str = ""
    artist: str = ""
    artwork: bytes | None = field(default=None, compare=False, repr=False)

    @property
    def is_empty(self) -> bool:
        return not self.title and not self.artist

    def to_dict(self) -> dict:
        return {"title": self.title, "artist": self.artist}


@dataclass(frozen=True)
class PlayerSnapshot:
    """What observers see after every transition."""

    state: PlaybackState
    is_playing: bool
    is_loading: bool
    error_message: str | None
    error_kind: ErrorKind | None
    stream: StreamDescriptor
    track: TrackInfo
    volume: float

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "is_playing": self.is_playing,
            "is_loading": self.is_loading,
            "error_message": self.error_message,
            "error_kind": self.error_kind.value if self.error_kind else None,
            "stream": self.stream.to_dict(),
            "track": self.track.to_dict(),
            "volume": self.volume,
        }


@dataclass(frozen=True)
class NowPlayingRecord:
    title: str
    artist: str
    album: str
    rate: float
    artwork: bytes | None = field(default=None, repr=False)

    @classmethod
    def build(cls, stream: StreamDescriptor, track: TrackInfo, playing: bool,
              artwork: bytes | None = None) -> "NowPlayingRecord":
        return cls(
            title=track.title or stream.title,
            artist=track.artist or "Radio",
            album=stream.title,
            rate=1.0 if playing else 0.0,
            artwork=track.artwork or artwork,
        )
