"""
StreamCatalog — the fixed set of streams the player knows about.

Built once at startup, never mutated.  The built-in catalog can be replaced
by a "streams" list in config.json:

    "streams": [
        {"id": "wknc-hd1", "url": "https://...", "title": "WKNC HD1",
         "metadata": "icy", "metadata_url": "https://...?icy=http"},
        {"id": "radio-t", "url": "https://stream.radio-t.com",
         "title": "Radio-T", "metadata": "episodes", "preflight": true}
    ]
"""

import logging

from .errors import UnknownStreamError
from .lib.config import cfg
from .models import MetadataStrategy, StreamDescriptor

log = logging.getLogger(__name__)

DEFAULT_STREAM_ID = "wknc-hd2"

BUILTIN_STREAMS = (
    StreamDescriptor(
        id="wknc-hd1",
        url="https://das-edge14-live365-dal02.cdnstream.com/a45877",
        title="WKNC HD1",
        metadata=MetadataStrategy.ICY,
        metadata_url="https://das-edge14-live365-dal02.cdnstream.com/a45877?type=.mp3?icy=http",
    ),
    StreamDescriptor(
        id="wknc-hd2",
        url="https://das-edge12-live365-dal02.cdnstream.com/a30009",
        title="WKNC HD2",
        metadata=MetadataStrategy.ICY,
        metadata_url="https://das-edge12-live365-dal02.cdnstream.com/a30009?type=.mp3?icy=http",
    ),
    StreamDescriptor(
        id="radio-t",
        url="https://stream.radio-t.com",
        title="Radio-T",
        metadata=MetadataStrategy.EPISODES,
        requires_preflight=True,
    ),
)


def _descriptor_from_config(entry: dict) -> StreamDescriptor | None:
    try:
        strategy = MetadataStrategy(entry.get("metadata", "embedded"))
    except ValueError:
        log.warning("Stream %s: unknown metadata strategy %r — using embedded",
                    entry.get("id"), entry.get("metadata"))
        strategy = MetadataStrategy.EMBEDDED
    if not entry.get("id") or not entry.get("url"):
        return None
    return StreamDescriptor(
        id=str(entry["id"]),
        url=str(entry["url"]),
        title=str(entry.get("title") or entry["id"]),
        metadata=strategy,
        metadata_url=str(entry.get("metadata_url") or entry["url"]),
        requires_preflight=bool(entry.get("preflight", False)),
    )


class StreamCatalog:
    def __init__(self, streams=BUILTIN_STREAMS, default_id: str = DEFAULT_STREAM_ID):
        self._streams = {s.id: s for s in streams}
        if not self._streams:
            raise ValueError("StreamCatalog needs at least one stream")
        if default_id not in self._streams:
            default_id = next(iter(self._streams))
        self.default_id = default_id

    @classmethod
    def from_config(cls) -> "StreamCatalog":
        entries = cfg("streams")
        streams = BUILTIN_STREAMS
        if isinstance(entries, list):
            parsed = [d for d in (_descriptor_from_config(e) for e in entries
                                  if isinstance(e, dict)) if d]
            if parsed:
                streams = tuple(parsed)
                log.info("Stream catalog from config: %s",
                         ", ".join(s.id for s in streams))
        return cls(streams, cfg("default_stream", default=DEFAULT_STREAM_ID))

    def get(self, stream_id: str) -> StreamDescriptor:
        try:
            return self._streams[stream_id]
        except KeyError:
            raise UnknownStreamError(stream_id) from None

    @property
    def default(self) -> StreamDescriptor:
        return self._streams[self.default_id]

    def __iter__(self):
        return iter(self._streams.values())

    def __contains__(self, stream_id: str):
        return stream_id in self._streams

    def __len__(self):
        return len(self._streams)
