"""
Metadata acquisition for radio streams.

Each stream names one active strategy; every stream also gets whatever the
engine surfaces passively.  ``create_metadata_acquisition`` reads
config.json and wires the fetchers up.

Strategies:
  - ``icy``       – one in-band ICY frame read from the stream (icy.py)
  - ``episodes``  – newest episode title from a JSON listing (episodes.py)
  - ``embedded``  – engine-provided tags only (embedded.py), no polling
"""

import logging

import aiohttp

from ..errors import MetadataUnavailable
from ..lib.config import cfg, cfg_number
from ..models import MetadataStrategy, StreamDescriptor, TrackInfo
from .base import MetadataFetcher
from .embedded import track_from_embedded
from .episodes import EPISODES_URL, EpisodeFetcher
from .icy import IcyFetcher, IcyFrameReader
from .parse import parse_icy_block, split_artist_title

log = logging.getLogger(__name__)

__all__ = [
    "MetadataAcquisition",
    "MetadataFetcher",
    "EpisodeFetcher",
    "IcyFetcher",
    "IcyFrameReader",
    "create_metadata_acquisition",
    "parse_icy_block",
    "split_artist_title",
    "track_from_embedded",
]


class MetadataAcquisition:
    """Dispatches a refresh to the stream's strategy and swallows failures.

    Metadata problems are never playback problems: anything a fetcher raises
    as MetadataUnavailable is logged at debug level and becomes None.
    """

    def __init__(self, fetchers: dict[MetadataStrategy, MetadataFetcher]):
        self._fetchers = dict(fetchers)

    async def refresh(self, stream: StreamDescriptor) -> TrackInfo | None:
        fetcher = self._fetchers.get(stream.metadata)
        if fetcher is None:
            return None
        try:
            return await fetcher.fetch(stream)
        except MetadataUnavailable as e:
            log.debug("Metadata unavailable (%s): %s", stream.id, e)
            return None

    @staticmethod
    def from_embedded(values) -> TrackInfo | None:
        return track_from_embedded(values)


def create_metadata_acquisition(session: aiohttp.ClientSession,
                                user_agent: str) -> MetadataAcquisition:
    """Build the fetchers from config.json "metadata" section:

      timeout       – per-request timeout in seconds (default 15)
      episodes_url  – JSON episode listing (default Radio-T site API)
    """
    timeout = cfg_number("metadata", "timeout", default=15.0)
    episodes_url = cfg("metadata", "episodes_url", default=EPISODES_URL)
    log.info("Metadata: ICY + episodes @ %s (timeout %.0fs)", episodes_url, timeout)
    return MetadataAcquisition({
        MetadataStrategy.ICY: IcyFetcher(session, user_agent, timeout),
        MetadataStrategy.EPISODES: EpisodeFetcher(session, user_agent, episodes_url, timeout),
    })
