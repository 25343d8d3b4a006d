"""
Episode polling for streams without in-band metadata (Radio-T).

The site API returns the latest episodes, newest first:

    GET https://radio-t.com/site-api/last/5
    [{"title": "Радио-Т 942", "url": "...", ...}, ...]

The newest episode title becomes the "artist" line under a fixed "Radio"
title, which is how the show appears in system media controls.
"""

import asyncio
import json
import logging

import aiohttp

from ..errors import MetadataUnavailable
from ..models import StreamDescriptor, TrackInfo
from .base import MetadataFetcher

log = logging.getLogger(__name__)

EPISODES_URL = "https://radio-t.com/site-api/last/5"
EPISODE_TRACK_TITLE = "Radio"


def track_from_episodes(payload) -> TrackInfo | None:
    """Pick the newest episode title out of a decoded JSON payload."""
    if not isinstance(payload, list) or not payload:
        return None
    latest = payload[0]
    if not isinstance(latest, dict):
        return None
    title = latest.get("title")
    if not isinstance(title, str) or not title.strip():
        return None
    return TrackInfo(title=EPISODE_TRACK_TITLE, artist=title.strip())


class EpisodeFetcher(MetadataFetcher):
    def __init__(self, session: aiohttp.ClientSession, user_agent: str,
                 url: str = EPISODES_URL, timeout: float = 15.0):
        self._session = session
        self._user_agent = user_agent
        self._url = url
        self._timeout = timeout

    async def fetch(self, stream: StreamDescriptor) -> TrackInfo | None:
        try:
            async with self._session.get(
                self._url,
                headers={"User-Agent": self._user_agent},
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                resp.raise_for_status()
                raw = await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MetadataUnavailable(f"{stream.id}: {e!r}") from e

        try:
            payload = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as e:
            raise MetadataUnavailable(f"{stream.id}: invalid episode JSON: {e}") from e

        track = track_from_episodes(payload)
        if track is None:
            log.debug("%s: episode listing had no usable title", stream.id)
        return track
