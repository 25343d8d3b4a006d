"""
ICY (SHOUTcast/Icecast) in-band metadata.

The client asks for metadata with "Icy-MetaData: 1"; the server answers with
an "icy-metaint" header and then interleaves the audio like this:

    [meta_int audio bytes][1 length byte][length × 16 metadata bytes] ...

The metadata block is text such as "StreamTitle='Artist - Title';" padded
with NULs.  We only need the first frame per refresh, so the response is
closed as soon as one block has been read.
"""

import asyncio
import logging

import aiohttp

from ..errors import MetadataUnavailable
from ..models import StreamDescriptor, TrackInfo
from .base import MetadataFetcher
from .parse import parse_icy_block

log = logging.getLogger(__name__)

CHUNK_SIZE = 4096
MAX_BLOCK = 255 * 16


class IcyFrameReader:
    """Accumulates stream bytes until the first metadata block is complete."""

    def __init__(self, meta_int: int):
        if meta_int <= 0:
            raise ValueError(f"meta_int must be positive, got {meta_int}")
        self.meta_int = meta_int
        self.buffer = bytearray()

    @property
    def limit(self) -> int:
        """Upper bound on bytes needed to see one whole frame."""
        return self.meta_int + 1 + MAX_BLOCK

    def reset(self):
        self.buffer.clear()

    def feed(self, data: bytes) -> bytes | None:
        """Append *data*; return the metadata block once it is complete.

        A zero length byte yields b"" (the server had nothing to say this
        frame).  The buffer is reset whenever a block is returned.
        """
        self.buffer.extend(data)
        if len(self.buffer) < self.meta_int + 1:
            return None
        length = self.buffer[self.meta_int] * 16
        end = self.meta_int + 1 + length
        if len(self.buffer) < end:
            return None
        block = bytes(self.buffer[self.meta_int + 1:end])
        self.reset()
        return block


def parse_meta_int(value: str | None) -> int | None:
    try:
        meta_int = int(value) if value is not None else None
    except ValueError:
        return None
    if meta_int is None or meta_int <= 0:
        return None
    return meta_int


class IcyFetcher(MetadataFetcher):
    """Reads one ICY frame from a stream's metadata URL."""

    def __init__(self, session: aiohttp.ClientSession, user_agent: str,
                 timeout: float = 15.0):
        self._session = session
        self._user_agent = user_agent
        self._timeout = timeout

    async def fetch(self, stream: StreamDescriptor) -> TrackInfo | None:
        url = stream.metadata_url or stream.url
        headers = {"Icy-MetaData": "1", "User-Agent": self._user_agent}
        try:
            async with self._session.get(
                url, headers=headers,
                timeout=aiohttp.ClientTimeout(total=self._timeout),
            ) as resp:
                if resp.status != 200:
                    raise MetadataUnavailable(f"{stream.id}: HTTP {resp.status}")
                meta_int = parse_meta_int(resp.headers.get("icy-metaint"))
                if meta_int is None:
                    log.debug("%s: no usable icy-metaint header", stream.id)
                    return None
                block = await self._read_block(resp, IcyFrameReader(meta_int))
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise MetadataUnavailable(f"{stream.id}: {e!r}") from e

        track = parse_icy_block(block)
        if track is not None:
            log.debug("%s: ICY title %s — %s", stream.id, track.artist, track.title)
        return track

    @staticmethod
    async def _read_block(resp: aiohttp.ClientResponse, reader: IcyFrameReader) -> bytes:
        received = 0
        async for chunk in resp.content.iter_chunked(CHUNK_SIZE):
            received += len(chunk)
            block = reader.feed(chunk)
            if block is not None:
                return block
            if received > reader.limit:
                break
        raise MetadataUnavailable(
            f"stream ended after {received} bytes without a metadata frame")
