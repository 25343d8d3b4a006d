"""
Abstract base class for metadata fetchers.

A fetcher performs one network round for a stream and returns the track
it found, or None when the response simply had nothing new.  Transport and
protocol problems raise MetadataUnavailable; the caller decides to drop it.
"""

from abc import ABC, abstractmethod

from ..models import StreamDescriptor, TrackInfo


class MetadataFetcher(ABC):
    """Interface every metadata strategy with its own I/O implements."""

    @abstractmethod
    async def fetch(self, stream: StreamDescriptor) -> TrackInfo | None: ...
