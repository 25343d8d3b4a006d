"""
Passive metadata surfaced by the media engine while it demuxes the stream.

The engine hands over the text values of the first metadata group it saw,
most specific first (mpv: icy-title, then title).  No network involved.
"""

from ..models import TrackInfo
from .parse import split_artist_title


def track_from_embedded(values) -> TrackInfo | None:
    for value in values or ():
        if isinstance(value, str) and value.strip():
            return split_artist_title(value)
    return None
