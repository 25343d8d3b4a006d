"""
Pure text helpers for stream metadata.  No I/O in here.

    decode_block(b"StreamTitle='A - B';\\0\\0")  → "StreamTitle='A - B';"
    extract_stream_title("StreamTitle='A - B';")  → "A - B"
    split_artist_title("A - B")                   → TrackInfo(title="B", artist="A")
"""

import re

from ..models import TrackInfo

SEPARATOR = " - "

# Non-greedy up to the "';" terminator so titles containing an apostrophe
# (Guns N' Roses) survive; falls back to end-of-block for unterminated tags.
_STREAM_TITLE_RE = re.compile(r"StreamTitle='(.*?)'(?:;|$)", re.DOTALL)


def decode_block(block: bytes) -> str:
    """Decode an ICY metadata block, UTF-8 first, then Latin-1."""
    try:
        text = block.decode("utf-8")
    except UnicodeDecodeError:
        text = block.decode("latin-1")
    return text.strip("\x00").strip()


def extract_stream_title(text: str) -> str | None:
    """Return the StreamTitle payload, or None when the tag is absent."""
    match = _STREAM_TITLE_RE.search(text)
    if not match:
        return None
    return match.group(1).strip()


def split_artist_title(text: str) -> TrackInfo:
    parts = text.split(SEPARATOR)
    if len(parts) > 1:
        return TrackInfo(title=parts[1].strip(), artist=parts[0].strip())
    return TrackInfo(title=text.strip())


def parse_icy_block(block: bytes) -> TrackInfo | None:
    """Full pipeline for one metadata block; None if it carries no title."""
    if not block:
        return None
    title = extract_stream_title(decode_block(block))
    if title is None:
        return None
    return split_artist_title(title)
