"""Tests for the pure metadata text helpers and the ICY frame reader."""

import pytest

from beoradio.metadata.embedded import track_from_embedded
from beoradio.metadata.episodes import track_from_episodes
from beoradio.metadata.icy import IcyFrameReader, parse_meta_int
from beoradio.metadata.parse import (
    decode_block,
    extract_stream_title,
    parse_icy_block,
    split_artist_title,
)
from beoradio.models import TrackInfo


def icy_stream(payload: bytes, meta_int: int = 100, audio: bytes = b"\x00") -> bytes:
    """Audio bytes + length byte + NUL-padded metadata block."""
    blocks = -(-len(payload) // 16)
    block = payload.ljust(blocks * 16, b"\x00")
    return (audio * meta_int)[:meta_int] + bytes([blocks]) + block


class TestSplitArtistTitle:
    def test_artist_and_title(self):
        assert split_artist_title("Artist X - Song Y") == TrackInfo(title="Song Y", artist="Artist X")

    def test_title_only(self):
        track = split_artist_title("Solo Title")
        assert track.title == "Solo Title"
        assert track.artist == ""

    def test_more_than_two_parts_uses_first_two(self):
        track = split_artist_title("A - B - C")
        assert (track.artist, track.title) == ("A", "B")

    def test_hyphen_without_spaces_is_not_a_separator(self):
        assert split_artist_title("Jay-Z").title == "Jay-Z"

    def test_whitespace_trimmed(self):
        track = split_artist_title("  Artist   -  Title  ")
        assert (track.artist, track.title) == ("Artist", "Title")


class TestExtractStreamTitle:
    def test_basic(self):
        assert extract_stream_title("StreamTitle='Hello';") == "Hello"

    def test_other_tags_ignored(self):
        text = "StreamUrl='http://x';StreamTitle='A - B';"
        assert extract_stream_title(text) == "A - B"

    def test_apostrophe_inside_title(self):
        assert extract_stream_title("StreamTitle='Guns N' Roses - Patience';") == \
            "Guns N' Roses - Patience"

    def test_unterminated_tag(self):
        assert extract_stream_title("StreamTitle='Trailing'") == "Trailing"

    def test_missing_tag(self):
        assert extract_stream_title("StreamUrl='http://x';") is None

    def test_empty_title(self):
        assert extract_stream_title("StreamTitle='';") == ""


class TestDecodeBlock:
    def test_utf8(self):
        assert decode_block("StreamTitle='Björk';".encode("utf-8") + b"\x00\x00") == \
            "StreamTitle='Björk';"

    def test_latin1_fallback(self):
        assert decode_block("StreamTitle='Björk';".encode("latin-1")) == "StreamTitle='Björk';"


class TestIcyFrameReader:
    def test_synthetic_frame_artist_and_title(self):
        payload = b"StreamTitle='Artist X - Song Y';"
        block = IcyFrameReader(100).feed(icy_stream(payload))
        assert parse_icy_block(block) == TrackInfo(title="Song Y", artist="Artist X")

    def test_length_byte_three_means_48_bytes(self):
        payload = b"StreamTitle='Artist X - Song Y';".ljust(48, b"\x00")
        data = b"\x00" * 100 + bytes([3]) + payload
        block = IcyFrameReader(100).feed(data)
        assert len(block) == 48
        assert parse_icy_block(block) == TrackInfo(title="Song Y", artist="Artist X")

    def test_synthetic_frame_title_only(self):
        block = IcyFrameReader(100).feed(icy_stream(b"StreamTitle='Solo Title';"))
        track = parse_icy_block(block)
        assert track.title == "Solo Title"
        assert track.artist == ""

    def test_waits_for_whole_frame_across_chunks(self):
        data = icy_stream(b"StreamTitle='A - B';")
        reader = IcyFrameReader(100)
        assert reader.feed(data[:50]) is None
        assert reader.feed(data[50:101]) is None
        assert reader.feed(data[101:110]) is None
        block = reader.feed(data[110:])
        assert parse_icy_block(block) == TrackInfo(title="B", artist="A")
        assert reader.buffer == bytearray()

    def test_zero_length_block(self):
        reader = IcyFrameReader(10)
        assert reader.feed(b"\x01" * 10 + b"\x00") == b""
        assert parse_icy_block(b"") is None

    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            IcyFrameReader(0)

    @pytest.mark.parametrize("value,expected", [
        ("16000", 16000), (None, None), ("", None), ("abc", None), ("0", None), ("-5", None),
    ])
    def test_parse_meta_int(self, value, expected):
        assert parse_meta_int(value) == expected


class TestEpisodes:
    def test_first_episode_title(self):
        assert track_from_episodes([{"title": "Episode 42"}, {"title": "Episode 41"}]) == \
            TrackInfo(title="Radio", artist="Episode 42")

    @pytest.mark.parametrize("payload", [[], {}, [{}], [{"title": 7}], ["x"], None, [{"title": "  "}]])
    def test_unusable_payload(self, payload):
        assert track_from_episodes(payload) is None


class TestEmbedded:
    def test_first_non_empty_value(self):
        assert track_from_embedded(["", "Artist - Title", "ignored"]) == \
            TrackInfo(title="Title", artist="Artist")

    def test_nothing_usable(self):
        assert track_from_embedded([]) is None
        assert track_from_embedded(None) is None


def test_track_equality_ignores_artwork():
    assert TrackInfo("T", "A", artwork=b"1") == TrackInfo("T", "A", artwork=b"2")
    assert TrackInfo("T", "A") != TrackInfo("T", "B")
