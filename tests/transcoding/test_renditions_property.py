"""Property-based tests for the rendition ladder and segment ordering.

**Feature: hlspipe, Property 1: Segment Playback Order**
"""

import random

from hypothesis import given, settings, strategies as st

from hlspipe.modules.transcoding.renditions import (
    MAX_PADDED_SEGMENT_INDEX,
    RENDITION_LADDER,
    get_rendition,
    is_segment_key,
    master_playlist_key,
    segment_filename,
    segment_index,
    segment_key,
    sort_segment_keys,
    variant_playlist_key,
)


index_strategy = st.integers(min_value=0, max_value=100000)


class TestRenditionLadder:
    """Ladder contents and key scheme."""

    def test_ladder_order_is_highest_first(self) -> None:
        assert [r.name for r in RENDITION_LADDER] == ["1080p", "720p", "480p", "360p"]

    def test_bandwidths_strictly_decrease(self) -> None:
        bandwidths = [r.bandwidth for r in RENDITION_LADDER]
        assert bandwidths == sorted(bandwidths, reverse=True)
        assert len(set(bandwidths)) == len(bandwidths)

    def test_ladder_values(self) -> None:
        assert get_rendition("1080p").resolution == "1920x1080"
        assert get_rendition("720p").bandwidth == 2800000
        assert get_rendition("480p").resolution == "854x480"
        assert get_rendition("360p").video_bitrate == "800k"
        assert get_rendition("360p").audio_bitrate == "96k"

    def test_unknown_rendition_raises(self) -> None:
        try:
            get_rendition("240p")
        except KeyError:
            pass
        else:
            raise AssertionError("expected KeyError")

    def test_key_scheme(self) -> None:
        assert segment_key("clip1", "720p", "segment_004.ts") == "transcoded/clip1/720p/segment_004.ts"
        assert variant_playlist_key("clip1", "720p") == "transcoded/clip1/720p/playlist.m3u8"
        assert master_playlist_key("clip1") == "transcoded/clip1/playlist.m3u8"

    def test_playlists_are_not_segments(self) -> None:
        assert is_segment_key("transcoded/clip1/720p/segment_000.ts")
        assert is_segment_key("transcoded/clip1/720p/segment_000.m4s")
        assert not is_segment_key("transcoded/clip1/720p/playlist.m3u8")


class TestSegmentOrdering:
    """**Feature: hlspipe, Property 1: Segment Playback Order**"""

    @given(index=st.integers(min_value=0, max_value=MAX_PADDED_SEGMENT_INDEX))
    @settings(max_examples=100)
    def test_padded_filename_has_fixed_width(self, index: int) -> None:
        name = segment_filename(index)
        assert name == f"segment_{index:03d}.ts"
        assert len(name) == len("segment_000.ts")

    @given(index=index_strategy)
    @settings(max_examples=100)
    def test_index_roundtrips_through_filename(self, index: int) -> None:
        assert segment_index(segment_key("v", "360p", segment_filename(index))) == index

    @given(indices=st.sets(index_strategy, min_size=1, max_size=50), seed=st.integers())
    @settings(max_examples=100)
    def test_sort_matches_numeric_order(self, indices: set[int], seed: int) -> None:
        """For any set of segment indices in any listing order, sorted keys
        SHALL follow ascending numeric index."""
        keys = [segment_key("v", "720p", segment_filename(i)) for i in indices]
        random.Random(seed).shuffle(keys)

        ordered = sort_segment_keys(keys)

        assert [segment_index(k) for k in ordered] == sorted(indices)

    def test_padding_limit_boundary(self) -> None:
        """Segment 1000 follows 999 even though it sorts before it as text."""
        keys = [
            "transcoded/v/1080p/segment_1000.ts",
            "transcoded/v/1080p/segment_998.ts",
            "transcoded/v/1080p/segment_1001.ts",
            "transcoded/v/1080p/segment_999.ts",
        ]
        assert sorted(keys)[0].endswith("segment_1000.ts")

        ordered = sort_segment_keys(keys)

        assert [segment_index(k) for k in ordered] == [998, 999, 1000, 1001]

    def test_keys_without_index_sort_last(self) -> None:
        keys = ["p/b.ts", "p/segment_002.ts", "p/a.ts", "p/segment_001.ts"]
        assert sort_segment_keys(keys) == ["p/segment_001.ts", "p/segment_002.ts", "p/a.ts", "p/b.ts"]
