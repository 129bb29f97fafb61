"""Rendition ladder and object key scheme.

The encoder and the manifest generator both read the ladder from here;
rendition names double as object key path segments, so the two sides must
agree or renditions silently drop out of the master playlist.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional

SEGMENT_DURATION_SECONDS = 6
SEGMENT_INDEX_WIDTH = 3
SEGMENT_PATTERN = f"segment_%0{SEGMENT_INDEX_WIDTH}d.ts"
SEGMENT_EXTENSIONS = (".ts", ".m4s")
PLAYLIST_FILENAME = "playlist.m3u8"
TRANSCODED_PREFIX = "transcoded"

# Largest index the fixed-width pattern writes with full padding. Past it
# ffmpeg keeps counting (segment_1000.ts) and lexicographic order breaks.
MAX_PADDED_SEGMENT_INDEX = 10 ** SEGMENT_INDEX_WIDTH - 1

_SEGMENT_INDEX_RE = re.compile(r"segment_(\d+)\.[A-Za-z0-9]+$")


@dataclass(frozen=True)
class Rendition:
    """One entry of the ABR ladder."""
    name: str
    width: int
    height: int
    video_bitrate: str  # ffmpeg notation, e.g. "5000k"
    audio_bitrate: str
    bandwidth: int  # bps advertised in the master playlist

    @property
    def resolution(self) -> str:
        return f"{self.width}x{self.height}"


RENDITION_LADDER: tuple[Rendition, ...] = (
    Rendition("1080p", 1920, 1080, "5000k", "192k", 5000000),
    Rendition("720p", 1280, 720, "3000k", "160k", 2800000),
    Rendition("480p", 854, 480, "1500k", "128k", 1400000),
    Rendition("360p", 640, 360, "800k", "96k", 800000),
)


def get_rendition(name: str) -> Rendition:
    """Look up a ladder entry by name."""
    for rendition in RENDITION_LADDER:
        if rendition.name == name:
            return rendition
    raise KeyError(f"Unknown rendition: {name}")


def segment_filename(index: int) -> str:
    """Local/remote filename of the segment at ``index``."""
    return SEGMENT_PATTERN % index


def rendition_prefix(video_id: str, rendition: str) -> str:
    return f"{TRANSCODED_PREFIX}/{video_id}/{rendition}/"


def segment_key(video_id: str, rendition: str, filename: str) -> str:
    """Object key of an uploaded segment file."""
    return f"{rendition_prefix(video_id, rendition)}{filename}"


def variant_playlist_key(video_id: str, rendition: str) -> str:
    return f"{rendition_prefix(video_id, rendition)}{PLAYLIST_FILENAME}"


def master_playlist_key(video_id: str) -> str:
    return f"{TRANSCODED_PREFIX}/{video_id}/{PLAYLIST_FILENAME}"


def is_segment_key(key: str) -> bool:
    return key.endswith(SEGMENT_EXTENSIONS)


def segment_index(key: str) -> Optional[int]:
    """Numeric segment index encoded in a key, or None."""
    match = _SEGMENT_INDEX_RE.search(key)
    if match is None:
        return None
    return int(match.group(1))


def _segment_sort_key(key: str) -> tuple:
    index = segment_index(key)
    if index is None:
        return (1, 0, key)
    return (0, index, key)


def sort_segment_keys(keys: Iterable[str]) -> list[str]:
    """Order segment keys by playback position.

    Keys carrying a numeric index sort by that index, so order survives
    indices wider than the zero padding. Anything else sorts after them
    lexicographically.
    """
    return sorted(keys, key=_segment_sort_key)
