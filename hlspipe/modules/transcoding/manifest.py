"""HLS manifest generation.

Playlists are rebuilt from scratch on every call from whatever segment
objects are listed at that moment; nothing is updated incrementally.
"""

import logging
from dataclasses import dataclass, field
from typing import Sequence

from hlspipe.core.storage import PLAYLIST_CONTENT_TYPE, ContentStore
from hlspipe.modules.transcoding.renditions import (
    RENDITION_LADDER,
    SEGMENT_DURATION_SECONDS,
    Rendition,
    is_segment_key,
    master_playlist_key,
    rendition_prefix,
    sort_segment_keys,
    variant_playlist_key,
)
from hlspipe.modules.transcoding.signing import DEFAULT_SIGNED_URL_TTL, UrlSigner

logger = logging.getLogger(__name__)

HLS_VERSION = 3


@dataclass
class ManifestResult:
    """Keys written by one manifest generation run."""
    master_key: str
    variant_keys: dict[str, str] = field(default_factory=dict)
    skipped_renditions: list[str] = field(default_factory=list)


def build_variant_playlist(
    segment_urls: Sequence[str],
    segment_duration: int = SEGMENT_DURATION_SECONDS,
) -> str:
    """Build a VOD media playlist for one rendition.

    Args:
        segment_urls: Signed segment URLs in playback order
        segment_duration: Nominal segment length in seconds

    Returns:
        Playlist text
    """
    lines = [
        "#EXTM3U",
        f"#EXT-X-VERSION:{HLS_VERSION}",
        f"#EXT-X-TARGETDURATION:{segment_duration}",
        "#EXT-X-MEDIA-SEQUENCE:0",
    ]
    for url in segment_urls:
        lines.append(f"#EXTINF:{float(segment_duration):.1f},")
        lines.append(url)
    lines.append("#EXT-X-ENDLIST")
    return "\n".join(lines).strip()


def build_master_playlist(variants: Sequence[tuple[Rendition, str]]) -> str:
    """Build the master playlist.

    Args:
        variants: (rendition, signed variant playlist URL) pairs, highest first

    Returns:
        Playlist text
    """
    lines = ["#EXTM3U", f"#EXT-X-VERSION:{HLS_VERSION}", ""]
    for rendition, url in variants:
        lines.append(f"#EXT-X-STREAM-INF:BANDWIDTH={rendition.bandwidth},RESOLUTION={rendition.resolution}")
        lines.append(url)
        lines.append("")
    return "\n".join(lines).strip()


class ManifestGenerator:
    """Builds and uploads signed master/variant playlists for a video."""

    def __init__(
        self,
        store: ContentStore,
        signer: UrlSigner,
        ladder: Sequence[Rendition] = RENDITION_LADDER,
        url_ttl: int = DEFAULT_SIGNED_URL_TTL,
    ):
        self.store = store
        self.signer = signer
        self.ladder = ladder
        self.url_ttl = url_ttl

    def list_segments(self, bucket: str, video_id: str, rendition: Rendition) -> list[str]:
        """List a rendition's segment keys in playback order."""
        keys = self.store.list_keys(bucket, rendition_prefix(video_id, rendition.name))
        return sort_segment_keys(k for k in keys if is_segment_key(k))

    def generate_and_upload_manifests(self, bucket: str, video_id: str) -> ManifestResult:
        """Regenerate every playlist of ``video_id`` from current segments.

        Renditions without segments are left out of the master playlist.

        Raises:
            StorageError: If listing, signing or uploading fails
        """
        result = ManifestResult(master_key=master_playlist_key(video_id))
        variants: list[tuple[Rendition, str]] = []

        for rendition in self.ladder:
            segments = self.list_segments(bucket, video_id, rendition)
            if not segments:
                logger.warning(
                    "No segments found for %s/%s, skipping rendition",
                    video_id,
                    rendition.name,
                )
                result.skipped_renditions.append(rendition.name)
                continue

            segment_urls = [self.signer.sign(bucket, key, self.url_ttl) for key in segments]
            variant_key = variant_playlist_key(video_id, rendition.name)
            self.store.put(
                bucket,
                variant_key,
                build_variant_playlist(segment_urls).encode("utf-8"),
                PLAYLIST_CONTENT_TYPE,
            )
            result.variant_keys[rendition.name] = variant_key
            variants.append((rendition, self.signer.sign(bucket, variant_key, self.url_ttl)))

        self.store.put(
            bucket,
            result.master_key,
            build_master_playlist(variants).encode("utf-8"),
            PLAYLIST_CONTENT_TYPE,
        )
        logger.info(
            "Uploaded master playlist at %s",
            result.master_key,
            extra={"renditions": list(result.variant_keys)},
        )
        return result
