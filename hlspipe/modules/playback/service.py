"""Signed playback resolver.

Resolves a video id to a signed URL of its master playlist. Successful
responses are cached verbatim; a cache hit skips every other check.
"""

import logging
from typing import Callable

from hlspipe.core.logging import log_info
from hlspipe.core.metrics import record_playback_request
from hlspipe.core.storage import ContentStore
from hlspipe.modules.playback.cache import ManifestCache
from hlspipe.modules.playback.schemas import PlaybackManifestResponse, utc_timestamp
from hlspipe.modules.transcoding.renditions import master_playlist_key
from hlspipe.modules.transcoding.signing import DEFAULT_SIGNED_URL_TTL, UrlSigner
from hlspipe.modules.video.models import VideoStatus
from hlspipe.modules.video.repository import StatusStore

logger = logging.getLogger(__name__)


class PlaybackError(Exception):
    """Base exception for playback resolution."""


class VideoNotFoundError(PlaybackError):
    """No status record exists for the video."""

    def __init__(self, video_id: str):
        super().__init__(f"Video {video_id} not found")
        self.video_id = video_id


class VideoNotReadyError(PlaybackError):
    """The video exists but is not ready for playback."""

    def __init__(self, video_id: str, status: VideoStatus):
        super().__init__(f"Video {video_id} is {status.value}")
        self.video_id = video_id
        self.status = status


class ManifestMissingError(PlaybackError):
    """The video is marked ready but its master playlist object is absent."""

    def __init__(self, video_id: str, key: str):
        super().__init__(f"Master playlist {key} missing for ready video {video_id}")
        self.video_id = video_id
        self.key = key


class PlaybackResolver:
    """Resolves playback manifests for ready videos."""

    def __init__(
        self,
        status_store: StatusStore,
        store: ContentStore,
        signer: UrlSigner,
        cache: ManifestCache,
        bucket: str,
        url_ttl: int = DEFAULT_SIGNED_URL_TTL,
        clock: Callable[[], str] = utc_timestamp,
    ):
        self.status_store = status_store
        self.store = store
        self.signer = signer
        self.cache = cache
        self.bucket = bucket
        self.url_ttl = url_ttl
        self.clock = clock

    async def resolve_manifest(self, video_id: str) -> PlaybackManifestResponse:
        """Get a signed master playlist URL for ``video_id``.

        Raises:
            VideoNotFoundError: If the video has no status record
            VideoNotReadyError: If the video status is not ready
            ManifestMissingError: If the master playlist object does not exist
            StorageError: If the existence probe or signing fails
        """
        cached = await self.cache.get(video_id)
        if cached is not None:
            record_playback_request("hit")
            return cached

        record = await self.status_store.get_by_video_id(video_id)
        if record is None:
            record_playback_request("not_found")
            raise VideoNotFoundError(video_id)

        if record.status != VideoStatus.READY:
            record_playback_request("not_ready")
            raise VideoNotReadyError(video_id, record.status)

        key = master_playlist_key(video_id)
        if not self.store.head(self.bucket, key):
            record_playback_request("manifest_missing")
            raise ManifestMissingError(video_id, key)

        response = PlaybackManifestResponse(
            video_id=video_id,
            manifest_url=self.signer.sign(self.bucket, key, self.url_ttl),
            expires_in=self.url_ttl,
            timestamp=self.clock(),
        )
        await self.cache.set(response)
        record_playback_request("miss")
        log_info(logger, "Signed playback manifest", video_id=video_id)
        return response
