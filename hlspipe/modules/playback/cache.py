"""Redis cache of playback manifest responses."""

import json
import logging
from typing import Optional

import redis.asyncio as redis
from pydantic import ValidationError

from hlspipe.modules.playback.schemas import PlaybackManifestResponse

logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL = 300


def manifest_cache_key(video_id: str) -> str:
    return f"video:manifest:{video_id}"


class ManifestCache:
    """Stores whole playback responses for a short TTL.

    The TTL is independent of the signed URL lifetime inside the response.
    """

    def __init__(self, client: redis.Redis, ttl: int = DEFAULT_CACHE_TTL):
        self.client = client
        self.ttl = ttl

    async def get(self, video_id: str) -> Optional[PlaybackManifestResponse]:
        """Get a cached response, or None on a miss.

        Values that cannot be decoded count as a miss.
        """
        cached = await self.client.get(manifest_cache_key(video_id))
        if not cached:
            return None
        try:
            return PlaybackManifestResponse.model_validate(json.loads(cached))
        except (ValueError, ValidationError):
            logger.warning("Discarding undecodable cache entry for %s", video_id)
            return None

    async def set(self, response: PlaybackManifestResponse) -> None:
        await self.client.set(
            manifest_cache_key(response.video_id),
            json.dumps(response.to_body()),
            ex=self.ttl,
        )
