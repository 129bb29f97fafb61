"""Playback API router."""

import logging

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from hlspipe.core.config import Settings, get_settings
from hlspipe.core.database import get_session_maker
from hlspipe.core.logging import log_error
from hlspipe.core.metrics import record_playback_request
from hlspipe.core.redis import get_redis
from hlspipe.core.storage import S3ContentStore, StorageConfig, get_shared_s3_client
from hlspipe.modules.playback.cache import ManifestCache
from hlspipe.modules.playback.service import (
    ManifestMissingError,
    PlaybackResolver,
    VideoNotFoundError,
    VideoNotReadyError,
)
from hlspipe.modules.transcoding.signing import UrlSigner
from hlspipe.modules.video.repository import SQLAlchemyStatusStore

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/play", tags=["playback"])


async def get_playback_resolver(
    settings: Settings = Depends(get_settings),
    session_maker: async_sessionmaker[AsyncSession] = Depends(get_session_maker),
) -> PlaybackResolver:
    """Build a resolver bound to the configured store, database and cache."""
    storage_config = StorageConfig.from_settings(settings)
    client = get_shared_s3_client(storage_config)
    return PlaybackResolver(
        status_store=SQLAlchemyStatusStore(session_maker),
        store=S3ContentStore(storage_config, client=client),
        signer=UrlSigner(client, settings.STORAGE_PUBLIC_BASE_URL),
        cache=ManifestCache(await get_redis(), ttl=settings.MANIFEST_CACHE_TTL_SECONDS),
        bucket=settings.STORAGE_BUCKET,
        url_ttl=settings.SIGNED_URL_TTL_SECONDS,
    )


@router.get("/{video_id}/manifest")
async def get_playback_manifest(
    video_id: str,
    resolver: PlaybackResolver = Depends(get_playback_resolver),
):
    """Get a signed URL of the video's master playlist.

    Returns 409 with the current status while the video is not ready, so
    clients can keep polling a video that is still transcoding.
    """
    if not video_id.strip():
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": "Invalid videoId parameter", "details": "videoId must not be empty"},
        )

    try:
        response = await resolver.resolve_manifest(video_id)
    except VideoNotFoundError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Video not found in database"},
        )
    except VideoNotReadyError as e:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content={"error": "Video not ready for playback", "currentStatus": e.status.value},
        )
    except ManifestMissingError:
        return JSONResponse(
            status_code=status.HTTP_404_NOT_FOUND,
            content={"error": "Manifest file does not exist for requested video", "videoId": video_id},
        )
    except Exception as e:
        log_error(logger, "Error generating signed URL", e, video_id=video_id)
        record_playback_request("error")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Failed to generate signed URL", "details": str(e)},
        )

    return response.to_body()
