"""Property-based tests for the signed playback resolver.

**Feature: hlspipe, Property 15: Playback Resolution**
"""

import itertools
import json

import pytest
from hypothesis import given, settings, strategies as st

from hlspipe.modules.playback.cache import ManifestCache, manifest_cache_key
from hlspipe.modules.playback.service import (
    ManifestMissingError,
    PlaybackResolver,
    VideoNotFoundError,
    VideoNotReadyError,
)
from hlspipe.modules.transcoding.renditions import master_playlist_key
from hlspipe.modules.video.models import VideoStatus
from tests.fakes import FakeRedis, FakeSigner, InMemoryContentStore, InMemoryStatusStore

BUCKET = "video-uploads"


def make_resolver(status: VideoStatus = VideoStatus.READY, with_master: bool = True):
    status_store = InMemoryStatusStore()
    store = InMemoryContentStore()
    redis = FakeRedis()
    ticks = itertools.count()
    status_store.add("clip1", status)
    if with_master:
        store.put(BUCKET, master_playlist_key("clip1"), b"#EXTM3U", "application/vnd.apple.mpegurl")
    resolver = PlaybackResolver(
        status_store=status_store,
        store=store,
        signer=FakeSigner("https://cdn.example.com"),
        cache=ManifestCache(redis, ttl=300),
        bucket=BUCKET,
        url_ttl=3600,
        clock=lambda: f"2024-01-01T00:00:{next(ticks):02d}.000Z",
    )
    return resolver, status_store, store, redis


class TestPlaybackResolver:
    """**Feature: hlspipe, Property 15: Playback Resolution**"""

    @pytest.mark.asyncio
    async def test_ready_video_resolves_to_signed_master(self) -> None:
        resolver, _, _, redis = make_resolver()

        response = await resolver.resolve_manifest("clip1")

        assert response.success is True
        assert response.video_id == "clip1"
        assert response.expires_in == 3600
        assert response.manifest_url.startswith(
            "https://cdn.example.com/video-uploads/transcoded/clip1/playlist.m3u8?"
        )
        assert redis.expiries[manifest_cache_key("clip1")] == 300

    @pytest.mark.asyncio
    async def test_second_request_is_served_from_cache(self) -> None:
        resolver, status_store, store, _ = make_resolver()

        first = await resolver.resolve_manifest("clip1")
        # A cache hit does not look at status or storage again.
        status_store.add("clip1", VideoStatus.FAILED)
        store.objects.clear()
        second = await resolver.resolve_manifest("clip1")

        assert second.manifest_url == first.manifest_url
        assert second.timestamp == first.timestamp
        assert second.to_body() == first.to_body()

    @pytest.mark.asyncio
    async def test_unknown_video_is_not_found(self) -> None:
        resolver, _, _, _ = make_resolver()

        with pytest.raises(VideoNotFoundError):
            await resolver.resolve_manifest("nope")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [VideoStatus.UPLOADED, VideoStatus.TRANSCODING, VideoStatus.FAILED])
    async def test_not_ready_echoes_status(self, status: VideoStatus) -> None:
        resolver, _, _, redis = make_resolver(status=status)

        with pytest.raises(VideoNotReadyError) as exc_info:
            await resolver.resolve_manifest("clip1")

        assert exc_info.value.status == status
        assert redis.values == {}

    @pytest.mark.asyncio
    async def test_ready_without_master_is_manifest_missing(self) -> None:
        resolver, _, _, redis = make_resolver(with_master=False)

        with pytest.raises(ManifestMissingError) as exc_info:
            await resolver.resolve_manifest("clip1")

        assert exc_info.value.key == "transcoded/clip1/playlist.m3u8"
        assert redis.values == {}

    @pytest.mark.asyncio
    async def test_undecodable_cache_entry_is_a_miss(self) -> None:
        resolver, _, _, redis = make_resolver()
        redis.values[manifest_cache_key("clip1")] = "{not json"

        response = await resolver.resolve_manifest("clip1")

        assert response.video_id == "clip1"
        assert json.loads(redis.values[manifest_cache_key("clip1")])["videoId"] == "clip1"

    @pytest.mark.asyncio
    async def test_cached_body_uses_camel_case(self) -> None:
        resolver, _, _, redis = make_resolver()

        await resolver.resolve_manifest("clip1")

        cached = json.loads(redis.values[manifest_cache_key("clip1")])
        assert set(cached) == {"success", "videoId", "manifestUrl", "expiresIn", "timestamp"}


class TestCacheKey:
    """Cache key scheme."""

    @given(video_id=st.text(min_size=1, max_size=40))
    @settings(max_examples=50)
    def test_key_is_namespaced_by_video(self, video_id: str) -> None:
        assert manifest_cache_key(video_id) == f"video:manifest:{video_id}"
