"""Tests for the playback HTTP surface.

**Feature: hlspipe, Property 16: Playback Error Mapping**
"""

import pytest
from fastapi.testclient import TestClient

from hlspipe.core.storage import StorageError
from hlspipe.main import app
from hlspipe.modules.playback.router import get_playback_resolver
from hlspipe.modules.playback.schemas import PlaybackManifestResponse
from hlspipe.modules.playback.service import (
    ManifestMissingError,
    VideoNotFoundError,
    VideoNotReadyError,
)
from hlspipe.modules.video.models import VideoStatus


class StubResolver:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.calls = []

    async def resolve_manifest(self, video_id: str):
        self.calls.append(video_id)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def client_with():
    def make(resolver: StubResolver) -> TestClient:
        app.dependency_overrides[get_playback_resolver] = lambda: resolver
        return TestClient(app)

    yield make
    app.dependency_overrides.clear()


class TestPlaybackRouter:
    """**Feature: hlspipe, Property 16: Playback Error Mapping**"""

    def test_ready_video_returns_manifest_body(self, client_with) -> None:
        resolver = StubResolver(result=PlaybackManifestResponse(
            video_id="clip1",
            manifest_url="https://cdn.example.com/video-uploads/transcoded/clip1/playlist.m3u8?sig",
            expires_in=3600,
            timestamp="2024-01-01T00:00:00.000Z",
        ))

        response = client_with(resolver).get("/play/clip1/manifest")

        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "videoId": "clip1",
            "manifestUrl": "https://cdn.example.com/video-uploads/transcoded/clip1/playlist.m3u8?sig",
            "expiresIn": 3600,
            "timestamp": "2024-01-01T00:00:00.000Z",
        }
        assert "X-Correlation-ID" in response.headers

    def test_unknown_video_is_404(self, client_with) -> None:
        response = client_with(StubResolver(error=VideoNotFoundError("clip1"))).get("/play/clip1/manifest")

        assert response.status_code == 404
        assert response.json() == {"error": "Video not found in database"}

    @pytest.mark.parametrize("status", [VideoStatus.UPLOADED, VideoStatus.TRANSCODING, VideoStatus.FAILED])
    def test_not_ready_is_409_with_status(self, client_with, status: VideoStatus) -> None:
        resolver = StubResolver(error=VideoNotReadyError("clip1", status))

        response = client_with(resolver).get("/play/clip1/manifest")

        assert response.status_code == 409
        assert response.json() == {"error": "Video not ready for playback", "currentStatus": status.value}

    def test_missing_manifest_is_404_with_video_id(self, client_with) -> None:
        resolver = StubResolver(error=ManifestMissingError("clip1", "transcoded/clip1/playlist.m3u8"))

        response = client_with(resolver).get("/play/clip1/manifest")

        assert response.status_code == 404
        assert response.json() == {
            "error": "Manifest file does not exist for requested video",
            "videoId": "clip1",
        }

    def test_unexpected_error_is_500(self, client_with) -> None:
        resolver = StubResolver(error=StorageError("endpoint unreachable"))

        response = client_with(resolver).get("/play/clip1/manifest")

        assert response.status_code == 500
        assert response.json() == {"error": "Failed to generate signed URL", "details": "endpoint unreachable"}

    def test_blank_video_id_is_400_without_lookup(self, client_with) -> None:
        resolver = StubResolver()

        response = client_with(resolver).get("/play/%20/manifest")

        assert response.status_code == 400
        assert response.json()["error"] == "Invalid videoId parameter"
        assert resolver.calls == []

    def test_health_and_metrics(self, client_with) -> None:
        client = client_with(StubResolver())

        assert client.get("/health").json() == {"status": "healthy"}
        metrics = client.get("/metrics")
        assert metrics.status_code == 200
        assert "playback_manifest_requests_total" in metrics.text
