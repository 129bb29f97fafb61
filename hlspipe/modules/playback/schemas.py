"""Pydantic schemas for playback responses."""

from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field


def utc_timestamp() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PlaybackManifestResponse(BaseModel):
    """Signed master playlist URL for a ready video.

    Serialized with camelCase keys; this is also the cached form.
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    video_id: str = Field(..., alias="videoId")
    manifest_url: str = Field(..., alias="manifestUrl")
    expires_in: int = Field(3600, alias="expiresIn")
    timestamp: str

    def to_body(self) -> dict:
        return self.model_dump(by_alias=True)
