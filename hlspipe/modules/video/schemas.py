"""Pydantic schemas for video records."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

from hlspipe.modules.video.models import VideoStatus


class VideoRecord(BaseModel):
    """Detached view of a persisted video."""

    model_config = ConfigDict(from_attributes=True)

    video_id: str
    title: Optional[str] = None
    description: Optional[str] = None
    uploader_id: Optional[str] = None
    status: VideoStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
