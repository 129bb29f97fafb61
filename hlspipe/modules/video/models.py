"""Video model and status state machine."""

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from hlspipe.core.database import Base


class VideoStatus(str, Enum):
    """Status of a video in the transcode pipeline."""

    UPLOADED = "uploaded"
    TRANSCODING = "transcoding"
    READY = "ready"
    FAILED = "failed"


# Edges of one job attempt. A new delivery for the same video may re-enter
# TRANSCODING from any state, which is not an edge of this graph.
ALLOWED_TRANSITIONS: dict[VideoStatus, frozenset[VideoStatus]] = {
    VideoStatus.UPLOADED: frozenset({VideoStatus.TRANSCODING}),
    VideoStatus.TRANSCODING: frozenset({VideoStatus.READY, VideoStatus.FAILED}),
    VideoStatus.READY: frozenset(),
    VideoStatus.FAILED: frozenset(),
}

TERMINAL_STATUSES = frozenset({VideoStatus.READY, VideoStatus.FAILED})


class InvalidStatusTransitionError(Exception):
    """Raised when a status change is not an edge of the pipeline."""

    def __init__(self, current: VideoStatus, target: VideoStatus):
        super().__init__(f"Invalid status transition {current.value} -> {target.value}")
        self.current = current
        self.target = target


def is_valid_transition(current: VideoStatus, target: VideoStatus) -> bool:
    """Check whether ``current -> target`` is an edge within one attempt."""
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def validate_transition(current: VideoStatus, target: VideoStatus) -> None:
    """Raise InvalidStatusTransitionError unless ``current -> target`` is allowed."""
    if not is_valid_transition(current, target):
        raise InvalidStatusTransitionError(current, target)


class Video(Base):
    """Persisted video metadata keyed by ``video_id``.

    ``video_id`` is the uploaded filename without its extension.
    """

    __tablename__ = "videos"

    video_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    title: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    uploader_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(
        String(50), nullable=False, default=VideoStatus.UPLOADED.value
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return f"<Video {self.video_id} - {self.status}>"
