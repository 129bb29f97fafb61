"""Video status store.

VideoRepository holds the SQL operations for one session; StatusStore is
the narrow interface the pipeline and the playback resolver depend on.
"""

from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.sql import func

from hlspipe.modules.video.models import Video, VideoStatus
from hlspipe.modules.video.schemas import VideoRecord


class VideoRepository:
    """Repository for Video operations."""

    def __init__(self, session: AsyncSession):
        """Initialize repository with database session."""
        self.session = session

    async def create(
        self,
        video_id: str,
        title: Optional[str] = None,
        description: Optional[str] = None,
        uploader_id: Optional[str] = None,
        status: VideoStatus = VideoStatus.UPLOADED,
    ) -> Video:
        """Create a new video record.

        Args:
            video_id: Filename of the upload without extension
            title: Video title
            description: Video description
            uploader_id: Uploading user
            status: Initial status

        Returns:
            Video: Created video instance
        """
        video = Video(
            video_id=video_id,
            title=title,
            description=description,
            uploader_id=uploader_id,
            status=status.value,
        )
        self.session.add(video)
        await self.session.flush()
        return video

    async def get_by_video_id(self, video_id: str) -> Optional[Video]:
        """Get a video by its video_id."""
        result = await self.session.execute(
            select(Video).where(Video.video_id == video_id).limit(1)
        )
        return result.scalar_one_or_none()

    async def update_status(self, video_id: str, status: VideoStatus) -> bool:
        """Set the status of a video.

        Returns:
            bool: True if a record was updated
        """
        result = await self.session.execute(
            update(Video)
            .where(Video.video_id == video_id)
            .values(status=status.value, updated_at=func.now())
        )
        return result.rowcount > 0

    async def list_videos(self, limit: int = 10, offset: int = 0) -> list[Video]:
        """List videos, newest first."""
        result = await self.session.execute(
            select(Video).order_by(Video.created_at.desc()).limit(limit).offset(offset)
        )
        return list(result.scalars().all())


class StatusStore(ABC):
    """Read and update video status by video_id."""

    @abstractmethod
    async def update_status(self, video_id: str, status: VideoStatus) -> bool:
        """Persist a new status. Returns False if no such video exists."""

    @abstractmethod
    async def get_by_video_id(self, video_id: str) -> Optional[VideoRecord]:
        """Get the record for a video, or None."""


class SQLAlchemyStatusStore(StatusStore):
    """Status store that runs each call in its own committed session.

    The writes are unconditional: a redelivered job must be able to move a
    ``ready`` or ``failed`` video back into ``transcoding``.
    """

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self.session_maker = session_maker

    async def update_status(self, video_id: str, status: VideoStatus) -> bool:
        async with self.session_maker() as session:
            updated = await VideoRepository(session).update_status(video_id, status)
            await session.commit()
            return updated

    async def get_by_video_id(self, video_id: str) -> Optional[VideoRecord]:
        async with self.session_maker() as session:
            video = await VideoRepository(session).get_by_video_id(video_id)
            if video is None:
                return None
            return VideoRecord.model_validate(video)
