"""Pydantic schemas for transcode job messages."""

import json
from datetime import datetime, timezone
from pathlib import PurePosixPath
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from hlspipe.modules.transcoding.exceptions import MalformedJobError


def derive_video_id(filename: str) -> str:
    """Video id of an uploaded object: its filename without extension."""
    return PurePosixPath(filename).stem


class TranscodeJobMessage(BaseModel):
    """Queue payload asking for one source object to be transcoded.

    Unknown fields are ignored; ``timestamp`` is advisory only.
    """

    model_config = ConfigDict(extra="ignore")

    bucket: str = Field(..., min_length=1)
    filename: str = Field(..., min_length=1)
    timestamp: Optional[Any] = None

    @field_validator("filename")
    @classmethod
    def filename_has_stem(cls, v: str) -> str:
        if not derive_video_id(v):
            raise ValueError("filename must name an object")
        return v

    @property
    def video_id(self) -> str:
        return derive_video_id(self.filename)

    def to_payload(self) -> bytes:
        """Serialize to the JSON wire format."""
        return json.dumps(self.model_dump(exclude_none=True)).encode("utf-8")

    @classmethod
    def create(cls, bucket: str, filename: str) -> "TranscodeJobMessage":
        """New job stamped with the current time."""
        return cls(
            bucket=bucket,
            filename=filename,
            timestamp=datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
        )


def parse_job_payload(body: bytes) -> TranscodeJobMessage:
    """Decode and validate a queue payload.

    Raises:
        MalformedJobError: If the body is not JSON or fails validation
    """
    try:
        data = json.loads(body)
    except (UnicodeDecodeError, ValueError, RecursionError) as e:
        raise MalformedJobError(f"Failed to parse job JSON: {e}") from e

    if not isinstance(data, dict):
        raise MalformedJobError("Job payload must be a JSON object")

    try:
        return TranscodeJobMessage.model_validate(data)
    except ValidationError as e:
        raise MalformedJobError(f"Invalid job payload: {e}") from e
