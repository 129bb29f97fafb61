"""Failure taxonomy of a transcode job attempt."""


class TranscodeError(Exception):
    """Base exception for transcode job failures."""

    outcome = "failed"


class MalformedJobError(TranscodeError):
    """Payload is not valid JSON or does not match the job schema.

    Raised before a video_id is known, so no status is touched.
    """

    outcome = "malformed"


class SourceFetchError(TranscodeError):
    """The source object could not be downloaded."""


class EncodeFailedError(TranscodeError):
    """The media encoder reported failure."""


class SegmentUploadError(TranscodeError):
    """A segment could not be uploaded."""


class ManifestError(TranscodeError):
    """Playlists could not be generated or uploaded."""
