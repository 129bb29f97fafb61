"""Transcode orchestration.

Drives one queue delivery through the pipeline:

    uploaded -> transcoding -> download -> encode -> upload segments
             -> manifests -> ready -> ack

Any failure after the payload has been validated marks the video
``failed`` and hands the message to the retry policy, which by default
rejects it without requeue. Malformed payloads are rejected without
touching the status store.

Jobs for the same video_id are not serialized across workers: two
deliveries in flight at once both run to completion and the last writes
to the status store and the object store win.
"""

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Awaitable, Callable, Optional, Sequence

from hlspipe.core.logging import log_error, log_info, log_warning
from hlspipe.core.metrics import record_job_outcome, record_segment_uploaded
from hlspipe.core.queue import ATTEMPT_HEADER, QueueError, QueueMessage, WorkQueue
from hlspipe.core.storage import SEGMENT_CONTENT_TYPE, ContentStore, StorageError
from hlspipe.modules.transcoding.exceptions import (
    EncodeFailedError,
    MalformedJobError,
    ManifestError,
    SegmentUploadError,
    SourceFetchError,
    TranscodeError,
)
from hlspipe.modules.transcoding.ffmpeg import EncodeOutput, EncoderError, MediaEncoder
from hlspipe.modules.transcoding.manifest import ManifestGenerator
from hlspipe.modules.transcoding.policy import FailureAction, RetryPolicy
from hlspipe.modules.transcoding.renditions import RENDITION_LADDER, Rendition, segment_key
from hlspipe.modules.transcoding.schemas import TranscodeJobMessage, parse_job_payload
from hlspipe.modules.video.models import VideoStatus, is_valid_transition
from hlspipe.modules.video.repository import StatusStore

logger = logging.getLogger(__name__)

ERROR_HEADER = "x-error"


@dataclass
class JobOutcome:
    """How one delivery ended."""
    outcome: str  # ready, failed, retried, dead_lettered, malformed
    video_id: Optional[str] = None
    action: Optional[FailureAction] = None
    error: Optional[str] = None


class TranscodeOrchestrator:
    """Runs transcode jobs delivered by the work queue.

    Every collaborator is injected; the orchestrator owns no client handles.
    """

    def __init__(
        self,
        store: ContentStore,
        queue: WorkQueue,
        status_store: StatusStore,
        encoder: MediaEncoder,
        manifests: ManifestGenerator,
        queue_name: str,
        scratch_dir: Path,
        retry_policy: Optional[RetryPolicy] = None,
        ladder: Sequence[Rendition] = RENDITION_LADDER,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.store = store
        self.queue = queue
        self.status_store = status_store
        self.encoder = encoder
        self.manifests = manifests
        self.queue_name = queue_name
        self.scratch_dir = Path(scratch_dir)
        self.retry_policy = retry_policy or RetryPolicy()
        self.ladder = ladder
        self.sleep = sleep

    def input_path(self, job: TranscodeJobMessage) -> Path:
        return self.scratch_dir / "input" / PurePosixPath(job.filename).name

    def output_dir(self, job: TranscodeJobMessage) -> Path:
        return self.scratch_dir / "output" / job.video_id

    async def process_job(self, message: QueueMessage) -> JobOutcome:
        """Process one delivery and acknowledge or reject it.

        Never raises for job failures; only queue errors on ack/nack escape.
        """
        started = time.monotonic()

        try:
            job = parse_job_payload(message.body)
        except MalformedJobError as e:
            log_error(logger, "Rejecting malformed job", e, delivery_tag=str(message.delivery_tag))
            self.queue.nack_without_requeue(message)
            record_job_outcome(e.outcome, time.monotonic() - started)
            return JobOutcome(outcome=e.outcome, action=FailureAction.DROP, error=str(e))

        video_id = job.video_id
        log_info(
            logger,
            "Received transcode job",
            video_id=video_id,
            bucket=job.bucket,
            source_key=job.filename,
            attempt=message.attempt,
        )

        try:
            await self._run_pipeline(job)
        except Exception as e:
            log_error(logger, "Error processing job", e, video_id=video_id, attempt=message.attempt)
            await self._mark_failed(video_id)
            outcome = await self._dispose_failed(message, e)
            outcome.video_id = video_id
            record_job_outcome(outcome.outcome, time.monotonic() - started)
            return outcome

        self.queue.ack(message)
        record_job_outcome("ready", time.monotonic() - started)
        log_info(logger, "Video ready", video_id=video_id)
        return JobOutcome(outcome="ready", video_id=video_id)

    async def _run_pipeline(self, job: TranscodeJobMessage) -> None:
        video_id = job.video_id

        record = await self.status_store.get_by_video_id(video_id)
        if record is None:
            log_warning(logger, "No status record for video", video_id=video_id)
        elif not is_valid_transition(record.status, VideoStatus.TRANSCODING):
            log_warning(
                logger,
                "Reprocessing video",
                video_id=video_id,
                previous_status=record.status.value,
            )
        await self.status_store.update_status(video_id, VideoStatus.TRANSCODING)

        input_path = self.input_path(job)
        try:
            self._download_source(job, input_path)
            output = self._encode(job, input_path)
            self._upload_segments(job, output)
            self._generate_manifests(job)
            await self.status_store.update_status(video_id, VideoStatus.READY)
        finally:
            input_path.unlink(missing_ok=True)

        shutil.rmtree(output.output_dir, ignore_errors=True)

    def _download_source(self, job: TranscodeJobMessage, input_path: Path) -> None:
        try:
            self.store.download(job.bucket, job.filename, input_path)
        except StorageError as e:
            raise SourceFetchError(f"Failed to download {job.bucket}/{job.filename}: {e}") from e
        log_info(logger, "Downloaded input video", video_id=job.video_id, path=str(input_path))

    def _encode(self, job: TranscodeJobMessage, input_path: Path) -> EncodeOutput:
        try:
            output = self.encoder.encode(input_path, self.output_dir(job), self.ladder)
        except EncoderError as e:
            log_error(
                logger,
                "Encoder failed",
                video_id=job.video_id,
                returncode=e.returncode,
                stderr=e.stderr,
            )
            raise EncodeFailedError(str(e)) from e
        log_info(
            logger,
            "Encoding finished",
            video_id=job.video_id,
            segments={name: len(files) for name, files in output.segments.items()},
        )
        return output

    def _upload_segments(self, job: TranscodeJobMessage, output: EncodeOutput) -> None:
        for rendition in self.ladder:
            for path in output.segments.get(rendition.name, []):
                key = segment_key(job.video_id, rendition.name, path.name)
                try:
                    self.store.upload_file(job.bucket, key, path, SEGMENT_CONTENT_TYPE)
                except (StorageError, OSError) as e:
                    raise SegmentUploadError(f"Failed to upload {key}: {e}") from e
                record_segment_uploaded(rendition.name)
                logger.debug("Uploaded %s to %s", path.name, key)

    def _generate_manifests(self, job: TranscodeJobMessage) -> None:
        try:
            self.manifests.generate_and_upload_manifests(job.bucket, job.video_id)
        except StorageError as e:
            raise ManifestError(f"Failed to generate manifests for {job.video_id}: {e}") from e

    async def _mark_failed(self, video_id: str) -> None:
        try:
            await self.status_store.update_status(video_id, VideoStatus.FAILED)
        except Exception as e:
            # The video stays in TRANSCODING until reconciled externally.
            log_error(logger, "Failed to update video status to failed", e, video_id=video_id)

    async def _dispose_failed(self, message: QueueMessage, exc: Exception) -> JobOutcome:
        attempt = message.attempt
        action = self.retry_policy.action_for(attempt)
        error = str(exc)
        outcome = exc.outcome if isinstance(exc, TranscodeError) else "failed"

        if action is FailureAction.RETRY:
            delay = self.retry_policy.calculate_delay(attempt)
            log_warning(logger, "Retrying job", attempt=attempt, delay_seconds=delay)
            await self.sleep(delay)
            if self._republish(self.queue_name, message, {ATTEMPT_HEADER: attempt + 1}):
                return JobOutcome(outcome="retried", action=action, error=error)
        elif action is FailureAction.DEAD_LETTER:
            headers = {ATTEMPT_HEADER: attempt, ERROR_HEADER: error[:1000]}
            if self._republish(self.retry_policy.dead_letter_queue, message, headers):
                return JobOutcome(outcome="dead_lettered", action=action, error=error)

        self.queue.nack_without_requeue(message)
        return JobOutcome(outcome=outcome, action=FailureAction.DROP, error=error)

    def _republish(self, queue_name: str, message: QueueMessage, headers: dict) -> bool:
        """Publish a copy of ``message`` and ack the original.

        Returns False if publishing failed and the original is still unacked.
        """
        try:
            self.queue.publish(queue_name, message.body, durable=True, persistent=True, headers=headers)
        except QueueError as e:
            log_error(logger, "Failed to republish job", e, target_queue=queue_name)
            return False
        self.queue.ack(message)
        return True


def enqueue_transcode_job(queue: WorkQueue, queue_name: str, bucket: str, filename: str) -> TranscodeJobMessage:
    """Publish a transcode job for an uploaded object.

    Args:
        queue: Work queue
        queue_name: Target queue
        bucket: Bucket holding the upload
        filename: Object key of the upload, including extension

    Returns:
        The published job
    """
    job = TranscodeJobMessage.create(bucket=bucket, filename=filename)
    queue.publish(queue_name, job.to_payload(), durable=True, persistent=True)
    log_info(logger, "Queued transcode job", video_id=job.video_id, bucket=bucket, source_key=filename)
    return job
