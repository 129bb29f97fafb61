"""Transcode worker process.

Consumes the transcode queue one message at a time. Each delivery runs to
completion (ack or reject) before the next is taken, and the broker never
hands this worker more than ``QUEUE_PREFETCH`` unacknowledged messages.

Usage:
    hlspipe-worker
    hlspipe-enqueue <bucket> <filename>
"""

import argparse
import asyncio
import logging
import uuid
from pathlib import Path
from typing import Optional

from hlspipe.core.config import Settings, get_settings
from hlspipe.core.database import get_session_maker
from hlspipe.core.logging import clear_correlation_id, log_error, set_correlation_id, setup_logging
from hlspipe.core.queue import KombuWorkQueue, QueueError, QueueMessage, WorkQueue
from hlspipe.core.storage import S3ContentStore, StorageConfig, get_s3_client
from hlspipe.modules.transcoding.ffmpeg import FFmpegEncoder
from hlspipe.modules.transcoding.manifest import ManifestGenerator
from hlspipe.modules.transcoding.policy import RetryPolicy
from hlspipe.modules.transcoding.service import TranscodeOrchestrator, enqueue_transcode_job
from hlspipe.modules.transcoding.signing import UrlSigner
from hlspipe.modules.video.repository import SQLAlchemyStatusStore

logger = logging.getLogger(__name__)


class TranscodeWorker:
    """Feeds queue deliveries to the orchestrator.

    The queue client is synchronous, so the orchestrator coroutine for each
    delivery runs on one event loop owned by the worker. Database pools are
    bound to that loop and survive across jobs.
    """

    def __init__(
        self,
        queue: WorkQueue,
        orchestrator: TranscodeOrchestrator,
        queue_name: str,
        prefetch: int = 1,
        max_jobs: Optional[int] = None,
    ):
        self.queue = queue
        self.orchestrator = orchestrator
        self.queue_name = queue_name
        self.prefetch = prefetch
        self.max_jobs = max_jobs
        self.processed = 0

    def run(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> int:
        """Consume until interrupted or ``max_jobs`` deliveries are handled.

        Returns:
            Number of deliveries handled
        """
        owns_loop = loop is None
        loop = loop or asyncio.new_event_loop()
        logger.info("Worker waiting for messages on %s", self.queue_name)

        try:
            for message in self.queue.consume(self.queue_name, prefetch=self.prefetch):
                tag = message.delivery_tag
                set_correlation_id(str(tag) if tag is not None else str(uuid.uuid4()))
                try:
                    outcome = loop.run_until_complete(self.orchestrator.process_job(message))
                    logger.info("Job finished with outcome %s", outcome.outcome)
                except Exception as e:
                    log_error(logger, "Unhandled error processing delivery", e)
                    self._reject(message)
                finally:
                    clear_correlation_id()

                self.processed += 1
                if self.max_jobs is not None and self.processed >= self.max_jobs:
                    break
        except KeyboardInterrupt:
            logger.info("Worker interrupted")
        finally:
            if owns_loop:
                loop.close()

        return self.processed

    def _reject(self, message: QueueMessage) -> None:
        try:
            self.queue.nack_without_requeue(message)
        except QueueError as e:
            # Broker redelivers it once the channel closes.
            log_error(logger, "Failed to reject delivery", e)


def build_orchestrator(settings: Settings, queue: WorkQueue) -> TranscodeOrchestrator:
    """Wire the orchestrator's collaborators from settings."""
    storage_config = StorageConfig.from_settings(settings)
    client = get_s3_client(storage_config)
    store = S3ContentStore(storage_config, client=client)
    signer = UrlSigner(client, settings.STORAGE_PUBLIC_BASE_URL)

    return TranscodeOrchestrator(
        store=store,
        queue=queue,
        status_store=SQLAlchemyStatusStore(get_session_maker()),
        encoder=FFmpegEncoder(ffmpeg_path=settings.FFMPEG_PATH),
        manifests=ManifestGenerator(store, signer, url_ttl=settings.SIGNED_URL_TTL_SECONDS),
        queue_name=settings.TRANSCODE_QUEUE,
        scratch_dir=Path(settings.SCRATCH_DIR),
        retry_policy=RetryPolicy.from_settings(settings),
    )


def build_worker(settings: Optional[Settings] = None) -> TranscodeWorker:
    """Build a worker connected to the configured broker, store and database."""
    settings = settings or get_settings()
    queue = KombuWorkQueue(settings.BROKER_URL)
    return TranscodeWorker(
        queue=queue,
        orchestrator=build_orchestrator(settings, queue),
        queue_name=settings.TRANSCODE_QUEUE,
        prefetch=settings.QUEUE_PREFETCH,
    )


def main() -> None:
    """Entry point for ``hlspipe-worker``."""
    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    worker = build_worker(settings)
    try:
        worker.run()
    finally:
        worker.queue.close()


def enqueue_main(argv: Optional[list[str]] = None) -> None:
    """Entry point for ``hlspipe-enqueue``."""
    parser = argparse.ArgumentParser(description="Queue a transcode job for an uploaded video")
    parser.add_argument("bucket", help="Bucket holding the upload")
    parser.add_argument("filename", help="Object key of the upload")
    parser.add_argument("--queue", "-q", help="Queue name (defaults to TRANSCODE_QUEUE)")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)

    queue = KombuWorkQueue(settings.BROKER_URL)
    try:
        job = enqueue_transcode_job(queue, args.queue or settings.TRANSCODE_QUEUE, args.bucket, args.filename)
    finally:
        queue.close()
    print(f"Queued {job.video_id} from {args.bucket}/{args.filename}")


if __name__ == "__main__":
    main()
