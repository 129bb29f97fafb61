"""Durable work queue abstraction and its kombu (AMQP) adapter.

Acknowledgment is always explicit: a consumed message stays unacknowledged
until the caller acks or rejects it, and at most ``prefetch`` messages are
delivered to one consumer before that happens.
"""

import logging
import socket
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Iterator, Optional

from kombu import Connection, Consumer, Exchange, Producer, Queue
from kombu.exceptions import KombuError

logger = logging.getLogger(__name__)

ATTEMPT_HEADER = "x-attempt"


class QueueError(Exception):
    """Raised when a queue operation fails."""


@dataclass
class QueueMessage:
    """A delivered message awaiting acknowledgment."""
    body: bytes
    headers: dict[str, Any] = field(default_factory=dict)
    delivery_tag: Optional[Any] = None
    raw: Any = None

    @property
    def attempt(self) -> int:
        """Delivery attempt recorded by the retry policy, 1 for a fresh job."""
        try:
            return max(1, int(self.headers.get(ATTEMPT_HEADER, 1)))
        except (TypeError, ValueError):
            return 1


class WorkQueue(ABC):
    """Abstract durable work queue."""

    @abstractmethod
    def publish(
        self,
        queue_name: str,
        payload: bytes,
        durable: bool = True,
        persistent: bool = True,
        headers: Optional[dict[str, Any]] = None,
    ) -> None:
        """Publish a payload to a queue."""

    @abstractmethod
    def consume(self, queue_name: str, prefetch: int = 1) -> Iterator[QueueMessage]:
        """Yield delivered messages forever.

        The iterator is lazy and cannot be restarted once it has been
        abandoned; create a new one to resume consumption.
        """

    @abstractmethod
    def ack(self, message: QueueMessage) -> None:
        """Acknowledge a message, removing it from the queue."""

    @abstractmethod
    def nack_without_requeue(self, message: QueueMessage) -> None:
        """Reject a message so that it is never redelivered."""


def declare_queue(queue_name: str, durable: bool = True) -> Queue:
    """Queue bound to the default exchange under its own name."""
    return Queue(
        queue_name,
        exchange=Exchange("", type="direct"),
        routing_key=queue_name,
        durable=durable,
    )


class KombuWorkQueue(WorkQueue):
    """Work queue backed by an AMQP broker through kombu."""

    def __init__(self, broker_url: str, drain_timeout: float = 1.0, connection: Optional[Connection] = None):
        self.broker_url = broker_url
        self.drain_timeout = drain_timeout
        self._connection = connection

    @property
    def connection(self) -> Connection:
        if self._connection is None:
            self._connection = Connection(self.broker_url)
        return self._connection

    def publish(
        self,
        queue_name: str,
        payload: bytes,
        durable: bool = True,
        persistent: bool = True,
        headers: Optional[dict[str, Any]] = None,
    ) -> None:
        queue = declare_queue(queue_name, durable=durable)
        try:
            with self.connection.channel() as channel:
                producer = Producer(channel)
                producer.publish(
                    payload,
                    exchange="",
                    routing_key=queue_name,
                    declare=[queue],
                    delivery_mode=2 if persistent else 1,
                    content_type="application/json",
                    content_encoding="utf-8",
                    headers=headers or {},
                    retry=True,
                )
        except (KombuError, OSError) as e:
            raise QueueError(f"Failed to publish to {queue_name}: {e}") from e

    def consume(self, queue_name: str, prefetch: int = 1) -> Iterator[QueueMessage]:
        queue = declare_queue(queue_name)
        pending: list[Any] = []

        try:
            self.connection.ensure_connection()
            channel = self.connection.channel()
        except (KombuError, OSError) as e:
            raise QueueError(f"Failed to connect to broker: {e}") from e

        consumer = Consumer(
            channel,
            queues=[queue],
            on_message=pending.append,
            no_ack=False,
            prefetch_count=prefetch,
        )
        logger.info("Consuming from %s with prefetch=%d", queue_name, prefetch)

        try:
            with consumer:
                while True:
                    while pending:
                        raw = pending.pop(0)
                        yield QueueMessage(
                            body=raw.body if isinstance(raw.body, bytes) else str(raw.body).encode("utf-8"),
                            headers=dict(raw.headers or {}),
                            delivery_tag=raw.delivery_tag,
                            raw=raw,
                        )
                    try:
                        self.connection.drain_events(timeout=self.drain_timeout)
                    except socket.timeout:
                        self.connection.heartbeat_check()
                    except (KombuError, OSError) as e:
                        raise QueueError(f"Lost connection while consuming {queue_name}: {e}") from e
        finally:
            channel.close()

    def ack(self, message: QueueMessage) -> None:
        try:
            message.raw.ack()
        except (KombuError, OSError) as e:
            raise QueueError(f"Failed to ack message {message.delivery_tag}: {e}") from e

    def nack_without_requeue(self, message: QueueMessage) -> None:
        try:
            message.raw.reject(requeue=False)
        except (KombuError, OSError) as e:
            raise QueueError(f"Failed to reject message {message.delivery_tag}: {e}") from e

    def close(self) -> None:
        if self._connection is not None:
            self._connection.release()
            self._connection = None
