from __future__ import annotations

import logging
from threading import Event, Thread
from typing import Any, Callable

from kombu import Connection, Producer, Queue
from kombu.message import Message
from kombu.mixins import ConsumerMixin

RETRY_COUNT_HEADER = "x-retry-count"


def _retry_count(headers: dict[str, Any] | None) -> int:
    value = (headers or {}).get(RETRY_COUNT_HEADER) or 0
    return int(value)


class RabbitMqConsumer(ConsumerMixin):
    """Consume one queue on a background thread, one message at a time.

    A message whose callback raises is republished to ``<channel>-retry``; that
    queue has no consumer and dead-letters back to ``<channel>`` once
    ``retry_time_ms`` has passed, which gives a fixed redelivery delay. After
    ``max_retries`` redeliveries a failing message moves to ``<channel>-parked``
    instead, where it stays until an operator looks at it.
    """

    def __init__(
        self,
        amqp_url: str,
        *,
        channel: str,
        logger: str,
        prefetch_count: int,
        retry_time_ms: int,
        on_message: Callable[[Any], None],
        max_retries: int = 10,
        startup_timeout_seconds: float | None = 30.0,
    ) -> None:
        self.connection = Connection(amqp_url)
        self.channel_name = channel
        self.logger_name = logger
        self.prefetch_count = prefetch_count
        self.retry_time_ms = retry_time_ms
        self.on_message = on_message
        self.max_retries = max_retries

        self._logger = logging.getLogger(logger)
        self._startup_timeout_seconds = startup_timeout_seconds
        self._queue = Queue(channel, durable=True)
        self._retry_queue = Queue(
            f"{channel}-retry",
            durable=True,
            queue_arguments={
                "x-message-ttl": retry_time_ms,
                "x-dead-letter-exchange": "",
                "x-dead-letter-routing-key": channel,
            },
        )
        self._parked_queue = Queue(f"{channel}-parked", durable=True)
        self._producer: Producer | None = None
        self._ready = Event()
        self._thread: Thread | None = None

    @property
    def queue(self) -> Queue:
        return self._queue

    @property
    def retry_queue(self) -> Queue:
        return self._retry_queue

    @property
    def parked_queue(self) -> Queue:
        return self._parked_queue

    def get_consumers(self, Consumer, channel):  # noqa: N803 - kombu calling convention
        return [
            Consumer(
                queues=[self._queue],
                callbacks=[self.handle_message],
                prefetch_count=self.prefetch_count,
                accept=["json"],
            )
        ]

    def on_consume_ready(self, connection, channel, consumers, **kwargs) -> None:
        self._producer = Producer(channel, serializer="json")
        self._retry_queue.bind(channel).declare()
        self._parked_queue.bind(channel).declare()
        self._logger.info(
            "consuming channel=%s prefetch_count=%s retry_time_ms=%s",
            self.channel_name,
            self.prefetch_count,
            self.retry_time_ms,
        )
        self._ready.set()

    def on_connection_error(self, exc: Exception, interval: float) -> None:
        self._logger.warning("broker connection failed error=%s; retrying in %.1fs", exc, interval)

    def handle_message(self, body: Any, message: Message) -> None:
        try:
            self.on_message(body)
        except Exception as exc:
            retries = _retry_count(message.headers)
            if retries >= self.max_retries:
                self._logger.error(
                    "message parked channel=%s retries=%s error=%s",
                    self.channel_name,
                    retries,
                    exc,
                )
                self._publish(body, self._parked_queue, retries)
            else:
                self._logger.warning(
                    "message failed channel=%s retries=%s error=%s; retrying in %sms",
                    self.channel_name,
                    retries,
                    exc,
                    self.retry_time_ms,
                )
                self._publish(body, self._retry_queue, retries + 1)
        message.ack()

    def _publish(self, body: Any, queue: Queue, retries: int) -> None:
        if self._producer is None:
            raise RuntimeError("consumer is not connected")
        self._producer.publish(
            body,
            routing_key=queue.name,
            declare=[queue],
            headers={RETRY_COUNT_HEADER: retries},
            delivery_mode="persistent",
        )

    def process(self) -> None:
        if self._thread is not None:
            raise RuntimeError("consumer already started")

        self.should_stop = False
        self._thread = Thread(target=self.run, name=f"{self.logger_name}-thread", daemon=True)
        self._thread.start()

        if not self._ready.wait(self._startup_timeout_seconds):
            self.stop()
            raise ConnectionError(f"consumer for {self.channel_name} did not start in time")

    def stop(self, timeout_seconds: float | None = 10.0) -> None:
        self.should_stop = True
        if self._thread is not None:
            self._thread.join(timeout_seconds)
            self._thread = None
        self._ready.clear()
