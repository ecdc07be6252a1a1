from __future__ import annotations

from kombu import Connection, Queue

from program_executor.models import CompletionMessage


class QueueManager:
    def __init__(self, amqp_url: str, queue_name: str) -> None:
        self._amqp_url = amqp_url
        self._queue_name = queue_name

    @property
    def queue_name(self) -> str:
        return self._queue_name

    def publish(self, message: CompletionMessage) -> None:
        queue = Queue(self._queue_name, durable=True)
        with Connection(self._amqp_url) as connection:
            producer = connection.Producer(serializer="json")
            producer.publish(
                message.model_dump(),
                routing_key=self._queue_name,
                declare=[queue],
                delivery_mode="persistent",
                retry=True,
            )
