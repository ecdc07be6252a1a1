from __future__ import annotations

from collections import defaultdict
from collections.abc import Mapping
from dataclasses import dataclass
import logging
from typing import Any, Callable, Sequence

from program_executor.config import Settings
from program_executor.consumer import RabbitMqConsumer
from program_executor.errors import ProgramProcessingError
from program_executor.handler import ProgramHandler
from program_executor.jobs import Job, JobLibrary
from program_executor.models import Program
from program_executor.processor import ProgramExecutorProcessor
from program_executor.queue_manager import QueueManager
from program_executor.store import ProgramStore, get_engine

logger = logging.getLogger(__name__)

PROGRAM_ERROR = "program_error"
PREFETCH_COUNT = 1
RETRY_TIME_MS = 60_000
MAX_ERROR_MESSAGE_LENGTH = 255


@dataclass(frozen=True)
class Dependencies:
    store: ProgramStore
    queue_manager: QueueManager
    handler: ProgramHandler


@dataclass(frozen=True)
class ProgramErrorEvent:
    error: BaseException
    message: Any


Listener = Callable[[ProgramErrorEvent], None]


def build_dependencies(settings: Settings) -> Dependencies:
    store = ProgramStore(get_engine(settings.database_url, settings.db_echo), settings.table_name)
    queue_manager = QueueManager(settings.amqp_url, settings.queue_name)
    return Dependencies(
        store=store,
        queue_manager=queue_manager,
        handler=ProgramHandler(store, queue_manager),
    )


def truncate_error_message(message: str, limit: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    return message[:limit]


class ProgramExecutor:
    """Entry point for creating programs and consuming their completion messages.

    A failed message is reported twice: listeners of ``program_error`` get the
    original error and payload, and the broker layer gets a
    ``ProgramProcessingError`` whose message is cut to 255 characters so a
    single log line stays intact in the log aggregator.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        dependencies_factory: Callable[[Settings], Dependencies] = build_dependencies,
        consumer_factory: Callable[..., Any] = RabbitMqConsumer,
    ) -> None:
        self._settings = settings
        self._dependencies_factory = dependencies_factory
        self._consumer_factory = consumer_factory
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    @property
    def consumer_logger_name(self) -> str:
        return f"{self._settings.queue_name}-consumer"

    def on(self, event: str, listener: Listener) -> None:
        self._listeners[event].append(listener)

    def remove_listener(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(event, [])
        if listener in listeners:
            listeners.remove(listener)

    def create_program(
        self,
        jobs: Sequence[str],
        program_data: dict[str, Any] | None = None,
    ) -> str:
        dependencies = self._dependencies_factory(self._settings)
        return dependencies.handler.create_program(jobs, program_data)

    def get_program(self, program_id: str) -> Program:
        dependencies = self._dependencies_factory(self._settings)
        return dependencies.handler.get_program(program_id)

    def process_programs(self, job_library: JobLibrary | Mapping[str, Job]) -> Any:
        dependencies = self._dependencies_factory(self._settings)
        processor = ProgramExecutorProcessor(
            dependencies.handler,
            dependencies.queue_manager,
            JobLibrary.from_value(job_library),
        )

        def on_message(message: Any) -> None:
            self._handle_message(processor, message)

        consumer = self._consumer_factory(
            self._settings.amqp_url,
            channel=self._settings.queue_name,
            logger=self.consumer_logger_name,
            prefetch_count=PREFETCH_COUNT,
            retry_time_ms=RETRY_TIME_MS,
            on_message=on_message,
        )
        consumer.process()
        return consumer

    def _handle_message(self, processor: ProgramExecutorProcessor, message: Any) -> None:
        try:
            processor.process(message)
        except Exception as exc:
            self._emit(PROGRAM_ERROR, ProgramErrorEvent(error=exc, message=message))
            bounded = ProgramProcessingError(truncate_error_message(str(exc)))
        else:
            return
        # Raised outside the except block so the original is not chained.
        raise bounded

    def _emit(self, event: str, payload: ProgramErrorEvent) -> None:
        for listener in list(self._listeners.get(event, [])):
            try:
                listener(payload)
            except Exception:
                logger.exception("%s listener failed", event)
