from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from program_executor.errors import MalformedMessageError
from program_executor.handler import ProgramHandler
from program_executor.jobs import JobLibrary
from program_executor.models import CompletionMessage, Program
from program_executor.queue_manager import QueueManager

logger = logging.getLogger(__name__)


def parse_message(message: Any) -> CompletionMessage:
    if isinstance(message, CompletionMessage):
        return message
    try:
        if isinstance(message, (str, bytes, bytearray)):
            return CompletionMessage.model_validate_json(message)
        if isinstance(message, dict):
            return CompletionMessage.model_validate(message)
    except ValidationError as exc:
        raise MalformedMessageError(f"invalid completion message: {exc}") from exc
    raise MalformedMessageError(f"unsupported message type: {type(message).__name__}")


class ProgramExecutorProcessor:
    """Runs the single step that one completion message asks for.

    The cursor is advanced before the next job runs, so a failing job never
    rewinds the program: the stored position still records that the previous
    job finished. A start trigger runs the first job without moving the
    cursor. Job and publish errors propagate to the caller unchanged.
    """

    def __init__(
        self,
        handler: ProgramHandler,
        queue_manager: QueueManager,
        job_library: JobLibrary,
    ) -> None:
        self._handler = handler
        self._queue_manager = queue_manager
        self._job_library = job_library

    def process(self, message: Any) -> None:
        completion = parse_message(message)
        if completion.is_start:
            program = self._handler.start(completion.program_id)
            self._run_job(program, program.jobs[program.step])
            return

        result = self._handler.advance(completion.program_id, completion.job_name)
        if result.completed:
            logger.info("program finished program_id=%s", completion.program_id)
            return

        self._run_job(result.program, result.next_job)

    def _run_job(self, program: Program, job_name: str) -> None:
        job = self._job_library.resolve(job_name)
        job.execute(program)

        self._queue_manager.publish(CompletionMessage(program_id=program.id, job_name=job_name))
        logger.info("job executed program_id=%s job=%s", program.id, job_name)
