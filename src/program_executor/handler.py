from __future__ import annotations

from dataclasses import replace
import logging
from typing import Any, Sequence

from program_executor.errors import InvalidInputError, NotFoundError, SequenceMismatchError
from program_executor.models import AdvanceResult, CompletionMessage, Program
from program_executor.queue_manager import QueueManager
from program_executor.store import ProgramStore

logger = logging.getLogger(__name__)


def _validate_jobs(jobs: Sequence[str]) -> list[str]:
    if isinstance(jobs, (str, bytes)):
        raise InvalidInputError("jobs must be a sequence of job names")

    validated = list(jobs)
    if not validated:
        raise InvalidInputError("jobs must not be empty")
    for job in validated:
        if not isinstance(job, str) or not job.strip():
            raise InvalidInputError(f"job names must be non-empty strings, got {job!r}")
    return validated


class ProgramHandler:
    def __init__(self, store: ProgramStore, queue_manager: QueueManager) -> None:
        self._store = store
        self._queue_manager = queue_manager

    def create_program(
        self,
        jobs: Sequence[str],
        program_data: dict[str, Any] | None = None,
    ) -> str:
        validated = _validate_jobs(jobs)
        if program_data is not None and not isinstance(program_data, dict):
            raise InvalidInputError("program_data must be an object")

        program = self._store.insert(validated, program_data)
        self._queue_manager.publish(CompletionMessage(program_id=program.id, job_name=None))
        logger.info("program created program_id=%s jobs=%s", program.id, validated)
        return program.id

    def get_program(self, program_id: str) -> Program:
        program = self._store.get(program_id)
        if program is None:
            raise NotFoundError(f"program not found: {program_id}")
        return program

    def start(self, program_id: str) -> Program:
        """Return a program that has not run any job yet.

        A start trigger for a program whose cursor already moved is a stale
        or duplicate delivery.
        """
        program = self.get_program(program_id)
        if program.step != 0:
            raise SequenceMismatchError(
                f"program {program_id} already started; cursor is at step {program.step}"
            )
        return program

    def advance(self, program_id: str, completed_job_name: str) -> AdvanceResult:
        """Move the cursor past ``completed_job_name``.

        The completed job must be the one the cursor points at; anything else
        is a duplicate or out-of-order delivery and leaves the row untouched.
        """
        program = self.get_program(program_id)

        expected = program.current_job
        if expected is None:
            raise SequenceMismatchError(
                f"program {program_id} is already finished; got completion for {completed_job_name}"
            )
        if completed_job_name != expected:
            raise SequenceMismatchError(
                f"program {program_id} expected completion for {expected}, got {completed_job_name}"
            )

        next_step = program.step + 1
        finished = next_step == len(program.jobs)
        written = self._store.compare_and_set_step(
            program_id,
            expected_step=program.step,
            step=next_step,
            finished=finished,
        )
        if not written:
            raise SequenceMismatchError(
                f"program {program_id} moved past step {program.step} concurrently"
            )

        advanced = replace(program, step=next_step)
        next_job = None if finished else program.jobs[next_step]
        logger.info(
            "program advanced program_id=%s step=%s/%s next_job=%s",
            program_id,
            next_step,
            len(program.jobs),
            next_job,
        )
        return AdvanceResult(program=advanced, next_job=next_job)
