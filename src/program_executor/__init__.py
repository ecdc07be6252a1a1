from program_executor.config import Settings, get_settings
from program_executor.errors import (
    InvalidInputError,
    MalformedMessageError,
    NotFoundError,
    ProgramExecutorError,
    ProgramProcessingError,
    SequenceMismatchError,
    UnknownJobError,
)
from program_executor.executor import PROGRAM_ERROR, ProgramErrorEvent, ProgramExecutor
from program_executor.jobs import Job, JobLibrary
from program_executor.models import AdvanceResult, CompletionMessage, Program

__all__ = [
    "AdvanceResult",
    "CompletionMessage",
    "InvalidInputError",
    "Job",
    "JobLibrary",
    "MalformedMessageError",
    "NotFoundError",
    "PROGRAM_ERROR",
    "Program",
    "ProgramErrorEvent",
    "ProgramExecutor",
    "ProgramExecutorError",
    "ProgramProcessingError",
    "SequenceMismatchError",
    "Settings",
    "UnknownJobError",
    "get_settings",
]
