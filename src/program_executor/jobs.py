from __future__ import annotations

from collections.abc import Mapping
from typing import Protocol

from program_executor.errors import UnknownJobError
from program_executor.models import Program


class Job(Protocol):
    def execute(self, program: Program) -> None: ...


class JobLibrary:
    """Read-only lookup from job name to the job that runs it."""

    def __init__(self, jobs: Mapping[str, Job]) -> None:
        self._jobs = dict(jobs)

    @classmethod
    def from_value(cls, value: "JobLibrary | Mapping[str, Job]") -> "JobLibrary":
        if isinstance(value, JobLibrary):
            return value
        if isinstance(value, Mapping):
            return cls(value)
        raise TypeError(f"job library must be a JobLibrary or a mapping, got {type(value).__name__}")

    def resolve(self, name: str) -> Job:
        try:
            return self._jobs[name]
        except KeyError as exc:
            raise UnknownJobError(f"job is not registered: {name}") from exc

    def __contains__(self, name: object) -> bool:
        return name in self._jobs

    def names(self) -> list[str]:
        return sorted(self._jobs)
