from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any

from pydantic import BaseModel, ConfigDict, Field


@dataclass(frozen=True)
class Program:
    id: str
    jobs: tuple[str, ...]
    step: int
    program_data: dict[str, Any] | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def finished(self) -> bool:
        return self.step >= len(self.jobs)

    @property
    def current_job(self) -> str | None:
        if self.finished:
            return None
        return self.jobs[self.step]


@dataclass(frozen=True)
class AdvanceResult:
    program: Program
    next_job: str | None = None

    @property
    def completed(self) -> bool:
        return self.next_job is None


class CompletionMessage(BaseModel):
    """Says that ``job_name`` of program ``program_id`` has finished.

    A null ``job_name`` is the start trigger published when a program is
    created: nothing has finished yet and the first job should run. The key
    itself is required.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    program_id: str = Field(min_length=1)
    job_name: Annotated[str, Field(min_length=1)] | None

    @property
    def is_start(self) -> bool:
        return self.job_name is None
