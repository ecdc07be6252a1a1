from datetime import datetime
from functools import lru_cache
from typing import Annotated, Any

from fastapi import Depends, FastAPI, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict

from program_executor.config import get_settings
from program_executor.errors import InvalidInputError, NotFoundError
from program_executor.executor import ProgramExecutor
from program_executor.models import Program

app = FastAPI(title="Program Executor API", version="0.1.0")


class CreateProgramRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    jobs: list[str]
    program_data: dict[str, Any] | None = None


@lru_cache
def get_executor() -> ProgramExecutor:
    return ProgramExecutor(get_settings())


def _to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.isoformat()


def _program_detail(program: Program) -> dict[str, Any]:
    return {
        "id": program.id,
        "jobs": list(program.jobs),
        "step": program.step,
        "current_job": program.current_job,
        "finished": program.finished,
        "program_data": program.program_data,
        "created_at": _to_iso(program.created_at),
        "updated_at": _to_iso(program.updated_at),
        "finished_at": _to_iso(program.finished_at),
    }


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/programs")
def create_program(
    request: CreateProgramRequest,
    executor: Annotated[ProgramExecutor, Depends(get_executor)],
) -> JSONResponse:
    try:
        program_id = executor.create_program(request.jobs, request.program_data)
    except InvalidInputError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc

    return JSONResponse(status_code=201, content={"program_id": program_id})


@app.get("/programs/{program_id}")
def get_program(
    program_id: str,
    executor: Annotated[ProgramExecutor, Depends(get_executor)],
) -> dict[str, Any]:
    try:
        program = executor.get_program(program_id)
    except NotFoundError as exc:
        raise HTTPException(status_code=404, detail="program not found") from exc

    return _program_detail(program)


def run() -> None:
    import uvicorn

    uvicorn.run("program_executor.api:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    run()
