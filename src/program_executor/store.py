from __future__ import annotations

from datetime import datetime, timezone
from functools import lru_cache
import json
from typing import Any, Sequence
import uuid

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    select,
    text,
    update,
)
from sqlalchemy.engine import Engine, RowMapping

from program_executor.models import Program


@lru_cache
def get_engine(database_url: str, echo: bool = False) -> Engine:
    return create_engine(
        database_url,
        echo=echo,
        pool_pre_ping=True,
    )


def build_programs_table(metadata: MetaData, table_name: str) -> Table:
    return Table(
        table_name,
        metadata,
        Column("id", String(64), primary_key=True),
        Column("jobs", JSON, nullable=False),
        Column("step", Integer, nullable=False, server_default=text("0")),
        Column("program_data", JSON, nullable=True),
        Column(
            "created_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=text("CURRENT_TIMESTAMP"),
        ),
        Column(
            "updated_at",
            DateTime(timezone=True),
            nullable=False,
            server_default=text("CURRENT_TIMESTAMP"),
        ),
        Column("finished_at", DateTime(timezone=True), nullable=True),
    )


def _normalize_json(value: Any) -> Any:
    if isinstance(value, str) and value.strip():
        return json.loads(value)
    return value


def _row_to_program(row: RowMapping) -> Program:
    jobs = _normalize_json(row["jobs"]) or []
    program_data = _normalize_json(row["program_data"])
    return Program(
        id=str(row["id"]),
        jobs=tuple(str(job) for job in jobs),
        step=int(row["step"] or 0),
        program_data=program_data if isinstance(program_data, dict) else None,
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        finished_at=row["finished_at"],
    )


class ProgramStore:
    """Typed access to the programs table.

    Every method runs in its own transaction; cursor rules live in
    ``ProgramHandler``, not here.
    """

    def __init__(self, engine: Engine, table_name: str) -> None:
        self._engine = engine
        self._metadata = MetaData()
        self._table = build_programs_table(self._metadata, table_name)

    @property
    def engine(self) -> Engine:
        return self._engine

    @property
    def table(self) -> Table:
        return self._table

    def create_table(self) -> None:
        self._metadata.create_all(bind=self._engine, tables=[self._table])

    def insert(self, jobs: Sequence[str], program_data: dict[str, Any] | None = None) -> Program:
        now = datetime.now(timezone.utc)
        program = Program(
            id=uuid.uuid4().hex,
            jobs=tuple(jobs),
            step=0,
            program_data=program_data,
            created_at=now,
            updated_at=now,
        )
        with self._engine.begin() as connection:
            connection.execute(
                self._table.insert().values(
                    id=program.id,
                    jobs=list(program.jobs),
                    step=program.step,
                    program_data=program.program_data,
                    created_at=now,
                    updated_at=now,
                )
            )
        return program

    def get(self, program_id: str) -> Program | None:
        with self._engine.connect() as connection:
            row = connection.execute(
                select(self._table).where(self._table.c.id == program_id)
            ).mappings().first()
        if row is None:
            return None
        return _row_to_program(row)

    def compare_and_set_step(
        self,
        program_id: str,
        *,
        expected_step: int,
        step: int,
        finished: bool,
    ) -> bool:
        now = datetime.now(timezone.utc)
        with self._engine.begin() as connection:
            result = connection.execute(
                update(self._table)
                .where(self._table.c.id == program_id)
                .where(self._table.c.step == expected_step)
                .values(
                    step=step,
                    updated_at=now,
                    finished_at=now if finished else None,
                )
            )
        return result.rowcount == 1
