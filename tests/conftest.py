from collections.abc import Iterator
from pathlib import Path
import uuid

import pytest
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine

from program_executor.api import get_executor
from program_executor.config import Settings, get_settings
from program_executor.models import CompletionMessage, Program
from program_executor.store import ProgramStore, get_engine


class FakeQueueManager:
    def __init__(self, queue_name: str = "program-executor") -> None:
        self.queue_name = queue_name
        self.published: list[CompletionMessage] = []

    def publish(self, message: CompletionMessage) -> None:
        self.published.append(message)


class RecordingJob:
    def __init__(self, calls: list[tuple[str, str]], name: str) -> None:
        self._calls = calls
        self._name = name

    def execute(self, program: Program) -> None:
        self._calls.append((self._name, program.id))


class FailingJob:
    def __init__(self, error: Exception) -> None:
        self._error = error

    def execute(self, program: Program) -> None:
        del program
        raise self._error


@pytest.fixture(autouse=True)
def reset_caches() -> Iterator[None]:
    get_settings.cache_clear()
    get_engine.cache_clear()
    get_executor.cache_clear()
    yield
    get_settings.cache_clear()
    get_engine.cache_clear()
    get_executor.cache_clear()


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+pysqlite:///{tmp_path / 'programs-tests.db'}"


@pytest.fixture
def engine(database_url: str) -> Iterator[Engine]:
    engine = create_engine(database_url)
    yield engine
    engine.dispose()


@pytest.fixture
def store(engine: Engine) -> ProgramStore:
    program_store = ProgramStore(engine, "programs")
    program_store.create_table()
    return program_store


@pytest.fixture
def queue_manager() -> FakeQueueManager:
    return FakeQueueManager()


@pytest.fixture
def settings(database_url: str) -> Settings:
    return Settings(
        database_url=database_url,
        db_echo=False,
        table_name="programs",
        queue_name=f"program-executor-{uuid.uuid4().hex[:8]}",
        amqp_url="memory://",
    )
