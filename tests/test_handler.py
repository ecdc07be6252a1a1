import pytest
from sqlalchemy import func, select
from sqlalchemy.engine import Engine

from conftest import FakeQueueManager
from program_executor.errors import InvalidInputError, NotFoundError, SequenceMismatchError
from program_executor.handler import ProgramHandler
from program_executor.models import CompletionMessage
from program_executor.store import ProgramStore


def _count_programs(engine: Engine, store: ProgramStore) -> int:
    with engine.connect() as connection:
        return connection.execute(select(func.count()).select_from(store.table)).scalar_one()


@pytest.fixture
def handler(store: ProgramStore, queue_manager: FakeQueueManager) -> ProgramHandler:
    return ProgramHandler(store, queue_manager)


@pytest.mark.parametrize(
    "jobs",
    [
        ["only"],
        ["first", "second"],
        ["a", "b", "c", "d", "e"],
    ],
)
def test_create_program_stores_jobs_with_cursor_at_zero(
    handler: ProgramHandler,
    store: ProgramStore,
    jobs: list[str],
) -> None:
    program_id = handler.create_program(jobs)

    program = store.get(program_id)
    assert program is not None
    assert program.step == 0
    assert list(program.jobs) == jobs


def test_create_program_publishes_start_trigger(
    handler: ProgramHandler,
    queue_manager: FakeQueueManager,
) -> None:
    program_id = handler.create_program(["first", "second"])

    assert queue_manager.published == [CompletionMessage(program_id=program_id, job_name=None)]
    assert queue_manager.published[0].is_start is True


def test_create_program_rejects_empty_jobs_without_writing(
    handler: ProgramHandler,
    engine: Engine,
    store: ProgramStore,
    queue_manager: FakeQueueManager,
) -> None:
    with pytest.raises(InvalidInputError, match="must not be empty"):
        handler.create_program([])

    assert _count_programs(engine, store) == 0
    assert queue_manager.published == []


@pytest.mark.parametrize("jobs", ["first", ["first", ""], ["first", 3]])
def test_create_program_rejects_invalid_job_names(
    handler: ProgramHandler,
    engine: Engine,
    store: ProgramStore,
    queue_manager: FakeQueueManager,
    jobs,
) -> None:
    with pytest.raises(InvalidInputError):
        handler.create_program(jobs)

    assert _count_programs(engine, store) == 0
    assert queue_manager.published == []


def test_start_returns_program_at_first_step(handler: ProgramHandler) -> None:
    program_id = handler.create_program(["first", "second"])

    program = handler.start(program_id)

    assert program.step == 0
    assert program.current_job == "first"


def test_start_rejects_program_that_already_moved(handler: ProgramHandler, store: ProgramStore) -> None:
    program_id = handler.create_program(["first", "second"])
    handler.advance(program_id, "first")

    with pytest.raises(SequenceMismatchError, match="already started"):
        handler.start(program_id)

    assert store.get(program_id).step == 1


def test_start_raises_not_found_for_missing_program(handler: ProgramHandler) -> None:
    with pytest.raises(NotFoundError):
        handler.start("missing")


def test_advance_moves_cursor_and_returns_next_job(handler: ProgramHandler, store: ProgramStore) -> None:
    program_id = handler.create_program(["first", "second", "third"])

    result = handler.advance(program_id, "first")

    assert result.next_job == "second"
    assert result.completed is False
    assert result.program.step == 1
    assert store.get(program_id).step == 1


def test_advance_signals_completion_at_end_of_chain(handler: ProgramHandler, store: ProgramStore) -> None:
    program_id = handler.create_program(["first", "second"])
    handler.advance(program_id, "first")

    result = handler.advance(program_id, "second")

    assert result.completed is True
    assert result.next_job is None
    stored = store.get(program_id)
    assert stored.step == 2
    assert stored.finished is True
    assert stored.finished_at is not None


def test_advance_rejects_mismatched_job_and_keeps_cursor(handler: ProgramHandler, store: ProgramStore) -> None:
    program_id = handler.create_program(["first", "second", "third"])
    handler.advance(program_id, "first")

    with pytest.raises(SequenceMismatchError, match="expected completion for second"):
        handler.advance(program_id, "third")
    with pytest.raises(SequenceMismatchError):
        handler.advance(program_id, "first")

    assert store.get(program_id).step == 1


def test_advance_rejects_completion_for_finished_program(handler: ProgramHandler, store: ProgramStore) -> None:
    program_id = handler.create_program(["only"])
    handler.advance(program_id, "only")

    with pytest.raises(SequenceMismatchError, match="already finished"):
        handler.advance(program_id, "only")

    assert store.get(program_id).step == 1


def test_advance_raises_not_found_for_missing_program(handler: ProgramHandler) -> None:
    with pytest.raises(NotFoundError):
        handler.advance("missing", "first")


def test_advance_reports_lost_race_as_sequence_mismatch(
    handler: ProgramHandler,
    store: ProgramStore,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    program_id = handler.create_program(["first", "second"])
    original_get = store.get

    def stale_get(requested_id: str):
        program = original_get(requested_id)
        store.compare_and_set_step(requested_id, expected_step=0, step=1, finished=False)
        return program

    monkeypatch.setattr(store, "get", stale_get)

    with pytest.raises(SequenceMismatchError, match="concurrently"):
        handler.advance(program_id, "first")

    monkeypatch.undo()
    assert store.get(program_id).step == 1
