from __future__ import annotations

import importlib
import logging
from threading import Event

from program_executor.config import Settings, get_settings
from program_executor.executor import PROGRAM_ERROR, ProgramErrorEvent, ProgramExecutor
from program_executor.jobs import JobLibrary
from program_executor.store import ProgramStore, get_engine


def load_job_library(path: str | None) -> JobLibrary:
    if not path:
        raise ValueError("PROGRAM_EXECUTOR_JOB_LIBRARY must be set to 'package.module:attribute'")

    module_name, separator, attribute = path.partition(":")
    if not separator or not module_name or not attribute:
        raise ValueError(f"job library path must look like 'package.module:attribute', got {path!r}")

    module = importlib.import_module(module_name)
    try:
        value = getattr(module, attribute)
    except AttributeError as exc:
        raise ValueError(f"{module_name} has no attribute {attribute}") from exc
    return JobLibrary.from_value(value)


def _ensure_table(settings: Settings) -> None:
    engine = get_engine(settings.database_url, settings.db_echo)
    ProgramStore(engine, settings.table_name).create_table()


def _print_program_error(event: ProgramErrorEvent) -> None:
    print(
        f"[program-executor] program error error={event.error!r} message={event.message!r}",
        flush=True,
    )


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    settings = get_settings()
    job_library = load_job_library(settings.job_library)
    _ensure_table(settings)

    executor = ProgramExecutor(settings)
    executor.on(PROGRAM_ERROR, _print_program_error)
    consumer = executor.process_programs(job_library)
    print(
        f"[program-executor] consuming queue={settings.queue_name} jobs={job_library.names()}",
        flush=True,
    )

    try:
        Event().wait()
    except KeyboardInterrupt:
        print("[program-executor] stopping", flush=True)
    finally:
        consumer.stop()


if __name__ == "__main__":
    main()
