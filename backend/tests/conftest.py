from __future__ import annotations

import datetime as dt
import os
import tempfile
from pathlib import Path
from typing import Generator

os.environ.setdefault("RT_STORAGE", "memory")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from ratetrack.database import build_engine, build_session_factory
from ratetrack.domain import AppState, Project
from ratetrack.ledger import create_project
from ratetrack.main import create_app
from ratetrack.state import RuntimeState
from ratetrack.storage import MemoryKeyValueStore, SqlKeyValueStore

START = dt.datetime(2024, 3, 1, 9, 0, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    def __init__(self, start: dt.datetime = START):
        self.current = start

    def now(self) -> dt.datetime:
        return self.current

    def advance(self, seconds: float) -> dt.datetime:
        self.current = self.current + dt.timedelta(seconds=seconds)
        return self.current


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def temp_db_path() -> Generator[Path, None, None]:
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest.fixture()
def session_factory(temp_db_path: Path) -> Generator[sessionmaker, None, None]:
    engine = build_engine(temp_db_path)
    yield build_session_factory(engine)
    engine.dispose()


@pytest.fixture()
def sql_store(session_factory: sessionmaker) -> SqlKeyValueStore:
    return SqlKeyValueStore(session_factory)


@pytest.fixture()
def memory_store() -> MemoryKeyValueStore:
    return MemoryKeyValueStore()


@pytest.fixture()
def runtime(memory_store: MemoryKeyValueStore, clock: FakeClock) -> RuntimeState:
    runtime = RuntimeState(memory_store, clock=clock)
    runtime.load()
    return runtime


@pytest.fixture()
def client(runtime: RuntimeState) -> Generator[TestClient, None, None]:
    app = create_app(runtime, tick_interval=0)
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def design_state() -> AppState:
    project: Project = create_project("Design", 60)
    return AppState(projects=(project,), selected_project_id=project.id)
