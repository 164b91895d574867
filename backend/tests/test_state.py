from __future__ import annotations

import datetime as dt
import threading
from typing import Any

import pytest

from ratetrack import ledger
from ratetrack.domain import AppState, TaxSettings
from ratetrack.errors import PersistenceError
from ratetrack.state import RuntimeState
from ratetrack.storage import MemoryKeyValueStore, load_projects, load_tax_settings
from ratetrack.timekeeping import create_time_block

UTC = dt.timezone.utc


class FlakyStore(MemoryKeyValueStore):
    def __init__(self) -> None:
        super().__init__()
        self.fail = False

    def save(self, key: str, value: Any) -> None:
        if self.fail:
            raise PersistenceError("quota exceeded")
        super().save(key, value)


def _add_project(name: str):
    def change(state: AppState) -> AppState:
        return state.model_copy(update={"projects": (*state.projects, ledger.create_project(name, 10))})

    return change


def test_mutations_are_persisted(memory_store: MemoryKeyValueStore) -> None:
    runtime = RuntimeState(memory_store)
    runtime.mutate(_add_project("Persisted"))
    runtime.mutate(lambda state: state.model_copy(update={"tax_settings": TaxSettings(tax_rate=18)}))

    assert [project.name for project in load_projects(memory_store)] == ["Persisted"]
    assert load_tax_settings(memory_store, TaxSettings()).tax_rate == 18


def test_failed_persist_keeps_previous_state() -> None:
    store = FlakyStore()
    runtime = RuntimeState(store)
    runtime.mutate(_add_project("Kept"))

    store.fail = True
    with pytest.raises(PersistenceError):
        runtime.mutate(_add_project("Lost"))

    assert [project.name for project in runtime.current.projects] == ["Kept"]


def test_load_selects_first_project_and_resets_timer(memory_store: MemoryKeyValueStore) -> None:
    writer = RuntimeState(memory_store)
    writer.mutate(_add_project("First"))
    writer.mutate(_add_project("Second"))

    reader = RuntimeState(memory_store)
    state = reader.load()
    assert state.selected_project.name == "First"
    assert not state.timer.is_running


def test_load_uses_injected_default_tax_settings(memory_store: MemoryKeyValueStore) -> None:
    runtime = RuntimeState(memory_store, default_tax_settings=TaxSettings(tax_rate=12))
    assert runtime.load().tax_settings.tax_rate == 12


def test_concurrent_appends_do_not_lose_updates(memory_store: MemoryKeyValueStore) -> None:
    runtime = RuntimeState(memory_store)
    project = ledger.create_project("Busy", 36)
    runtime.mutate(lambda state: state.model_copy(update={"projects": (project,)}))
    start = dt.datetime(2024, 1, 1, tzinfo=UTC)

    def append(index: int) -> None:
        def change(state: AppState) -> AppState:
            current = ledger.find_project(state.projects, project.id)
            begin = start + dt.timedelta(hours=index)
            block = create_time_block(begin, begin + dt.timedelta(seconds=100), current.rate)
            return state.model_copy(
                update={"projects": ledger.replace_project(state.projects, ledger.append_time_block(current, block))}
            )

        runtime.mutate(change)

    threads = [threading.Thread(target=append, args=(index,)) for index in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    final = runtime.current.projects[0]
    assert len(final.time_blocks) == 20
    assert final.total_time == 2000
    assert final.total_earnings == pytest.approx(20.0)
    assert load_projects(memory_store)[0].total_time == 2000
