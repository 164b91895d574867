from __future__ import annotations

import threading

import pytest

from ratetrack import timer
from ratetrack.domain import AppState, TaxSettings, TimerStatus
from ratetrack.errors import NoProjectSelectedError, TimerAlreadyRunningError
from ratetrack.ledger import create_project
from ratetrack.timer import DisplayMode, TimerTicker

from .conftest import START, FakeClock


def test_start_requires_a_selected_project(clock: FakeClock) -> None:
    state = AppState(projects=(create_project("Orphan", 10),))
    with pytest.raises(NoProjectSelectedError):
        timer.start(state, clock)
    assert state.timer.status == TimerStatus.IDLE


def test_start_rejects_a_stale_selection(clock: FakeClock) -> None:
    state = AppState(projects=(create_project("Real", 10),), selected_project_id="gone")
    with pytest.raises(NoProjectSelectedError):
        timer.start(state, clock)


def test_start_records_session_start(design_state: AppState, clock: FakeClock) -> None:
    running = timer.start(design_state, clock)
    assert running.timer.status == TimerStatus.RUNNING
    assert running.timer.session_start == START
    assert running.timer.elapsed_seconds == 0
    assert running.timer.project_id == design_state.selected_project_id

    with pytest.raises(TimerAlreadyRunningError):
        timer.start(running, clock)


def test_end_to_end_design_session(design_state: AppState, clock: FakeClock) -> None:
    state = timer.start(design_state, clock)
    clock.advance(1800)
    outcome = timer.stop(state, clock)

    block = outcome.time_block
    assert block is not None
    assert block.duration == 1800
    assert block.earnings == pytest.approx(30.0)
    assert block.start_time == START

    project = outcome.state.projects[0]
    assert project.time_blocks == (block,)
    assert project.total_time == 1800
    assert project.total_earnings == pytest.approx(30.0)
    assert outcome.state.timer.status == TimerStatus.IDLE
    assert outcome.state.timer.session_start is None
    assert outcome.state.timer.elapsed_seconds == 0


def test_zero_elapsed_stop_records_nothing(design_state: AppState, clock: FakeClock) -> None:
    state = timer.start(design_state, clock)
    clock.advance(0.6)
    outcome = timer.stop(state, clock)

    assert outcome.time_block is None
    assert outcome.state.projects == design_state.projects
    assert outcome.state.timer.status == TimerStatus.IDLE
    assert outcome.state.timer.session_start is None


def test_stop_while_idle_is_a_no_op(design_state: AppState, clock: FakeClock) -> None:
    outcome = timer.stop(design_state, clock)
    assert outcome.state is design_state
    assert outcome.time_block is None


def test_tick_follows_wall_clock_even_when_ticks_are_missed(design_state: AppState, clock: FakeClock) -> None:
    state = timer.start(design_state, clock)
    clock.advance(1)
    state = timer.tick(state, clock)
    assert state.timer.elapsed_seconds == 1

    clock.advance(4.5)
    state = timer.tick(state, clock)
    assert state.timer.elapsed_seconds == 5

    # stop between ticks still counts the full wall-clock span
    clock.advance(0.7)
    outcome = timer.stop(state, clock)
    assert outcome.time_block is not None
    assert outcome.time_block.duration == 6


def test_tick_is_ignored_while_idle(design_state: AppState, clock: FakeClock) -> None:
    assert timer.tick(design_state, clock) is design_state


def test_session_uses_rate_at_stop_time_of_running_project(design_state: AppState, clock: FakeClock) -> None:
    state = timer.start(design_state, clock)
    clock.advance(3600)
    outcome = timer.stop(state, clock)
    assert outcome.time_block.rate == 60
    assert outcome.time_block.earnings == pytest.approx(60.0)


def test_display_modes(design_state: AppState, clock: FakeClock) -> None:
    state = timer.start(design_state, clock)
    clock.advance(1800)
    state = timer.stop(state, clock).state
    state = timer.start(state, clock)
    clock.advance(600)

    session = timer.display(state, clock, DisplayMode.SESSION)
    assert session.seconds == 600
    assert session.earnings == pytest.approx(10.0)
    assert session.status == TimerStatus.RUNNING
    assert session.tax is not None
    assert session.tax.tax_amount == pytest.approx(3.0)

    total = timer.display(state, clock, DisplayMode.TOTAL)
    assert total.seconds == 1800
    assert total.earnings == pytest.approx(30.0)
    # toggling the view never changes the machine
    assert state.timer.status == TimerStatus.RUNNING


def test_display_hides_tax_when_disabled(design_state: AppState, clock: FakeClock) -> None:
    state = design_state.model_copy(update={"tax_settings": TaxSettings(include_in_displays=False)})
    view = timer.display(state, clock)
    assert view.tax is None
    assert view.seconds == 0
    assert view.project_name == "Design"


def test_ticker_invokes_callback_until_stopped() -> None:
    fired = threading.Event()
    calls: list[int] = []

    def callback() -> None:
        calls.append(1)
        fired.set()

    ticker = TimerTicker(callback, interval=0.01)
    ticker.start()
    assert fired.wait(2.0)
    ticker.stop()
    assert not ticker.running
    assert calls
