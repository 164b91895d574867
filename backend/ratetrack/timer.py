from __future__ import annotations

import datetime as dt
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, Protocol

import structlog

from .domain import AppState, TaxCalculation, TimeBlock, TimerState, TimerStatus
from .errors import NoProjectSelectedError, TimerAlreadyRunningError
from .ledger import append_time_block, find_project, replace_project
from .tax import calculate_tax
from .timekeeping import compute_earnings, create_time_block, elapsed_seconds, utc_now

logger = structlog.get_logger(__name__)


class Clock(Protocol):
    def now(self) -> dt.datetime: ...


class SystemClock:
    def now(self) -> dt.datetime:
        return utc_now()


class DisplayMode(str, Enum):
    SESSION = "session"
    TOTAL = "total"


@dataclass(frozen=True, slots=True)
class StopOutcome:
    state: AppState
    time_block: Optional[TimeBlock]


@dataclass(frozen=True, slots=True)
class TimerDisplay:
    mode: DisplayMode
    status: TimerStatus
    project_id: Optional[str]
    project_name: Optional[str]
    session_start: Optional[dt.datetime]
    seconds: int
    earnings: float
    tax: Optional[TaxCalculation]


def start(state: AppState, clock: Clock) -> AppState:
    if state.timer.is_running:
        raise TimerAlreadyRunningError()
    project = state.selected_project
    if project is None:
        raise NoProjectSelectedError()
    started = clock.now()
    logger.info("timer_started", project_id=project.id, session_start=started.isoformat())
    return state.model_copy(
        update={
            "timer": TimerState(
                status=TimerStatus.RUNNING,
                project_id=project.id,
                session_start=started,
                elapsed_seconds=0,
            )
        }
    )


def tick(state: AppState, clock: Clock) -> AppState:
    """Resync the elapsed counter against the wall clock."""
    timer = state.timer
    if not timer.is_running or timer.session_start is None:
        return state
    elapsed = elapsed_seconds(timer.session_start, clock.now())
    if elapsed == timer.elapsed_seconds:
        return state
    return state.model_copy(update={"timer": timer.model_copy(update={"elapsed_seconds": elapsed})})


def stop(state: AppState, clock: Clock) -> StopOutcome:
    timer = state.timer
    if not timer.is_running or timer.session_start is None:
        return StopOutcome(state=state, time_block=None)

    now = clock.now()
    elapsed = elapsed_seconds(timer.session_start, now)
    if elapsed == 0:
        logger.info("timer_stopped", project_id=timer.project_id, elapsed_seconds=0, recorded=False)
        return StopOutcome(state=state.model_copy(update={"timer": TimerState()}), time_block=None)

    pending = state.model_copy(
        update={
            "timer": timer.model_copy(
                update={"status": TimerStatus.STOPPED_WITH_PENDING_SESSION, "elapsed_seconds": elapsed}
            )
        }
    )
    return _hand_off(pending, now)


def _hand_off(state: AppState, end_time: dt.datetime) -> StopOutcome:
    timer = state.timer
    idle = state.model_copy(update={"timer": TimerState()})
    project = find_project(state.projects, timer.project_id)
    if project is None:
        logger.warning("timer_project_missing", project_id=timer.project_id, elapsed_seconds=timer.elapsed_seconds)
        return StopOutcome(state=idle, time_block=None)

    block = create_time_block(timer.session_start, end_time, project.rate)
    updated = append_time_block(project, block)
    logger.info(
        "timer_stopped",
        project_id=project.id,
        elapsed_seconds=timer.elapsed_seconds,
        recorded=True,
    )
    logger.info(
        "time_block_recorded",
        project_id=project.id,
        block_id=block.id,
        duration=block.duration,
        rate=block.rate,
        earnings=block.earnings,
    )
    return StopOutcome(
        state=idle.model_copy(update={"projects": replace_project(idle.projects, updated)}),
        time_block=block,
    )


def current_elapsed(state: AppState, clock: Clock) -> int:
    timer = state.timer
    if not timer.is_running or timer.session_start is None:
        return 0
    return elapsed_seconds(timer.session_start, clock.now())


def display(state: AppState, clock: Clock, mode: DisplayMode = DisplayMode.SESSION) -> TimerDisplay:
    timer = state.timer
    project = find_project(state.projects, timer.project_id) if timer.is_running else state.selected_project

    if mode == DisplayMode.TOTAL:
        seconds = project.total_time if project else 0
        earnings = project.total_earnings if project else 0.0
    else:
        seconds = current_elapsed(state, clock)
        earnings = compute_earnings(seconds, project.rate) if project else 0.0

    tax = calculate_tax(earnings, state.tax_settings) if state.tax_settings.include_in_displays else None
    return TimerDisplay(
        mode=mode,
        status=timer.status,
        project_id=project.id if project else None,
        project_name=project.name if project else None,
        session_start=timer.session_start,
        seconds=seconds,
        earnings=earnings,
        tax=tax,
    )


class TimerTicker:
    """Background thread invoking ``callback`` every ``interval`` seconds."""

    def __init__(self, callback: Callable[[], object], interval: float = 1.0):
        self._callback = callback
        self._interval = interval
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="ratetrack-ticker", daemon=True)
        self._thread.start()

    def stop(self, timeout: float = 2.0) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None

    def _run(self) -> None:
        while not self._stop_event.wait(self._interval):
            try:
                self._callback()
            except Exception:
                logger.exception("timer_tick_failed")
