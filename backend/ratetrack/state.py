from __future__ import annotations

from threading import RLock
from typing import Callable, Optional, TypeVar

import structlog

from . import timer
from .domain import AppState, TaxSettings
from .errors import PersistenceError
from .storage import KeyValueStore, load_projects, load_tax_settings, save_projects, save_tax_settings
from .timer import Clock, SystemClock

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class RuntimeState:
    """Holds the current ``AppState`` and serializes every change to it.

    Mutations run as read, compute, persist, replace under one lock, so two
    concurrent requests can never both build on a stale project.
    """

    def __init__(
        self,
        store: KeyValueStore,
        clock: Optional[Clock] = None,
        default_tax_settings: Optional[TaxSettings] = None,
    ):
        self._lock = RLock()
        self.store = store
        self.clock: Clock = clock or SystemClock()
        self._default_tax_settings = default_tax_settings or TaxSettings()
        self._state = AppState(tax_settings=self._default_tax_settings)

    @property
    def current(self) -> AppState:
        with self._lock:
            return self._state

    def load(self) -> AppState:
        projects = load_projects(self.store)
        tax_settings = load_tax_settings(self.store, self._default_tax_settings)
        with self._lock:
            self._state = AppState(
                projects=projects,
                selected_project_id=projects[0].id if projects else None,
                tax_settings=tax_settings,
            )
            logger.info("state_loaded", projects=len(projects), tax_rate=tax_settings.tax_rate)
            return self._state

    def mutate(self, change: Callable[[AppState], AppState]) -> AppState:
        result = self.mutate_with(lambda state: (change(state), None))
        return result[0]

    def mutate_with(self, change: Callable[[AppState], tuple[AppState, T]]) -> tuple[AppState, T]:
        """Apply ``change`` and persist its result before publishing it.

        ``change`` returns the next state plus an arbitrary value handed back to
        the caller. If persisting fails the previous state stays in place.
        """
        with self._lock:
            previous = self._state
            next_state, value = change(previous)
            self._persist(previous, next_state)
            self._state = next_state
            return next_state, value

    def tick(self) -> AppState:
        with self._lock:
            self._state = timer.tick(self._state, self.clock)
            return self._state

    def _persist(self, previous: AppState, next_state: AppState) -> None:
        try:
            if next_state.projects != previous.projects:
                save_projects(self.store, next_state.projects)
            if next_state.tax_settings != previous.tax_settings:
                save_tax_settings(self.store, next_state.tax_settings)
        except PersistenceError as exc:
            logger.error("state_persist_failed", error=exc.message)
            raise
