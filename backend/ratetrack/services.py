from __future__ import annotations

import datetime as dt
from typing import Any, Dict, List, Optional, Tuple

import structlog

from . import ledger, timer
from .csv_export import export_filename, generate_project_summary_csv, generate_sessions_csv
from .domain import AppState, Project, TaxSettings, TimeBlock
from .errors import (
    ConfirmationRequiredError,
    DuplicateProjectNameError,
    NothingToExportError,
    ProjectNotFoundError,
    TimerRunningError,
)
from .state import RuntimeState
from .timer import DisplayMode, TimerDisplay

logger = structlog.get_logger(__name__)


def _require_project(state: AppState, project_id: str) -> Project:
    project = ledger.find_project(state.projects, project_id)
    if project is None:
        raise ProjectNotFoundError(project_id)
    return project


def list_projects(runtime: RuntimeState) -> Tuple[Project, ...]:
    return runtime.current.projects


def get_project(runtime: RuntimeState, project_id: str) -> Project:
    return _require_project(runtime.current, project_id)


def create_project(runtime: RuntimeState, name: str, rate: float) -> Project:
    def change(state: AppState) -> tuple[AppState, Project]:
        project = ledger.create_project(name, rate)
        if ledger.has_duplicate_name(state.projects, project.name):
            raise DuplicateProjectNameError(project.name)
        selected = state.selected_project_id if state.selected_project is not None else project.id
        return (
            state.model_copy(update={"projects": (*state.projects, project), "selected_project_id": selected}),
            project,
        )

    _, project = runtime.mutate_with(change)
    logger.info("project_created", project_id=project.id, name=project.name, rate=project.rate)
    return project


def update_project(
    runtime: RuntimeState,
    project_id: str,
    name: Optional[str] = None,
    rate: Optional[float] = None,
) -> Project:
    def change(state: AppState) -> tuple[AppState, Project]:
        current = _require_project(state, project_id)
        updated = ledger.rename_or_reprice_project(
            current,
            current.name if name is None else name,
            current.rate if rate is None else rate,
        )
        if ledger.has_duplicate_name(state.projects, updated.name, exclude_id=project_id):
            raise DuplicateProjectNameError(updated.name)
        return state.model_copy(update={"projects": ledger.replace_project(state.projects, updated)}), updated

    _, project = runtime.mutate_with(change)
    logger.info("project_updated", project_id=project.id, name=project.name, rate=project.rate)
    return project


def delete_project(runtime: RuntimeState, project_id: str, confirm: bool = False) -> bool:
    """Remove a project and all of its time blocks.

    Returns ``False`` when the project is already gone. Without ``confirm`` a
    ``ConfirmationRequiredError`` describing the loss is raised instead.
    """

    def change(state: AppState) -> tuple[AppState, bool]:
        project = ledger.find_project(state.projects, project_id)
        if project is None:
            return state, False
        if state.timer.is_running and state.timer.project_id == project_id:
            raise TimerRunningError("Stop the timer before deleting this project")
        if not confirm:
            raise ConfirmationRequiredError(
                f'Are you sure you want to delete "{project.name}"? '
                "This will permanently remove all time tracking data for this project."
            )
        remaining = ledger.delete_project(state.projects, project_id)
        selected = state.selected_project_id
        if selected == project_id:
            selected = remaining[0].id if remaining else None
        return state.model_copy(update={"projects": remaining, "selected_project_id": selected}), True

    _, deleted = runtime.mutate_with(change)
    if deleted:
        logger.info("project_deleted", project_id=project_id)
    return deleted


def select_project(runtime: RuntimeState, project_id: str) -> Project:
    def change(state: AppState) -> tuple[AppState, Project]:
        project = _require_project(state, project_id)
        if state.timer.is_running and state.timer.project_id != project_id:
            raise TimerRunningError("Stop the timer before switching projects")
        return state.model_copy(update={"selected_project_id": project.id}), project

    _, project = runtime.mutate_with(change)
    return project


def delete_time_block(runtime: RuntimeState, project_id: str, block_id: str) -> bool:
    def change(state: AppState) -> tuple[AppState, bool]:
        project = ledger.find_project(state.projects, project_id)
        if project is None:
            return state, False
        updated = ledger.remove_time_block(project, block_id)
        if updated is project:
            return state, False
        return state.model_copy(update={"projects": ledger.replace_project(state.projects, updated)}), True

    _, removed = runtime.mutate_with(change)
    if removed:
        logger.info("time_block_removed", project_id=project_id, block_id=block_id)
    return removed


def start_timer(runtime: RuntimeState) -> TimerDisplay:
    state = runtime.mutate(lambda current: timer.start(current, runtime.clock))
    return timer.display(state, runtime.clock)


def stop_timer(runtime: RuntimeState) -> Optional[TimeBlock]:
    def change(state: AppState) -> tuple[AppState, Optional[TimeBlock]]:
        outcome = timer.stop(state, runtime.clock)
        return outcome.state, outcome.time_block

    _, block = runtime.mutate_with(change)
    return block


def timer_status(runtime: RuntimeState, mode: DisplayMode = DisplayMode.SESSION) -> TimerDisplay:
    return timer.display(runtime.tick(), runtime.clock, mode)


def get_history(runtime: RuntimeState, project_id: Optional[str] = None) -> List[ledger.HistoryEntry]:
    return ledger.history(runtime.current.projects, project_id)


def get_overview(runtime: RuntimeState) -> ledger.LedgerOverview:
    return ledger.ledger_overview(runtime.current.projects)


def get_tax_settings(runtime: RuntimeState) -> TaxSettings:
    return runtime.current.tax_settings


def update_tax_settings(runtime: RuntimeState, updates: Dict[str, Any]) -> TaxSettings:
    def change(state: AppState) -> tuple[AppState, TaxSettings]:
        merged = state.tax_settings.model_dump()
        merged.update({key: value for key, value in updates.items() if value is not None})
        tax_settings = TaxSettings.model_validate(merged)
        return state.model_copy(update={"tax_settings": tax_settings}), tax_settings

    _, tax_settings = runtime.mutate_with(change)
    logger.info("tax_settings_updated", **tax_settings.model_dump())
    return tax_settings


def sample_gross_earnings(runtime: RuntimeState, default: float) -> float:
    project = runtime.current.selected_project
    return project.total_earnings if project and project.total_earnings else default


def export_csv(runtime: RuntimeState, dataset: str, today: Optional[dt.date] = None) -> Tuple[str, str]:
    state = runtime.current
    if not state.projects:
        raise NothingToExportError()
    filename = export_filename(dataset, today or runtime.clock.now().date())
    if dataset == "sessions":
        content = generate_sessions_csv(state.projects, state.tax_settings)
    else:
        content = generate_project_summary_csv(state.projects, state.tax_settings)
    logger.info("csv_exported", dataset=dataset, filename=filename, projects=len(state.projects))
    return filename, content
