from __future__ import annotations

import datetime as dt
import math
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from .domain import Project, TimeBlock
from .errors import ValidationError
from .timekeeping import generate_id


@dataclass(frozen=True, slots=True)
class HistoryEntry:
    project_id: str
    project_name: str
    project_rate: float
    block: TimeBlock


@dataclass(frozen=True, slots=True)
class LedgerOverview:
    project_count: int
    total_sessions: int
    total_time: int
    total_earnings: float


def _validated_name(name: str) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError("Project name must not be empty", code="empty_name")
    return cleaned


def _validated_rate(rate: float) -> float:
    if not math.isfinite(rate) or rate <= 0:
        raise ValidationError("Hourly rate must be a finite number greater than zero", code="invalid_rate")
    return float(rate)


def recompute_totals(project: Project, time_blocks: Optional[Iterable[TimeBlock]] = None) -> Project:
    """Return ``project`` with totals summed over every block, never incrementally."""
    blocks = tuple(project.time_blocks if time_blocks is None else time_blocks)
    return project.model_copy(
        update={
            "time_blocks": blocks,
            "total_time": sum(block.duration for block in blocks),
            "total_earnings": sum(block.earnings for block in blocks),
        }
    )


def create_project(name: str, rate: float, id_factory: Callable[[], str] = generate_id) -> Project:
    return Project(id=id_factory(), name=_validated_name(name), rate=_validated_rate(rate))


def rename_or_reprice_project(project: Project, new_name: str, new_rate: float) -> Project:
    # Blocks keep the rate and earnings they were recorded with.
    return project.model_copy(update={"name": _validated_name(new_name), "rate": _validated_rate(new_rate)})


def append_time_block(project: Project, time_block: TimeBlock) -> Project:
    return recompute_totals(project, (*project.time_blocks, time_block))


def remove_time_block(project: Project, block_id: str) -> Project:
    remaining = tuple(block for block in project.time_blocks if block.id != block_id)
    if len(remaining) == len(project.time_blocks):
        return project
    return recompute_totals(project, remaining)


def delete_project(projects: Iterable[Project], project_id: str) -> Tuple[Project, ...]:
    return tuple(project for project in projects if project.id != project_id)


def replace_project(projects: Iterable[Project], updated: Project) -> Tuple[Project, ...]:
    return tuple(updated if project.id == updated.id else project for project in projects)


def find_project(projects: Iterable[Project], project_id: Optional[str]) -> Optional[Project]:
    if project_id is None:
        return None
    for project in projects:
        if project.id == project_id:
            return project
    return None


def has_duplicate_name(projects: Iterable[Project], name: str, exclude_id: Optional[str] = None) -> bool:
    wanted = (name or "").strip().lower()
    return any(
        project.name.strip().lower() == wanted
        for project in projects
        if project.id != exclude_id
    )


def sorted_blocks(project: Project) -> List[TimeBlock]:
    return sorted(project.time_blocks, key=lambda block: block.start_time, reverse=True)


def history(projects: Iterable[Project], project_id: Optional[str] = None) -> List[HistoryEntry]:
    entries = [
        HistoryEntry(project_id=project.id, project_name=project.name, project_rate=project.rate, block=block)
        for project in projects
        if project_id is None or project.id == project_id
        for block in project.time_blocks
    ]
    entries.sort(key=lambda entry: entry.block.start_time, reverse=True)
    return entries


def group_history_by_day(entries: Iterable[HistoryEntry]) -> Dict[dt.date, List[HistoryEntry]]:
    grouped: Dict[dt.date, List[HistoryEntry]] = {}
    for entry in entries:
        grouped.setdefault(entry.block.start_time.date(), []).append(entry)
    return grouped


def ledger_overview(projects: Iterable[Project]) -> LedgerOverview:
    items = list(projects)
    return LedgerOverview(
        project_count=len(items),
        total_sessions=sum(project.session_count for project in items),
        total_time=sum(project.total_time for project in items),
        total_earnings=sum(project.total_earnings for project in items),
    )
