from __future__ import annotations

import csv
import datetime as dt
import io
from typing import Iterable, List, Optional, Sequence

from .domain import Project, TaxSettings
from .ledger import history
from .tax import calculate_tax
from .timekeeping import ensure_utc, format_hms

SESSION_HEADERS = [
    "Project",
    "Start Time",
    "End Time",
    "Duration (Hours)",
    "Duration (HH:MM:SS)",
    "Rate ($/hour)",
    "Earnings ($)",
]

SUMMARY_HEADERS = [
    "Project Name",
    "Hourly Rate ($/hour)",
    "Total Time (Hours)",
    "Total Time (HH:MM:SS)",
    "Total Sessions",
    "Total Earnings ($)",
    "Average Session Length (Minutes)",
]

TAX_HEADERS = ["Tax Rate (%)", "Estimated Tax ($)", "Net Earnings ($)"]

DATASETS = ("sessions", "summary")


def format_datetime_for_csv(value: dt.datetime) -> str:
    return ensure_utc(value).strftime("%Y-%m-%d %H:%M:%S")


def _money(value: float) -> str:
    return f"{value:.2f}"


def _hours(seconds: int) -> str:
    return f"{seconds / 3600:.3f}"


def _include_tax(tax_settings: Optional[TaxSettings]) -> bool:
    return tax_settings is not None and tax_settings.include_in_exports


def _tax_columns(earnings: float, tax_settings: TaxSettings) -> List[str]:
    calculation = calculate_tax(earnings, tax_settings)
    return [
        f"{calculation.tax_rate:.1f}",
        _money(calculation.tax_amount),
        _money(calculation.net_earnings),
    ]


def _render(header: Sequence[str], rows: Iterable[Sequence[str]]) -> str:
    buffer = io.StringIO()
    writer = csv.writer(buffer, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(header)
    writer.writerows(rows)
    return buffer.getvalue()


def generate_sessions_csv(projects: Iterable[Project], tax_settings: Optional[TaxSettings] = None) -> str:
    with_tax = _include_tax(tax_settings)
    header = SESSION_HEADERS + (TAX_HEADERS if with_tax else [])
    rows: List[List[str]] = []
    for entry in history(projects):
        block = entry.block
        row = [
            entry.project_name,
            format_datetime_for_csv(block.start_time),
            format_datetime_for_csv(block.end_time),
            _hours(block.duration),
            format_hms(block.duration),
            _money(block.rate),
            _money(block.earnings),
        ]
        if with_tax:
            row.extend(_tax_columns(block.earnings, tax_settings))
        rows.append(row)
    return _render(header, rows)


def generate_project_summary_csv(projects: Iterable[Project], tax_settings: Optional[TaxSettings] = None) -> str:
    with_tax = _include_tax(tax_settings)
    header = SUMMARY_HEADERS + (TAX_HEADERS if with_tax else [])
    rows: List[List[str]] = []
    for project in projects:
        sessions = project.session_count
        average_minutes = f"{project.total_time / sessions / 60:.1f}" if sessions else "0.0"
        row = [
            project.name,
            _money(project.rate),
            _hours(project.total_time),
            format_hms(project.total_time),
            str(sessions),
            _money(project.total_earnings),
            average_minutes,
        ]
        if with_tax:
            row.extend(_tax_columns(project.total_earnings, tax_settings))
        rows.append(row)
    return _render(header, rows)


def export_filename(dataset: str, today: dt.date) -> str:
    if dataset not in DATASETS:
        raise ValueError(f"Unsupported export dataset: {dataset}")
    return f"{dataset}-{today.isoformat()}.csv"
