from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from .timekeeping import ensure_utc


class TimeBlock(BaseModel):
    """One completed start-to-stop session, frozen at the rate in effect when it ran."""

    model_config = ConfigDict(frozen=True)

    id: str
    start_time: dt.datetime
    end_time: dt.datetime
    duration: int = Field(ge=0)
    rate: float
    earnings: float

    @field_validator("start_time", "end_time")
    @classmethod
    def _normalize_instant(cls, value: dt.datetime) -> dt.datetime:
        return ensure_utc(value)

    @model_validator(mode="after")
    def _check_interval(self) -> "TimeBlock":
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self

    @field_serializer("start_time", "end_time")
    def _serialize_instant(self, value: dt.datetime) -> str:
        return ensure_utc(value).isoformat()


class Project(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    rate: float = Field(gt=0, allow_inf_nan=False)
    time_blocks: Tuple[TimeBlock, ...] = ()
    total_time: int = 0
    total_earnings: float = 0.0

    @property
    def session_count(self) -> int:
        return len(self.time_blocks)


class TaxSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    tax_rate: float = Field(default=30.0, ge=0, allow_inf_nan=False)
    include_in_displays: bool = True
    include_in_exports: bool = True


class TaxCalculation(BaseModel):
    model_config = ConfigDict(frozen=True)

    gross_earnings: float
    tax_amount: float
    net_earnings: float
    tax_rate: float


class TimerStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED_WITH_PENDING_SESSION = "stopped_with_pending_session"


class TimerState(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: TimerStatus = TimerStatus.IDLE
    project_id: Optional[str] = None
    session_start: Optional[dt.datetime] = None
    elapsed_seconds: int = 0

    @property
    def is_running(self) -> bool:
        return self.status == TimerStatus.RUNNING


class AppState(BaseModel):
    """Everything the accounting core mutates, passed in and returned explicitly."""

    model_config = ConfigDict(frozen=True)

    projects: Tuple[Project, ...] = ()
    selected_project_id: Optional[str] = None
    tax_settings: TaxSettings = Field(default_factory=TaxSettings)
    timer: TimerState = Field(default_factory=TimerState)

    @property
    def selected_project(self) -> Optional[Project]:
        if self.selected_project_id is None:
            return None
        for project in self.projects:
            if project.id == self.selected_project_id:
                return project
        return None
