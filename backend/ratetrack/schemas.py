from __future__ import annotations

import datetime as dt
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer

from .timekeeping import ensure_utc


class ErrorResponse(BaseModel):
    detail: str
    code: str


class TaxCalculationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    gross_earnings: float
    tax_amount: float
    net_earnings: float
    tax_rate: float


class TimeBlockResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: str
    start_time: dt.datetime
    end_time: dt.datetime
    duration: int
    rate: float
    earnings: float

    @field_serializer("start_time", "end_time")
    def _serialize_instant(self, value: dt.datetime) -> str:
        return ensure_utc(value).isoformat()


class ProjectResponse(BaseModel):
    id: str
    name: str
    rate: float
    total_time: int
    total_time_display: str
    total_earnings: float
    session_count: int
    selected: bool
    time_blocks: List[TimeBlockResponse]
    tax: Optional[TaxCalculationResponse] = None


class ProjectCreateRequest(BaseModel):
    name: str
    rate: float


class ProjectUpdateRequest(BaseModel):
    name: Optional[str] = None
    rate: Optional[float] = None


class TimerResponse(BaseModel):
    mode: str
    status: str
    project_id: Optional[str]
    project_name: Optional[str]
    session_start: Optional[dt.datetime]
    seconds: int
    display: str
    earnings: float
    tax: Optional[TaxCalculationResponse] = None

    @field_serializer("session_start")
    def _serialize_start(self, value: Optional[dt.datetime]) -> Optional[str]:
        return ensure_utc(value).isoformat() if value else None


class TimerStopResponse(BaseModel):
    recorded: bool
    time_block: Optional[TimeBlockResponse]
    project: Optional[ProjectResponse]
    timer: TimerResponse


class HistoryEntryResponse(BaseModel):
    project_id: str
    project_name: str
    project_rate: float
    block: TimeBlockResponse


class HistoryDayResponse(BaseModel):
    day: dt.date
    entries: List[HistoryEntryResponse]
    total_time: int
    total_earnings: float


class HistoryResponse(BaseModel):
    total_sessions: int
    total_time: int
    total_earnings: float
    days: List[HistoryDayResponse]


class OverviewResponse(BaseModel):
    project_count: int
    total_sessions: int
    total_time: int
    total_time_display: str
    total_earnings: float
    tax: Optional[TaxCalculationResponse] = None


class TaxSettingsResponse(BaseModel):
    tax_rate: float
    include_in_displays: bool
    include_in_exports: bool
    formatted_rate: str
    description: str
    input_min: float
    input_max: float


class TaxSettingsUpdateRequest(BaseModel):
    tax_rate: Optional[float] = Field(default=None, ge=0, allow_inf_nan=False)
    include_in_displays: Optional[bool] = None
    include_in_exports: Optional[bool] = None


class TaxPresetResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    rate: float
    label: str


class TaxPreviewResponse(BaseModel):
    calculation: TaxCalculationResponse
    formatted_rate: str
    description: str
