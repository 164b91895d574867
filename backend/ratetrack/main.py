from __future__ import annotations

from contextlib import asynccontextmanager
from typing import List, Optional

import structlog
from fastapi import FastAPI, Query, Request, Response, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import services
from .config import Settings, settings
from .database import build_engine, build_session_factory
from .domain import AppState, Project, TaxSettings, TimeBlock
from .errors import PersistenceError, RateTrackError
from .ledger import group_history_by_day, sorted_blocks
from .logging_config import configure_logging
from .schemas import (
    ErrorResponse,
    HistoryDayResponse,
    HistoryEntryResponse,
    HistoryResponse,
    OverviewResponse,
    ProjectCreateRequest,
    ProjectResponse,
    ProjectUpdateRequest,
    TaxCalculationResponse,
    TaxPresetResponse,
    TaxPreviewResponse,
    TaxSettingsResponse,
    TaxSettingsUpdateRequest,
    TimeBlockResponse,
    TimerResponse,
    TimerStopResponse,
)
from .state import RuntimeState
from .storage import KeyValueStore, MemoryKeyValueStore, SqlKeyValueStore
from .tax import (
    SAMPLE_GROSS_EARNINGS,
    TAX_RATE_INPUT_MAX,
    TAX_RATE_INPUT_MIN,
    TAX_RATE_PRESETS,
    calculate_tax,
    format_tax_rate,
    get_tax_rate_description,
    tax_preview,
)
from .timekeeping import format_clock, format_compact
from .timer import DisplayMode, TimerDisplay, TimerTicker

logger = structlog.get_logger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_store(app_settings: Settings) -> KeyValueStore:
    if app_settings.storage_backend == "memory":
        return MemoryKeyValueStore()
    engine = build_engine(app_settings.sqlite_path)
    return SqlKeyValueStore(build_session_factory(engine))


def _runtime(request: Request) -> RuntimeState:
    return request.app.state.runtime_state


def _tax_for(state: AppState, earnings: float) -> Optional[TaxCalculationResponse]:
    if not state.tax_settings.include_in_displays:
        return None
    return TaxCalculationResponse.model_validate(calculate_tax(earnings, state.tax_settings))


def _block_response(block: TimeBlock) -> TimeBlockResponse:
    return TimeBlockResponse.model_validate(block)


def _project_response(project: Project, state: AppState) -> ProjectResponse:
    return ProjectResponse(
        id=project.id,
        name=project.name,
        rate=project.rate,
        total_time=project.total_time,
        total_time_display=format_compact(project.total_time),
        total_earnings=project.total_earnings,
        session_count=project.session_count,
        selected=project.id == state.selected_project_id,
        time_blocks=[_block_response(block) for block in sorted_blocks(project)],
        tax=_tax_for(state, project.total_earnings),
    )


def _timer_response(view: TimerDisplay) -> TimerResponse:
    return TimerResponse(
        mode=view.mode.value,
        status=view.status.value,
        project_id=view.project_id,
        project_name=view.project_name,
        session_start=view.session_start,
        seconds=view.seconds,
        display=format_clock(view.seconds),
        earnings=view.earnings,
        tax=TaxCalculationResponse.model_validate(view.tax) if view.tax else None,
    )


def _tax_settings_response(tax_settings: TaxSettings) -> TaxSettingsResponse:
    return TaxSettingsResponse(
        **tax_settings.model_dump(),
        formatted_rate=format_tax_rate(tax_settings.tax_rate),
        description=get_tax_rate_description(tax_settings.tax_rate),
        input_min=TAX_RATE_INPUT_MIN,
        input_max=TAX_RATE_INPUT_MAX,
    )


def _csv_response(filename: str, content: str) -> Response:
    return Response(
        content=content.encode("utf-8"),
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


def create_app(
    runtime_state: Optional[RuntimeState] = None,
    app_settings: Settings = settings,
    tick_interval: Optional[float] = None,
) -> FastAPI:
    configure_logging(app_settings.log_level, app_settings.log_json)

    if runtime_state is None:
        runtime_state = RuntimeState(
            build_store(app_settings),
            default_tax_settings=TaxSettings(tax_rate=app_settings.default_tax_rate),
        )
        try:
            runtime_state.load()
        except PersistenceError as exc:
            logger.warning("state_load_fallback", error=exc.message)

    interval = app_settings.tick_interval_seconds if tick_interval is None else tick_interval

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        ticker = TimerTicker(runtime_state.tick, interval) if interval > 0 else None
        if ticker:
            ticker.start()
        try:
            yield
        finally:
            if ticker:
                ticker.stop()

    app = FastAPI(title=app_settings.app_name, lifespan=lifespan)
    app.state.runtime_state = runtime_state
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RateTrackError)
    async def handle_ratetrack_error(request: Request, exc: RateTrackError) -> JSONResponse:
        logger.info("request_rejected", path=request.url.path, code=exc.code)
        return JSONResponse(exc.to_dict(), status_code=exc.status_code)

    _register_routes(app)
    return app


def _register_routes(app: FastAPI) -> None:
    @app.get("/healthz")
    def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/projects", response_model=List[ProjectResponse])
    def read_projects(request: Request) -> List[ProjectResponse]:
        state = _runtime(request).current
        return [_project_response(project, state) for project in state.projects]

    @app.post(
        "/projects",
        response_model=ProjectResponse,
        status_code=status.HTTP_201_CREATED,
        responses=ERROR_RESPONSES,
    )
    def create_project(payload: ProjectCreateRequest, request: Request) -> ProjectResponse:
        runtime = _runtime(request)
        project = services.create_project(runtime, payload.name, payload.rate)
        return _project_response(project, runtime.current)

    @app.get("/projects/{project_id}", response_model=ProjectResponse, responses=ERROR_RESPONSES)
    def read_project(project_id: str, request: Request) -> ProjectResponse:
        runtime = _runtime(request)
        return _project_response(services.get_project(runtime, project_id), runtime.current)

    @app.patch("/projects/{project_id}", response_model=ProjectResponse, responses=ERROR_RESPONSES)
    def update_project(project_id: str, payload: ProjectUpdateRequest, request: Request) -> ProjectResponse:
        runtime = _runtime(request)
        project = services.update_project(runtime, project_id, payload.name, payload.rate)
        return _project_response(project, runtime.current)

    @app.delete("/projects/{project_id}", status_code=status.HTTP_204_NO_CONTENT, responses=ERROR_RESPONSES)
    def delete_project(project_id: str, request: Request, confirm: bool = False) -> Response:
        services.delete_project(_runtime(request), project_id, confirm=confirm)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/projects/{project_id}/select", response_model=ProjectResponse, responses=ERROR_RESPONSES)
    def select_project(project_id: str, request: Request) -> ProjectResponse:
        runtime = _runtime(request)
        project = services.select_project(runtime, project_id)
        return _project_response(project, runtime.current)

    @app.delete(
        "/projects/{project_id}/time-blocks/{block_id}",
        status_code=status.HTTP_204_NO_CONTENT,
    )
    def delete_time_block(project_id: str, block_id: str, request: Request) -> Response:
        services.delete_time_block(_runtime(request), project_id, block_id)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/timer", response_model=TimerResponse)
    def read_timer(request: Request, mode: DisplayMode = DisplayMode.SESSION) -> TimerResponse:
        return _timer_response(services.timer_status(_runtime(request), mode))

    @app.post("/timer/start", response_model=TimerResponse, responses=ERROR_RESPONSES)
    def start_timer(request: Request) -> TimerResponse:
        return _timer_response(services.start_timer(_runtime(request)))

    @app.post("/timer/stop", response_model=TimerStopResponse, responses=ERROR_RESPONSES)
    def stop_timer(request: Request) -> TimerStopResponse:
        runtime = _runtime(request)
        block = services.stop_timer(runtime)
        state = runtime.current
        project = state.selected_project
        return TimerStopResponse(
            recorded=block is not None,
            time_block=_block_response(block) if block else None,
            project=_project_response(project, state) if project else None,
            timer=_timer_response(services.timer_status(runtime)),
        )

    @app.get("/history", response_model=HistoryResponse)
    def read_history(request: Request, project_id: Optional[str] = None) -> HistoryResponse:
        entries = services.get_history(_runtime(request), project_id)
        days = [
            HistoryDayResponse(
                day=day,
                entries=[
                    HistoryEntryResponse(
                        project_id=entry.project_id,
                        project_name=entry.project_name,
                        project_rate=entry.project_rate,
                        block=_block_response(entry.block),
                    )
                    for entry in grouped
                ],
                total_time=sum(entry.block.duration for entry in grouped),
                total_earnings=sum(entry.block.earnings for entry in grouped),
            )
            for day, grouped in group_history_by_day(entries).items()
        ]
        return HistoryResponse(
            total_sessions=len(entries),
            total_time=sum(entry.block.duration for entry in entries),
            total_earnings=sum(entry.block.earnings for entry in entries),
            days=days,
        )

    @app.get("/overview", response_model=OverviewResponse)
    def read_overview(request: Request) -> OverviewResponse:
        runtime = _runtime(request)
        overview = services.get_overview(runtime)
        return OverviewResponse(
            project_count=overview.project_count,
            total_sessions=overview.total_sessions,
            total_time=overview.total_time,
            total_time_display=format_compact(overview.total_time),
            total_earnings=overview.total_earnings,
            tax=_tax_for(runtime.current, overview.total_earnings),
        )

    @app.get("/tax", response_model=TaxSettingsResponse)
    def read_tax_settings(request: Request) -> TaxSettingsResponse:
        return _tax_settings_response(services.get_tax_settings(_runtime(request)))

    @app.put("/tax", response_model=TaxSettingsResponse, responses=ERROR_RESPONSES)
    def write_tax_settings(payload: TaxSettingsUpdateRequest, request: Request) -> TaxSettingsResponse:
        updates = payload.model_dump(exclude_unset=True)
        return _tax_settings_response(services.update_tax_settings(_runtime(request), updates))

    @app.get("/tax/presets", response_model=List[TaxPresetResponse])
    def read_tax_presets() -> List[TaxPresetResponse]:
        return [TaxPresetResponse.model_validate(preset) for preset in TAX_RATE_PRESETS]

    @app.get("/tax/preview", response_model=TaxPreviewResponse)
    def read_tax_preview(
        request: Request, gross: Optional[float] = Query(default=None, allow_inf_nan=False)
    ) -> TaxPreviewResponse:
        runtime = _runtime(request)
        amount = gross if gross is not None else services.sample_gross_earnings(runtime, SAMPLE_GROSS_EARNINGS)
        preview = tax_preview(amount, services.get_tax_settings(runtime))
        return TaxPreviewResponse(
            calculation=TaxCalculationResponse.model_validate(preview["calculation"]),
            formatted_rate=preview["formatted_rate"],
            description=preview["description"],
        )

    @app.get("/exports/sessions.csv", responses=ERROR_RESPONSES)
    def export_sessions(request: Request) -> Response:
        filename, content = services.export_csv(_runtime(request), "sessions")
        return _csv_response(filename, content)

    @app.get("/exports/summary.csv", responses=ERROR_RESPONSES)
    def export_summary(request: Request) -> Response:
        filename, content = services.export_csv(_runtime(request), "summary")
        return _csv_response(filename, content)


app = create_app()
