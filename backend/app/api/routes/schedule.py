from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import PlainTextResponse, Response
from sqlalchemy.orm import Session

from app.api.deps import get_context, get_db, get_directory, get_locks, require_schedule_editor
from app.core.context import ScheduleContext
from app.core.exceptions import ValidationError
from app.schemas.conflict import ConflictCheckOut
from app.schemas.period_template import TIME_PATTERN, parse_time_to_minutes
from app.schemas.schedule import (
    CalendarDay,
    DerivedTemplate,
    InitializeScheduleIn,
    PeriodAssignmentIn,
    PeriodOut,
    PrintSheet,
    ScheduleActivityOut,
    ScheduleGridOut,
    ScheduleReplaceIn,
    ScheduleReplaceOut,
)
from app.services.conflict_service import ConflictService
from app.services.directory import SqlDirectory
from app.services.period_assignment import PeriodAssignmentService
from app.services.schedule_compiler import ScheduleCompiler
from app.services.schedule_locks import ScheduleLocks
from app.services.schedule_projection import ScheduleViewService, render_csv, render_text

router = APIRouter()


def _parse_if_match(value: str | None) -> int | None:
    if value is None:
        return None
    raw = value.strip()
    if raw.startswith("W/"):
        raw = raw[2:]
    raw = raw.strip('"')
    try:
        return int(raw)
    except ValueError as exc:
        raise ValidationError(
            "If-Match must carry the period version", details={"reason": "invalid_if_match", "value": value}
        ) from exc


@router.get("/batches/{batch_id}/schedule", response_model=list[PeriodOut])
def get_schedule(
    batch_id: str,
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
) -> list[PeriodOut]:
    return ScheduleViewService(db, directory).list_periods(ctx, batch_id)


@router.post("/batches/{batch_id}/schedule/initialize", response_model=list[PeriodOut])
def initialize_schedule(
    batch_id: str,
    payload: InitializeScheduleIn,
    ctx: ScheduleContext = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
    locks: ScheduleLocks = Depends(get_locks),
) -> list[PeriodOut]:
    periods = ScheduleCompiler(db, directory, locks).initialize_schedule(ctx, batch_id, payload.template_id)
    return ScheduleViewService(db, directory).describe(ctx, periods)


@router.put("/batches/{batch_id}/schedule", response_model=ScheduleReplaceOut)
def set_schedule(
    batch_id: str,
    payload: ScheduleReplaceIn,
    ctx: ScheduleContext = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
    locks: ScheduleLocks = Depends(get_locks),
) -> ScheduleReplaceOut:
    result = ScheduleCompiler(db, directory, locks).set_schedule(ctx, batch_id, payload.periods)
    return ScheduleReplaceOut(
        batch_id=result.batch_id,
        revision=result.revision,
        removed=result.removed,
        periods=ScheduleViewService(db, directory).describe(ctx, result.periods),
    )


@router.get("/batches/{batch_id}/schedule/grid", response_model=ScheduleGridOut)
def get_schedule_grid(
    batch_id: str,
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
) -> ScheduleGridOut:
    return ScheduleViewService(db, directory).grid(ctx, batch_id)


@router.get("/batches/{batch_id}/schedule/calendar", response_model=list[CalendarDay])
def get_schedule_calendar(
    batch_id: str,
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
) -> list[CalendarDay]:
    return ScheduleViewService(db, directory).calendar(ctx, batch_id)


@router.get("/batches/{batch_id}/schedule/print", response_model=PrintSheet)
def get_schedule_print(
    batch_id: str,
    output_format: str = Query(default="json", alias="format", pattern="^(json|text|csv)$"),
    date_label: str = Query(default="", max_length=80),
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
):
    sheet = ScheduleViewService(db, directory).print_sheet(ctx, batch_id, date_label=date_label)
    if output_format == "text":
        return PlainTextResponse(render_text(sheet))
    if output_format == "csv":
        return Response(
            content=render_csv(sheet),
            media_type="text/csv",
            headers={"Content-Disposition": f'attachment; filename="schedule-{batch_id}.csv"'},
        )
    return sheet


@router.get("/batches/{batch_id}/schedule/derived-template", response_model=DerivedTemplate)
def get_derived_template(
    batch_id: str,
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
) -> DerivedTemplate:
    return ScheduleViewService(db, directory).derived_template(ctx, batch_id)


@router.get("/batches/{batch_id}/schedule/activity", response_model=list[ScheduleActivityOut])
def get_schedule_activity(
    batch_id: str,
    limit: int = Query(default=50, ge=1, le=200),
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
) -> list[ScheduleActivityOut]:
    activity = ScheduleViewService(db, directory).activity(ctx, batch_id, limit=limit)
    return [ScheduleActivityOut.model_validate(item) for item in activity]


@router.api_route(
    "/batches/{batch_id}/schedule/{day_of_week}/{period_number}",
    methods=["PUT", "PATCH"],
    response_model=PeriodOut,
)
def assign_period(
    batch_id: str,
    day_of_week: int,
    period_number: int,
    payload: PeriodAssignmentIn,
    if_match: str | None = Header(default=None),
    ctx: ScheduleContext = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
    directory: SqlDirectory = Depends(get_directory),
    locks: ScheduleLocks = Depends(get_locks),
) -> PeriodOut:
    expected_version = payload.expected_version
    header_version = _parse_if_match(if_match)
    if expected_version is None:
        expected_version = header_version
    elif header_version is not None and header_version != expected_version:
        raise ValidationError(
            "If-Match and expected_version disagree",
            details={"reason": "version_mismatch", "if_match": header_version, "expected_version": expected_version},
        )

    period = PeriodAssignmentService(db, directory, locks).assign_period(
        ctx,
        batch_id,
        day_of_week,
        period_number,
        payload.changes(),
        expected_version=expected_version,
    )
    return ScheduleViewService(db, directory).describe(ctx, [period])[0]


@router.get("/schedule/teacher-conflicts", response_model=ConflictCheckOut)
def check_teacher_conflict(
    teacher_id: str = Query(min_length=1, max_length=36),
    day: int = Query(ge=1, le=6),
    start_time: str = Query(pattern=TIME_PATTERN.pattern),
    end_time: str = Query(pattern=TIME_PATTERN.pattern),
    exclude_period_id: str | None = Query(default=None, max_length=36),
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> ConflictCheckOut:
    if parse_time_to_minutes(end_time) <= parse_time_to_minutes(start_time):
        raise ValidationError(
            "end_time must be after start_time",
            details={"reason": "end_not_after_start", "start_time": start_time, "end_time": end_time},
        )
    conflict = ConflictService(db).check_conflict(
        ctx, teacher_id, day, start_time, end_time, exclude_period_id=exclude_period_id
    )
    return ConflictCheckOut(conflict=conflict)
