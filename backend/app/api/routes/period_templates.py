from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from app.api.deps import get_context, get_db, get_locks, require_schedule_editor
from app.core.context import ScheduleContext
from app.schemas.period_template import (
    ALL_DAYS,
    STANDARD_DAY_LAYOUT,
    PeriodTemplateCreate,
    PeriodTemplateOut,
    PeriodTemplateUpdate,
)
from app.services.schedule_locks import ScheduleLocks
from app.services.template_catalog import PeriodTemplateCatalog

router = APIRouter()


@router.get("/", response_model=list[PeriodTemplateOut])
def list_period_templates(
    skip: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> list[PeriodTemplateOut]:
    templates = PeriodTemplateCatalog(db).list_templates(ctx, skip=skip, limit=limit)
    return [PeriodTemplateOut.from_model(template) for template in templates]


@router.get("/default", response_model=PeriodTemplateOut | None)
def get_default_period_template(
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> PeriodTemplateOut | None:
    template = PeriodTemplateCatalog(db).get_default_template(ctx)
    return PeriodTemplateOut.from_model(template) if template is not None else None


@router.get("/standard-layout", response_model=PeriodTemplateCreate)
def get_standard_layout(ctx: ScheduleContext = Depends(get_context)) -> PeriodTemplateCreate:
    return PeriodTemplateCreate(name="Standard day", active_days=list(ALL_DAYS), slots=STANDARD_DAY_LAYOUT)


@router.get("/{template_id}", response_model=PeriodTemplateOut)
def get_period_template(
    template_id: str,
    ctx: ScheduleContext = Depends(get_context),
    db: Session = Depends(get_db),
) -> PeriodTemplateOut:
    return PeriodTemplateOut.from_model(PeriodTemplateCatalog(db).get_template(ctx, template_id))


@router.post("/", response_model=PeriodTemplateOut, status_code=status.HTTP_201_CREATED)
def create_period_template(
    payload: PeriodTemplateCreate,
    ctx: ScheduleContext = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
    locks: ScheduleLocks = Depends(get_locks),
) -> PeriodTemplateOut:
    template = PeriodTemplateCatalog(db, locks).create_template(ctx, payload)
    return PeriodTemplateOut.from_model(template)


@router.put("/{template_id}", response_model=PeriodTemplateOut)
def update_period_template(
    template_id: str,
    payload: PeriodTemplateUpdate,
    ctx: ScheduleContext = Depends(require_schedule_editor),
    db: Session = Depends(get_db),
    locks: ScheduleLocks = Depends(get_locks),
) -> PeriodTemplateOut:
    template = PeriodTemplateCatalog(db, locks).update_template(ctx, template_id, payload)
    return PeriodTemplateOut.from_model(template)
