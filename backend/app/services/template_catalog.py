from __future__ import annotations

from collections.abc import Sequence
from itertools import pairwise
import logging
import uuid

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.core.exceptions import ConflictError, ResourceNotFoundError, ValidationError
from app.models.period_template import PeriodTemplate, PeriodTemplateSlot
from app.schemas.period_template import (
    ALL_DAYS,
    BreakSlot,
    PeriodTemplateCreate,
    PeriodTemplateUpdate,
    TeachingSlot,
    parse_time_to_minutes,
    windows_overlap,
)
from app.services.schedule_locks import ScheduleLocks, templates_key

logger = logging.getLogger(__name__)


def _slot_details(index: int, slot: TeachingSlot | BreakSlot, reason: str, **extra) -> dict:
    details = {
        "reason": reason,
        "slot_index": index,
        "kind": slot.kind,
        "start_time": slot.start_time,
        "end_time": slot.end_time,
    }
    if isinstance(slot, TeachingSlot):
        details["period_number"] = slot.period_number
    else:
        details["break_name"] = slot.name
    details.update(extra)
    return details


def _describe(index: int, slot: TeachingSlot | BreakSlot) -> str:
    if isinstance(slot, TeachingSlot):
        return f"Slot {index + 1} (period {slot.period_number}, {slot.start_time}-{slot.end_time})"
    return f"Slot {index + 1} ({slot.name}, {slot.start_time}-{slot.end_time})"


def validate_active_days(active_days: Sequence[int]) -> list[int]:
    if not active_days:
        raise ValidationError("At least one active day is required", details={"field": "active_days"})
    invalid = sorted({day for day in active_days if day not in ALL_DAYS})
    if invalid:
        raise ValidationError(
            "Active days must be between 1 (Monday) and 6 (Saturday)",
            details={"field": "active_days", "invalid_days": invalid},
        )
    return sorted(set(active_days))


def validate_layout(slots: Sequence[TeachingSlot | BreakSlot], active_days: Sequence[int]) -> list[int]:
    """Checks a slot layout and returns the normalized active days.

    Raises ValidationError naming the first offending slot by its position in
    the caller's list.
    """
    if not slots:
        raise ValidationError("A period template needs at least one slot", details={"field": "slots"})

    seen_numbers: dict[int, int] = {}
    for index, slot in enumerate(slots):
        if parse_time_to_minutes(slot.end_time) <= parse_time_to_minutes(slot.start_time):
            raise ValidationError(
                f"{_describe(index, slot)} must end after it starts",
                details=_slot_details(index, slot, "end_not_after_start"),
            )
        if not isinstance(slot, TeachingSlot):
            continue
        if slot.period_number < 1:
            raise ValidationError(
                f"{_describe(index, slot)} needs a period number of 1 or more; 0 is reserved for breaks",
                details=_slot_details(index, slot, "invalid_period_number"),
            )
        if slot.period_number in seen_numbers:
            raise ValidationError(
                f"{_describe(index, slot)} repeats period number {slot.period_number}",
                details=_slot_details(
                    index, slot, "duplicate_period_number", duplicate_of_slot_index=seen_numbers[slot.period_number]
                ),
            )
        seen_numbers[slot.period_number] = index

    ordered = sorted(enumerate(slots), key=lambda item: parse_time_to_minutes(item[1].start_time))
    for (previous_index, previous), (index, slot) in pairwise(ordered):
        if windows_overlap(previous.start_time, previous.end_time, slot.start_time, slot.end_time):
            raise ValidationError(
                f"{_describe(index, slot)} overlaps {_describe(previous_index, previous).lower()}",
                details=_slot_details(index, slot, "overlapping_slots", overlaps_slot_index=previous_index),
            )

    return validate_active_days(active_days)


class PeriodTemplateCatalog:
    def __init__(self, db: Session, locks: ScheduleLocks | None = None) -> None:
        self.db = db
        self.locks = locks or ScheduleLocks()

    def list_templates(self, ctx: ScheduleContext, *, skip: int = 0, limit: int = 100) -> list[PeriodTemplate]:
        stmt = (
            select(PeriodTemplate)
            .where(PeriodTemplate.organization_id == ctx.organization_id)
            .order_by(PeriodTemplate.name, PeriodTemplate.created_at)
            .offset(skip)
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())

    def get_template(self, ctx: ScheduleContext, template_id: str) -> PeriodTemplate:
        template = self.db.execute(
            select(PeriodTemplate).where(
                PeriodTemplate.id == template_id, PeriodTemplate.organization_id == ctx.organization_id
            )
        ).scalar_one_or_none()
        if template is None:
            raise ResourceNotFoundError("PeriodTemplate", template_id)
        return template

    def find_template(self, ctx: ScheduleContext, template_id: str) -> PeriodTemplate | None:
        try:
            return self.get_template(ctx, template_id)
        except ResourceNotFoundError:
            return None

    def get_default_template(self, ctx: ScheduleContext) -> PeriodTemplate | None:
        stmt = select(PeriodTemplate).where(
            PeriodTemplate.organization_id == ctx.organization_id, PeriodTemplate.is_default.is_(True)
        )
        return self.db.execute(stmt).scalars().first()

    def create_template(self, ctx: ScheduleContext, payload: PeriodTemplateCreate) -> PeriodTemplate:
        active_days = validate_layout(payload.slots, payload.active_days)
        template = PeriodTemplate(
            id=str(uuid.uuid4()),
            organization_id=ctx.organization_id,
            name=payload.name.strip(),
            is_default=payload.is_default,
            active_days=active_days,
            version=1,
            slots=[PeriodTemplateSlot.from_slot(slot) for slot in payload.slots],
        )
        with self.locks.hold(self.db, [templates_key(ctx)]):
            if template.is_default:
                self._clear_default(ctx, keep_id=template.id)
            self.db.add(template)
            self._commit()
        self.db.refresh(template)
        logger.info("Created period template %s (%s) for org %s", template.id, template.name, ctx.organization_id)
        return template

    def update_template(self, ctx: ScheduleContext, template_id: str, payload: PeriodTemplateUpdate) -> PeriodTemplate:
        with self.locks.hold(self.db, [templates_key(ctx)]):
            template = self.get_template(ctx, template_id)
            data = payload.model_dump(exclude_unset=True)
            slots = payload.slots if payload.slots is not None else template.layout()
            active_days = validate_layout(
                slots, payload.active_days if payload.active_days is not None else template.active_days
            )

            if data.get("is_default"):
                self._clear_default(ctx, keep_id=template.id)
            if payload.name is not None:
                template.name = payload.name.strip()
            if payload.is_default is not None:
                template.is_default = payload.is_default
            if payload.active_days is not None:
                template.active_days = active_days
            if payload.slots is not None:
                template.slots = [PeriodTemplateSlot.from_slot(slot) for slot in payload.slots]
            if data:
                template.version += 1
            self._commit()
        self.db.refresh(template)
        logger.info("Updated period template %s to version %s", template.id, template.version)
        return template

    def _clear_default(self, ctx: ScheduleContext, *, keep_id: str) -> None:
        self.db.execute(
            update(PeriodTemplate)
            .where(
                PeriodTemplate.organization_id == ctx.organization_id,
                PeriodTemplate.is_default.is_(True),
                PeriodTemplate.id != keep_id,
            )
            .values(is_default=False)
            .execution_options(synchronize_session="fetch")
        )

    def _commit(self) -> None:
        try:
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(
                "Another template was made the default at the same time, reload and try again",
                details={"reason": "default_template_race"},
            ) from exc
        except Exception:
            self.db.rollback()
            raise
