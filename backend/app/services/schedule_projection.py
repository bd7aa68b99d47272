"""
Read-only views over a batch's Period rows.

The module-level functions are pure transforms over a snapshot:
- to_grid: day-by-slot matrix, breaks included
- to_calendar: per-day chronological listing
- to_print_sheet / render_text / render_csv: the grid as printable text
- derive_template_from_schedule: teaching slots reconstructed from periods

ScheduleViewService loads the snapshot and the layout for one batch and
hands them to these functions. Nothing here compiles or writes.
"""

from __future__ import annotations

import csv
from collections.abc import Iterable, Mapping, Sequence
from io import StringIO
import logging

from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.core.exceptions import ResourceNotFoundError
from app.models.period import Period
from app.models.schedule_activity import ScheduleActivity
from app.schemas.period_template import BreakSlot, TeachingSlot, day_label
from app.schemas.schedule import (
    CalendarDay,
    DerivedTemplate,
    GridCell,
    GridRow,
    PeriodOut,
    PrintSheet,
    ScheduleGrid,
    ScheduleGridOut,
    ScheduleLayout,
    ScheduleSubject,
    ScheduleTeacher,
)
from app.services.directory import SqlDirectory
from app.services.schedule_store import ScheduleStore
from app.services.template_catalog import PeriodTemplateCatalog

logger = logging.getLogger(__name__)


def _snapshot(periods: Iterable[Period | PeriodOut]) -> list[PeriodOut]:
    return [item if isinstance(item, PeriodOut) else PeriodOut.model_validate(item) for item in periods]


def derive_template_from_schedule(periods: Iterable[Period | PeriodOut]) -> DerivedTemplate:
    """Rebuilds teaching slots from the period numbers present in a schedule.

    Times come from the first occurrence of each period number in day order.
    Breaks are never materialized as periods, so the result has none.
    """
    snapshot = sorted(_snapshot(periods), key=lambda item: (item.day_of_week, item.start_time))
    first_seen: dict[int, PeriodOut] = {}
    for item in snapshot:
        first_seen.setdefault(item.period_number, item)

    slots = [
        TeachingSlot(period_number=item.period_number, start_time=item.start_time, end_time=item.end_time)
        for item in sorted(first_seen.values(), key=lambda item: (item.start_time, item.period_number))
    ]
    return DerivedTemplate(
        source="schedule" if snapshot else "empty",
        includes_breaks=False,
        active_days=sorted({item.day_of_week for item in snapshot}),
        slots=slots,
    )


def _slot_sort_key(slot: TeachingSlot | BreakSlot) -> tuple[str, int]:
    return (slot.start_time, slot.period_number if isinstance(slot, TeachingSlot) else 0)


def to_grid(
    periods: Iterable[Period | PeriodOut],
    template_slots: Sequence[TeachingSlot | BreakSlot],
    active_days: Iterable[int],
) -> ScheduleGrid:
    snapshot = _snapshot(periods)
    if not template_slots:
        template_slots = derive_template_from_schedule(snapshot).slots

    days = sorted(set(active_days))
    by_cell = {(item.day_of_week, item.period_number): item for item in snapshot}

    rows: list[GridRow] = []
    for slot in sorted(template_slots, key=_slot_sort_key):
        if isinstance(slot, BreakSlot):
            rows.append(
                GridRow(
                    kind="break",
                    label=slot.name,
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    cells=[GridCell(day_of_week=day, kind="break", break_name=slot.name) for day in days],
                )
            )
            continue
        rows.append(
            GridRow(
                kind="teaching",
                period_number=slot.period_number,
                label=f"Period {slot.period_number}",
                start_time=slot.start_time,
                end_time=slot.end_time,
                cells=[
                    GridCell(day_of_week=day, kind="teaching", period=by_cell.get((day, slot.period_number)))
                    for day in days
                ],
            )
        )
    return ScheduleGrid(days=days, rows=rows)


def to_calendar(periods: Iterable[Period | PeriodOut]) -> list[CalendarDay]:
    grouped: dict[int, list[PeriodOut]] = {}
    for item in _snapshot(periods):
        grouped.setdefault(item.day_of_week, []).append(item)
    return [
        CalendarDay(
            day_of_week=day,
            label=day_label(day),
            periods=sorted(grouped[day], key=lambda item: (item.start_time, item.period_number)),
        )
        for day in sorted(grouped)
    ]


def _cell_text(cell: GridCell, labels: Mapping[str, str]) -> str:
    if cell.kind == "break":
        return cell.break_name or ""
    if cell.period is None:
        return ""
    period = cell.period
    parts = []
    if period.subject_id:
        parts.append(labels.get(period.subject_id) or (period.subject.name if period.subject else period.subject_id))
    if period.teacher_id:
        parts.append(labels.get(period.teacher_id) or (period.teacher.full_name if period.teacher else period.teacher_id))
    return " / ".join(parts)


def to_print_sheet(
    grid: ScheduleGrid,
    *,
    heading: str,
    subheading: str = "Weekly schedule",
    date_label: str = "",
    labels: Mapping[str, str] | None = None,
) -> PrintSheet:
    labels = labels or {}
    columns = ["Period", "Time", *[day_label(day) for day in grid.days]]
    rows = [
        [row.label, f"{row.start_time}-{row.end_time}", *[_cell_text(cell, labels) for cell in row.cells]]
        for row in grid.rows
    ]
    return PrintSheet(heading=heading, subheading=subheading, date_label=date_label, columns=columns, rows=rows)


def render_text(sheet: PrintSheet) -> str:
    widths = [len(column) for column in sheet.columns]
    for row in sheet.rows:
        for index, value in enumerate(row):
            widths[index] = max(widths[index], len(value))

    def line(values: Sequence[str]) -> str:
        return " | ".join(value.ljust(widths[index]) for index, value in enumerate(values)).rstrip()

    out = [sheet.heading, sheet.subheading]
    if sheet.date_label:
        out.append(sheet.date_label)
    out.append("")
    out.append(line(sheet.columns))
    out.append("-+-".join("-" * width for width in widths))
    out.extend(line(row) for row in sheet.rows)
    return "\n".join(out) + "\n"


def render_csv(sheet: PrintSheet) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(sheet.columns)
    writer.writerows(sheet.rows)
    return output.getvalue()


def _cover_periods(layout: ScheduleLayout, periods: Sequence[PeriodOut]) -> ScheduleLayout:
    """Extends a template layout with the period numbers and days it lacks but the schedule has."""
    numbers = {slot.period_number for slot in layout.slots if isinstance(slot, TeachingSlot)}
    derived = derive_template_from_schedule(periods)
    extra = [slot for slot in derived.slots if slot.period_number not in numbers]
    days = sorted(set(layout.active_days) | set(derived.active_days))
    if not extra and days == layout.active_days:
        return layout
    return layout.model_copy(update={"slots": [*layout.slots, *extra], "active_days": days})


class ScheduleViewService:
    """Loads a batch's periods and the layout to project them onto.

    The layout is the template the schedule was compiled from when it still
    exists, otherwise the organization's default template, otherwise the
    teaching slots derived from the periods themselves.
    A template layout gains derived rows for any period numbers or days the
    schedule uses but the template does not, so no stored period is hidden.
    """

    def __init__(self, db: Session, directory: SqlDirectory | None = None, store: ScheduleStore | None = None) -> None:
        self.db = db
        self.directory = directory or SqlDirectory(db)
        self.store = store or ScheduleStore(db)
        self.catalog = PeriodTemplateCatalog(db)

    def list_periods(self, ctx: ScheduleContext, batch_id: str) -> list[PeriodOut]:
        self._require_batch(ctx, batch_id)
        return self.describe(ctx, self.store.list_periods(ctx, batch_id))

    def describe(self, ctx: ScheduleContext, periods: Iterable[Period | PeriodOut]) -> list[PeriodOut]:
        """Snapshots periods with their subject and teacher attached, two lookups per call."""
        snapshot = _snapshot(periods)
        subjects = self.directory.subjects_by_id(ctx, {item.subject_id for item in snapshot if item.subject_id})
        teachers = self.directory.teachers_by_id(ctx, {item.teacher_id for item in snapshot if item.teacher_id})
        return [
            item.model_copy(
                update={
                    "subject": ScheduleSubject.model_validate(subjects[item.subject_id])
                    if item.subject_id in subjects
                    else None,
                    "teacher": ScheduleTeacher.model_validate(teachers[item.teacher_id])
                    if item.teacher_id in teachers
                    else None,
                }
            )
            for item in snapshot
        ]

    def resolve_layout(self, ctx: ScheduleContext, batch_id: str, periods: Sequence[PeriodOut]) -> ScheduleLayout:
        state = self.store.get_state(ctx, batch_id)
        if state is not None and state.template_id is not None:
            template = self.catalog.find_template(ctx, state.template_id)
            if template is not None:
                layout = ScheduleLayout(
                    source="template",
                    template_id=template.id,
                    template_outdated=template.version != state.template_version,
                    active_days=sorted(template.active_days),
                    slots=template.layout(),
                )
                return _cover_periods(layout, periods)
            logger.info("Template %s recorded for batch %s no longer exists", state.template_id, batch_id)

        default = self.catalog.get_default_template(ctx)
        if default is not None:
            layout = ScheduleLayout(
                source="default_template",
                template_id=default.id,
                active_days=sorted(default.active_days),
                slots=default.layout(),
            )
            return _cover_periods(layout, periods)

        derived = derive_template_from_schedule(periods)
        return ScheduleLayout(source=derived.source, active_days=derived.active_days, slots=derived.slots)

    def derived_template(self, ctx: ScheduleContext, batch_id: str) -> DerivedTemplate:
        periods = self.list_periods(ctx, batch_id)
        layout = self.resolve_layout(ctx, batch_id, periods)
        if layout.source in ("schedule", "empty"):
            return derive_template_from_schedule(periods)
        template = self.catalog.get_template(ctx, layout.template_id)
        return DerivedTemplate(
            source=layout.source,
            template_id=template.id,
            template_version=template.version,
            includes_breaks=any(isinstance(slot, BreakSlot) for slot in layout.slots),
            active_days=layout.active_days,
            slots=layout.slots,
        )

    def grid(self, ctx: ScheduleContext, batch_id: str) -> ScheduleGridOut:
        periods = self.list_periods(ctx, batch_id)
        layout = self.resolve_layout(ctx, batch_id, periods)
        state = self.store.get_state(ctx, batch_id)
        return ScheduleGridOut(
            batch_id=batch_id,
            revision=state.revision if state is not None else 0,
            layout_source=layout.source,
            template_outdated=layout.template_outdated,
            grid=to_grid(periods, layout.slots, layout.active_days),
        )

    def calendar(self, ctx: ScheduleContext, batch_id: str) -> list[CalendarDay]:
        return to_calendar(self.list_periods(ctx, batch_id))

    def print_sheet(self, ctx: ScheduleContext, batch_id: str, *, date_label: str = "") -> PrintSheet:
        grid_out = self.grid(ctx, batch_id)
        return to_print_sheet(
            grid_out.grid,
            heading=self.directory.batch_name(ctx, batch_id) or batch_id,
            date_label=date_label,
        )

    def activity(self, ctx: ScheduleContext, batch_id: str, *, limit: int = 50) -> list[ScheduleActivity]:
        self._require_batch(ctx, batch_id)
        return self.store.list_activity(ctx, batch_id, limit=limit)

    def _require_batch(self, ctx: ScheduleContext, batch_id: str) -> None:
        if not self.directory.batch_exists(ctx, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
