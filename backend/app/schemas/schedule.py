from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from app.schemas.period_template import TIME_PATTERN, TemplateSlot


class ScheduleSubject(BaseModel):
    id: str
    name: str
    code: str | None = None

    model_config = {"from_attributes": True}


class ScheduleTeacher(BaseModel):
    id: str
    full_name: str

    model_config = {"from_attributes": True}


class PeriodOut(BaseModel):
    id: str
    batch_id: str
    day_of_week: int
    period_number: int
    start_time: str
    end_time: str
    subject_id: str | None = None
    teacher_id: str | None = None
    version: int
    subject: ScheduleSubject | None = None
    teacher: ScheduleTeacher | None = None

    model_config = {"from_attributes": True}


class PeriodInput(BaseModel):
    day_of_week: int
    period_number: int
    start_time: str
    end_time: str
    subject_id: str | None = Field(default=None, max_length=36)
    teacher_id: str | None = Field(default=None, max_length=36)

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value


class ScheduleReplaceIn(BaseModel):
    periods: list[PeriodInput] = Field(default_factory=list, max_length=200)


class ScheduleReplaceOut(BaseModel):
    batch_id: str
    revision: int
    removed: int
    periods: list[PeriodOut]


class InitializeScheduleIn(BaseModel):
    template_id: str = Field(min_length=1, max_length=36)


class PeriodAssignmentIn(BaseModel):
    """Omitted fields stay as they are; an explicit null clears the field."""

    subject_id: str | None = Field(default=None, max_length=36)
    teacher_id: str | None = Field(default=None, max_length=36)
    expected_version: int | None = Field(default=None, ge=0)

    def changes(self) -> dict[str, str | None]:
        return self.model_dump(exclude_unset=True, include={"subject_id", "teacher_id"})


class GridCell(BaseModel):
    day_of_week: int
    kind: Literal["teaching", "break"]
    period: PeriodOut | None = None
    break_name: str | None = None

    @property
    def is_empty(self) -> bool:
        return self.kind == "teaching" and self.period is None


class GridRow(BaseModel):
    kind: Literal["teaching", "break"]
    period_number: int | None = None
    label: str
    start_time: str
    end_time: str
    cells: list[GridCell]


class ScheduleGrid(BaseModel):
    days: list[int]
    rows: list[GridRow]


class CalendarDay(BaseModel):
    day_of_week: int
    label: str
    periods: list[PeriodOut]


class PrintSheet(BaseModel):
    heading: str
    subheading: str
    date_label: str
    columns: list[str]
    rows: list[list[str]]


class DerivedTemplate(BaseModel):
    source: Literal["template", "default_template", "schedule", "empty"]
    template_id: str | None = None
    template_version: int | None = None
    includes_breaks: bool
    active_days: list[int]
    slots: list[TemplateSlot]


class ScheduleLayout(BaseModel):
    """Rows and columns a batch's schedule is projected onto."""

    source: Literal["template", "default_template", "schedule", "empty"]
    template_id: str | None = None
    template_outdated: bool = False
    active_days: list[int]
    slots: list[TemplateSlot]


class ScheduleGridOut(BaseModel):
    batch_id: str
    revision: int
    layout_source: str
    template_outdated: bool
    grid: ScheduleGrid


class ScheduleActivityOut(BaseModel):
    id: str
    batch_id: str
    actor_id: str | None = None
    action: str
    revision: int
    details: dict
    created_at: datetime | None = None

    model_config = {"from_attributes": True}
