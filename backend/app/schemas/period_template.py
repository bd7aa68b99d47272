from __future__ import annotations

import re
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field, field_validator

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

ALL_DAYS = [1, 2, 3, 4, 5, 6]

DAY_LABELS = {
    1: ("Monday", "Mon"),
    2: ("Tuesday", "Tue"),
    3: ("Wednesday", "Wed"),
    4: ("Thursday", "Thu"),
    5: ("Friday", "Fri"),
    6: ("Saturday", "Sat"),
}


def parse_time_to_minutes(value: str) -> int:
    if not TIME_PATTERN.match(value):
        raise ValueError("Time must be in HH:MM 24-hour format")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def windows_overlap(start_a: str, end_a: str, start_b: str, end_b: str) -> bool:
    """Half-open comparison: a slot ending at 10:15 does not overlap one starting at 10:15."""
    return parse_time_to_minutes(start_a) < parse_time_to_minutes(end_b) and parse_time_to_minutes(
        start_b
    ) < parse_time_to_minutes(end_a)


def day_label(day: int, *, short: bool = False) -> str:
    labels = DAY_LABELS.get(day)
    if labels is None:
        return ""
    return labels[1] if short else labels[0]


class _SlotWindow(BaseModel):
    start_time: str
    end_time: str

    @field_validator("start_time", "end_time")
    @classmethod
    def validate_time_format(cls, value: str) -> str:
        value = value.strip()
        if not TIME_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM 24-hour format")
        return value


class TeachingSlot(_SlotWindow):
    kind: Literal["teaching"] = "teaching"
    period_number: int


class BreakSlot(_SlotWindow):
    kind: Literal["break"] = "break"
    name: str = Field(default="Break", min_length=1, max_length=60)


TemplateSlot = Annotated[Union[TeachingSlot, BreakSlot], Field(discriminator="kind")]


STANDARD_DAY_LAYOUT: list[TeachingSlot | BreakSlot] = [
    TeachingSlot(period_number=1, start_time="08:00", end_time="08:45"),
    TeachingSlot(period_number=2, start_time="08:45", end_time="09:30"),
    TeachingSlot(period_number=3, start_time="09:30", end_time="10:15"),
    BreakSlot(name="Recess", start_time="10:15", end_time="10:30"),
    TeachingSlot(period_number=4, start_time="10:30", end_time="11:15"),
    TeachingSlot(period_number=5, start_time="11:15", end_time="12:00"),
    BreakSlot(name="Lunch", start_time="12:00", end_time="12:45"),
    TeachingSlot(period_number=6, start_time="12:45", end_time="13:30"),
    TeachingSlot(period_number=7, start_time="13:30", end_time="14:15"),
    TeachingSlot(period_number=8, start_time="14:15", end_time="15:00"),
]


class PeriodTemplateCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    is_default: bool = False
    active_days: list[int] = Field(default_factory=lambda: list(ALL_DAYS), max_length=12)
    slots: list[TemplateSlot] = Field(max_length=40)


class PeriodTemplateUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    is_default: bool | None = None
    active_days: list[int] | None = Field(default=None, max_length=12)
    slots: list[TemplateSlot] | None = Field(default=None, max_length=40)


class PeriodTemplateOut(BaseModel):
    id: str
    name: str
    is_default: bool
    active_days: list[int]
    version: int
    slots: list[TemplateSlot]
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_model(cls, template) -> "PeriodTemplateOut":
        return cls(
            id=template.id,
            name=template.name,
            is_default=template.is_default,
            active_days=sorted(template.active_days),
            version=template.version,
            slots=template.layout(),
            created_at=template.created_at,
            updated_at=template.updated_at,
        )
