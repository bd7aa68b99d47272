from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy.sql import func

from app.db.base import Base
from app.schemas.period_template import BreakSlot, TeachingSlot

BREAK_PERIOD_NUMBER = 0


class PeriodTemplate(Base):
    __tablename__ = "period_templates"
    __table_args__ = (
        Index(
            "uq_period_templates_single_default",
            "organization_id",
            unique=True,
            sqlite_where=text("is_default = 1"),
            postgresql_where=text("is_default"),
        ),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    organization_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    active_days: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), onupdate=func.now())

    slots: Mapped[list[PeriodTemplateSlot]] = relationship(
        back_populates="template",
        cascade="all, delete-orphan",
        order_by="PeriodTemplateSlot.start_time",
        lazy="selectin",
    )

    def layout(self) -> list[TeachingSlot | BreakSlot]:
        return [slot.to_slot() for slot in sorted(self.slots, key=lambda item: item.start_time)]

    def teaching_slots(self) -> list[TeachingSlot]:
        return [slot for slot in self.layout() if isinstance(slot, TeachingSlot)]


class PeriodTemplateSlot(Base):
    __tablename__ = "period_template_slots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    template_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("period_templates.id", ondelete="CASCADE"), nullable=False, index=True
    )
    period_number: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[str] = mapped_column(String(5), nullable=False)
    end_time: Mapped[str] = mapped_column(String(5), nullable=False)
    is_break: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    break_name: Mapped[str | None] = mapped_column(String(60), nullable=True)

    template: Mapped[PeriodTemplate] = relationship(back_populates="slots")

    @classmethod
    def from_slot(cls, slot: TeachingSlot | BreakSlot) -> PeriodTemplateSlot:
        if isinstance(slot, BreakSlot):
            return cls(
                period_number=BREAK_PERIOD_NUMBER,
                start_time=slot.start_time,
                end_time=slot.end_time,
                is_break=True,
                break_name=slot.name,
            )
        return cls(
            period_number=slot.period_number,
            start_time=slot.start_time,
            end_time=slot.end_time,
            is_break=False,
        )

    def to_slot(self) -> TeachingSlot | BreakSlot:
        if self.is_break:
            return BreakSlot(name=self.break_name or "Break", start_time=self.start_time, end_time=self.end_time)
        return TeachingSlot(period_number=self.period_number, start_time=self.start_time, end_time=self.end_time)
