from __future__ import annotations

from typing import Protocol

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.models.directory import Batch, Subject, Teacher


class Directory(Protocol):
    """Identity lookups served by the collaborators that own batches, staff and subjects."""

    def batch_exists(self, ctx: ScheduleContext, batch_id: str) -> bool: ...

    def teacher_exists(self, ctx: ScheduleContext, teacher_id: str) -> bool: ...

    def subject_exists(self, ctx: ScheduleContext, subject_id: str) -> bool: ...

    def subjects_by_id(self, ctx: ScheduleContext, subject_ids: set[str]) -> dict[str, Subject]: ...

    def teachers_by_id(self, ctx: ScheduleContext, teacher_ids: set[str]) -> dict[str, Teacher]: ...


class SqlDirectory:
    def __init__(self, db: Session) -> None:
        self.db = db

    def _exists(self, model, ctx: ScheduleContext, entity_id: str) -> bool:
        stmt = select(model.id).where(model.id == entity_id, model.organization_id == ctx.organization_id)
        return self.db.execute(stmt).first() is not None

    def batch_exists(self, ctx: ScheduleContext, batch_id: str) -> bool:
        return self._exists(Batch, ctx, batch_id)

    def teacher_exists(self, ctx: ScheduleContext, teacher_id: str) -> bool:
        return self._exists(Teacher, ctx, teacher_id)

    def subject_exists(self, ctx: ScheduleContext, subject_id: str) -> bool:
        return self._exists(Subject, ctx, subject_id)

    def batch_name(self, ctx: ScheduleContext, batch_id: str) -> str | None:
        stmt = select(Batch.name).where(Batch.id == batch_id, Batch.organization_id == ctx.organization_id)
        return self.db.execute(stmt).scalar_one_or_none()

    def subjects_by_id(self, ctx: ScheduleContext, subject_ids: set[str]) -> dict[str, Subject]:
        if not subject_ids:
            return {}
        stmt = select(Subject).where(Subject.organization_id == ctx.organization_id, Subject.id.in_(subject_ids))
        return {row.id: row for row in self.db.scalars(stmt)}

    def teachers_by_id(self, ctx: ScheduleContext, teacher_ids: set[str]) -> dict[str, Teacher]:
        if not teacher_ids:
            return {}
        stmt = select(Teacher).where(Teacher.organization_id == ctx.organization_id, Teacher.id.in_(teacher_ids))
        return {row.id: row for row in self.db.scalars(stmt)}
