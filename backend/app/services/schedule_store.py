from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime, timezone

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.models.period import BatchSchedule, Period
from app.models.schedule_activity import ScheduleActivity


class ScheduleStore:
    """Reads and writes Period rows for one organization.

    Nothing here commits; callers own the transaction so that a bulk replace
    and the conflict checks around it land (or roll back) together.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def list_periods(self, ctx: ScheduleContext, batch_id: str) -> list[Period]:
        stmt = (
            select(Period)
            .where(Period.organization_id == ctx.organization_id, Period.batch_id == batch_id)
            .order_by(Period.day_of_week, Period.start_time, Period.period_number)
        )
        return list(self.db.execute(stmt).scalars())

    def get_period(self, ctx: ScheduleContext, batch_id: str, day_of_week: int, period_number: int) -> Period | None:
        stmt = select(Period).where(
            Period.organization_id == ctx.organization_id,
            Period.batch_id == batch_id,
            Period.day_of_week == day_of_week,
            Period.period_number == period_number,
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def find_overlapping(
        self,
        ctx: ScheduleContext,
        *,
        teacher_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_period_id: str | None = None,
    ) -> list[Period]:
        # Zero-padded HH:MM strings order the same way as the times they encode.
        stmt = select(Period).where(
            Period.organization_id == ctx.organization_id,
            Period.teacher_id == teacher_id,
            Period.day_of_week == day_of_week,
            Period.start_time < end_time,
            Period.end_time > start_time,
        )
        if exclude_period_id is not None:
            stmt = stmt.where(Period.id != exclude_period_id)
        stmt = stmt.order_by(Period.start_time, Period.batch_id)
        return list(self.db.execute(stmt).scalars())

    def delete_periods(self, ctx: ScheduleContext, batch_id: str) -> int:
        result = self.db.execute(
            delete(Period)
            .where(Period.organization_id == ctx.organization_id, Period.batch_id == batch_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    def insert_periods(
        self, ctx: ScheduleContext, batch_id: str, rows: Iterable[dict], *, revision: int
    ) -> list[Period]:
        created = [
            Period(organization_id=ctx.organization_id, batch_id=batch_id, version=revision, **row) for row in rows
        ]
        self.db.add_all(created)
        self.db.flush()
        return created

    def replace_periods(
        self, ctx: ScheduleContext, batch_id: str, rows: Iterable[dict], *, revision: int
    ) -> tuple[int, list[Period]]:
        removed = self.delete_periods(ctx, batch_id)
        return removed, self.insert_periods(ctx, batch_id, rows, revision=revision)

    def update_assignment(
        self,
        period: Period,
        *,
        expected_version: int,
        new_version: int,
        values: dict[str, str | None],
    ) -> bool:
        result = self.db.execute(
            update(Period)
            .where(Period.id == period.id, Period.version == expected_version)
            .values(version=new_version, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return False
        self.db.flush()
        self.db.refresh(period)
        return True

    def get_state(self, ctx: ScheduleContext, batch_id: str) -> BatchSchedule | None:
        stmt = select(BatchSchedule).where(
            BatchSchedule.organization_id == ctx.organization_id, BatchSchedule.batch_id == batch_id
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def bump_revision(self, ctx: ScheduleContext, batch_id: str) -> BatchSchedule:
        state = self.get_state(ctx, batch_id)
        if state is None:
            state = BatchSchedule(organization_id=ctx.organization_id, batch_id=batch_id, revision=0)
            self.db.add(state)
        state.revision = (state.revision or 0) + 1
        self.db.flush()
        return state

    def mark_compiled(self, state: BatchSchedule, *, template_id: str | None, template_version: int | None) -> None:
        state.template_id = template_id
        state.template_version = template_version
        state.compiled_at = datetime.now(timezone.utc) if template_id is not None else None

    def record_activity(
        self,
        ctx: ScheduleContext,
        batch_id: str,
        *,
        action: str,
        revision: int,
        details: dict | None = None,
    ) -> None:
        self.db.add(
            ScheduleActivity(
                organization_id=ctx.organization_id,
                batch_id=batch_id,
                actor_id=ctx.actor_id,
                action=action,
                revision=revision,
                details=details or {},
            )
        )

    def list_activity(self, ctx: ScheduleContext, batch_id: str, *, limit: int = 50) -> list[ScheduleActivity]:
        stmt = (
            select(ScheduleActivity)
            .where(ScheduleActivity.organization_id == ctx.organization_id, ScheduleActivity.batch_id == batch_id)
            .order_by(ScheduleActivity.revision.desc(), ScheduleActivity.created_at.desc())
            .limit(limit)
        )
        return list(self.db.execute(stmt).scalars())
