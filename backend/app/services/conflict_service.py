from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.schemas.conflict import TeacherConflict
from app.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)


class ConflictService:
    """Detects a teacher being booked into overlapping periods on the same day.

    Run it inside the transaction that performs the dependent write, while
    holding the teacher/day lock, otherwise the answer can be stale by the
    time the write lands.
    """

    def __init__(self, db: Session, store: ScheduleStore | None = None) -> None:
        self.db = db
        self.store = store or ScheduleStore(db)

    def check_conflict(
        self,
        ctx: ScheduleContext,
        teacher_id: str,
        day_of_week: int,
        start_time: str,
        end_time: str,
        exclude_period_id: str | None = None,
    ) -> TeacherConflict | None:
        candidates = self.store.find_overlapping(
            ctx,
            teacher_id=teacher_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            exclude_period_id=exclude_period_id,
        )
        if not candidates:
            return None

        other = candidates[0]
        logger.info(
            "Teacher %s double-booked on day %s: %s-%s overlaps batch %s %s-%s",
            teacher_id,
            day_of_week,
            start_time,
            end_time,
            other.batch_id,
            other.start_time,
            other.end_time,
        )
        return TeacherConflict(
            teacher_id=teacher_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            conflicting_period_id=other.id,
            conflicting_batch_id=other.batch_id,
            conflicting_period_number=other.period_number,
            conflicting_start_time=other.start_time,
            conflicting_end_time=other.end_time,
        )
