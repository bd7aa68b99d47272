from __future__ import annotations

from collections.abc import Mapping
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.core.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    StaleWriteError,
    TeacherConflictError,
    ValidationError,
)
from app.models.period import Period
from app.schemas.period_template import ALL_DAYS
from app.services.conflict_service import ConflictService
from app.services.directory import Directory
from app.services.schedule_locks import ScheduleLocks, batch_key, teacher_day_key
from app.services.schedule_store import ScheduleStore

logger = logging.getLogger(__name__)

ASSIGNABLE_FIELDS = frozenset({"subject_id", "teacher_id"})


class PeriodAssignmentService:
    """Sets or clears the subject and teacher of one compiled period.

    Writes to a batch are serialized by the batch lock, and a teacher being
    assigned is locked for that day so two batches cannot book the same
    teacher into overlapping periods. When ``expected_version`` is given the
    write only lands if nobody changed the period since that version was read;
    without it the latest committed write wins.
    """

    def __init__(
        self,
        db: Session,
        directory: Directory,
        locks: ScheduleLocks | None = None,
        store: ScheduleStore | None = None,
    ) -> None:
        self.db = db
        self.directory = directory
        self.locks = locks or ScheduleLocks()
        self.store = store or ScheduleStore(db)
        self.conflicts = ConflictService(db, self.store)

    def assign_period(
        self,
        ctx: ScheduleContext,
        batch_id: str,
        day_of_week: int,
        period_number: int,
        changes: Mapping[str, str | None],
        *,
        expected_version: int | None = None,
    ) -> Period:
        unknown = sorted(set(changes) - ASSIGNABLE_FIELDS)
        if unknown:
            raise ValidationError(
                "Only subject_id and teacher_id can be assigned on a period",
                details={"reason": "immutable_fields", "fields": unknown},
            )
        if day_of_week not in ALL_DAYS:
            raise ValidationError(
                "Day must be between 1 (Monday) and 6 (Saturday)",
                details={"reason": "invalid_day", "day_of_week": day_of_week},
            )
        if period_number < 1:
            raise ValidationError(
                "Period number must be 1 or more",
                details={"reason": "invalid_period_number", "period_number": period_number},
            )

        new_teacher = changes.get("teacher_id")
        keys = [batch_key(ctx, batch_id)]
        if new_teacher:
            keys.append(teacher_day_key(ctx, new_teacher, day_of_week))

        with self.locks.hold(self.db, keys):
            try:
                period = self._load(ctx, batch_id, day_of_week, period_number)
                current_version = period.version
                if expected_version is not None and expected_version != current_version:
                    raise StaleWriteError(expected_version, current_version)

                values = self._resolve_changes(ctx, period, changes)
                if not values:
                    return period

                previous = {field: getattr(period, field) for field in values}
                revision = self.store.bump_revision(ctx, batch_id).revision
                if not self.store.update_assignment(
                    period, expected_version=current_version, new_version=revision, values=values
                ):
                    raise StaleWriteError(current_version, None)
                self.store.record_activity(
                    ctx,
                    batch_id,
                    action="assign",
                    revision=revision,
                    details={
                        "day_of_week": day_of_week,
                        "period_number": period_number,
                        "changes": values,
                        "previous": previous,
                    },
                )
                self.db.commit()
            except (TeacherConflictError, StaleWriteError) as exc:
                self.db.rollback()
                logger.warning(
                    "Rejected assignment on batch %s day %s period %s: %s",
                    batch_id,
                    day_of_week,
                    period_number,
                    exc.message,
                )
                raise
            except IntegrityError as exc:
                self.db.rollback()
                logger.warning("Assignment on batch %s hit a uniqueness guard: %s", batch_id, exc.orig)
                raise ConflictError(
                    "The teacher was booked for this time by a concurrent change, reload and try again",
                    details={"reason": "integrity_violation", "retryable": True},
                ) from exc
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            "Assigned batch %s day %s period %s: %s",
            batch_id,
            day_of_week,
            period_number,
            values,
        )
        return period

    def _load(self, ctx: ScheduleContext, batch_id: str, day_of_week: int, period_number: int) -> Period:
        if not self.directory.batch_exists(ctx, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)
        period = self.store.get_period(ctx, batch_id, day_of_week, period_number)
        if period is None:
            raise ResourceNotFoundError("Period", f"{batch_id}/{day_of_week}/{period_number}")
        return period

    def _resolve_changes(
        self, ctx: ScheduleContext, period: Period, changes: Mapping[str, str | None]
    ) -> dict[str, str | None]:
        values: dict[str, str | None] = {}

        if "subject_id" in changes and changes["subject_id"] != period.subject_id:
            subject_id = changes["subject_id"]
            if subject_id is not None and not self.directory.subject_exists(ctx, subject_id):
                raise ResourceNotFoundError("Subject", subject_id)
            values["subject_id"] = subject_id

        if "teacher_id" in changes and changes["teacher_id"] != period.teacher_id:
            teacher_id = changes["teacher_id"]
            if teacher_id is not None:
                if not self.directory.teacher_exists(ctx, teacher_id):
                    raise ResourceNotFoundError("Teacher", teacher_id)
                conflict = self.conflicts.check_conflict(
                    ctx,
                    teacher_id,
                    period.day_of_week,
                    period.start_time,
                    period.end_time,
                    exclude_period_id=period.id,
                )
                if conflict is not None:
                    raise TeacherConflictError(conflict)
            values["teacher_id"] = teacher_id

        return values
