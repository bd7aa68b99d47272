from __future__ import annotations

from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass
from itertools import pairwise
import logging

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.core.exceptions import (
    ConflictError,
    ResourceNotFoundError,
    TeacherConflictError,
    ValidationError,
)
from app.models.period import Period
from app.schemas.period_template import ALL_DAYS, parse_time_to_minutes, windows_overlap
from app.schemas.schedule import PeriodInput
from app.services.conflict_service import ConflictService
from app.services.directory import Directory
from app.services.schedule_locks import ScheduleLocks, batch_key, teacher_day_key
from app.services.schedule_store import ScheduleStore
from app.services.template_catalog import PeriodTemplateCatalog

logger = logging.getLogger(__name__)


@dataclass
class ScheduleReplaceResult:
    batch_id: str
    revision: int
    removed: int
    periods: list[Period]


def validate_period_inputs(periods: Sequence[PeriodInput]) -> None:
    seen: dict[tuple[int, int], int] = {}
    by_day: dict[int, list[tuple[int, PeriodInput]]] = defaultdict(list)
    for index, item in enumerate(periods):
        details = {
            "period_index": index,
            "day_of_week": item.day_of_week,
            "period_number": item.period_number,
            "start_time": item.start_time,
            "end_time": item.end_time,
        }
        if item.day_of_week not in ALL_DAYS:
            raise ValidationError(
                f"Period {index + 1} has day {item.day_of_week}; days run from 1 (Monday) to 6 (Saturday)",
                details={**details, "reason": "invalid_day"},
            )
        if item.period_number < 1:
            raise ValidationError(
                f"Period {index + 1} needs a period number of 1 or more",
                details={**details, "reason": "invalid_period_number"},
            )
        if parse_time_to_minutes(item.end_time) <= parse_time_to_minutes(item.start_time):
            raise ValidationError(
                f"Period {index + 1} must end after it starts",
                details={**details, "reason": "end_not_after_start"},
            )
        key = (item.day_of_week, item.period_number)
        if key in seen:
            raise ValidationError(
                f"Period {index + 1} repeats day {item.day_of_week} period {item.period_number}",
                details={**details, "reason": "duplicate_period", "duplicate_of_period_index": seen[key]},
            )
        seen[key] = index
        by_day[item.day_of_week].append((index, item))

    for day_items in by_day.values():
        ordered = sorted(day_items, key=lambda pair: parse_time_to_minutes(pair[1].start_time))
        for (previous_index, previous), (index, item) in pairwise(ordered):
            if windows_overlap(previous.start_time, previous.end_time, item.start_time, item.end_time):
                raise ValidationError(
                    f"Period {index + 1} overlaps period {previous_index + 1} on day {item.day_of_week}",
                    details={
                        "reason": "overlapping_periods",
                        "period_index": index,
                        "overlaps_period_index": previous_index,
                        "day_of_week": item.day_of_week,
                    },
                )


def _concurrent_change(exc: IntegrityError) -> ConflictError:
    logger.warning("Schedule write hit a uniqueness guard: %s", exc.orig)
    return ConflictError(
        "The schedule collides with a concurrent change, reload and try again",
        details={"reason": "integrity_violation", "retryable": True},
    )


class ScheduleCompiler:
    """Expands period templates into a batch's Period rows.

    Every write replaces the batch's whole Period set inside one transaction:
    either the new rows become visible together or the old set stays as it was.
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
        self.catalog = PeriodTemplateCatalog(db, self.locks)
        self.conflicts = ConflictService(db, self.store)

    def initialize_schedule(self, ctx: ScheduleContext, batch_id: str, template_id: str) -> list[Period]:
        with self.locks.hold(self.db, [batch_key(ctx, batch_id)]):
            try:
                self._require_batch(ctx, batch_id)
                template = self.catalog.get_template(ctx, template_id)
                teaching = template.teaching_slots()
                if not teaching:
                    raise ValidationError(
                        f"Template {template.name} has no teaching slots",
                        details={"template_id": template.id, "reason": "no_teaching_slots"},
                    )
                rows = [
                    {
                        "day_of_week": day,
                        "period_number": slot.period_number,
                        "start_time": slot.start_time,
                        "end_time": slot.end_time,
                        "subject_id": None,
                        "teacher_id": None,
                    }
                    for day in sorted(template.active_days)
                    for slot in teaching
                ]
                state = self.store.bump_revision(ctx, batch_id)
                removed, created = self.store.replace_periods(ctx, batch_id, rows, revision=state.revision)
                self.store.mark_compiled(state, template_id=template.id, template_version=template.version)
                self.store.record_activity(
                    ctx,
                    batch_id,
                    action="initialize",
                    revision=state.revision,
                    details={
                        "template_id": template.id,
                        "template_version": template.version,
                        "removed": removed,
                        "created": len(created),
                    },
                )
                self.db.commit()
            except IntegrityError as exc:
                self.db.rollback()
                raise _concurrent_change(exc) from exc
            except Exception:
                self.db.rollback()
                raise

        logger.info(
            "Initialized batch %s from template %s: %d periods (replaced %d)",
            batch_id,
            template_id,
            len(created),
            removed,
        )
        return self.store.list_periods(ctx, batch_id)

    def set_schedule(
        self, ctx: ScheduleContext, batch_id: str, periods: Sequence[PeriodInput]
    ) -> ScheduleReplaceResult:
        validate_period_inputs(periods)
        keys = [batch_key(ctx, batch_id)]
        keys.extend(teacher_day_key(ctx, item.teacher_id, item.day_of_week) for item in periods if item.teacher_id)

        with self.locks.hold(self.db, keys):
            try:
                self._require_batch(ctx, batch_id)
                self._require_references(ctx, periods)
                state = self.store.bump_revision(ctx, batch_id)
                revision = state.revision
                removed = self.store.delete_periods(ctx, batch_id)
                for item in periods:
                    if item.teacher_id is None:
                        continue
                    conflict = self.conflicts.check_conflict(
                        ctx, item.teacher_id, item.day_of_week, item.start_time, item.end_time
                    )
                    if conflict is not None:
                        raise TeacherConflictError(conflict)
                created = self.store.insert_periods(
                    ctx, batch_id, [item.model_dump() for item in periods], revision=revision
                )
                self.store.mark_compiled(state, template_id=None, template_version=None)
                self.store.record_activity(
                    ctx,
                    batch_id,
                    action="clear" if not created else "set",
                    revision=revision,
                    details={"removed": removed, "created": len(created)},
                )
                self.db.commit()
            except TeacherConflictError as exc:
                self.db.rollback()
                logger.warning("Rejected schedule for batch %s: %s", batch_id, exc.message)
                raise
            except IntegrityError as exc:
                self.db.rollback()
                raise _concurrent_change(exc) from exc
            except Exception:
                self.db.rollback()
                raise

        logger.info("Replaced schedule of batch %s: removed %d, created %d", batch_id, removed, len(created))
        return ScheduleReplaceResult(
            batch_id=batch_id,
            revision=revision,
            removed=removed,
            periods=self.store.list_periods(ctx, batch_id),
        )

    def clear_schedule(self, ctx: ScheduleContext, batch_id: str) -> ScheduleReplaceResult:
        return self.set_schedule(ctx, batch_id, [])

    def _require_batch(self, ctx: ScheduleContext, batch_id: str) -> None:
        if not self.directory.batch_exists(ctx, batch_id):
            raise ResourceNotFoundError("Batch", batch_id)

    def _require_references(self, ctx: ScheduleContext, periods: Sequence[PeriodInput]) -> None:
        for teacher_id in sorted({item.teacher_id for item in periods if item.teacher_id}):
            if not self.directory.teacher_exists(ctx, teacher_id):
                raise ResourceNotFoundError("Teacher", teacher_id)
        for subject_id in sorted({item.subject_id for item in periods if item.subject_id}):
            if not self.directory.subject_exists(ctx, subject_id):
                raise ResourceNotFoundError("Subject", subject_id)
