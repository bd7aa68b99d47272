from app.models.directory import Batch, Subject, Teacher  # noqa: F401
from app.models.period import BatchSchedule, Period  # noqa: F401
from app.models.period_template import PeriodTemplate, PeriodTemplateSlot  # noqa: F401
from app.models.schedule_activity import ScheduleActivity  # noqa: F401
