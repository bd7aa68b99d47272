from pydantic import BaseModel


class TeacherConflict(BaseModel):
    teacher_id: str
    day_of_week: int
    start_time: str
    end_time: str
    conflicting_period_id: str
    conflicting_batch_id: str
    conflicting_period_number: int
    conflicting_start_time: str
    conflicting_end_time: str


class ConflictCheckOut(BaseModel):
    conflict: TeacherConflict | None = None
