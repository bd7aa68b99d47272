from dataclasses import dataclass


@dataclass(frozen=True)
class ScheduleContext:
    """Who is calling and for which organization. Passed explicitly into every service call."""

    organization_id: str
    actor_id: str | None = None
