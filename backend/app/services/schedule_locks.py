from __future__ import annotations

from collections.abc import Iterable, Iterator
from contextlib import contextmanager
import logging
from threading import Lock

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core.context import ScheduleContext
from app.core.exceptions import ScheduleBusyError

logger = logging.getLogger(__name__)

# Batch locks are always taken before teacher locks.
_KEY_RANK = {"templates": 0, "batch": 1, "teacher": 2}


def batch_key(ctx: ScheduleContext, batch_id: str) -> str:
    return f"batch:{ctx.organization_id}:{batch_id}"


def teacher_day_key(ctx: ScheduleContext, teacher_id: str, day_of_week: int) -> str:
    return f"teacher:{ctx.organization_id}:{teacher_id}:{day_of_week}"


def templates_key(ctx: ScheduleContext) -> str:
    return f"templates:{ctx.organization_id}"


def ordered_keys(keys: Iterable[str]) -> list[str]:
    unique = set(keys)
    return sorted(unique, key=lambda key: (_KEY_RANK.get(key.split(":", 1)[0], 99), key))


class KeyedLockRegistry:
    """Per-key locks that exist only while someone holds or waits for them."""

    def __init__(self) -> None:
        self._locks: dict[str, tuple[Lock, int]] = {}
        self._guard = Lock()

    def acquire(self, key: str, timeout: float = -1) -> bool:
        with self._guard:
            lock, users = self._locks.get(key, (None, 0))
            if lock is None:
                lock = Lock()
            self._locks[key] = (lock, users + 1)
        if lock.acquire(timeout=timeout):
            return True
        self._forget(key)
        return False

    def release(self, key: str) -> None:
        with self._guard:
            lock, _ = self._locks[key]
        lock.release()
        self._forget(key)

    def _forget(self, key: str) -> None:
        with self._guard:
            lock, users = self._locks[key]
            if users <= 1:
                del self._locks[key]
            else:
                self._locks[key] = (lock, users - 1)

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def clear(self) -> None:
        with self._guard:
            self._locks.clear()


_registry = KeyedLockRegistry()


class ScheduleLocks:
    """Serializes writers that touch the same batch or the same teacher on the same day.

    PostgreSQL uses transaction-scoped advisory locks, released by the commit or
    rollback inside the ``hold`` block. Other databases fall back to a
    process-wide lock registry held for the duration of the block.
    """

    def __init__(self, timeout_seconds: float = 10.0, registry: KeyedLockRegistry | None = None) -> None:
        self.timeout_seconds = timeout_seconds
        self.registry = registry if registry is not None else _registry

    @contextmanager
    def hold(self, db: Session, keys: Iterable[str]) -> Iterator[None]:
        ordered = ordered_keys(keys)
        if db.get_bind().dialect.name == "postgresql":
            self._acquire_advisory(db, ordered)
            yield
            return

        acquired: list[str] = []
        try:
            for key in ordered:
                if not self.registry.acquire(key, timeout=self.timeout_seconds):
                    logger.warning("Timed out after %.1fs waiting for schedule lock %s", self.timeout_seconds, key)
                    raise ScheduleBusyError(key)
                acquired.append(key)
            yield
        finally:
            for key in reversed(acquired):
                self.registry.release(key)

    def _acquire_advisory(self, db: Session, keys: list[str]) -> None:
        timeout_ms = max(1, int(self.timeout_seconds * 1000))
        db.execute(text("SELECT set_config('lock_timeout', :value, true)"), {"value": f"{timeout_ms}ms"})
        for key in keys:
            try:
                db.execute(text("SELECT pg_advisory_xact_lock(hashtext(:key))"), {"key": key})
            except OperationalError as exc:
                db.rollback()
                logger.warning("Timed out waiting for advisory lock %s", key)
                raise ScheduleBusyError(key) from exc


def clear_schedule_locks() -> None:
    _registry.clear()
