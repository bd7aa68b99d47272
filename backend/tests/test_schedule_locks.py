import threading

import pytest

from app.core.context import ScheduleContext
from app.core.exceptions import ScheduleBusyError
from app.services.schedule_locks import (
    KeyedLockRegistry,
    ScheduleLocks,
    batch_key,
    ordered_keys,
    teacher_day_key,
    templates_key,
)

CTX = ScheduleContext(organization_id="org-1")


def test_keys_are_ordered_templates_then_batches_then_teachers():
    keys = [
        teacher_day_key(CTX, "t-2", 1),
        batch_key(CTX, "b-2"),
        teacher_day_key(CTX, "t-1", 1),
        templates_key(CTX),
        batch_key(CTX, "b-1"),
        batch_key(CTX, "b-1"),
    ]

    assert ordered_keys(keys) == [
        "templates:org-1",
        "batch:org-1:b-1",
        "batch:org-1:b-2",
        "teacher:org-1:t-1:1",
        "teacher:org-1:t-2:1",
    ]


def test_keys_carry_organization():
    other = ScheduleContext(organization_id="org-2")

    assert batch_key(CTX, "b-1") != batch_key(other, "b-1")


def test_hold_serializes_writers_on_same_key(db):
    locks = ScheduleLocks(timeout_seconds=5, registry=KeyedLockRegistry())
    inside = threading.Event()
    release = threading.Event()
    order: list[str] = []

    def first():
        with locks.hold(db, [batch_key(CTX, "b-1")]):
            order.append("first")
            inside.set()
            release.wait(timeout=5)

    thread = threading.Thread(target=first)
    thread.start()
    inside.wait(timeout=5)

    def second():
        with locks.hold(db, [batch_key(CTX, "b-1")]):
            order.append("second")

    waiter = threading.Thread(target=second)
    waiter.start()
    waiter.join(timeout=0.1)
    assert order == ["first"]

    release.set()
    thread.join(timeout=5)
    waiter.join(timeout=5)
    assert order == ["first", "second"]


def test_hold_times_out_and_releases_what_it_took(db):
    registry = KeyedLockRegistry()
    locks = ScheduleLocks(timeout_seconds=0.05, registry=registry)
    assert registry.acquire(teacher_day_key(CTX, "t-1", 2))
    try:
        with pytest.raises(ScheduleBusyError) as exc_info:
            with locks.hold(db, [batch_key(CTX, "b-1"), teacher_day_key(CTX, "t-1", 2)]):
                pass
    finally:
        registry.release(teacher_day_key(CTX, "t-1", 2))

    assert exc_info.value.details["lock"] == "teacher:org-1:t-1:2"
    assert len(registry) == 0
    assert registry.acquire(batch_key(CTX, "b-1"), timeout=0)


def test_registry_forgets_keys_once_released(db):
    registry = KeyedLockRegistry()
    locks = ScheduleLocks(timeout_seconds=1, registry=registry)

    for day in range(1, 7):
        with locks.hold(db, [batch_key(CTX, "b-1"), teacher_day_key(CTX, "t-1", day)]):
            assert len(registry) == 2

    assert len(registry) == 0


def test_registry_keeps_key_while_a_waiter_is_queued():
    registry = KeyedLockRegistry()
    key = batch_key(CTX, "b-1")
    assert registry.acquire(key)
    waiting = threading.Event()
    got_it = threading.Event()

    def waiter():
        waiting.set()
        if registry.acquire(key, timeout=5):
            got_it.set()
            registry.release(key)

    thread = threading.Thread(target=waiter)
    thread.start()
    waiting.wait(timeout=5)
    registry.release(key)
    thread.join(timeout=5)

    assert got_it.is_set()
    assert len(registry) == 0
