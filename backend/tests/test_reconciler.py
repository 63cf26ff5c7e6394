import asyncio
import math
from datetime import datetime, timedelta

from sqlalchemy import text

import services.reconciler as reconciler
from crud.timers import register_batch, list_all, delete_timer, apply_countdown
from errors import StorageError
from services.reconciler import reconcile_active_timers

START = datetime(2025, 3, 1, 8, 0, 0)


def by_step(rows):
    return {r.step: r for r in rows}


def test_remaining_matches_wall_clock_after_pass(in_session):
    in_session(register_batch, "S1", "DxU", "Room Temperature", now=START)
    now = START + timedelta(seconds=3600.7)

    summary = in_session(reconcile_active_timers, now=now)

    assert summary.checked == 3
    assert summary.completed == 1
    assert summary.updated == 2
    elapsed = math.floor((now - START).total_seconds())
    for r in in_session(list_all):
        if r.status == "Active":
            assert r.remaining_secs == max(0, r.total_secs - elapsed)
    steps = by_step(in_session(list_all))
    assert steps[1].status == "Completed"
    assert steps[1].remaining_secs == 0
    assert steps[1].end_time == now
    assert steps[2].remaining_secs == 3600
    assert steps[3].remaining_secs == 5400


def test_end_time_is_first_write_wins(in_session):
    in_session(register_batch, "S1", "DxU", "Room Temperature", now=START)
    first = START + timedelta(hours=1, seconds=5)
    later = START + timedelta(hours=1, minutes=30)

    in_session(reconcile_active_timers, now=first)
    summary = in_session(reconcile_active_timers, now=later)

    assert summary.completed == 0
    assert by_step(in_session(list_all))[1].end_time == first


def test_second_pass_at_same_instant_changes_nothing(in_session):
    in_session(register_batch, "S1", "iQ200", "Room Temperature", now=START)
    now = START + timedelta(hours=2, seconds=1)

    in_session(reconcile_active_timers, now=now)
    before = [(r.id, r.remaining_secs, r.status, r.end_time) for r in in_session(list_all)]

    summary = in_session(reconcile_active_timers, now=now)
    after = [(r.id, r.remaining_secs, r.status, r.end_time) for r in in_session(list_all)]

    assert summary.updated == 0
    assert summary.completed == 0
    assert before == after


def test_completed_timer_is_not_rewritten(in_session):
    rows = in_session(register_batch, "S1", "DxU", "Room Temperature", now=START)
    done = START + timedelta(hours=1)
    in_session(reconcile_active_timers, now=done)

    # a stale writer must not touch a timer that is no longer Active
    assert in_session(apply_countdown, rows[0].id, 0, done + timedelta(hours=1)) is False
    assert by_step(in_session(list_all))[1].end_time == done


def test_clock_before_start_keeps_full_duration(in_session):
    in_session(register_batch, "S1", "DxU", "Refrigerated", now=START)

    summary = in_session(reconcile_active_timers, now=START - timedelta(minutes=5))

    assert summary.updated == 0
    assert all(r.remaining_secs == r.total_secs for r in in_session(list_all))


def test_deleting_sibling_does_not_affect_countdown(in_session):
    rows = in_session(register_batch, "S1", "DxU", "Room Temperature", now=START)
    in_session(delete_timer, rows[0].id)

    in_session(reconcile_active_timers, now=START + timedelta(minutes=10))

    steps = by_step(in_session(list_all))
    assert sorted(steps) == [2, 3]
    assert steps[2].remaining_secs == 7200 - 600
    assert steps[3].remaining_secs == 9000 - 600


def test_failed_write_does_not_abort_pass(in_session, monkeypatch):
    rows = in_session(register_batch, "S1", "DxU", "Room Temperature", now=START)
    broken_id = rows[1].id
    real_apply = reconciler.apply_countdown

    async def flaky_apply(db, timer_id, *args, **kwargs):
        if timer_id == broken_id:
            raise StorageError(f"Could not update timer {timer_id}")
        return await real_apply(db, timer_id, *args, **kwargs)

    monkeypatch.setattr(reconciler, "apply_countdown", flaky_apply)
    now = START + timedelta(minutes=1)

    summary = in_session(reconcile_active_timers, now=now)

    assert summary.failed == 1
    assert summary.updated == 2
    steps = by_step(in_session(list_all))
    assert steps[2].remaining_secs == 7200
    assert steps[1].remaining_secs == 3600 - 60
    assert steps[3].remaining_secs == 9000 - 60

    # next tick picks the failed timer up again
    monkeypatch.setattr(reconciler, "apply_countdown", real_apply)
    summary = in_session(reconcile_active_timers, now=now)
    assert summary.updated == 1
    assert by_step(in_session(list_all))[2].remaining_secs == 7200 - 60


def test_malformed_row_does_not_abort_pass(engine, in_session):
    in_session(register_batch, "S1", "DxU", "Room Temperature", now=START)

    async def insert_row_without_start_time():
        async with engine.begin() as conn:
            await conn.execute(text(
                "INSERT INTO timers (sample_id, instrument, mode, step, total_secs, remaining_secs, status) "
                "VALUES ('BAD', 'DxU', 'Room Temperature', 1, 3600, 3600, 'Active')"
            ))

    asyncio.run(insert_row_without_start_time())
    in_session(register_batch, "S2", "iQ200", "Room Temperature", now=START)

    summary = in_session(reconcile_active_timers, now=START + timedelta(minutes=1))

    assert summary.checked == 7
    assert summary.failed == 1
    assert summary.updated == 6
    for r in in_session(list_all):
        if r.sample_id != "BAD":
            assert r.remaining_secs == r.total_secs - 60
