# backend/crud/timers.py
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models import TimerDB
from errors import ValidationError, NotFoundError, StorageError
from constants.timer_config import (
    Instrument,
    StabilityMode,
    TimerStatus,
    duration_sequence,
)

logger = logging.getLogger(__name__)


# =======================================================
# REGISTER SAMPLE (ONE ROW PER DURATION STEP)
# =======================================================
async def register_batch(
    db: AsyncSession,
    sample_id: str,
    instrument: str,
    mode: str,
    now: Optional[datetime] = None,
) -> List[TimerDB]:
    """
    Create the full countdown sequence for one sample.

    All rows share the same start_time so sibling steps stay in sync.
    Not deduplicated: registering the same sample twice adds a second batch.
    """
    sample_id = (sample_id or "").strip()
    if not sample_id:
        raise ValidationError("Sample ID is required")
    if not instrument:
        raise ValidationError("Instrument is required")

    try:
        instrument = Instrument(instrument).value
    except ValueError:
        raise ValidationError(f"Unknown instrument: {instrument}") from None

    try:
        mode = StabilityMode(mode).value
    except ValueError:
        raise ValidationError(f"Unknown test mode: {mode}") from None

    durations = duration_sequence(mode)
    now = now or datetime.now()
    rows = []

    try:
        for step, secs in enumerate(durations, start=1):
            row = TimerDB(
                sample_id=sample_id,
                instrument=instrument,
                mode=mode,
                step=step,
                total_secs=secs,
                remaining_secs=secs,
                status=TimerStatus.ACTIVE.value,
                start_time=now,
                end_time=None,
            )
            db.add(row)
            rows.append(row)

        await db.commit()
        for r in rows:
            await db.refresh(r)

    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"Could not start timers for sample {sample_id}") from exc

    logger.info(f"⏱ Started {len(rows)} timers for sample {sample_id} ({instrument}, {mode})")
    return rows


# =======================================================
# READS
# =======================================================
# rows are decoded inside the try: a malformed stored value is a storage fault
DECODE_ERRORS = (SQLAlchemyError, TypeError, ValueError)


async def get_timer(db: AsyncSession, timer_id: int) -> Optional[TimerDB]:
    try:
        result = await db.execute(select(TimerDB).where(TimerDB.id == timer_id))
        return result.scalar_one_or_none()
    except DECODE_ERRORS as exc:
        raise StorageError(f"Could not load timer {timer_id}") from exc


async def list_all(db: AsyncSession) -> List[TimerDB]:
    # newest batches first; id breaks ties between rows created in the same second
    stmt = select(TimerDB).order_by(TimerDB.created_at.desc(), TimerDB.id.desc())
    try:
        result = await db.execute(stmt)
        return result.scalars().all()
    except DECODE_ERRORS as exc:
        raise StorageError("Could not load timers") from exc


async def list_active(db: AsyncSession):
    """Plain (id, total_secs, start_time, remaining_secs, end_time) rows for every Active timer."""
    stmt = (
        select(
            TimerDB.id,
            TimerDB.total_secs,
            TimerDB.start_time,
            TimerDB.remaining_secs,
            TimerDB.end_time,
        )
        .where(TimerDB.status == TimerStatus.ACTIVE.value)
        .order_by(TimerDB.id)
    )
    try:
        result = await db.execute(stmt)
        return result.all()
    except DECODE_ERRORS as exc:
        raise StorageError("Could not load active timers") from exc


# =======================================================
# DELETE (RESOLVE -> CONFIRM -> DELETE)
# =======================================================
async def resolve_for_delete(db: AsyncSession, timer_id: int) -> TimerDB:
    timer = await get_timer(db, timer_id)
    if timer is None:
        raise NotFoundError(f"Timer {timer_id} not found")
    return timer


async def delete_timer(db: AsyncSession, timer_id: int) -> TimerDB:
    """Remove exactly one timer. Returns the record as it was before deletion."""
    timer = await resolve_for_delete(db, timer_id)

    try:
        result = await db.execute(delete(TimerDB).where(TimerDB.id == timer_id))
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"Could not delete timer {timer_id}") from exc

    # another request removed it between resolve and delete
    if result.rowcount == 0:
        raise NotFoundError(f"Timer {timer_id} not found")

    logger.info(f"🗑 Deleted timer {timer_id} (sample {timer.sample_id})")
    return timer


# =======================================================
# RECONCILER WRITE (SINGLE RECORD)
# =======================================================
async def apply_countdown(
    db: AsyncSession,
    timer_id: int,
    remaining: int,
    now: datetime,
    end_time: Optional[datetime] = None,
) -> bool:
    """
    Persist a recomputed remaining time for one Active timer.

    remaining <= 0 completes the timer; end_time keeps any value it
    already had. Rows that are no longer Active are left untouched.
    Returns True if a row was written.
    """
    values = {"remaining_secs": max(0, remaining)}
    if remaining <= 0:
        values["status"] = TimerStatus.COMPLETED.value
        values["end_time"] = end_time or now

    stmt = (
        update(TimerDB)
        .where(TimerDB.id == timer_id)
        .where(TimerDB.status == TimerStatus.ACTIVE.value)
        .values(**values)
    )
    try:
        result = await db.execute(stmt)
        await db.commit()
    except SQLAlchemyError as exc:
        await db.rollback()
        raise StorageError(f"Could not update timer {timer_id}") from exc

    return result.rowcount > 0
