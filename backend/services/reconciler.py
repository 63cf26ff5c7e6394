# services/reconciler.py
"""
Elapsed-time reconciliation - recomputes remaining time of every Active
timer from its start_time and completes the ones that ran out.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from crud.timers import list_active, apply_countdown
from errors import StorageError
from schemas.timer import ReconcileSummary
from utils.countdown import compute_remaining

logger = logging.getLogger(__name__)


async def reconcile_active_timers(
    db: AsyncSession,
    now: Optional[datetime] = None,
) -> ReconcileSummary:
    """
    One reconciliation pass.

    Each timer is written and committed on its own; a failed write is
    logged and counted and the pass moves on. Completed timers are never
    selected, so a second pass at the same instant changes nothing.
    """
    now = now or datetime.now()
    summary = ReconcileSummary()

    for timer_id, total_secs, start_time, stored_remaining, end_time in await list_active(db):
        summary.checked += 1

        try:
            remaining = compute_remaining(total_secs, start_time, now)
            if remaining > 0 and remaining == stored_remaining:
                continue
            written = await apply_countdown(db, timer_id, remaining, now, end_time=end_time)
        except (StorageError, TypeError, ValueError) as exc:
            # e.g. a row with no start_time; the other timers still get reconciled
            summary.failed += 1
            logger.error(f"❌ Reconcile failed for timer {timer_id}: {exc.__cause__ or exc}")
            continue

        if not written:
            continue

        if remaining <= 0:
            summary.completed += 1
            summary.completed_ids.append(timer_id)
            logger.info(f"✅ Timer {timer_id} completed")
        else:
            summary.updated += 1

    if summary.failed:
        logger.warning(f"⚠ Reconcile pass: {summary.failed} of {summary.checked} timers not updated")

    return summary
