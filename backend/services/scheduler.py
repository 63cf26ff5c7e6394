# services/scheduler.py
import logging
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import Settings
from errors import StorageError
from schemas.timer import ReconcileSummary
from services.reconciler import reconcile_active_timers

logger = logging.getLogger(__name__)

RECONCILE_JOB_ID = "reconcile-timers"

CompletedCallback = Callable[[ReconcileSummary], Awaitable[None]]


async def run_reconcile_tick(
    session_maker,
    on_completed: Optional[CompletedCallback] = None,
) -> Optional[ReconcileSummary]:
    async with session_maker() as session:
        try:
            summary = await reconcile_active_timers(session)
        except StorageError as exc:
            # next tick selects the same Active rows again
            logger.error(f"❌ Reconcile tick skipped: {exc.__cause__ or exc}")
            return None

    if summary.completed_ids and on_completed is not None:
        await on_completed(summary)
    return summary


def build_scheduler(
    session_maker,
    settings: Settings,
    on_completed: Optional[CompletedCallback] = None,
) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler()
    scheduler.add_job(
        run_reconcile_tick,
        "interval",
        seconds=settings.reconcile_interval_seconds,
        args=[session_maker, on_completed],
        id=RECONCILE_JOB_ID,
        max_instances=1,
        coalesce=True,
        replace_existing=True,
    )
    logger.info(f"⏲ Reconciler scheduled every {settings.reconcile_interval_seconds}s")
    return scheduler
