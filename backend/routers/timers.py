# backend/routers/timers.py
import logging
from datetime import datetime
from typing import List, Any
import json

from fastapi import APIRouter, Depends, Request, WebSocket, WebSocketDisconnect
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from config import Settings
from constants.timer_config import INSTRUMENTS, MODES, duration_sequence
from crud.timers import register_batch, list_all, resolve_for_delete, delete_timer
from services.reconciler import reconcile_active_timers
from utils.countdown import format_step_label
from schemas.timer import (
    TimerCreate,
    TimerOut,
    TimerTable,
    RegisterResponse,
    DeleteConfirmation,
    DeleteResponse,
    ModeOption,
    TimerOptions,
    ReconcileSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/timers", tags=["Stability Timers"])


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


# =====================================================
#   TIMER CHANGE FEED (WEBSOCKET LISTENERS)
# =====================================================
class TimerFeed:
    """Pushes timers:* events so dashboards refresh without waiting for a poll."""

    def __init__(self):
        self.listeners: List[WebSocket] = []

    async def subscribe(self, ws: WebSocket):
        await ws.accept()
        self.listeners.append(ws)

    def unsubscribe(self, ws: WebSocket):
        if ws in self.listeners:
            self.listeners.remove(ws)

    async def publish(self, event: str, **fields: Any):
        message = json.dumps({"type": f"timers:{event}", **fields})
        gone = []
        for ws in self.listeners:
            try:
                await ws.send_text(message)
            except Exception:
                gone.append(ws)

        for ws in gone:
            self.unsubscribe(ws)


feed = TimerFeed()


async def broadcast_completed(summary: ReconcileSummary):
    await feed.publish("completed", ids=summary.completed_ids)


# =====================================================
#   CHOICES FOR THE REGISTRATION FORM
# =====================================================
@router.get("/options", response_model=TimerOptions)
async def timer_options(settings: Settings = Depends(get_app_settings)):
    modes = []
    for mode in MODES:
        durations = duration_sequence(mode)
        modes.append(ModeOption(
            mode=mode,
            durations_secs=durations,
            step_labels=[format_step_label(d) for d in durations],
        ))

    return TimerOptions(
        instruments=INSTRUMENTS,
        modes=modes,
        refresh_interval_seconds=settings.refresh_interval_seconds,
    )


# =====================================================
#   START TIMERS
# =====================================================
@router.post("/", response_model=RegisterResponse, status_code=201)
async def start_timers(payload: TimerCreate, db: AsyncSession = Depends(get_db)):
    rows = await register_batch(db, payload.sample_id, payload.instrument, payload.mode)
    timers = [TimerOut.model_validate(r) for r in rows]
    sample_id = timers[0].sample_id

    await feed.publish("registered", sample_id=sample_id, ids=[t.id for t in timers])

    return RegisterResponse(
        message=f"Timers started for sample {sample_id}",
        sample_id=sample_id,
        timers=timers,
    )


# =====================================================
#   LIVE TABLE
# =====================================================
@router.get("/", response_model=TimerTable)
async def timer_table(
    db: AsyncSession = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    rows = await list_all(db)
    return TimerTable(
        synced_at=datetime.now(),
        refresh_interval_seconds=settings.refresh_interval_seconds,
        rows=[TimerOut.model_validate(r) for r in rows],
    )


# =====================================================
#   ON-DEMAND RECONCILE
# =====================================================
@router.post("/reconcile", response_model=ReconcileSummary)
async def reconcile_now(db: AsyncSession = Depends(get_db)):
    summary = await reconcile_active_timers(db)
    if summary.completed_ids:
        await broadcast_completed(summary)
    return summary


# =====================================================
#   DELETE: RESOLVE FOR CONFIRMATION, THEN DELETE
# =====================================================
@router.get("/{timer_id}/confirm", response_model=DeleteConfirmation)
async def confirm_delete(timer_id: int, db: AsyncSession = Depends(get_db)):
    timer = await resolve_for_delete(db, timer_id)
    return DeleteConfirmation(
        id=timer.id,
        sample_id=timer.sample_id,
        title=f"Confirm Deletion: Sample {timer.sample_id}",
        prompt=f'Are you sure you want to delete the timer for Sample ID = "{timer.sample_id}"?',
    )


@router.delete("/{timer_id}", response_model=DeleteResponse)
async def remove_timer(timer_id: int, db: AsyncSession = Depends(get_db)):
    removed = TimerOut.model_validate(await delete_timer(db, timer_id))

    await feed.publish("deleted", id=removed.id, sample_id=removed.sample_id)

    return DeleteResponse(
        id=removed.id,
        sample_id=removed.sample_id,
        message=f"Deleted timer for Sample ID {removed.sample_id}",
    )


# =====================================================
#   WEBSOCKET: CHANGE FEED
# =====================================================
@router.websocket("/ws")
async def ws_timers(ws: WebSocket):
    await feed.subscribe(ws)
    try:
        while True:
            # clients only listen; incoming text is a keepalive
            await ws.receive_text()

    except WebSocketDisconnect:
        feed.unsubscribe(ws)
