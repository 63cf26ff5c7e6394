# main.py
from contextlib import asynccontextmanager
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from config import Settings, get_settings
from database import make_engine, make_session_maker, init_schema
from errors import TimerError
from services.scheduler import build_scheduler
from routers import timers, timer_export

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings

    # storage handle lives exactly as long as the app
    engine = make_engine(settings.database_url, echo=settings.db_echo)
    app.state.engine = engine
    app.state.session_maker = make_session_maker(engine)

    logger.info("🔄 Initializing database...")
    await init_schema(engine)

    scheduler = None
    if settings.reconciler_enabled:
        scheduler = build_scheduler(
            app.state.session_maker,
            settings,
            on_completed=timers.broadcast_completed,
        )
        scheduler.start()

    try:
        yield
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("⏹ Reconciler stopped")
        await engine.dispose()


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or get_settings()

    logging.basicConfig(
        level=settings.log_level.upper(),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    app = FastAPI(
        title="Stability Timers",
        version="0.1.0",
        description="Countdown timers for urine stability tests",
        lifespan=lifespan,
    )
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TimerError)
    async def timer_error_handler(request: Request, exc: TimerError):
        if exc.status_code >= 500:
            logger.error(f"❌ {exc.message}: {exc.__cause__}")
        return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})

    # export routes first so /export/* never reaches the /{timer_id} routes
    app.include_router(timer_export.router)
    app.include_router(timers.router)

    @app.get("/api/health")
    async def health_check():
        return {
            "status": "ok",
            "reconciler_enabled": settings.reconciler_enabled,
            "reconcile_interval_seconds": settings.reconcile_interval_seconds,
        }

    return app


app = create_app()
