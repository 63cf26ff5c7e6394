import logging
from pathlib import Path

from sqlalchemy import inspect, select, text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import NullPool
from starlette.requests import Request

logger = logging.getLogger(__name__)

# ============================================================
# Base class
# ============================================================

Base = declarative_base()

# ============================================================
# Engine / session makers
# ============================================================

def make_engine(database_url: str, echo: bool = False) -> AsyncEngine:
    url = make_url(database_url)
    connect_args = {}
    if url.get_backend_name() == "sqlite":
        connect_args["check_same_thread"] = False
        ensure_sqlite_dir(database_url)

    return create_async_engine(
        database_url,
        echo=echo,
        poolclass=NullPool,
        connect_args=connect_args,
    )


def make_session_maker(engine: AsyncEngine):
    # Used both by FastAPI endpoints and by the scheduler
    return sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False
    )


def ensure_sqlite_dir(database_url: str):
    """Create the directory holding a SQLite database file, if any."""
    db_path = make_url(database_url).database
    if not db_path or db_path == ":memory:":
        return
    Path(db_path).expanduser().parent.mkdir(parents=True, exist_ok=True)

# ============================================================
# FastAPI dependency
# ============================================================

async def get_db(request: Request) -> AsyncSession:
    async with request.app.state.session_maker() as session:
        yield session

# ============================================================
# Versioned schema initialization (run once at startup)
# ============================================================

def _create_base_tables(conn):
    Base.metadata.create_all(bind=conn)


def _add_instrument_column(conn):
    # data directories from before instrument tracking lack this column
    cols = {c["name"] for c in inspect(conn).get_columns("timers")}
    if "instrument" not in cols:
        conn.execute(text("ALTER TABLE timers ADD COLUMN instrument TEXT"))
        logger.info("➕ Added missing 'instrument' column to timers")


def _epoch_times_to_text(conn):
    # older writers stored wall-clock times as REAL epoch seconds
    for column in ("start_time", "end_time"):
        converted = conn.execute(text(
            f"UPDATE timers SET {column} = datetime({column}, 'unixepoch', 'localtime') "
            f"WHERE typeof({column}) IN ('real', 'integer')"
        )).rowcount
        if converted:
            logger.info(f"🔁 Converted {converted} numeric timers.{column} values to text")


MIGRATIONS = [
    (1, "base tables", _create_base_tables),
    (2, "timers.instrument column", _add_instrument_column),
    (3, "timers epoch timestamps to text", _epoch_times_to_text),
]

SCHEMA_VERSION = MIGRATIONS[-1][0]


def _read_schema_version(conn) -> int:
    from models import SchemaVersionDB

    SchemaVersionDB.__table__.create(bind=conn, checkfirst=True)
    version = conn.execute(
        select(SchemaVersionDB.version).where(SchemaVersionDB.id == 1)
    ).scalar_one_or_none()
    return version or 0


def _write_schema_version(conn, version: int):
    from models import SchemaVersionDB

    table = SchemaVersionDB.__table__
    updated = conn.execute(
        table.update().where(table.c.id == 1).values(version=version)
    ).rowcount
    if not updated:
        conn.execute(table.insert().values(id=1, version=version))


async def init_schema(engine: AsyncEngine) -> int:
    """
    Bring the database up to SCHEMA_VERSION.

    Every migration is itself idempotent, so running this against an
    up-to-date or a pre-versioning database is safe.
    Returns the resulting schema version.
    """
    import models  # noqa: F401  (registers tables on Base.metadata)

    async with engine.begin() as conn:
        current = await conn.run_sync(_read_schema_version)

        for version, name, migrate in MIGRATIONS:
            if version <= current:
                continue
            logger.info(f"🔄 Applying schema migration v{version}: {name}")
            await conn.run_sync(migrate)
            await conn.run_sync(_write_schema_version, version)
            current = version

    logger.info(f"✅ Database schema at v{current}")
    return current
