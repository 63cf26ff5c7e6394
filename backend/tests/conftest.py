import asyncio

import pytest

from config import Settings
from database import make_engine, make_session_maker, init_schema


@pytest.fixture
def db_url(tmp_path):
    return f"sqlite+aiosqlite:///{tmp_path / 'data' / 'timers.sqlite'}"


@pytest.fixture
def engine(db_url):
    engine = make_engine(db_url)
    asyncio.run(init_schema(engine))
    yield engine
    asyncio.run(engine.dispose())


@pytest.fixture
def session_maker(engine):
    return make_session_maker(engine)


@pytest.fixture
def settings(db_url):
    return Settings(database_url=db_url, reconciler_enabled=False)


@pytest.fixture
def in_session(session_maker):
    """Run `fn(db, *args)` inside a fresh session, like one request would."""

    def run(fn, *args, **kwargs):
        async def go():
            async with session_maker() as db:
                return await fn(db, *args, **kwargs)

        return asyncio.run(go())

    return run
