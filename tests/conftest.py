import sys
import pathlib
import logging as _logging

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import bindparam, text

# ensure project root is on PYTHONPATH for test runs
ROOT = pathlib.Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from timely.config import Settings
from timely.db import init_db
from timely.main import create_app

# Reduce SQLAlchemy logger verbosity during tests
for _name in ('sqlalchemy', 'sqlalchemy.engine', 'sqlalchemy.pool'):
    _logging.getLogger(_name).setLevel(_logging.ERROR)

PASSWORD = 'test-password'

# Same parameters as the cascade delete, but never matches a row.
NO_ROWS_DELETE = text('DELETE FROM todos WHERE id IN :ids AND 0').bindparams(bindparam('ids', expanding=True))


@pytest.fixture
def settings(tmp_path):
    # one SQLite file per test keeps ids predictable and tests independent
    return Settings(database_url=f"sqlite+aiosqlite:///{tmp_path / 'timely.db'}", password=PASSWORD)


@pytest_asyncio.fixture
async def app(settings):
    # ASGITransport does not run the lifespan, so create tables here
    application = create_app(settings)
    await init_db(application.state.store.engine)
    yield application
    await application.state.store.engine.dispose()


@pytest_asyncio.fixture
async def store(app):
    return app.state.store


@pytest_asyncio.fixture
async def client(app):
    """API client presenting the password as a query parameter."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", params={'password': PASSWORD}) as ac:
        yield ac


@pytest_asyncio.fixture
async def anon_client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def abc_tree(store):
    """A -> B -> C chain; returns the ids as a dict keyed by name."""
    from timely.models import TaskCreate

    a = await store.create_task(TaskCreate(name='A'))
    b = await store.create_task(TaskCreate(name='B', parent_id=a.id))
    c = await store.create_task(TaskCreate(name='C', parent_id=b.id))
    return {'A': a.id, 'B': b.id, 'C': c.id}
