import _bootstrap  # noqa: F401  must run before gateway imports

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import gateway.models.persistance.auth  # noqa: F401
import gateway.models.persistance.options  # noqa: F401
from gateway.core.config import settings
from gateway.core.db import Base, get_session
from gateway.host.memory import InMemoryHost, get_host
from gateway.host.session import issue_session


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def engine(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'gateway.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def host():
    """Users get ids in creation order: admin=1, editor=2, author=3, subscriber=4."""
    host = InMemoryHost(site_name="Test Site", base_url="http://testserver")
    host.add_user("admin", "administrator", password="admin-pass", display_name="Ada Admin")
    host.add_user("editor", "editor", password="editor-pass")
    host.add_user("author", "author", password="author-pass")
    host.add_user("subscriber", "subscriber", password="subscriber-pass")
    return host


@pytest.fixture
def admin(host):
    return host.get_user(1)


@pytest.fixture
def author(host):
    return host.get_user(3)


@pytest.fixture
def subscriber(host):
    return host.get_user(4)


@pytest.fixture
def app(session_factory, host):
    from gateway.main import app

    async def override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_session
    app.dependency_overrides[get_host] = lambda: host
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


@pytest.fixture
def login_as(client):
    def _login(owner):
        client.cookies.set(settings.SESSION_COOKIE_NAME, issue_session(owner), domain="testserver.local")
        return owner

    return _login
