"""Pytest configuration and fixtures for the site tests."""
import contextlib
import functools
import os
from decimal import Decimal

# Set test env BEFORE any imports that use config
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SESSION_SECRET"] = "test-session-secret"
os.environ["INITIAL_ADMIN_PASSWORD"] = "testpass123"
os.environ["INITIAL_ADMIN_EMAIL"] = "admin@example.com"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shop.models import Base, Product, User, get_async_session
from web.api.main import app
from web.auth import hash_password
from web.sessions import SessionStore

PASSWORD = "pw123"


@functools.lru_cache(maxsize=None)
def _password_hash(password: str) -> str:
    """bcrypt is slow on purpose; hash each test password once per run."""
    return hash_password(password)


@pytest.fixture
async def session_factory():
    """Isolated in-memory database per test, injected in place of the app's store."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    async def _override_session():
        async with factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = _override_session
    app.state.sessions = SessionStore()
    yield factory
    app.dependency_overrides.clear()
    await engine.dispose()


@pytest.fixture
async def client_factory(session_factory):
    """Build independent HTTP clients (separate cookie jars) against the app."""
    async with contextlib.AsyncExitStack() as stack:

        async def _new_client() -> AsyncClient:
            return await stack.enter_async_context(
                AsyncClient(transport=ASGITransport(app=app), base_url="http://test")
            )

        yield _new_client


@pytest.fixture
async def client(client_factory):
    """Anonymous HTTP client."""
    return await client_factory()


@pytest.fixture
def make_user(session_factory):
    async def _make_user(email: str, role: str = "subscriber", password: str = PASSWORD, name: str = "") -> User:
        async with session_factory() as session:
            user = User(
                name=name,
                email=email,
                password_hash=_password_hash(password),
                role=role,
                favorites=[],
            )
            session.add(user)
            await session.commit()
            await session.refresh(user)
            return user

    return _make_user


@pytest.fixture
def make_product(session_factory):
    async def _make_product(name: str = "Citrine Tree", price: str = "49.99", stock: int = 5) -> Product:
        async with session_factory() as session:
            product = Product(name=name, price=Decimal(price), stock=stock)
            session.add(product)
            await session.commit()
            await session.refresh(product)
            return product

    return _make_product


@pytest.fixture
def login_as(client_factory, make_user):
    """Create a user with the given role and return (logged-in client, user)."""

    async def _login_as(role: str, email: str | None = None):
        email = email or f"{role}@example.com"
        user = await make_user(email, role)
        c = await client_factory()
        r = await c.post("/login", data={"email": email, "password": PASSWORD})
        assert r.status_code == 303, f"Login failed: {r.text}"
        return c, user

    return _login_as


@pytest.fixture
def fetch_all(session_factory):
    """Read every row of a model straight from the store."""

    async def _fetch_all(model):
        async with session_factory() as session:
            return list((await session.execute(select(model))).scalars().all())

    return _fetch_all
