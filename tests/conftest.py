"""Shared fixtures: in-memory database, temp upload root, ASGI client."""

import os
import tempfile

# Settings are read at import time, so the environment goes first.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["UPLOAD_DIR"] = tempfile.mkdtemp(prefix="eventdesk-test-")
os.environ["USE_CLOUD_STORAGE"] = "false"
os.environ["EMAIL_HOST"] = ""
os.environ["EMAIL_USER"] = ""
os.environ["EMAIL_PASS"] = ""

import httpx
import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.database import get_db
from app.models import Base
from app.services.storage_backends import StorageConfig


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def storage_config(tmp_path):
    return StorageConfig(use_cloud=False, upload_root=tmp_path)


@pytest.fixture
def app(storage_config, session_factory):
    from app.main import create_app

    application = create_app(storage_config)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    application.dependency_overrides[get_db] = override_get_db
    return application


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
