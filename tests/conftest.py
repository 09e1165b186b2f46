"""Test fixtures — a fresh in-memory database per test.

1. Environment is set before the app is imported: SQLite via aiosqlite,
   cheap bcrypt rounds, and a throwaway upload directory.
2. Each test gets its own engine (StaticPool keeps the single in-memory
   connection alive) with all tables created, so nothing leaks between tests.
3. The HTTP client overrides get_db with the test session and the media
   host with FakeMediaHost, so no network calls leave the process.
"""

import os
import tempfile
from pathlib import Path

os.environ.setdefault("ACCOUNTS_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("ACCOUNTS_BCRYPT_ROUNDS", "4")
os.environ.setdefault("ACCOUNTS_UPLOAD_DIR", tempfile.mkdtemp(prefix="accounts-uploads-"))

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from accounts.auth.dependencies import get_media_host
from accounts.auth.jwt import TokenIssuer
from accounts.auth.password import PasswordHasher
from accounts.config import settings as app_settings
from accounts.db.engine import get_db
from accounts.db.models import Base
from accounts.main import app
from accounts.services.auth_service import AuthService
from accounts.services.media import MediaAsset
from accounts.services.user_store import UserStore


class FakeMediaHost:
    """In-memory stand-in for MediaHost. Mirrors its contract: the local
    file is always removed, failures return None."""

    def __init__(self):
        self.uploaded: list[MediaAsset] = []
        self.deleted: list[str] = []
        self.fail_uploads = False

    async def upload(self, local_path):
        if not local_path:
            return None
        path = Path(local_path)
        path.unlink(missing_ok=True)
        if self.fail_uploads:
            return None
        n = len(self.uploaded) + 1
        asset = MediaAsset(url=f"https://media.test/{n}/{path.name}", public_id=f"img-{n}")
        self.uploaded.append(asset)
        return asset

    async def delete(self, public_id):
        if not public_id:
            return False
        self.deleted.append(public_id)
        return True


@pytest.fixture()
def settings():
    return app_settings


@pytest_asyncio.fixture()
async def db_session():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session = AsyncSession(bind=engine, expire_on_commit=False)
    try:
        yield session
    finally:
        await session.close()
        await engine.dispose()


@pytest.fixture()
def store(db_session):
    return UserStore(db_session)


@pytest.fixture()
def hasher():
    return PasswordHasher(rounds=4)


@pytest.fixture()
def issuer(settings):
    return TokenIssuer(settings)


@pytest.fixture()
def auth(store, hasher, issuer):
    return AuthService(store, hasher, issuer)


@pytest.fixture()
def avatar():
    return MediaAsset(url="https://media.test/avatar.png", public_id="avatar-1")


@pytest.fixture()
def media():
    return FakeMediaHost()


@pytest_asyncio.fixture()
async def client(db_session, media):
    """HTTP client with the app's get_db and media host overridden."""

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_media_host] = lambda: media

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
