"""Pytest configuration and fixtures for testing."""

import pytest
from typing import AsyncGenerator
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from app.main import app
from app.database import Base, get_db
from app.core.crypto import CredentialVault
from app.models.provider_settings import ProviderKind, TenantProviderSettings
from app.services.settings_resolver import clear_resolver_caches, get_provider_settings


# In-memory SQLite shared by every session of one test
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

TENANT_ID = "org-1"
OTHER_TENANT_ID = "org-2"

ADMIN_HEADERS = {
    "X-Tenant-Id": TENANT_ID,
    "X-User-Id": "user-admin",
    "X-User-Email": "admin@example.com",
    "X-User-Role": "admin",
}
MEMBER_HEADERS = {
    "X-Tenant-Id": TENANT_ID,
    "X-User-Id": "user-member",
    "X-User-Role": "member",
}


@pytest.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Session for the test body."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def reset_resolver_caches():
    clear_resolver_caches()
    yield
    clear_resolver_caches()


@pytest.fixture
def vault() -> CredentialVault:
    return CredentialVault("test-master-key")


@pytest.fixture
def settings_loader(session_factory):
    """Resolver loader reading from the test database."""
    async def load(tenant_id: str, kind: ProviderKind):
        async with session_factory() as session:
            return await get_provider_settings(session, tenant_id, kind)
    return load


def _settings_row(
    kind: ProviderKind = ProviderKind.ROCKETREACH,
    *,
    tenant_id: str = TENANT_ID,
    api_key: str = "rr-secret",
    vault: CredentialVault | None = None,
    is_enabled: bool = True,
    base_url: str | None = "https://rr.test",
    retry_policy: dict | None = None,
    concurrency: int = 2,
    default_model: str | None = None,
) -> TenantProviderSettings:
    """Unsaved settings row, as a resolver loader would return it."""
    vault = vault or CredentialVault(None)
    return TenantProviderSettings(
        tenant_id=tenant_id,
        provider_kind=kind.value,
        is_enabled=is_enabled,
        is_default=False,
        base_url=base_url,
        api_key_encrypted=vault.encrypt(api_key).to_dict() if api_key else None,
        default_model=default_model,
        daily_limit=1000,
        concurrency=concurrency,
        retry_policy=retry_policy or {"max_retries": 3, "base_delay_ms": 100, "max_delay_ms": 1000},
        version=1,
    )


@pytest.fixture
def make_settings_row():
    return _settings_row


@pytest.fixture
def admin_headers() -> dict:
    return dict(ADMIN_HEADERS)


@pytest.fixture
def member_headers() -> dict:
    return dict(MEMBER_HEADERS)


@pytest.fixture
async def client(db: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create test client with database dependency override.
    """
    async def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
