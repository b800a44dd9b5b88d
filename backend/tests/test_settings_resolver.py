"""Tests for tenant settings resolution and the admin settings path."""

import pytest
from sqlalchemy import select

from app.core.cache import TTLCache
from app.core.crypto import CredentialVault, EncryptedSecret
from app.core.errors import DecryptionFailed, MissingCredential, ProviderNotConfigured
from app.models.audit_log import AuditLog
from app.models.provider_settings import ProviderKind
from app.schemas.provider_settings import ProviderSettingsUpdate, RetryPolicySchema
from app.services import settings_resolver
from app.services.settings_resolver import (
    DEFAULT_BASE_URLS,
    RetryPolicy,
    SettingsResolver,
    delete_provider_settings,
    find_default_model_provider,
    get_provider_settings,
    to_response,
    upsert_provider_settings,
)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


class CountingLoader:
    def __init__(self, row):
        self.row = row
        self.calls = 0

    async def __call__(self, tenant_id, kind):
        self.calls += 1
        return self.row


def make_resolver(row, clock=None, vault=None):
    loader = CountingLoader(row)
    resolver = SettingsResolver(
        ProviderKind.ROCKETREACH,
        loader=loader,
        vault=vault or CredentialVault(None),
        cache=TTLCache(60, clock=clock or FakeClock()),
    )
    return resolver, loader


@pytest.mark.asyncio
async def test_resolves_within_ttl_with_one_read(make_settings_row):
    clock = FakeClock()
    resolver, loader = make_resolver(make_settings_row(), clock)

    first = await resolver.resolve("org-1")
    clock.now += 30
    second = await resolver.resolve("org-1")

    assert loader.calls == 1
    assert first is second
    assert first.api_key == "rr-secret"


@pytest.mark.asyncio
async def test_resolves_again_after_expiry(make_settings_row):
    clock = FakeClock()
    resolver, loader = make_resolver(make_settings_row(), clock)

    await resolver.resolve("org-1")
    clock.now += 61
    await resolver.resolve("org-1")

    assert loader.calls == 2


@pytest.mark.asyncio
async def test_cache_is_per_tenant(make_settings_row):
    resolver, loader = make_resolver(make_settings_row())

    await resolver.resolve("org-1")
    await resolver.resolve("org-2")

    assert loader.calls == 2


@pytest.mark.asyncio
async def test_clear_cache_forces_reload(make_settings_row):
    resolver, loader = make_resolver(make_settings_row())

    await resolver.resolve("org-1")
    resolver.clear_cache("org-1")
    await resolver.resolve("org-1")

    assert loader.calls == 2


@pytest.mark.asyncio
async def test_decrypts_encrypted_key(make_settings_row):
    vault = CredentialVault("master")
    resolver, _ = make_resolver(make_settings_row(api_key="rr_live_1", vault=vault), vault=vault)

    resolved = await resolver.resolve("org-1")

    assert resolved.api_key == "rr_live_1"
    assert "rr_live_1" not in repr(resolved)


@pytest.mark.asyncio
async def test_missing_row_raises_not_configured():
    resolver, _ = make_resolver(None)
    with pytest.raises(ProviderNotConfigured):
        await resolver.resolve("org-1")


@pytest.mark.asyncio
async def test_disabled_provider_raises_not_configured(make_settings_row):
    resolver, _ = make_resolver(make_settings_row(is_enabled=False))
    with pytest.raises(ProviderNotConfigured):
        await resolver.resolve("org-1")


@pytest.mark.asyncio
async def test_empty_key_raises_missing_credential(make_settings_row):
    resolver, _ = make_resolver(make_settings_row(api_key=""))
    with pytest.raises(MissingCredential):
        await resolver.resolve("org-1")


@pytest.mark.asyncio
async def test_undecryptable_key_raises_and_is_not_cached(make_settings_row):
    row = make_settings_row(api_key="secret", vault=CredentialVault("master"))
    resolver, loader = make_resolver(row, vault=CredentialVault("other"))

    with pytest.raises(DecryptionFailed):
        await resolver.resolve("org-1")
    with pytest.raises(DecryptionFailed):
        await resolver.resolve("org-1")
    assert loader.calls == 2


@pytest.mark.asyncio
async def test_applies_defaults(make_settings_row):
    row = make_settings_row(base_url=None)
    row.retry_policy = {}
    resolver, _ = make_resolver(row)

    resolved = await resolver.resolve("org-1")

    assert resolved.base_url == DEFAULT_BASE_URLS[ProviderKind.ROCKETREACH]
    assert resolved.retry_policy == RetryPolicy(max_retries=5, base_delay_ms=500, max_delay_ms=30000)
    assert resolved.concurrency == 2


@pytest.fixture
def patched_resolver(monkeypatch, settings_loader, vault):
    """Make the process-wide RocketReach resolver read the test database."""
    resolver = SettingsResolver(ProviderKind.ROCKETREACH, loader=settings_loader, vault=vault)
    monkeypatch.setitem(settings_resolver._resolvers, ProviderKind.ROCKETREACH, resolver)
    return resolver


@pytest.mark.asyncio
async def test_upsert_creates_encrypted_row_and_audits(db, vault):
    row = await upsert_provider_settings(
        db,
        tenant_id="org-1",
        kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(api_key="rr_live_1", concurrency=3),
        actor_id="user-1",
        actor_email="admin@example.com",
        vault=vault,
    )

    assert row.version == 1
    assert row.updated_by == "user-1"
    assert row.api_key_encrypted["ver"] == 1
    assert vault.decrypt(EncryptedSecret.from_dict(row.api_key_encrypted)) == "rr_live_1"

    audit = (await db.execute(select(AuditLog))).scalars().all()
    assert [entry.action for entry in audit] == ["create_provider_settings"]
    assert audit[0].target_id == row.id
    assert audit[0].meta["key_rotated"] is True


@pytest.mark.asyncio
async def test_update_bumps_version_and_keeps_key(db, vault):
    data = ProviderSettingsUpdate(api_key="rr_live_1")
    created = await upsert_provider_settings(db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH, data=data, vault=vault)
    envelope = dict(created.api_key_encrypted)

    updated = await upsert_provider_settings(
        db,
        tenant_id="org-1",
        kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(retry_policy=RetryPolicySchema(max_retries=2, base_delay_ms=100, max_delay_ms=1000)),
        vault=vault,
    )

    assert updated.id == created.id
    assert updated.version == 2
    assert updated.api_key_encrypted == envelope
    assert updated.retry_policy["max_retries"] == 2

    actions = (await db.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all()
    assert actions == ["create_provider_settings", "update_provider_settings"]


@pytest.mark.asyncio
async def test_upsert_invalidates_cached_settings(db, vault, patched_resolver):
    await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(api_key="old-key"), vault=vault,
    )
    assert (await patched_resolver.resolve("org-1")).api_key == "old-key"

    await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(api_key="new-key"), vault=vault,
    )
    assert (await patched_resolver.resolve("org-1")).api_key == "new-key"


@pytest.mark.asyncio
async def test_default_model_provider_is_exclusive(db, vault):
    await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.OPENAI,
        data=ProviderSettingsUpdate(api_key="sk-1", is_default=True), vault=vault,
    )
    await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.ANTHROPIC,
        data=ProviderSettingsUpdate(api_key="sk-ant-1", is_default=True), vault=vault,
    )

    openai_row = await get_provider_settings(db, "org-1", ProviderKind.OPENAI)
    await db.refresh(openai_row)
    assert openai_row.is_default is False
    assert await find_default_model_provider(db, "org-1") == ProviderKind.ANTHROPIC


@pytest.mark.asyncio
async def test_non_model_provider_is_never_default(db, vault):
    row = await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(api_key="rr", is_default=True), vault=vault,
    )
    assert row.is_default is False


@pytest.mark.asyncio
async def test_delete_audits_and_invalidates(db, vault, patched_resolver):
    await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(api_key="rr"), vault=vault,
    )
    await patched_resolver.resolve("org-1")

    assert await delete_provider_settings(db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH, actor_id="user-1")
    assert not await delete_provider_settings(db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH)

    with pytest.raises(ProviderNotConfigured):
        await patched_resolver.resolve("org-1")
    actions = (await db.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all()
    assert actions[-1] == "delete_provider_settings"


@pytest.mark.asyncio
async def test_response_never_contains_key(db, vault):
    row = await upsert_provider_settings(
        db, tenant_id="org-1", kind=ProviderKind.ROCKETREACH,
        data=ProviderSettingsUpdate(api_key="rr_live_1"), vault=vault,
    )
    body = to_response(row).model_dump()

    assert body["has_api_key"] is True
    assert "rr_live_1" not in str(body)
    assert "api_key_encrypted" not in body
