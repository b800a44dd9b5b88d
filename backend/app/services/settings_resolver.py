"""Tenant provider settings: admin updates and cached resolution.

``SettingsResolver.resolve`` turns the durable ``provider_settings`` row for a
tenant into a ``ResolvedSettings`` value with the API key decrypted. Results
are cached for ``SETTINGS_CACHE_TTL_SECONDS`` so outbound calls do not pay a
database round trip and a key derivation each time. Admin updates go through
``upsert_provider_settings`` / ``delete_provider_settings``, which write an
audit entry and invalidate the cache so a rotated key takes effect at once.
"""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.cache import TTLCache
from app.core.crypto import CredentialVault, EncryptedSecret, get_vault
from app.core.errors import MissingCredential, ProviderNotConfigured
from app.database import AsyncSessionLocal
from app.models.provider_settings import (
    DEFAULT_RETRY_POLICY,
    LLM_PROVIDER_KINDS,
    ProviderKind,
    TenantProviderSettings,
)
from app.schemas.provider_settings import (
    ProviderSettingsResponse,
    ProviderSettingsUpdate,
    RetryPolicySchema,
)
from app.services.audit_service import record_audit_event


logger = logging.getLogger(__name__)

DEFAULT_BASE_URLS: Dict[ProviderKind, str] = {
    ProviderKind.ROCKETREACH: settings.ROCKETREACH_BASE_URL,
    ProviderKind.RESEND: settings.RESEND_BASE_URL,
    ProviderKind.OPENAI: "https://api.openai.com/v1",
    ProviderKind.ANTHROPIC: "https://api.anthropic.com/v1",
    ProviderKind.GROQ: "https://api.groq.com/openai/v1",
    ProviderKind.DEEPSEEK: "https://api.deepseek.com/v1",
    ProviderKind.MISTRAL: "https://api.mistral.ai/v1",
}

SettingsLoader = Callable[[str, ProviderKind], Awaitable[Optional[TenantProviderSettings]]]


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = DEFAULT_RETRY_POLICY["max_retries"]
    base_delay_ms: int = DEFAULT_RETRY_POLICY["base_delay_ms"]
    max_delay_ms: int = DEFAULT_RETRY_POLICY["max_delay_ms"]

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "RetryPolicy":
        data = data or {}
        return cls(
            max_retries=int(data.get("max_retries", DEFAULT_RETRY_POLICY["max_retries"])),
            base_delay_ms=int(data.get("base_delay_ms", DEFAULT_RETRY_POLICY["base_delay_ms"])),
            max_delay_ms=int(data.get("max_delay_ms", DEFAULT_RETRY_POLICY["max_delay_ms"])),
        )


@dataclass(frozen=True)
class ResolvedSettings:
    """Decrypted, ready-to-use provider configuration for one tenant."""
    tenant_id: str
    provider_kind: ProviderKind
    base_url: str
    api_key: str
    retry_policy: RetryPolicy
    concurrency: int
    daily_limit: int
    default_model: Optional[str] = None

    def __repr__(self) -> str:
        # Keep the key out of logs and tracebacks
        return (
            f"ResolvedSettings(tenant_id={self.tenant_id!r}, provider_kind={self.provider_kind.value!r}, "
            f"base_url={self.base_url!r}, api_key='***')"
        )


async def get_provider_settings(
    db: AsyncSession,
    tenant_id: str,
    kind: ProviderKind
) -> TenantProviderSettings | None:
    result = await db.execute(
        select(TenantProviderSettings).where(
            TenantProviderSettings.tenant_id == tenant_id,
            TenantProviderSettings.provider_kind == kind.value
        )
    )
    return result.scalar_one_or_none()


async def load_provider_settings(
    tenant_id: str,
    kind: ProviderKind
) -> TenantProviderSettings | None:
    """Default resolver loader: read the row in a short-lived session."""
    async with AsyncSessionLocal() as session:
        return await get_provider_settings(session, tenant_id, kind)


class SettingsResolver:
    """Resolves one provider kind's settings per tenant, with a TTL cache."""

    def __init__(
        self,
        provider_kind: ProviderKind,
        loader: Optional[SettingsLoader] = None,
        vault: Optional[CredentialVault] = None,
        cache: Optional[TTLCache[ResolvedSettings]] = None,
    ):
        self.provider_kind = provider_kind
        self._loader = loader or load_provider_settings
        self._vault = vault
        self._cache = cache or TTLCache(settings.SETTINGS_CACHE_TTL_SECONDS)

    @property
    def vault(self) -> CredentialVault:
        return self._vault or get_vault()

    async def resolve(self, tenant_id: str) -> ResolvedSettings:
        """
        Return the tenant's settings for this provider kind.

        Raises:
            ProviderNotConfigured: No settings row, or the provider is disabled
            MissingCredential: The stored key decrypts to an empty value
            DecryptionFailed: The stored envelope cannot be decrypted
        """
        cached = self._cache.get(tenant_id)
        if cached is not None:
            return cached

        row = await self._loader(tenant_id, self.provider_kind)
        name = self.provider_kind.value
        if row is None or not row.is_enabled:
            raise ProviderNotConfigured(f"{name} is not enabled for this organization")

        api_key = None
        if row.api_key_encrypted:
            api_key = self.vault.decrypt(EncryptedSecret.from_dict(row.api_key_encrypted))
        if not api_key:
            raise MissingCredential(f"{name} API key not configured")

        resolved = ResolvedSettings(
            tenant_id=tenant_id,
            provider_kind=self.provider_kind,
            base_url=(row.base_url or DEFAULT_BASE_URLS[self.provider_kind]).rstrip("/"),
            api_key=api_key,
            retry_policy=RetryPolicy.from_dict(row.retry_policy),
            concurrency=row.concurrency or 2,
            daily_limit=row.daily_limit or 0,
            default_model=row.default_model,
        )
        self._cache.set(tenant_id, resolved)
        logger.debug("Resolved %s settings", name, extra={"tenant_id": tenant_id})
        return resolved

    def clear_cache(self, tenant_id: Optional[str] = None) -> None:
        if tenant_id is None:
            self._cache.clear()
        else:
            self._cache.delete(tenant_id)


_resolvers: Dict[ProviderKind, SettingsResolver] = {}


def get_resolver(kind: ProviderKind) -> SettingsResolver:
    """Return the process-wide resolver for a provider kind."""
    resolver = _resolvers.get(kind)
    if resolver is None:
        resolver = SettingsResolver(kind)
        _resolvers[kind] = resolver
    return resolver


def clear_resolver_caches(tenant_id: Optional[str] = None, kind: Optional[ProviderKind] = None) -> None:
    if kind is not None:
        resolver = _resolvers.get(kind)
        if resolver is not None:
            resolver.clear_cache(tenant_id)
        return
    for resolver in _resolvers.values():
        resolver.clear_cache(tenant_id)


async def list_provider_settings(
    db: AsyncSession,
    tenant_id: str
) -> list[TenantProviderSettings]:
    result = await db.execute(
        select(TenantProviderSettings)
        .where(TenantProviderSettings.tenant_id == tenant_id)
        .order_by(TenantProviderSettings.provider_kind)
    )
    return list(result.scalars().all())


async def find_default_model_provider(
    db: AsyncSession,
    tenant_id: str
) -> ProviderKind | None:
    """Pick the tenant's language-model provider: the default one, else the latest enabled."""
    result = await db.execute(
        select(TenantProviderSettings.provider_kind)
        .where(
            TenantProviderSettings.tenant_id == tenant_id,
            TenantProviderSettings.is_enabled == True,
            TenantProviderSettings.provider_kind.in_([k.value for k in LLM_PROVIDER_KINDS])
        )
        .order_by(TenantProviderSettings.is_default.desc(), TenantProviderSettings.updated_at.desc())
        .limit(1)
    )
    kind = result.scalar_one_or_none()
    return ProviderKind(kind) if kind else None


async def upsert_provider_settings(
    db: AsyncSession,
    *,
    tenant_id: str,
    kind: ProviderKind,
    data: ProviderSettingsUpdate,
    actor_id: Optional[str] = None,
    actor_email: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
    vault: Optional[CredentialVault] = None,
) -> TenantProviderSettings:
    """
    Create or update a tenant's settings for one provider kind.

    A supplied API key is encrypted into a fresh envelope; the previous
    envelope is replaced, never edited. Every write bumps ``version``, is
    audited, and evicts the tenant from the resolver cache.
    """
    row = await get_provider_settings(db, tenant_id, kind)
    created = row is None

    if created:
        row = TenantProviderSettings(tenant_id=tenant_id, provider_kind=kind.value, version=1)
        db.add(row)
    else:
        row.version = (row.version or 0) + 1

    row.is_enabled = data.is_enabled
    row.is_default = data.is_default and kind in LLM_PROVIDER_KINDS
    row.base_url = data.base_url
    row.default_model = data.default_model
    row.daily_limit = data.daily_limit
    row.concurrency = data.concurrency
    row.retry_policy = data.retry_policy.model_dump()
    row.updated_by = actor_id
    row.updated_at = datetime.utcnow()

    if data.api_key:
        row.api_key_encrypted = (vault or get_vault()).encrypt(data.api_key).to_dict()

    if row.is_default:
        await db.execute(
            update(TenantProviderSettings)
            .where(
                TenantProviderSettings.tenant_id == tenant_id,
                TenantProviderSettings.provider_kind != kind.value,
                TenantProviderSettings.provider_kind.in_([k.value for k in LLM_PROVIDER_KINDS])
            )
            .values(is_default=False)
        )

    await db.flush()

    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_id=actor_id,
        actor_email=actor_email,
        action="create_provider_settings" if created else "update_provider_settings",
        target="provider_settings",
        target_id=row.id,
        meta={
            "provider_kind": kind.value,
            "is_enabled": row.is_enabled,
            "key_rotated": bool(data.api_key),
            "version": row.version,
        },
        ip_address=ip_address,
        user_agent=user_agent,
    )

    await db.commit()
    await db.refresh(row)

    clear_resolver_caches(tenant_id, kind)
    logger.info(
        "%s settings %s (version %d)",
        kind.value,
        "created" if created else "updated",
        row.version,
        extra={"tenant_id": tenant_id, "user_id": actor_id},
    )
    return row


async def delete_provider_settings(
    db: AsyncSession,
    *,
    tenant_id: str,
    kind: ProviderKind,
    actor_id: Optional[str] = None,
    actor_email: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> bool:
    """Delete a tenant's settings (and with them the stored credential)."""
    row = await get_provider_settings(db, tenant_id, kind)
    if not row:
        return False

    row_id = row.id
    await db.delete(row)
    await record_audit_event(
        db,
        tenant_id=tenant_id,
        actor_id=actor_id,
        actor_email=actor_email,
        action="delete_provider_settings",
        target="provider_settings",
        target_id=row_id,
        meta={"provider_kind": kind.value},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    await db.commit()

    clear_resolver_caches(tenant_id, kind)
    return True


def to_response(row: TenantProviderSettings) -> ProviderSettingsResponse:
    return ProviderSettingsResponse(
        id=row.id,
        tenant_id=row.tenant_id,
        provider_kind=row.provider_kind,
        is_enabled=row.is_enabled,
        is_default=row.is_default,
        base_url=row.base_url,
        has_api_key=bool(row.api_key_encrypted and row.api_key_encrypted.get("cipher")),
        default_model=row.default_model,
        daily_limit=row.daily_limit,
        concurrency=row.concurrency,
        retry_policy=RetryPolicySchema(**asdict(RetryPolicy.from_dict(row.retry_policy))),
        version=row.version,
        updated_by=row.updated_by,
        updated_at=row.updated_at,
    )
