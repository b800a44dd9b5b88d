"""Per-tenant provider configuration model."""

from datetime import datetime
from enum import Enum
import uuid

from sqlalchemy import String, Integer, Boolean, TIMESTAMP, UniqueConstraint
from sqlalchemy import JSON
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


class ProviderKind(str, Enum):
    """Third-party services a tenant can configure credentials for."""
    ROCKETREACH = "rocketreach"
    RESEND = "resend"
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GROQ = "groq"
    DEEPSEEK = "deepseek"
    MISTRAL = "mistral"


LLM_PROVIDER_KINDS = (
    ProviderKind.OPENAI,
    ProviderKind.ANTHROPIC,
    ProviderKind.GROQ,
    ProviderKind.DEEPSEEK,
    ProviderKind.MISTRAL,
)

DEFAULT_RETRY_POLICY = {
    "max_retries": 5,
    "base_delay_ms": 500,
    "max_delay_ms": 30000,
}


class TenantProviderSettings(Base):
    """Settings and encrypted API key for one (tenant, provider kind) pair."""

    __tablename__ = "provider_settings"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )

    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    provider_kind: Mapped[str] = mapped_column(String(32), nullable=False, index=True)

    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    is_default: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    base_url: Mapped[str | None] = mapped_column(String(500), nullable=True)
    # {"cipher", "iv", "tag", "ver"} envelope from app.core.crypto
    api_key_encrypted: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    default_model: Mapped[str | None] = mapped_column(String(100), nullable=True)

    daily_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1000)
    concurrency: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    retry_policy: Mapped[dict] = mapped_column(
        JSON,
        nullable=False,
        default=lambda: dict(DEFAULT_RETRY_POLICY)
    )

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    updated_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP,
        nullable=False,
        default=datetime.utcnow,
        onupdate=datetime.utcnow
    )

    __table_args__ = (
        UniqueConstraint("tenant_id", "provider_kind", name="uq_provider_settings_tenant_kind"),
    )

    def __repr__(self) -> str:
        return f"<TenantProviderSettings(tenant_id={self.tenant_id}, kind={self.provider_kind}, enabled={self.is_enabled})>"
