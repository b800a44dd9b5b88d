"""Schemas for tenant provider settings administration."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, model_validator


class RetryPolicySchema(BaseModel):
    max_retries: int = Field(default=5, ge=0, le=10)
    base_delay_ms: int = Field(default=500, ge=0, le=60_000)
    max_delay_ms: int = Field(default=30_000, ge=0, le=300_000)

    @model_validator(mode="after")
    def check_delays(self) -> "RetryPolicySchema":
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError("max_delay_ms must be >= base_delay_ms")
        return self


class ProviderSettingsUpdate(BaseModel):
    """Create or update settings for one provider kind.

    Omitting ``api_key`` keeps the stored credential.
    """
    is_enabled: bool = True
    is_default: bool = False
    base_url: Optional[str] = Field(None, max_length=500, pattern="^https?://")
    api_key: Optional[str] = Field(None, min_length=1, max_length=500)
    default_model: Optional[str] = Field(None, max_length=100)
    daily_limit: int = Field(default=1000, ge=0)
    concurrency: int = Field(default=2, ge=1, le=50)
    retry_policy: RetryPolicySchema = Field(default_factory=RetryPolicySchema)


class ProviderSettingsResponse(BaseModel):
    """Provider settings as returned to admins; the key itself never leaves."""
    id: str
    tenant_id: str
    provider_kind: str
    is_enabled: bool
    is_default: bool
    base_url: Optional[str]
    has_api_key: bool
    default_model: Optional[str]
    daily_limit: int
    concurrency: int
    retry_policy: RetryPolicySchema
    version: int
    updated_by: Optional[str]
    updated_at: datetime


class AuditEventResponse(BaseModel):
    id: int
    actor_id: Optional[str]
    actor_email: Optional[str]
    action: str
    target: Optional[str]
    target_id: Optional[str]
    meta: Dict[str, Any]
    ip_address: Optional[str]
    created_at: datetime

    model_config = {"from_attributes": True}
