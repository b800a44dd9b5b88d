"""Database models package."""

from app.models.provider_settings import (
    TenantProviderSettings,
    ProviderKind,
    LLM_PROVIDER_KINDS,
    DEFAULT_RETRY_POLICY,
)
from app.models.api_usage import ApiUsage
from app.models.audit_log import AuditLog
from app.models.agent_task import AgentTask, AgentTaskStatus, AgentTaskType
from app.models.lead import Lead
from app.models.lead_search import LeadSearch
from app.models.sent_email import SentEmail

__all__ = [
    "TenantProviderSettings",
    "ProviderKind",
    "LLM_PROVIDER_KINDS",
    "DEFAULT_RETRY_POLICY",
    "ApiUsage",
    "AuditLog",
    "AgentTask",
    "AgentTaskStatus",
    "AgentTaskType",
    "Lead",
    "LeadSearch",
    "SentEmail",
]
