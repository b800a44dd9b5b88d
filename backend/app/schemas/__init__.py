"""Pydantic schemas package."""

from app.schemas.agent import (
    AgentExecuteRequest,
    AgentStepResponse,
    AgentTaskResponse,
    AgentTaskList,
)
from app.schemas.lead import (
    BulkLookupRequest,
    EmailLookupRequest,
    LeadSearchRequest,
    LeadSearchResponse,
)
from app.schemas.provider_settings import (
    AuditEventResponse,
    RetryPolicySchema,
    ProviderSettingsUpdate,
    ProviderSettingsResponse,
)
from app.schemas.usage import UsageSummaryResponse

__all__ = [
    "AgentExecuteRequest",
    "AgentStepResponse",
    "AgentTaskResponse",
    "AgentTaskList",
    "LeadSearchRequest",
    "EmailLookupRequest",
    "BulkLookupRequest",
    "LeadSearchResponse",
    "AuditEventResponse",
    "RetryPolicySchema",
    "ProviderSettingsUpdate",
    "ProviderSettingsResponse",
    "UsageSummaryResponse",
]
