"""API dependencies for tenant identity and integration clients."""

from dataclasses import dataclass
from functools import lru_cache
from typing import Awaitable, Callable, List, Optional

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.agent_tools import build_tools
from app.agent_tools.send_email import EmailSender, ResendEmailSender
from app.core.errors import ProviderNotConfigured, UnsupportedProvider
from app.database import AsyncSessionLocal
from app.llm.base import ChatModel
from app.llm.registry import build_chat_model, is_model_provider
from app.llm.tool_loop import Tool
from app.models.agent_task import AgentTaskType
from app.models.provider_settings import ProviderKind
from app.services.rocketreach_client import RocketReachClient
from app.services.settings_resolver import find_default_model_provider, get_resolver
from app.services.usage_service import DatabaseUsageSink, UsageSink


ADMIN_ROLES = ("admin", "owner")


@dataclass(frozen=True)
class TenantContext:
    """Caller identity as asserted by the upstream gateway."""
    tenant_id: str
    user_id: str
    email: Optional[str] = None
    role: str = "member"
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


async def get_tenant_context(
    request: Request,
    x_tenant_id: Optional[str] = Header(None, description="Tenant (organization) id"),
    x_user_id: Optional[str] = Header(None, description="Acting user id"),
    x_user_email: Optional[str] = Header(None),
    x_user_role: Optional[str] = Header(None),
) -> TenantContext:
    """
    Dependency that reads the identity headers set by the gateway.

    Raises:
        HTTPException: 401 if the tenant or user header is missing
    """
    if not x_tenant_id or not x_user_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "code": "MISSING_IDENTITY",
                "message": "X-Tenant-Id and X-User-Id headers are required"
            }
        )
    return TenantContext(
        tenant_id=x_tenant_id,
        user_id=x_user_id,
        email=x_user_email,
        role=(x_user_role or "member").lower(),
        ip_address=request.client.host if request.client else None,
        user_agent=request.headers.get("user-agent"),
    )


async def require_admin(ctx: TenantContext = Depends(get_tenant_context)) -> TenantContext:
    if not ctx.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "code": "FORBIDDEN",
                "message": "Admin role required"
            }
        )
    return ctx


@lru_cache
def get_usage_sink() -> UsageSink:
    return DatabaseUsageSink(AsyncSessionLocal)


@lru_cache
def get_rocketreach_client() -> RocketReachClient:
    return RocketReachClient(get_resolver(ProviderKind.ROCKETREACH), get_usage_sink())


@lru_cache
def get_email_sender() -> EmailSender:
    return ResendEmailSender(get_resolver(ProviderKind.RESEND))


ModelBuilder = Callable[[AsyncSession, str, Optional[ProviderKind]], Awaitable[ChatModel]]
ToolBuilder = Callable[[AgentTaskType, TenantContext], List[Tool]]


async def build_tenant_chat_model(
    db: AsyncSession,
    tenant_id: str,
    requested: Optional[ProviderKind] = None,
) -> ChatModel:
    """Chat model for the requested provider, else the tenant's default one."""
    kind = requested or await find_default_model_provider(db, tenant_id)
    if kind is None:
        raise ProviderNotConfigured("No AI provider configured for this organization")
    if not is_model_provider(kind):
        raise UnsupportedProvider(f"Unsupported AI provider: {kind.value}")
    resolved = await get_resolver(kind).resolve(tenant_id)
    return build_chat_model(resolved)


def get_model_builder() -> ModelBuilder:
    return build_tenant_chat_model


def get_tool_builder(
    client: RocketReachClient = Depends(get_rocketreach_client),
    email_sender: EmailSender = Depends(get_email_sender),
) -> ToolBuilder:

    def build(task_type: AgentTaskType, ctx: TenantContext) -> List[Tool]:
        return build_tools(
            task_type,
            tenant_id=ctx.tenant_id,
            user_id=ctx.user_id,
            client=client,
            email_sender=email_sender,
            session_factory=AsyncSessionLocal,
        )

    return build
