"""API usage analytics router."""

from datetime import datetime, timedelta
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import TenantContext, require_admin
from app.database import get_db
from app.models.provider_settings import ProviderKind
from app.schemas.usage import UsageSummaryResponse
from app.services.usage_service import get_usage_summary

router = APIRouter()


@router.get("/summary", response_model=UsageSummaryResponse)
async def usage_summary(
    provider: Optional[ProviderKind] = None,
    days: int = Query(30, ge=1, le=365),
    ctx: TenantContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Call counts and latency for the tenant over the last ``days`` days."""
    since = datetime.utcnow() - timedelta(days=days)
    summary = await get_usage_summary(
        db,
        ctx.tenant_id,
        provider=provider.value if provider else None,
        since=since,
    )
    return UsageSummaryResponse(
        provider=provider.value if provider else None,
        since=since,
        **summary,
    )
