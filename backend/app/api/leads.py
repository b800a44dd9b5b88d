"""Lead search API backed by RocketReach."""

from typing import Any

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import TenantContext, get_rocketreach_client, get_tenant_context
from app.database import get_db
from app.models.lead_search import LeadSearch
from app.schemas.lead import BulkLookupRequest, EmailLookupRequest, LeadSearchRequest, LeadSearchResponse
from app.services.rocketreach_client import RocketReachClient

router = APIRouter()


@router.post("/search", response_model=LeadSearchResponse)
async def search_leads(
    payload: LeadSearchRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    client: RocketReachClient = Depends(get_rocketreach_client),
    db: AsyncSession = Depends(get_db),
):
    """Search people and record the search in the tenant's history."""
    data = await client.search_people(
        ctx.tenant_id,
        **payload.filters(),
        page=payload.page,
        page_size=payload.page_size,
    )
    data = data if isinstance(data, dict) else {}
    profiles = data.get("profiles") or []
    total = (data.get("pagination") or {}).get("total", len(profiles))

    db.add(LeadSearch(
        tenant_id=ctx.tenant_id,
        query=payload.filters(),
        filters={"page": payload.page, "page_size": payload.page_size},
        result_count=len(profiles),
        executed_by=ctx.email or ctx.user_id,
    ))
    await db.commit()

    return LeadSearchResponse(
        profiles=profiles,
        total=total,
        page=payload.page,
        page_size=payload.page_size,
    )


@router.get("/profiles/{person_id}")
async def get_profile(
    person_id: str,
    ctx: TenantContext = Depends(get_tenant_context),
    client: RocketReachClient = Depends(get_rocketreach_client),
) -> Any:
    return await client.lookup_profile(ctx.tenant_id, person_id)


@router.post("/email-lookup")
async def lookup_email(
    payload: EmailLookupRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    client: RocketReachClient = Depends(get_rocketreach_client),
) -> Any:
    return await client.lookup_email(ctx.tenant_id, name=payload.name, domain=payload.domain)


@router.post("/bulk-lookup")
async def bulk_lookup(
    payload: BulkLookupRequest,
    ctx: TenantContext = Depends(get_tenant_context),
    client: RocketReachClient = Depends(get_rocketreach_client),
) -> Any:
    """Queue a RocketReach bulk lookup for up to 100 profile ids."""
    return await client.bulk_lookup(ctx.tenant_id, payload.ids)
