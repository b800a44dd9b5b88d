"""Admin API for tenant provider settings."""

from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api.deps import TenantContext, require_admin
from app.database import get_db
from app.models.provider_settings import ProviderKind
from app.schemas.provider_settings import AuditEventResponse, ProviderSettingsResponse, ProviderSettingsUpdate
from app.services.audit_service import list_audit_events
from app.services.settings_resolver import (
    delete_provider_settings,
    get_provider_settings,
    list_provider_settings,
    to_response,
    upsert_provider_settings,
)

router = APIRouter()


def _not_found(kind: ProviderKind) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail={
            "code": "PROVIDER_SETTINGS_NOT_FOUND",
            "message": f"No {kind.value} settings for this organization"
        }
    )


@router.get("", response_model=List[ProviderSettingsResponse])
async def get_all_provider_settings(
    ctx: TenantContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    rows = await list_provider_settings(db, ctx.tenant_id)
    return [to_response(row) for row in rows]


@router.get("/audit", response_model=List[AuditEventResponse])
async def get_settings_audit_trail(
    limit: int = Query(100, ge=1, le=500),
    ctx: TenantContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Most recent settings changes for the organization, newest first."""
    return await list_audit_events(db, ctx.tenant_id, limit=limit)


@router.get("/{kind}", response_model=ProviderSettingsResponse)
async def get_one_provider_settings(
    kind: ProviderKind,
    ctx: TenantContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    row = await get_provider_settings(db, ctx.tenant_id, kind)
    if row is None:
        raise _not_found(kind)
    return to_response(row)


@router.put("/{kind}", response_model=ProviderSettingsResponse)
async def put_provider_settings(
    kind: ProviderKind,
    payload: ProviderSettingsUpdate,
    ctx: TenantContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """
    Create or replace a provider's settings.

    A new ``api_key`` is encrypted before storage; omit it to keep the
    current key. The response reports ``has_api_key`` only.
    """
    row = await upsert_provider_settings(
        db,
        tenant_id=ctx.tenant_id,
        kind=kind,
        data=payload,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    return to_response(row)


@router.delete("/{kind}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_provider_settings(
    kind: ProviderKind,
    ctx: TenantContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    deleted = await delete_provider_settings(
        db,
        tenant_id=ctx.tenant_id,
        kind=kind,
        actor_id=ctx.user_id,
        actor_email=ctx.email,
        ip_address=ctx.ip_address,
        user_agent=ctx.user_agent,
    )
    if not deleted:
        raise _not_found(kind)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
