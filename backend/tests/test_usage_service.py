"""Tests for database usage recording."""

import httpx
import pytest
from sqlalchemy import select

from app.core.crypto import CredentialVault
from app.core.errors import TerminalUpstreamError
from app.models.api_usage import ApiUsage
from app.models.provider_settings import ProviderKind
from app.services.rocketreach_client import RocketReachClient
from app.services.settings_resolver import SettingsResolver
from app.services.usage_service import DatabaseUsageSink, UsageRecord


class RefusingSession:
    async def __aenter__(self):
        raise ConnectionRefusedError(111, "Connect call failed")

    async def __aexit__(self, *exc_info):
        return False


def refusing_factory():
    return RefusingSession()


def make_client(row, sink, handler):
    async def loader(tenant_id, kind):
        return row

    resolver = SettingsResolver(ProviderKind.ROCKETREACH, loader=loader, vault=CredentialVault(None))
    return RocketReachClient(resolver, sink, transport=httpx.MockTransport(handler), jitter=lambda: 0.0)


@pytest.mark.asyncio
async def test_successful_call_writes_one_usage_row(session_factory, make_settings_row):
    client = make_client(
        make_settings_row(),
        DatabaseUsageSink(session_factory),
        lambda request: httpx.Response(200, json={"id": 7}),
    )

    assert await client.call("org-1", "/api/v2/person/lookup", query={"id": "7"}) == {"id": 7}

    async with session_factory() as session:
        rows = (await session.execute(select(ApiUsage))).scalars().all()
    assert len(rows) == 1
    [row] = rows
    assert row.tenant_id == "org-1"
    assert row.provider == "rocketreach"
    assert row.endpoint == "/api/v2/person/lookup"
    assert row.method == "GET"
    assert row.status == "success"
    assert row.status_code == 200
    assert row.duration_ms >= 0
    assert row.error is None


@pytest.mark.asyncio
async def test_terminal_error_writes_one_error_row(session_factory, make_settings_row):
    client = make_client(
        make_settings_row(),
        DatabaseUsageSink(session_factory),
        lambda request: httpx.Response(404, text="no such person"),
    )

    with pytest.raises(TerminalUpstreamError):
        await client.call("org-1", "/api/v2/person/lookup", query={"id": "404"})

    async with session_factory() as session:
        [row] = (await session.execute(select(ApiUsage))).scalars().all()
    assert row.status == "error"
    assert row.status_code == 404
    assert "no such person" in row.error


@pytest.mark.asyncio
async def test_usage_write_failure_does_not_fail_the_call(make_settings_row):
    client = make_client(
        make_settings_row(),
        DatabaseUsageSink(refusing_factory),
        lambda request: httpx.Response(200, json={"id": 7}),
    )

    assert await client.call("org-1", "/api/v2/person/lookup", query={"id": "7"}) == {"id": 7}


@pytest.mark.asyncio
async def test_sink_swallows_connection_errors():
    sink = DatabaseUsageSink(refusing_factory)
    await sink.record(UsageRecord(
        tenant_id="org-1",
        provider="rocketreach",
        endpoint="/api/v2/search",
        method="POST",
        status="success",
        duration_ms=12,
    ))
