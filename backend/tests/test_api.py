"""HTTP API tests: identity, provider admin, lead search, agent tasks and usage."""

import json

import httpx
import pytest
from sqlalchemy import select

from app.api.deps import get_model_builder, get_rocketreach_client, get_tool_builder
from app.core.crypto import CredentialVault
from app.llm.base import ModelTurn, TokenUsage
from app.main import app
from app.models.api_usage import ApiUsage
from app.models.audit_log import AuditLog
from app.models.lead_search import LeadSearch
from app.models.provider_settings import ProviderKind
from app.services.rocketreach_client import RocketReachClient
from app.services.settings_resolver import SettingsResolver
from app.services.usage_service import InMemoryUsageSink


class ReplyModel:
    provider = "openai"
    model = "fake-1"

    async def complete(self, *, system, messages, tools):
        return ModelTurn(text=f"done: {messages[-1]['content']}", usage=TokenUsage(3, 4))


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_missing_identity_is_rejected(client):
    response = await client.get("/api/agent/tasks")
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "MISSING_IDENTITY"


@pytest.mark.asyncio
async def test_provider_admin_requires_admin_role(client, member_headers):
    response = await client.get("/api/providers", headers=member_headers)
    assert response.status_code == 403
    assert response.json()["detail"]["code"] == "FORBIDDEN"


@pytest.mark.asyncio
async def test_provider_settings_lifecycle(client, db, admin_headers):
    payload = {
        "api_key": "rr-live-key",
        "base_url": "https://rr.test",
        "retry_policy": {"max_retries": 2, "base_delay_ms": 100, "max_delay_ms": 400},
    }

    created = await client.put("/api/providers/rocketreach", json=payload, headers=admin_headers)
    assert created.status_code == 200
    body = created.json()
    assert body["has_api_key"] is True
    assert body["version"] == 1
    assert body["retry_policy"]["max_retries"] == 2
    assert "rr-live-key" not in created.text

    # Omitting the key keeps the stored one
    updated = await client.put("/api/providers/rocketreach", json={"concurrency": 4}, headers=admin_headers)
    assert updated.json()["version"] == 2
    assert updated.json()["has_api_key"] is True

    listed = await client.get("/api/providers", headers=admin_headers)
    assert [row["provider_kind"] for row in listed.json()] == ["rocketreach"]
    assert "api_key_encrypted" not in listed.text

    fetched = await client.get("/api/providers/rocketreach", headers=admin_headers)
    assert fetched.json()["concurrency"] == 4

    deleted = await client.delete("/api/providers/rocketreach", headers=admin_headers)
    assert deleted.status_code == 204

    missing = await client.get("/api/providers/rocketreach", headers=admin_headers)
    assert missing.status_code == 404
    assert missing.json()["detail"]["code"] == "PROVIDER_SETTINGS_NOT_FOUND"

    actions = (await db.execute(select(AuditLog.action).order_by(AuditLog.id))).scalars().all()
    assert actions == ["create_provider_settings", "update_provider_settings", "delete_provider_settings"]

    trail = await client.get("/api/providers/audit", headers=admin_headers)
    assert trail.status_code == 200
    assert [event["action"] for event in trail.json()] == [
        "delete_provider_settings",
        "update_provider_settings",
        "create_provider_settings",
    ]
    assert trail.json()[1]["meta"]["key_rotated"] is False
    assert trail.json()[2]["meta"]["key_rotated"] is True
    assert trail.json()[2]["actor_email"] == "admin@example.com"


@pytest.mark.asyncio
async def test_unknown_provider_kind_is_rejected(client, admin_headers):
    response = await client.put("/api/providers/fax", json={}, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_lead_search_records_history(client, db, admin_headers, make_settings_row, settings_loader):
    db.add(make_settings_row())
    await db.commit()

    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["body"] = json.loads(request.content)
        seen["api_key"] = request.headers["Api-Key"]
        return httpx.Response(200, json={
            "profiles": [{"id": 7, "name": "Ada Lovelace"}],
            "pagination": {"total": 12},
        })

    sink = InMemoryUsageSink()
    resolver = SettingsResolver(ProviderKind.ROCKETREACH, loader=settings_loader, vault=CredentialVault(None))
    rocketreach = RocketReachClient(resolver, sink, transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_rocketreach_client] = lambda: rocketreach

    response = await client.post(
        "/api/leads/search",
        json={"company": "Acme", "title": "CTO", "page": 2, "page_size": 5},
        headers=admin_headers,
    )

    assert response.status_code == 200
    assert response.json() == {
        "profiles": [{"id": 7, "name": "Ada Lovelace"}],
        "total": 12,
        "page": 2,
        "page_size": 5,
    }
    assert seen["api_key"] == "rr-secret"
    assert seen["body"]["query"] == {"current_title": ["CTO"], "current_employer": ["Acme"]}
    assert seen["body"]["start"] == 6
    assert [record.status for record in sink.records] == ["success"]

    [search] = (await db.execute(select(LeadSearch))).scalars().all()
    assert search.tenant_id == "org-1"
    assert search.result_count == 1
    assert search.executed_by == "admin@example.com"


@pytest.mark.asyncio
async def test_email_and_bulk_lookups(client, db, member_headers, make_settings_row, settings_loader):
    db.add(make_settings_row())
    await db.commit()

    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append((request.url.path, json.loads(request.content)))
        return httpx.Response(200, json={"status": "complete"})

    resolver = SettingsResolver(ProviderKind.ROCKETREACH, loader=settings_loader, vault=CredentialVault(None))
    rocketreach = RocketReachClient(resolver, InMemoryUsageSink(), transport=httpx.MockTransport(handler))
    app.dependency_overrides[get_rocketreach_client] = lambda: rocketreach

    email = await client.post(
        "/api/leads/email-lookup", json={"name": "Ada Lovelace", "domain": "acme.com"}, headers=member_headers
    )
    bulk = await client.post("/api/leads/bulk-lookup", json={"ids": ["1", "2"]}, headers=member_headers)

    assert email.json() == bulk.json() == {"status": "complete"}
    assert requests == [
        ("/v2/api/lookupEmail", {"name": "Ada Lovelace", "email_domain": "acme.com"}),
        ("/v2/api/bulk/lookup", {"ids": ["1", "2"]}),
    ]


@pytest.mark.asyncio
async def test_lead_search_requires_a_filter(client, admin_headers):
    response = await client.post("/api/leads/search", json={"page": 1}, headers=admin_headers)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_unconfigured_provider_renders_error_code(client, admin_headers, settings_loader):
    resolver = SettingsResolver(ProviderKind.ROCKETREACH, loader=settings_loader, vault=CredentialVault(None))
    rocketreach = RocketReachClient(resolver, InMemoryUsageSink())
    app.dependency_overrides[get_rocketreach_client] = lambda: rocketreach

    response = await client.get("/api/leads/profiles/42", headers=admin_headers)

    assert response.status_code == 400
    assert response.json() == {
        "detail": {
            "code": "PROVIDER_NOT_CONFIGURED",
            "message": "rocketreach is not enabled for this organization",
        }
    }


@pytest.mark.asyncio
async def test_agent_execute_without_model_provider(client, member_headers):
    response = await client.post("/api/agent/execute", json={"prompt": "find leads"}, headers=member_headers)

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "PROVIDER_NOT_CONFIGURED"


@pytest.mark.asyncio
async def test_agent_execute_and_inspect(client, member_headers, admin_headers):
    async def build_model(db, tenant_id, requested):
        return ReplyModel()

    app.dependency_overrides[get_model_builder] = lambda: build_model
    app.dependency_overrides[get_tool_builder] = lambda: (lambda task_type, ctx: [])

    response = await client.post(
        "/api/agent/execute",
        json={"prompt": "summarize Acme", "type": "research"},
        headers=member_headers,
    )

    assert response.status_code == 200
    task = response.json()
    assert task["status"] == "completed"
    assert task["type"] == "research"
    assert task["ai_provider"] == "openai"
    assert task["result"]["text"] == "done: summarize Acme"
    assert task["result"]["usage"] == {"promptTokens": 3, "completionTokens": 4, "totalTokens": 7}
    assert [step["toolName"] for step in task["steps"]] == ["thinking"]

    listed = await client.get("/api/agent/tasks", headers=member_headers)
    assert listed.json()["total"] == 1
    assert listed.json()["tasks"][0]["id"] == task["id"]

    fetched = await client.get(f"/api/agent/tasks/{task['id']}", headers=admin_headers)
    assert fetched.status_code == 200
    assert fetched.json()["steps"][0]["stepNumber"] == 1

    other_tenant = dict(member_headers, **{"X-Tenant-Id": "org-2"})
    hidden = await client.get(f"/api/agent/tasks/{task['id']}", headers=other_tenant)
    assert hidden.status_code == 404
    assert hidden.json()["detail"]["code"] == "TASK_NOT_FOUND"
    assert (await client.get("/api/agent/tasks", headers=other_tenant)).json()["total"] == 0


@pytest.mark.asyncio
async def test_usage_summary(client, db, admin_headers):
    db.add_all([
        ApiUsage(tenant_id="org-1", provider="rocketreach", endpoint="/api/v2/search", method="POST",
                 status="success", status_code=200, duration_ms=100),
        ApiUsage(tenant_id="org-1", provider="rocketreach", endpoint="/api/v2/search", method="POST",
                 status="error", status_code=503, duration_ms=300, error="retries exhausted"),
        ApiUsage(tenant_id="org-2", provider="rocketreach", endpoint="/api/v2/search", method="POST",
                 status="success", status_code=200, duration_ms=50),
    ])
    await db.commit()

    response = await client.get("/api/usage/summary?provider=rocketreach&days=7", headers=admin_headers)

    assert response.status_code == 200
    body = response.json()
    assert body["provider"] == "rocketreach"
    assert body["total_calls"] == 2
    assert body["success_calls"] == 1
    assert body["error_calls"] == 1
    assert body["total_units"] == 2
    assert body["avg_duration_ms"] == 200.0
