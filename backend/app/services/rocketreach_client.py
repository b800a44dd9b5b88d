"""RocketReach API client with tenant settings, retry with backoff, and usage logging.

Every ``call`` resolves the tenant's settings, then issues the request up to
``max_retries + 1`` times. 429/503 responses and transport failures are
retried after ``min(max_delay_ms, base_delay_ms * 2**attempt)`` plus up to
250ms of jitter. Any other non-2xx response fails immediately. Exactly one
usage record is written per call, for its terminal outcome only.
"""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, Mapping, Optional
from urllib.parse import urlencode

import httpx

from app.config import settings
from app.core.errors import RetriesExhausted, RetryableUpstreamError, TerminalUpstreamError
from app.services.settings_resolver import ResolvedSettings, RetryPolicy, SettingsResolver
from app.services.usage_service import UsageRecord, UsageSink


logger = logging.getLogger(__name__)

PROVIDER = "rocketreach"
RETRYABLE_STATUS_CODES = frozenset({429, 503})
MAX_JITTER_MS = 250.0
ERROR_BODY_LIMIT = 500


def default_jitter() -> float:
    """Random jitter in milliseconds, uniform over [0, 250]."""
    return random.uniform(0.0, MAX_JITTER_MS)


def compute_backoff_ms(attempt: int, policy: RetryPolicy, jitter_ms: float = 0.0) -> float:
    """Backoff before the retry that follows zero-based ``attempt``.

    The cap applies before jitter, so the result never exceeds
    ``max_delay_ms + MAX_JITTER_MS``.
    """
    return min(policy.max_delay_ms, policy.base_delay_ms * 2 ** attempt) + jitter_ms


def build_url(base_url: str, path: str, query: Optional[Mapping[str, Any]] = None) -> str:
    """Join base URL and path, dropping query values that are None or empty."""
    url = f"{base_url.rstrip('/')}{path}"
    items = [(key, value) for key, value in (query or {}).items() if value is not None and value != ""]
    if items:
        url = f"{url}?{urlencode(items)}"
    return url


class RocketReachClient:
    """Resilient client for the RocketReach people-search API."""

    def __init__(
        self,
        resolver: SettingsResolver,
        usage_sink: UsageSink,
        *,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        jitter: Callable[[], float] = default_jitter,
        timeout: float = settings.HTTP_TIMEOUT_SECONDS,
    ):
        self._resolver = resolver
        self._usage_sink = usage_sink
        self._transport = transport
        self._sleep = sleep
        self._jitter = jitter
        self._timeout = timeout
        self._limits: Dict[str, tuple[int, asyncio.Semaphore]] = {}

    def _semaphore(self, resolved: ResolvedSettings) -> asyncio.Semaphore:
        """Per-tenant request limiter, rebuilt when the concurrency setting changes."""
        entry = self._limits.get(resolved.tenant_id)
        if entry is None or entry[0] != resolved.concurrency:
            entry = (resolved.concurrency, asyncio.Semaphore(max(1, resolved.concurrency)))
            self._limits[resolved.tenant_id] = entry
        return entry[1]

    async def _observe(
        self,
        *,
        tenant_id: str,
        path: str,
        method: str,
        status: str,
        started: float,
        status_code: Optional[int] = None,
        error: Optional[str] = None,
    ) -> None:
        await self._usage_sink.record(UsageRecord(
            tenant_id=tenant_id,
            provider=PROVIDER,
            endpoint=path,
            method=method,
            status=status,
            duration_ms=int((time.monotonic() - started) * 1000),
            status_code=status_code,
            error=error,
        ))

    async def _send(
        self,
        client: httpx.AsyncClient,
        limiter: asyncio.Semaphore,
        method: str,
        url: str,
        headers: Dict[str, str],
        content: Optional[str],
    ) -> httpx.Response:
        """Issue one attempt; rate limiting, unavailability and network failures are retryable."""
        try:
            async with limiter:
                response = await client.request(method, url, headers=headers, content=content)
        except httpx.TransportError as exc:
            raise RetryableUpstreamError(f"network error ({type(exc).__name__}: {exc})") from exc

        if response.status_code in RETRYABLE_STATUS_CODES:
            raise RetryableUpstreamError(
                f"status {response.status_code}",
                upstream_status=response.status_code,
            )
        return response

    async def _backoff(self, attempt: int, policy: RetryPolicy, reason: str, tenant_id: str, path: str) -> None:
        delay_ms = compute_backoff_ms(attempt, policy, self._jitter())
        logger.warning(
            "RocketReach %s on %s (attempt %d/%d), retrying in %.0fms",
            reason,
            path,
            attempt + 1,
            policy.max_retries + 1,
            delay_ms,
            extra={"tenant_id": tenant_id, "endpoint": path, "attempt": attempt},
        )
        await self._sleep(delay_ms / 1000.0)

    async def call(
        self,
        tenant_id: str,
        path: str,
        *,
        method: str = "GET",
        query: Optional[Mapping[str, Any]] = None,
        body: Any = None,
    ) -> Any:
        """
        Call a RocketReach endpoint for a tenant and return the parsed JSON body.

        Raises:
            ProviderNotConfigured, MissingCredential, DecryptionFailed: from settings resolution
            TerminalUpstreamError: Non-retryable status, or an unparseable success body
            RetriesExhausted: Every attempt was rate limited or unavailable
            httpx.TransportError: Network failure on the final attempt
        """
        started = time.monotonic()
        method = method.upper()
        resolved = await self._resolver.resolve(tenant_id)
        policy = resolved.retry_policy
        url = build_url(resolved.base_url, path, query)
        headers = {
            "Content-Type": "application/json",
            "Api-Key": resolved.api_key,
        }
        content = json.dumps(body) if body is not None else None
        limiter = self._semaphore(resolved)

        async with httpx.AsyncClient(transport=self._transport, timeout=self._timeout) as client:
            for attempt in range(policy.max_retries + 1):
                try:
                    response = await self._send(client, limiter, method, url, headers, content)
                except RetryableUpstreamError as exc:
                    if attempt < policy.max_retries:
                        await self._backoff(attempt, policy, exc.message, tenant_id, path)
                        continue

                    attempts = attempt + 1
                    message = f"RocketReach retries exhausted after {attempts} attempts ({exc.message})"
                    logger.error(message, extra={"tenant_id": tenant_id, "endpoint": path})
                    await self._observe(
                        tenant_id=tenant_id, path=path, method=method, status="error",
                        started=started, status_code=exc.upstream_status, error=message,
                    )
                    if isinstance(exc.__cause__, httpx.TransportError):
                        raise exc.__cause__
                    raise RetriesExhausted(message, attempts=attempts) from exc

                if not response.is_success:
                    text = response.text[:ERROR_BODY_LIMIT]
                    message = f"RocketReach error {response.status_code}: {text}"
                    logger.error(message, extra={"tenant_id": tenant_id, "endpoint": path})
                    await self._observe(
                        tenant_id=tenant_id, path=path, method=method, status="error",
                        started=started, status_code=response.status_code, error=message,
                    )
                    raise TerminalUpstreamError(message, upstream_status=response.status_code, body=text)

                try:
                    data = response.json()
                except ValueError:
                    message = f"RocketReach returned invalid JSON (status {response.status_code})"
                    await self._observe(
                        tenant_id=tenant_id, path=path, method=method, status="error",
                        started=started, status_code=response.status_code, error=message,
                    )
                    raise TerminalUpstreamError(message, upstream_status=response.status_code)

                await self._observe(
                    tenant_id=tenant_id, path=path, method=method, status="success",
                    started=started, status_code=response.status_code,
                )
                return data

        # Only reachable with a negative max_retries
        raise RetriesExhausted("RocketReach retries exhausted", attempts=0)

    # RocketReach API v2 endpoints

    async def search_people(
        self,
        tenant_id: str,
        *,
        name: Optional[str] = None,
        title: Optional[str] = None,
        company: Optional[str] = None,
        domain: Optional[str] = None,
        location: Optional[str] = None,
        page: int = 1,
        page_size: int = 25,
    ) -> Any:
        page_size = page_size if page_size and page_size > 0 else 25
        page = page if page and page > 0 else 1
        fields = {
            "name": name,
            "current_title": title,
            "current_employer": company,
            "email_domain": domain,
            "location": location,
        }
        return await self.call(
            tenant_id,
            "/api/v2/search",
            method="POST",
            body={
                "query": {key: [value] for key, value in fields.items() if value},
                "page_size": page_size,
                "start": (page - 1) * page_size + 1,
            },
        )

    async def lookup_profile(self, tenant_id: str, person_id: str) -> Any:
        return await self.call(tenant_id, "/api/v2/person/lookup", query={"id": person_id})

    async def lookup_email(self, tenant_id: str, *, name: str, domain: str) -> Any:
        return await self.call(
            tenant_id,
            "/v2/api/lookupEmail",
            method="POST",
            body={"name": name, "email_domain": domain},
        )

    async def bulk_lookup(self, tenant_id: str, ids: Iterable[str]) -> Any:
        return await self.call(tenant_id, "/v2/api/bulk/lookup", method="POST", body={"ids": list(ids)})
