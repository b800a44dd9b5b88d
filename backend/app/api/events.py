"""Events API router for streaming agent progress over SSE."""

import json

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from app.api.deps import TenantContext, get_tenant_context
from app.core.events import event_bus

router = APIRouter()


@router.get("/events")
async def event_stream(request: Request, ctx: TenantContext = Depends(get_tenant_context)):
    """
    Server-Sent Events (SSE) stream of the tenant's agent task events.

    Usage:
        const eventSource = new EventSource('/api/events');
        eventSource.addEventListener('agent_task_step', (e) => {
            console.log(JSON.parse(e.data));
        });
    """
    async def generate():
        async for event in event_bus.subscribe(ctx.tenant_id):
            # Check if client disconnected
            if await request.is_disconnected():
                break

            yield {
                "event": event["type"],
                "data": json.dumps(event["data"], default=str)
            }

    return EventSourceResponse(generate())
