"""Event bus for streaming agent task progress over SSE."""

import asyncio
import logging
from typing import Dict, Any, AsyncGenerator, List, Optional, Tuple
from datetime import datetime


logger = logging.getLogger(__name__)


class EventBus:
    """
    In-memory event bus using asyncio.Queue for pub/sub pattern.

    Events are tenant-scoped: a subscriber only receives events published
    for its own tenant.
    """

    def __init__(self, queue_size: int = 100):
        """Initialize the event bus with an empty subscriber list."""
        self._queue_size = queue_size
        self._subscribers: List[Tuple[str, asyncio.Queue]] = []

    async def publish(self, tenant_id: str, event_type: str, data: Dict[str, Any]) -> None:
        """
        Publish an event to the tenant's subscribers.

        Args:
            tenant_id: Tenant the event belongs to
            event_type: Type of event (e.g., "agent_task_step")
            data: Event payload data
        """
        event = {
            "type": event_type,
            "data": data,
            "timestamp": datetime.utcnow().isoformat()
        }

        for subscriber_tenant, queue in list(self._subscribers):
            if subscriber_tenant != tenant_id:
                continue
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                # Slow consumer; drop the event rather than block the publisher
                logger.warning("Dropping %s event for slow subscriber", event_type)

    async def subscribe(self, tenant_id: str) -> AsyncGenerator[Dict[str, Any], None]:
        """
        Subscribe to a tenant's events and receive them as an async generator.

        Yields:
            Event dictionaries containing type, data, and timestamp

        Usage:
            async for event in event_bus.subscribe(tenant_id):
                print(event)
        """
        entry: Tuple[str, asyncio.Queue] = (tenant_id, asyncio.Queue(maxsize=self._queue_size))
        self._subscribers.append(entry)

        try:
            while True:
                event = await entry[1].get()
                yield event
        finally:
            # Clean up subscription
            if entry in self._subscribers:
                self._subscribers.remove(entry)


# Global event bus instance
event_bus = EventBus()


async def publish_safely(tenant_id: Optional[str], event_type: str, data: Dict[str, Any]) -> None:
    """Publish without letting a bus failure interrupt the caller."""
    if not tenant_id:
        return
    try:
        await event_bus.publish(tenant_id, event_type, data)
    except RuntimeError:
        logger.exception("Failed to publish %s event", event_type)
