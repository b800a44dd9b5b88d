"""API routers package."""

from app.api import agent, deps, events, leads, providers, usage

__all__ = [
    "agent",
    "deps",
    "events",
    "leads",
    "providers",
    "usage",
]
