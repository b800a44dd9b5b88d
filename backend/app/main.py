"""Main FastAPI application."""

import asyncio
import logging
from contextlib import asynccontextmanager, suppress

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.api import agent, events, leads, providers, usage
from app.core.errors import IntegrationError
from app.core.logging import setup_logging
from app.database import AsyncSessionLocal
from app.services.agent_service import reap_stuck_tasks


logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    setup_logging()
    logger.info("RockReach API starting (environment: %s)", settings.ENVIRONMENT)
    reaper = asyncio.create_task(reap_stuck_tasks(AsyncSessionLocal))
    yield
    reaper.cancel()
    with suppress(asyncio.CancelledError):
        await reaper
    logger.info("RockReach API shutting down")


# Create FastAPI app
app = FastAPI(
    title="RockReach API",
    version="1.0.0",
    description="Multi-tenant lead generation: RocketReach search, provider settings and an AI agent",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    providers.router,
    prefix=f"{settings.API_V1_PREFIX}/providers",
    tags=["providers"]
)
app.include_router(
    leads.router,
    prefix=f"{settings.API_V1_PREFIX}/leads",
    tags=["leads"]
)
app.include_router(
    agent.router,
    prefix=f"{settings.API_V1_PREFIX}/agent",
    tags=["agent"]
)
app.include_router(
    usage.router,
    prefix=f"{settings.API_V1_PREFIX}/usage",
    tags=["usage"]
)
app.include_router(
    events.router,
    prefix=f"{settings.API_V1_PREFIX}",
    tags=["events"]
)


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "RockReach API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }


# Global exception handlers
@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail}
    )


@app.exception_handler(IntegrationError)
async def integration_error_handler(request: Request, exc: IntegrationError):
    """Render integration and agent failures in the same error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "detail": {
                "code": exc.code,
                "message": exc.message
            }
        }
    )


@app.exception_handler(httpx.TransportError)
async def upstream_unreachable_handler(request: Request, exc: httpx.TransportError):
    """Network failures that outlasted the client's retries."""
    logger.error("Upstream unreachable: %s", exc)
    return JSONResponse(
        status_code=503,
        content={
            "detail": {
                "code": "UPSTREAM_UNREACHABLE",
                "message": str(exc) or type(exc).__name__
            }
        }
    )
