"""FastAPI application entry point."""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1 import router as api_v1_router
from app.core.config import settings
from app.core.log import configure_logging
from app.core.redis import close_redis_pool
from app.services.chat.hub import get_chat_hub, reset_chat_hub

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    configure_logging()
    logger.info(f"Starting Observer CRM API ({settings.app_env})")
    hub = get_chat_hub()
    hub.start()
    yield
    logger.info("Shutting down Observer CRM API")
    await hub.stop()
    await hub.redis.aclose()
    reset_chat_hub()
    await close_redis_pool()


app = FastAPI(
    title="Observer CRM API",
    description="Electoral observation CRM: observers, stations, reports, campaigns and chat",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API router
app.include_router(api_v1_router, prefix=settings.api_v1_prefix)


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "name": "Observer CRM API",
        "version": "0.1.0",
        "docs": "/docs",
    }
