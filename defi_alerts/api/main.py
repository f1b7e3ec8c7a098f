"""FastAPI application entry-point for the DeFi Alerts API.

Configures CORS, rate limiting, exception handlers and lifespan
startup/shutdown, and mounts all route modules.
Run with:  uvicorn defi_alerts.api.main:app --reload --host 0.0.0.0 --port 8000
"""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from sqlalchemy import text

from defi_alerts import __version__
from defi_alerts.api.errors import register_exception_handlers
from defi_alerts.api.routes import (
    alerts_api,
    health,
    monitoring_api,
    notifications_api,
    subgraph_api,
)
from defi_alerts.api.services import open_services
from defi_alerts.cache.rate_limiter import client_identifier
from defi_alerts.core.config import settings
from defi_alerts.core.database import async_engine
from defi_alerts.core.redis import close_redis
from defi_alerts.core.utils.logging_config import configure_logging

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lifespan -- run once at startup / shutdown
# ---------------------------------------------------------------------------
@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build services on startup; stop the monitor and release pools on shutdown."""
    configure_logging(settings.debug)
    try:
        async with async_engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        logger.info("Database connection verified")
    except Exception as exc:
        logger.error("Database connection failed: %s", exc)

    async with open_services() as services:
        app.state.services = services
        if settings.monitor_autostart:
            services.monitor.start()
            logger.info("Alert monitor started at startup")
        yield

    await close_redis()
    await async_engine.dispose()
    logger.info("Database engine disposed")


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------
openapi_tags = [
    {"name": "Health", "description": "Health check endpoints"},
    {"name": "Alerts", "description": "Owner-scoped alert management"},
    {"name": "Monitoring", "description": "Alert monitor lifecycle"},
    {"name": "Notifications", "description": "Telegram channel checks"},
    {"name": "Subgraph", "description": "Cached Aave subgraph queries"},
]

app = FastAPI(
    title="DeFi Alerts API",
    version=__version__,
    description=(
        "Threshold alerts on DeFi position metrics (health factor, LTV, "
        "net APY) delivered over Telegram, plus a cached subgraph proxy."
    ),
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=openapi_tags,
)

# Rate limiting: coarse global limit; per-action quotas live in the services
limiter = Limiter(key_func=client_identifier, default_limits=[settings.rate_limit_default])
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)
register_exception_handlers(app)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------
_allowed_origins = [
    "http://localhost:3000",
    "http://localhost:8000",
]
if settings.allowed_origins:
    _allowed_origins.extend(
        o.strip() for o in settings.allowed_origins.split(",") if o.strip()
    )
if settings.debug:
    _allowed_origins = ["*"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------
# Health endpoints live at the root (no prefix)
app.include_router(health.router)

app.include_router(alerts_api.router, prefix="/api/v1")
app.include_router(monitoring_api.router, prefix="/api/v1")
app.include_router(notifications_api.router, prefix="/api/v1")
app.include_router(subgraph_api.router, prefix="/api/v1")
