"""
Vaultflow Deposit API: application entry-point.

Initializes the FastAPI application, registers middleware, exception handlers,
routers, and manages the application lifecycle (table creation on startup;
poller, chain gateway and connection pool shutdown).
"""

import asyncio
import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.openapi.docs import get_redoc_html
from sqlalchemy import text
from sqlmodel import SQLModel

from vaultflow.api.v1.api import api_router
from vaultflow.chain.gateway import JsonRpcChainGateway, close_chain_gateway, get_chain_gateway
from vaultflow.core.cache import cache
from vaultflow.core.config import settings
from vaultflow.core.exceptions import add_exception_handlers
from vaultflow.core.logging import setup_logging
from vaultflow.core.resilience import db_circuit_breaker
from vaultflow.db.session import AsyncSessionLocal, engine
from vaultflow.middleware import RequestIDMiddleware, RequestTimingMiddleware
from vaultflow.services.poller import poller_registry

setup_logging()
logger = logging.getLogger(__name__)


# ────────────────────────────────────────────────────────────────────────────
# Application lifespan
# ────────────────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Manages startup / shutdown lifecycle events.

    Startup:
      - Registers the ledger tables and creates them, retrying with
        exponential back-off.  If the database stays unreachable the app
        starts in degraded mode (``/health`` reports ``database: false``).

    Shutdown:
      - Cancels confirmation pollers still running.  Their movements stay
        ``pending``.
      - Closes the chain gateway's HTTP client and disposes of the pool.
    """
    import vaultflow.db.base  # noqa: F401

    max_retries = 5
    retry_delay = 2

    for attempt in range(1, max_retries + 1):
        try:
            logger.info("Connecting to database (attempt %d/%d)…", attempt, max_retries)
            async with engine.begin() as conn:
                await conn.run_sync(SQLModel.metadata.create_all)
            logger.info("Database tables ready")
            break
        except Exception as exc:
            if attempt < max_retries:
                logger.warning(
                    "Database connection failed (attempt %d/%d): %s, retrying in %ds…",
                    attempt,
                    max_retries,
                    exc,
                    retry_delay,
                )
                await asyncio.sleep(retry_delay)
                retry_delay *= 2
            else:
                logger.error(
                    "Could not connect to database after %d attempts. "
                    "The application will start in DEGRADED mode. Last error: %s",
                    max_retries,
                    exc,
                )

    yield

    cancelled = await poller_registry.shutdown()
    if cancelled:
        logger.warning("%d movements left pending by shutdown", cancelled)
    await close_chain_gateway()
    logger.info("Shutting down, disposing connection pool")
    await engine.dispose()


# ────────────────────────────────────────────────────────────────────────────
# FastAPI application instance
# ────────────────────────────────────────────────────────────────────────────

app = FastAPI(
    title=settings.PROJECT_NAME,
    version="1.0.0",
    description=(
        "Submits stablecoin deposits into yield vaults through the user's wallet "
        "and keeps a ledger of investments and movements in step with the chain."
    ),
    openapi_url=f"{settings.API_V1_STR}/openapi.json",
    redoc_url=None,
    lifespan=lifespan,
)


# Default cdn.redoc.ly is blocked by Chrome ORB.
@app.get("/redoc", include_in_schema=False)
async def custom_redoc_html():
    """Serve ReDoc using the unpkg CDN which has proper CORS headers."""
    return get_redoc_html(
        openapi_url=app.openapi_url or f"{settings.API_V1_STR}/openapi.json",
        title=f"{settings.PROJECT_NAME} ReDoc",
        redoc_js_url="https://unpkg.com/redoc@latest/bundles/redoc.standalone.js",
    )


# ── Middleware (order matters: outermost = first to execute) ──
app.add_middleware(GZipMiddleware, minimum_size=500)
app.add_middleware(RequestIDMiddleware)
app.add_middleware(RequestTimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# ── Global error handlers ──
add_exception_handlers(app)

# ── API routers ──
app.include_router(api_router, prefix=settings.API_V1_STR)


# ── Health check ──


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Liveness / readiness probe.

    Runs ``SELECT 1`` against the ledger and reports both circuit breakers,
    cache statistics and the number of confirmation pollers in flight.
    """
    db_healthy = True
    try:
        async with AsyncSessionLocal() as session:
            await session.execute(text("SELECT 1"))
    except Exception:
        db_healthy = False

    gateway = get_chain_gateway()
    chain_breaker = (
        gateway.circuit_breaker.get_status() if isinstance(gateway, JsonRpcChainGateway) else None
    )

    return {
        "status": "ok" if db_healthy else "degraded",
        "version": "1.0.0",
        "database": db_healthy,
        "circuit_breaker": db_circuit_breaker.get_status(),
        "chain_circuit_breaker": chain_breaker,
        "cache": cache.get_stats(),
        "pollers": poller_registry.get_status(),
    }
