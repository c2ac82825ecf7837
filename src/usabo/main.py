"""FastAPI application factory.

Learn: App factory pattern — create_app() returns a configured FastAPI
instance. Lifespan manages startup/shutdown (database schema, Redis).
Middleware, CORS, exception handlers, and routers all registered here.

Settings are validated on import (see config.py), so a missing signing
secret stops the process before the app is ever built.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from usabo import __version__
from usabo.api import api_router
from usabo.config import settings
from usabo.errors import register_exception_handlers

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` runs at shutdown.
    """
    logger.info(
        "usabo.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
        google_oauth=settings.google_configured,
        github_oauth=settings.github_configured,
    )

    from usabo.db.engine import engine, init_models
    await init_models(engine)
    logger.info("usabo.database_ready")

    from usabo.cache import close_redis, init_redis
    try:
        await init_redis()
        logger.info("usabo.redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("usabo.redis_unavailable", error=str(e))
        # Redis is optional; without it only rate limiting is lost

    yield

    logger.info("usabo.shutdown")
    await close_redis()
    await engine.dispose()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    app = FastAPI(
        title="USABO Study Platform",
        description="Accounts and sign-in for the USABO study site",
        version=__version__,
        lifespan=lifespan,
    )

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: CORS → RateLimit → Security → RequestId → handler

    from usabo.middleware.rate_limit import RateLimitMiddleware
    from usabo.middleware.request_id import RequestIdMiddleware
    from usabo.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        default_rpm=settings.rate_limit_rpm,
        auth_rpm=settings.rate_limit_auth_rpm,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_exception_handlers(app)
    app.include_router(api_router)

    return app


# Default app instance (used by uvicorn: usabo.main:app)
app = create_app()
