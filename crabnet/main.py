"""CrabNet trust service FastAPI application."""

import secrets
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.ext.asyncio import AsyncSession

from crabnet import __version__
from crabnet.config import get_settings
from crabnet.database import close_db, get_db, init_db, ping
from crabnet.logging_config import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from crabnet.redis import close_redis, init_redis
from crabnet.routes.agents import router as agents_router
from crabnet.routes.isnad import router as isnad_router
from crabnet.routes.reviews import router as reviews_router
from crabnet.routes.vouches import router as vouches_router
from crabnet.services.scheduler_service import start_scheduler, stop_scheduler

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: init DB, Redis and the scheduler; clean up on shutdown."""
    settings = get_settings()
    configure_logging(
        level=settings.log_level,
        json_format=settings.log_json,
        service_name=settings.service_name,
    )

    logger.info("starting_database_init")
    await init_db()

    # Redis only guards maintenance runs; the API works without it
    try:
        await init_redis(settings.redis_url)
        logger.info("redis_connected", url=settings.redis_url)
    except Exception as e:
        logger.warning("redis_unavailable", url=settings.redis_url, error=str(e))

    if settings.scheduler_enabled:
        await start_scheduler()

    logger.info("application_started")
    yield

    # Shutdown
    logger.info("shutting_down")
    await stop_scheduler()
    await close_redis()
    await close_db()
    logger.info("shutdown_complete")


app = FastAPI(
    title="CrabNet Trust",
    description="Reputation, vouching and isnad chains for autonomous agents",
    version=__version__,
    debug=get_settings().debug,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins.split(","),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def request_context(request: Request, call_next):
    """Tag every log entry of a request with its request id."""
    request_id = request.headers.get("X-Request-ID") or secrets.token_hex(8)
    request.state.request_id = request_id
    bind_request_context(request_id)
    try:
        response = await call_next(request)
    finally:
        clear_request_context()
    response.headers["X-Request-ID"] = request_id
    return response


app.include_router(vouches_router)
app.include_router(reviews_router)
app.include_router(agents_router)
app.include_router(isnad_router)


@app.get("/health")
async def health_check(db: AsyncSession = Depends(get_db)):
    """Liveness plus a database round trip."""
    database_ok = await ping(db)
    return {
        "status": "ok" if database_ok else "degraded",
        "service": "crabnet",
        "version": __version__,
        "database": "ok" if database_ok else "unavailable",
    }
