"""
Event Registration Resolver - Main Application Entry Point

Turns bursts of event sign-ups into seats and waitlist positions:
- Write-ahead intent staging in Redis, resolved per event in request order
- Priority pools, strike-based delays and prioritized swaps
- Per-event locking so overlapping passes never hand out a seat twice
- Structured logging and Prometheus metrics
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text

from app.core.config import get_settings
from app.core.logging import setup_logging, get_logger
from app.core.metrics import metrics_endpoint
from app.api.router import api_router
from app.api.middleware import RequestLoggingMiddleware
from app.db.session import SessionLocal
from app.infrastructure.redis_client import RedisClient
from app.services.scheduler import ResolutionScheduler
from app.services.strategy_factory import (
    get_event_lock,
    get_intent_stage,
    get_notification_dispatcher,
)

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
    )

    scheduler = None
    if settings.RESOLVER_ENABLED:
        scheduler = ResolutionScheduler(
            SessionLocal,
            stage=get_intent_stage(),
            lock=get_event_lock(),
            dispatcher=get_notification_dispatcher(),
        )
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    if scheduler is not None:
        await scheduler.stop()
    await RedisClient.close()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="Resolves staged event sign-ups into seats, waitlist positions and rejections",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)

app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    logger = get_logger(__name__)
    checks = {}

    try:
        async with SessionLocal() as session:
            await session.execute(text("SELECT 1"))
        checks["database"] = "connected"
    except Exception as e:
        logger.warning("health_database_unavailable", error=str(e))
        checks["database"] = "unavailable"

    try:
        checks["staged_intents"] = await get_intent_stage().count()
        checks["redis"] = "connected"
    except Exception as e:
        logger.warning("health_redis_unavailable", error=str(e))
        checks["redis"] = "unavailable"

    healthy = checks["database"] == "connected" and checks["redis"] == "connected"
    return {
        "status": "healthy" if healthy else "degraded",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "scheduler": "running" if getattr(app.state, "scheduler", None) else "disabled",
        **checks,
    }


@app.get("/metrics", tags=["Health"])
async def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
