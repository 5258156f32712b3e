"""Gigmarket API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from gigmarket import MarketConfig, Marketplace
from gigmarket.logging_config import setup_gigmarket_logging
from gigmarket.models import auto_configure_model

from .config import Settings, get_settings
from .errors import register_error_handlers
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import (
    jobs_router,
    ledger_router,
    matching_router,
    proposals_router,
    reviews_router,
)

logger = get_logger("main")

API_PREFIX = "/api/v1"


def build_market(settings: Settings) -> Marketplace:
    """One Marketplace per process, from settings and GIGMARKET_* env."""
    config = MarketConfig.from_env()
    model = auto_configure_model() if settings.enable_ai_matching else None
    if model is None:
        logger.info("No text model configured; matching endpoints return empty lists")
    if settings.database_path:
        return Marketplace.sqlite(settings.database_path, config=config, model=model)
    logger.warning("DATABASE_PATH not set; using in-memory storage")
    return Marketplace.in_memory(config=config, model=model)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings.log_level)
    setup_gigmarket_logging(settings.log_level)
    app.state.market = build_market(settings)
    logger.info(f"Starting Gigmarket API (debug={settings.debug})")
    yield
    logger.info("Shutting down Gigmarket API")


app = FastAPI(
    title="Gigmarket API",
    description="Freelance marketplace: jobs, proposals, escrow and matching",
    version="0.1.0",
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

register_error_handlers(app)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Matching goes first so /jobs/recommended is not read as a job id
app.include_router(matching_router, prefix=API_PREFIX)
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(proposals_router, prefix=API_PREFIX)
app.include_router(ledger_router, prefix=API_PREFIX)
app.include_router(reviews_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "gigmarket-api",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Health check that touches storage."""
    market = getattr(app.state, "market", None)
    if market is None:
        return {"status": "starting", "storage": "unavailable"}

    storage_status = "connected"
    try:
        market.jobs.list_open_jobs(limit=1)
    except Exception as e:
        storage_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if storage_status == "connected" else "degraded",
        "storage": storage_status,
    }
