"""RosterGraph API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map RosterGraphError → structured JSON responses
    - CORS configured from settings (not hardcoded); credentials allowed for the session cookie
    - Database and the shared httpx client initialized on startup via lifespan

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Three error handler layers live in api/error_handlers.py
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rostergraph.api.error_handlers import register_error_handlers
from rostergraph.api.routes import auth, courses, health
from rostergraph.config import get_settings
from rostergraph.infrastructure.database import init_db
from rostergraph.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    app.state.http_client = httpx.AsyncClient(
        timeout=httpx.Timeout(settings.provider_timeout_seconds),
    )
    logger.info("RosterGraph API started")
    yield
    logger.info("RosterGraph API shutting down")
    await app.state.http_client.aclose()
    await manager.dispose()


app = FastAPI(
    title="RosterGraph API", version="1.0.0", lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes: explicit registration
app.include_router(health.router)
app.include_router(auth.router)
app.include_router(courses.router)

register_error_handlers(app)
