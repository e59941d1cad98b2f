"""Campus API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map CampusError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Document store initialized on startup via lifespan context manager

Design Decisions:
    - Lifespan over @app.on_event: FastAPI recommended pattern, cleaner cleanup
    - Error handlers live in api/error_handlers.py; this module only wires
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from campus.api.dependencies import init_store
from campus.api.error_handlers import register_error_handlers
from campus.api.routes import courses, enrollment, health
from campus.config import get_settings
from campus.infrastructure import database
from campus.infrastructure.observability import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    init_store(settings)
    logger.info(f"Campus API started (store: {settings.store_backend})")
    yield
    if database.db_manager is not None:
        await database.db_manager.dispose()
    logger.info("Campus API shutting down")


app = FastAPI(title="Campus API", version="1.0.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(courses.router)
app.include_router(enrollment.router)

register_error_handlers(app)
