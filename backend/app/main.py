# backend/app/main.py
from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI

from .core.config import settings
from .monitoring.sentry import init_sentry
from .routes import prometheus
from .routes.v1 import (
    admin as admin_v1,
    meetings as meetings_v1,
    payments as payments_v1,
    wallet as wallet_v1,
)

# Configure logging
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)

API_TITLE = "MatchIndeed Meetings API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown without deprecated events."""
    logger.info("%s starting up (environment=%s)", API_TITLE, settings.environment)
    init_sentry()
    yield
    logger.info("%s shutting down", API_TITLE)


def create_app() -> FastAPI:
    app = FastAPI(
        title=API_TITLE,
        version=API_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=app_lifespan,
    )

    # Register unified error envelope handlers
    from .errors import register_error_handlers

    register_error_handlers(app)

    api_v1 = APIRouter(prefix="/api/v1")
    api_v1.include_router(meetings_v1.router, prefix="/meetings")
    api_v1.include_router(payments_v1.router, prefix="/payments")
    api_v1.include_router(wallet_v1.router, prefix="/wallet")
    api_v1.include_router(admin_v1.router, prefix="/admin")
    app.include_router(api_v1)
    app.include_router(prometheus.router)

    @app.get("/health", tags=["monitoring"])
    def health() -> dict[str, str]:
        return {"status": "ok", "environment": settings.environment}

    return app


app = create_app()
