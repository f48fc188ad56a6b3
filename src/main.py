"""Food share ledger FastAPI application."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.engine import make_url
from sqlalchemy.exc import DBAPIError

from src.core.config import settings
from src.core.exceptions import AppException
from src.core.exceptions.handlers import (
    app_exception_handler,
    http_exception_handler,
    sqlalchemy_db_error_handler,
    validation_exception_handler,
)
from src.core.logging_config import configure_logging
from src.core.realtime.router import router as realtime_router
from src.modules.collections.router import router as collections_router
from src.modules.listings.router import router as listings_router
from src.modules.reservations.router import router as reservations_router
from src.modules.vendors.router import router as vendors_router

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info(
        "Starting food share ledger (env=%s, database=%s)",
        settings.app_env,
        make_url(settings.database_url).render_as_string(hide_password=True),
    )
    yield
    logger.info("Shutting down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application."""
    configure_logging()

    app = FastAPI(
        title="Food Share Ledger",
        description="Surplus food listings, charity reservations and QR pickups",
        version="0.1.0",
        debug=settings.debug,
        lifespan=lifespan,
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(DBAPIError, sqlalchemy_db_error_handler)

    # Health check endpoint
    @app.get("/health")
    async def health_check():
        return {"status": "healthy"}

    # Routers
    app.include_router(listings_router, prefix="/api/v1")
    app.include_router(reservations_router, prefix="/api/v1")
    app.include_router(collections_router, prefix="/api/v1")
    app.include_router(vendors_router, prefix="/api/v1")
    app.include_router(realtime_router)

    return app


app = create_app()
