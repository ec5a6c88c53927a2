"""Esusu ledger FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from esusu.api.errors import AppError, app_error_handler
from esusu.api.routes import admin, cycles, members, opt_outs, payments, payouts
from esusu.config import settings
from esusu.models import Base
from esusu.services import engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    # Startup: Initialize database tables
    Base.metadata.create_all(bind=engine)
    logger.info("Database tables initialized")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title=settings.api_title,
    description="Rotating savings (Ajo/Esusu) cycle ledger",
    version=settings.api_version,
    lifespan=lifespan,
)

app.add_exception_handler(AppError, app_error_handler)

# Include routers
app.include_router(cycles.router)
app.include_router(payments.router)
app.include_router(payouts.router)
app.include_router(members.router)
app.include_router(opt_outs.router)
app.include_router(admin.router)


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "ok"}


def run() -> None:
    """Start the API server with file logging."""
    import uvicorn

    from esusu.services.logging import setup_server_logging

    setup_server_logging(settings.log_file)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
