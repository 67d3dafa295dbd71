"""Main application entry point."""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

from market_engine.api.routes import jobs, market_prices, notifications
from market_engine.config import settings
from market_engine.db.models import Base
from market_engine.db.session import engine
from market_engine.logging_config import setup_logging
from market_engine.worker.scheduler import setup_scheduler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting market price engine...")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    scheduler = setup_scheduler()
    scheduler.start()
    logger.info("Scheduler started")

    yield

    logger.info("Shutting down market price engine...")
    scheduler.shutdown(wait=False)
    await engine.dispose()


def create_app() -> FastAPI:
    """Build the FastAPI application."""
    app = FastAPI(
        title="Market Price Engine",
        description="Market price validation and price alerting",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.include_router(market_prices.router)
    app.include_router(jobs.router)
    app.include_router(notifications.router)

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    Instrumentator().instrument(app).expose(app)
    return app


app = create_app()


def main():
    setup_logging()
    uvicorn.run(
        "market_engine.main:app",
        host=settings.app_host,
        port=settings.app_port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
