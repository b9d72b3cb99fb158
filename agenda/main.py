"""
FastAPI application for the appointment scheduling engine
"""
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

import agenda.models  # noqa: F401  registers all tables on Base.metadata
from agenda.api.v1.api import api_router
from agenda.core.config import settings
from agenda.core.database import engine, init_db
from agenda.core.logging import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events"""
    configure_logging()
    await init_db()
    logger.info(
        "Scheduling API starting up",
        environment=settings.ENVIRONMENT,
        version=settings.VERSION,
    )

    yield

    await engine.dispose()
    logger.info("Scheduling API shutting down")


def create_app() -> FastAPI:
    """Create and configure FastAPI application"""

    app = FastAPI(
        title=settings.PROJECT_NAME,
        description="Appointment availability and scheduling engine",
        version=settings.VERSION,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["health"])
    async def health():
        return {"status": "ok", "version": settings.VERSION}

    return app


app = create_app()


if __name__ == "__main__":
    uvicorn.run(
        "agenda.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
    )
