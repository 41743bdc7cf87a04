"""
FastAPI Application Entry Point
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from transcriber.api.v1.router import api_router
from transcriber.core.config import settings
from transcriber.core.errors import (
    AppError,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from transcriber.core.logging import RequestIDMiddleware, get_logger, setup_logging
from transcriber.infra.db import close_db_connection
from transcriber.infra.redis import close_redis_pool, init_redis_pool
from transcriber.services.circuit_breaker import init_circuit_breakers

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    init_circuit_breakers()
    await init_redis_pool()
    logger.info(f"Transcriber started (env={settings.env}, provider={settings.transcription_provider})")

    yield

    # Shutdown
    await close_redis_pool()
    await close_db_connection()


def create_app() -> FastAPI:
    app = FastAPI(
        title="Transcriber Orchestrator",
        description="Segmented speech-to-text orchestration service",
        version="0.1.0",
        openapi_url=None if settings.is_production else f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )

    # Middleware
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_credentials,
        allow_methods=settings.cors_methods,
        allow_headers=settings.cors_headers,
    )

    # Routes
    app.include_router(api_router, prefix=settings.api_prefix)

    # Exception Handlers
    app.add_exception_handler(AppError, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    return app


app = create_app()
