"""
FastAPI Application Entry Point
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException

from companion.api.v1.router import api_router
from companion.core.config import settings
from companion.core.errors import (
    AppError,
    app_exception_handler,
    general_exception_handler,
    http_exception_handler,
    validation_exception_handler,
)
from companion.core.logging import RequestIDMiddleware, get_logger, setup_logging
from companion.infra.db import close_db_connection
from companion.infra.redis import close_redis_pool, init_redis_pool
from companion.live.orchestrator import SessionOrchestrator
from companion.live.ws.manager import ConnectionManager

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    setup_logging()
    await init_redis_pool()

    app.state.connections = ConnectionManager()
    if getattr(app.state, "orchestrator", None) is None:
        app.state.orchestrator = SessionOrchestrator()
    orchestrator: SessionOrchestrator = app.state.orchestrator

    # Curated catalog loads in the background; sessions work without it
    catalog_task = asyncio.create_task(orchestrator.tabletop.load(), name="tabletop-catalog")
    logger.info(f"Audio sources: {orchestrator.diagnostics()}")

    yield

    # Shutdown
    catalog_task.cancel()
    await orchestrator.shutdown()
    await close_redis_pool()
    await close_db_connection()


def create_app(orchestrator: Optional[SessionOrchestrator] = None) -> FastAPI:
    app = FastAPI(
        title="Tabletop Companion Backend",
        description="Live tabletop session transcription and audio direction",
        version="0.1.0",
        openapi_url=None if settings.is_production else f"{settings.api_prefix}/openapi.json",
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator

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
