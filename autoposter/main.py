"""
Autoposter Backend - FastAPI application

Wires the single PipelineOrchestrator into the routers via app.state and
maps domain errors to HTTP responses.

Run with:
    python -m autoposter serve
    uvicorn autoposter.main:create_app --factory --port 3001
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import AppConfig
from .entrypoint import create_orchestrator
from .orchestrator import ConflictError, PipelineOrchestrator, ValidationError
from .routers import pipeline, schedule, stream

SERVICE_NAME = "Autoposter Pipeline API"

logger = logging.getLogger(__name__)


def create_app(
    config: Optional[AppConfig] = None,
    orchestrator: Optional[PipelineOrchestrator] = None
) -> FastAPI:
    """
    Build the FastAPI app.

    Args:
        config: App config; from the environment if None
        orchestrator: Pre-built orchestrator (tests); created at startup if None
    """
    if config is None:
        config = orchestrator.config if orchestrator is not None else AppConfig.from_environment()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan event handler for startup and shutdown."""
        if app.state.orchestrator is None:
            logger.info("Initializing Pipeline Orchestrator...")
            app.state.orchestrator = create_orchestrator(config)

        await app.state.orchestrator.start()
        logger.info(f"{SERVICE_NAME} started")

        yield  # Application runs here

        logger.info("Stopping Pipeline Orchestrator...")
        try:
            await app.state.orchestrator.stop()
        except Exception as e:
            logger.error(f"Error stopping orchestrator: {e}", exc_info=True)

    app = FastAPI(title=SERVICE_NAME, lifespan=lifespan)
    app.state.config = config
    app.state.orchestrator = orchestrator

    # CORS middleware for the dashboard frontend
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:3000", f"http://localhost:{config.port}"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConflictError)
    async def conflict_handler(request: Request, exc: ConflictError):
        logger.info(f"Conflict on {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=409, content={"error": str(exc)})

    @app.exception_handler(ValidationError)
    async def validation_handler(request: Request, exc: ValidationError):
        logger.warning(f"Rejected {request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=400, content={"error": str(exc)})

    app.include_router(pipeline.router)
    app.include_router(stream.router)
    app.include_router(schedule.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint for monitoring"""
        logger.debug("Health check requested")
        return {
            "status": "healthy",
            "timestamp": datetime.now(config.tz).isoformat(),
            "service": SERVICE_NAME
        }

    return app
