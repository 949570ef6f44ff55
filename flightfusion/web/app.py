"""FastAPI application factory."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from flightfusion.config import AppConfig
from flightfusion.errors import ProcessingError, ValidationError
from flightfusion.pipeline import FlightProcessor
from flightfusion.recording.store import FlightStore
from flightfusion.web.routes import create_router

logger = logging.getLogger(__name__)


def create_app(config: AppConfig, store: FlightStore) -> FastAPI:
    """Create and configure the FastAPI application."""
    app = FastAPI(title="Flight Fusion", version="0.1.0")
    processor = FlightProcessor(config, store)

    @app.exception_handler(ValidationError)
    async def validation_error(request: Request, exc: ValidationError):
        logger.warning("Rejected %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse({"success": False, "error": str(exc)}, 400)

    @app.exception_handler(ProcessingError)
    async def processing_error(request: Request, exc: ProcessingError):
        logger.error("Processing failed for %s %s: %s",
                     request.method, request.url.path, exc)
        return JSONResponse({"success": False, "error": str(exc)}, 422)

    app.include_router(create_router(processor, config))
    return app
