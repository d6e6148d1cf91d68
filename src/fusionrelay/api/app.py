"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fusionrelay import __version__
from fusionrelay.config import get_settings
from fusionrelay.errors import (
    ExecutionFailedError,
    ExecutionInProgressError,
    OrderNotFoundError,
    SwapError,
    ValidationError,
)
from fusionrelay.services import SwapCoordinator

logger = logging.getLogger(__name__)


def status_for(error: SwapError) -> int:
    """HTTP status of a relayer error."""
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, OrderNotFoundError):
        return 404
    if isinstance(error, ExecutionInProgressError):
        return 409
    if isinstance(error, ExecutionFailedError):
        return 502
    return 500


async def swap_error_handler(request: Request, exc: SwapError) -> JSONResponse:
    status = status_for(exc)
    if status >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=status, content={"success": False, **exc.to_dict()})


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "; ".join(
        f"{'.'.join(str(p) for p in e.get('loc', ())[1:])}: {e.get('msg')}" for e in errors
    )
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": message or "Invalid request", "code": ValidationError.code},
    )


def create_app(coordinator: Optional[SwapCoordinator] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        coordinator: Coordinator to serve; built from settings at startup
            when omitted
    """
    settings = get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if coordinator is None:
            app.state.coordinator = SwapCoordinator.from_settings(settings)
        logger.info(f"Serving chains {app.state.coordinator.supported_chains()}")
        yield
        logger.info("API shutting down")

    app = FastAPI(
        title="Fusion Relay API",
        description="Cross-chain EVM <-> Cosmos atomic swap relayer",
        version=__version__,
        lifespan=lifespan,
        debug=settings.debug,
    )
    if coordinator is not None:
        app.state.coordinator = coordinator

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if settings.debug else settings.origins,
        allow_credentials=not settings.debug,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    app.add_exception_handler(SwapError, swap_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    from fusionrelay.api.routes import health, swaps

    app.include_router(health.router, tags=["Health"])
    app.include_router(swaps.router)

    return app
