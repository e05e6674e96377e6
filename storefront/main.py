"""Storefront order API application.

Run with ``uvicorn storefront.main:app``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from storefront.api.health import router as health_router
from storefront.api.middleware import error_response, setup_middleware
from storefront.api.orders import router as orders_router
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import init_models, reset_engine
from storefront.infrastructure.logging_config import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Configure logging and the schema on startup, release the engine on shutdown."""
    configure_logging()
    logger.info("Starting storefront order API", version=settings.api_version, debug=settings.debug)

    if settings.create_schema_on_startup:
        await init_models()

    yield

    logger.info("Shutting down storefront order API")
    await reset_engine()


# ============================================================================
# Exception Handlers
# ============================================================================


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    """Render HTTP errors in the API's error body format.

    Dependencies and ``raise_for_result`` put a dict with ``error_code``,
    ``message``, ``details`` and ``retryable`` into ``detail``; anything
    else, including routing 404s, is wrapped as a plain message.
    """
    detail = exc.detail if isinstance(exc.detail, dict) else {"message": str(exc.detail)}
    return error_response(
        exc.status_code,
        detail.get("error_code", "ERROR"),
        detail.get("message", "Request failed"),
        request,
        headers=getattr(exc, "headers", None),
        details=detail.get("details"),
        retryable=bool(detail.get("retryable", False)),
    )


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report request validation failures field by field."""
    errors = [
        {"field": ".".join(str(part) for part in err["loc"]), "message": err["msg"]}
        for err in exc.errors()
    ]
    return error_response(
        status.HTTP_422_UNPROCESSABLE_ENTITY,
        "INVALID_REQUEST",
        "Request validation failed",
        request,
        details={"errors": errors},
    )


async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception in handler", method=request.method, path=request.url.path)
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        "INTERNAL_ERROR",
        "An internal error occurred",
        request,
    )


# ============================================================================
# Application
# ============================================================================


def create_app() -> FastAPI:
    """Build the FastAPI application with middleware, routers and handlers."""
    application = FastAPI(
        title="Storefront Order API",
        description="Order management core: checkout, order lifecycle and inventory",
        version=settings.api_version,
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    setup_middleware(application)

    application.include_router(health_router, tags=["Health"])
    application.include_router(orders_router)

    application.add_exception_handler(StarletteHTTPException, handle_http_exception)
    application.add_exception_handler(RequestValidationError, handle_validation_error)
    application.add_exception_handler(Exception, handle_unexpected_error)
    return application


app = create_app()
