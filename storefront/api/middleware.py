"""HTTP middleware for the storefront order API.

Execution order, outermost first:

1. ``RequestContextMiddleware`` assigns the request ID, binds it into the
   structlog context and logs one line per request.
2. ``GatewayAuthMiddleware`` checks the shared Bearer key of the gateway.
3. ``ErrorHandlerMiddleware`` turns anything unhandled into a 500 body.
"""

import secrets
import time
from typing import Any, Callable
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request, Response, status
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from storefront.infrastructure.config import settings

logger = structlog.get_logger()

REQUEST_ID_HEADER = "X-Request-ID"

# Reachable without the gateway key
PUBLIC_PATHS = frozenset({"/health", "/ready", "/docs", "/redoc", "/openapi.json"})


def error_response(
    status_code: int,
    error_code: str,
    message: str,
    request: Request,
    headers: dict[str, str] | None = None,
    details: dict[str, Any] | None = None,
    retryable: bool = False,
) -> JSONResponse:
    """Build a response in the API's error body format."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details or {},
            "retryable": retryable,
            "request_id": getattr(request.state, "request_id", None),
        },
        headers=headers,
    )


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Correlate logs and responses with a request ID.

    Uses the caller's ``X-Request-ID`` when present, otherwise a new UUID.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid4())
        request.state.request_id = request_id

        started = time.perf_counter()
        status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
        with structlog.contextvars.bound_contextvars(request_id=request_id):
            try:
                response = await call_next(request)
                status_code = response.status_code
            finally:
                logger.info(
                    "Request completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=status_code,
                    duration_ms=round((time.perf_counter() - started) * 1000, 2),
                )

        response.headers[REQUEST_ID_HEADER] = request_id
        return response


def _bearer_token(authorization: str | None) -> str | None:
    """Extract the token of a ``Bearer <token>`` header, if well-formed."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()


class GatewayAuthMiddleware(BaseHTTPMiddleware):
    """Reject calls that do not carry the gateway's API key.

    The key only proves the call came through the gateway. The end
    user is identified separately by ``X-User-ID`` and ``X-User-Role``.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        path = request.url.path.rstrip("/") or "/"
        if path in PUBLIC_PATHS or path.startswith(("/docs", "/redoc")):
            return await call_next(request)

        challenge = {"WWW-Authenticate": "Bearer"}
        header = request.headers.get("Authorization")
        token = _bearer_token(header)

        if token is None:
            logger.warning("Rejected call without bearer key", path=path, has_header=bool(header))
            return error_response(
                status.HTTP_401_UNAUTHORIZED,
                "UNAUTHORIZED",
                "Send the API key as 'Authorization: Bearer <api_key>'",
                request,
                challenge,
            )

        if not secrets.compare_digest(token.encode(), settings.storefront_api_key.encode()):
            logger.warning("Rejected call with wrong API key", path=path)
            return error_response(
                status.HTTP_401_UNAUTHORIZED, "INVALID_API_KEY", "Invalid API key", request, challenge
            )

        return await call_next(request)


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Last-resort handler for exceptions no route handled."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        try:
            return await call_next(request)
        except Exception:
            logger.exception("Unhandled exception", method=request.method, path=request.url.path)
            return error_response(
                status.HTTP_500_INTERNAL_SERVER_ERROR,
                "INTERNAL_ERROR",
                "An internal error occurred",
                request,
            )


def setup_middleware(app: FastAPI) -> None:
    """Install the middleware stack; the last one added runs first."""
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(GatewayAuthMiddleware)
    app.add_middleware(RequestContextMiddleware)
