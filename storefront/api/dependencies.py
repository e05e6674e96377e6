"""Shared API dependencies.

Identity is established by the upstream auth layer and forwarded in
the ``X-User-ID`` and ``X-User-Role`` headers.
"""

from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.application.order_service import OrderService, get_order_service
from storefront.domain.exceptions import (
    ConcurrencyError,
    DomainError,
    NotFoundError,
    StateError,
    TransitionNotPermittedError,
    ValidationError,
)
from storefront.infrastructure.database import get_session_factory

ADMIN_ROLE = "admin"


@dataclass(frozen=True)
class Actor:
    """Caller identity."""

    user_id: str
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN_ROLE


def get_actor(
    x_user_id: Annotated[str | None, Header()] = None,
    x_user_role: Annotated[str | None, Header()] = None,
) -> Actor:
    """Get the caller identity from the forwarded headers.

    Raises:
        HTTPException: 401 if no user ID was forwarded.
    """
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={
                "error_code": "UNAUTHENTICATED_USER",
                "message": "Missing X-User-ID header",
            },
        )
    return Actor(user_id=x_user_id.strip(), role=(x_user_role or "user").strip().lower())


def require_admin(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
    """Allow only administrators.

    Raises:
        HTTPException: 403 for any other role.
    """
    if not actor.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error_code": "ADMIN_REQUIRED",
                "message": "This operation requires the admin role",
            },
        )
    return actor


def get_service(
    request: Request,
    session_factory: Annotated[async_sessionmaker[AsyncSession], Depends(get_session_factory)],
) -> OrderService:
    """Get order service with request ID."""
    request_id = getattr(request.state, "request_id", None)
    return get_order_service(request_id=request_id, session_factory=session_factory)


# ============================================================================
# Error Mapping
# ============================================================================


def _status_for_class(cls: type[DomainError]) -> int:
    if issubclass(cls, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if issubclass(cls, TransitionNotPermittedError):
        return status.HTTP_403_FORBIDDEN
    if issubclass(cls, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if issubclass(cls, (StateError, ConcurrencyError)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


def _all_subclasses(cls: type[DomainError]) -> list[type[DomainError]]:
    found = []
    for sub in cls.__subclasses__():
        found.append(sub)
        found.extend(_all_subclasses(sub))
    return found


def http_status_for(error_code: str | None) -> int:
    """Map a domain error code to its HTTP status."""
    for cls in _all_subclasses(DomainError):
        if cls.error_code == error_code:
            return _status_for_class(cls)
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def raise_for_result(result: Any) -> None:
    """Raise the HTTPException that matches a failed service result.

    Args:
        result: Any service result carrying success/error/error_code/details.

    Raises:
        HTTPException: If the result is a failure.
    """
    if result.success:
        return
    raise HTTPException(
        status_code=http_status_for(result.error_code),
        detail={
            "error_code": result.error_code or "ERROR",
            "message": result.error or "Request failed",
            "details": getattr(result, "details", {}),
            "retryable": getattr(result, "retryable", False),
        },
    )
