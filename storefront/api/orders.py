"""HTTP routes for placing, reading and moving orders.

Shoppers work under ``/orders/mine``; the unscoped routes and the status
endpoint require the admin role. All calls carry the gateway key plus the
``X-User-ID`` and ``X-User-Role`` headers.
"""

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from storefront.api.dependencies import (
    Actor,
    get_actor,
    get_service,
    raise_for_result,
    require_admin,
)
from storefront.api.schemas import (
    ErrorResponse,
    OrderCancelRequest,
    OrderCreatedResponse,
    OrderCreateRequest,
    OrderLineSchema,
    OrderResponse,
    OrdersListResponse,
    OrderStatusEnum,
    OrderStatusHistorySchema,
    OrderStatusUpdateRequest,
    OrderSummarySchema,
    PaginationSchema,
    PriceSchema,
    ShippingAddressSchema,
)
from storefront.application.order_service import ListOrdersResult, OrderService
from storefront.application.ports import OrderFilter
from storefront.domain.entities import Order
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import ShippingAddress, UserId

router = APIRouter(prefix="/orders", tags=["Orders"])


# ============================================================================
# Converters
# ============================================================================


def order_to_response(order: Order) -> OrderResponse:
    """Convert Order to OrderResponse."""
    currency = order.total.currency
    return OrderResponse(
        id=str(order.id),
        order_number=str(order.order_number),
        user_id=order.user_id.value,
        status=OrderStatusEnum(order.status.value),
        shipping_address=ShippingAddressSchema(
            street=order.shipping_address.street,
            city=order.shipping_address.city,
            region=order.shipping_address.region,
            postal_code=order.shipping_address.postal_code,
            country=order.shipping_address.country,
        ),
        lines=[
            OrderLineSchema(
                item_id=line.item_id.value,
                item_name=line.item_name,
                quantity=line.quantity,
                unit_price=PriceSchema(amount=line.unit_price.amount_cents, currency=currency),
                line_total=PriceSchema(amount=line.line_total.amount_cents, currency=currency),
            )
            for line in order.lines
        ],
        total=PriceSchema(amount=order.total.amount_cents, currency=currency),
        cancellation_reason=order.cancellation_reason,
        status_history=[
            OrderStatusHistorySchema(
                from_status=entry.from_status.value if entry.from_status else None,
                to_status=entry.to_status.value,
                reason=entry.reason,
                actor=entry.actor,
                created_at=entry.changed_at,
            )
            for entry in order.status_history
        ],
        created_at=order.created_at,
        updated_at=order.updated_at,
        confirmed_at=order.confirmed_at,
        shipped_at=order.shipped_at,
        delivered_at=order.delivered_at,
        cancelled_at=order.cancelled_at,
    )


def order_to_summary(order: Order) -> OrderSummarySchema:
    """Convert Order to OrderSummarySchema."""
    return OrderSummarySchema(
        id=str(order.id),
        order_number=str(order.order_number),
        user_id=order.user_id.value,
        status=OrderStatusEnum(order.status.value),
        total=PriceSchema(amount=order.total.amount_cents, currency=order.total.currency),
        item_count=order.item_count,
        created_at=order.created_at,
    )


def _list_response(result: ListOrdersResult) -> OrdersListResponse:
    raise_for_result(result)
    pagination = result.pagination
    return OrdersListResponse(
        items=[order_to_summary(order) for order in result.orders],
        pagination=PaginationSchema(
            current_page=pagination.current_page,
            total_pages=pagination.total_pages,
            total_orders=pagination.total_orders,
            page_size=pagination.page_size,
            has_next=pagination.has_next,
            has_prev=pagination.has_prev,
        ),
    )


# ============================================================================
# Customer Endpoints
# ============================================================================


@router.post(
    "",
    response_model=OrderCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
    },
    summary="Create order",
    description="Create a pending order from the caller's cart and clear the cart.",
)
async def create_order(
    request: OrderCreateRequest,
    actor: Annotated[Actor, Depends(get_actor)],
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderCreatedResponse:
    """Create an order from the caller's cart.

    Cart lines are revalidated against the catalog and repriced.
    Items that are no longer sold are left out and reported.

    Raises:
        HTTPException: If the cart is empty or stock is insufficient.
    """
    address = request.shipping_address
    result = await service.create_order_from_cart(
        user_id=actor.user_id,
        shipping_address=ShippingAddress(
            street=address.street,
            city=address.city,
            region=address.region,
            postal_code=address.postal_code,
            country=address.country,
        ),
    )
    raise_for_result(result)

    return OrderCreatedResponse(
        **order_to_response(result.order).model_dump(),
        unavailable_item_ids=result.unavailable_item_ids,
    )


@router.get(
    "/mine",
    response_model=OrdersListResponse,
    responses={401: {"model": ErrorResponse}},
    summary="List my orders",
)
async def list_my_orders(
    actor: Annotated[Actor, Depends(get_actor)],
    service: Annotated[OrderService, Depends(get_service)],
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int | None = Query(default=None, ge=1, le=100, description="Items per page"),
    status_filter: OrderStatusEnum | None = Query(
        default=None, alias="status", description="Filter by status"
    ),
) -> OrdersListResponse:
    """List the caller's orders, newest first."""
    result = await service.list_orders(
        OrderFilter(
            user_id=UserId(actor.user_id),
            status=OrderStatus(status_filter.value) if status_filter else None,
        ),
        page=page,
        page_size=page_size,
    )
    return _list_response(result)


@router.get(
    "/mine/{order_id}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get my order",
)
async def get_my_order(
    order_id: str,
    actor: Annotated[Actor, Depends(get_actor)],
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderResponse:
    """Get one of the caller's orders. Other users' orders are not found."""
    result = await service.get_order(order_id, owner_id=actor.user_id)
    raise_for_result(result)
    return order_to_response(result.order)


@router.post(
    "/mine/{order_id}/cancel",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Cancel my order",
    description="Cancel a pending or confirmed order. Shipped orders cannot be cancelled.",
)
async def cancel_my_order(
    order_id: str,
    actor: Annotated[Actor, Depends(get_actor)],
    service: Annotated[OrderService, Depends(get_service)],
    request: OrderCancelRequest | None = None,
) -> OrderResponse:
    """Cancel one of the caller's orders.

    Stock taken at confirmation is returned to inventory.

    Raises:
        HTTPException: If the order is not found or can no longer be cancelled.
    """
    result = await service.cancel_order(
        order_id=order_id,
        acting_user_id=actor.user_id,
        is_admin=False,
        reason=request.reason if request else None,
    )
    raise_for_result(result)
    return order_to_response(result.order)


# ============================================================================
# Admin Endpoints
# ============================================================================


@router.get(
    "",
    response_model=OrdersListResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
    },
    summary="List orders",
    description="Get a paginated list of all orders with optional filtering.",
)
async def list_orders(
    actor: Annotated[Actor, Depends(require_admin)],
    service: Annotated[OrderService, Depends(get_service)],
    page: int = Query(default=1, ge=1, description="Page number"),
    page_size: int | None = Query(default=None, ge=1, le=100, description="Items per page"),
    status_filter: OrderStatusEnum | None = Query(
        default=None, alias="status", description="Filter by status"
    ),
    user_id: str | None = Query(
        default=None, min_length=1, max_length=64, pattern=r"^\s*\S", description="Filter by owner"
    ),
    created_from: datetime | None = Query(default=None, description="Created at or after"),
    created_to: datetime | None = Query(default=None, description="Created at or before"),
    min_total_cents: int | None = Query(default=None, ge=0, description="Minimum total"),
    max_total_cents: int | None = Query(default=None, ge=0, description="Maximum total"),
    order_number: str | None = Query(
        default=None, min_length=1, description="Order number search (case-insensitive)"
    ),
) -> OrdersListResponse:
    """Admin listing of every order, newest first."""
    filters = OrderFilter(
        status=OrderStatus(status_filter.value) if status_filter else None,
        user_id=UserId(user_id.strip()) if user_id else None,
        created_from=created_from,
        created_to=created_to,
        min_total_cents=min_total_cents,
        max_total_cents=max_total_cents,
        order_number=order_number,
    )
    result = await service.list_orders(filters, page=page, page_size=page_size)
    return _list_response(result)


@router.get(
    "/{order_id}",
    response_model=OrderResponse,
    responses={
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
    },
    summary="Get order details",
)
async def get_order(
    order_id: str,
    actor: Annotated[Actor, Depends(require_admin)],
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderResponse:
    """Get any order by ID, including lines and status history."""
    result = await service.get_order(order_id)
    raise_for_result(result)
    return order_to_response(result.order)


@router.patch(
    "/{order_id}/status",
    response_model=OrderResponse,
    responses={
        400: {"model": ErrorResponse},
        401: {"model": ErrorResponse},
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
    },
    summary="Update order status",
    description="Move an order along its lifecycle. Confirming reserves stock; "
    "cancelling or reverting a confirmed order releases it.",
)
async def update_order_status(
    order_id: str,
    request: OrderStatusUpdateRequest,
    actor: Annotated[Actor, Depends(require_admin)],
    service: Annotated[OrderService, Depends(get_service)],
) -> OrderResponse:
    """Transition an order to a new status.

    Raises:
        HTTPException: 404 unknown order, 400 insufficient stock,
            409 for transitions the order's state rejects.
    """
    result = await service.transition_order(
        order_id=order_id,
        target_status=OrderStatus(request.status.value),
        acting_user_id=actor.user_id,
        is_admin=True,
        reason=request.reason,
    )
    raise_for_result(result)
    return order_to_response(result.order)
