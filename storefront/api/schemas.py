"""Request and response bodies of the order endpoints."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Shared
# ============================================================================


class PriceSchema(BaseModel):
    amount: int = Field(..., description="Integer cents")
    currency: str = Field(default="USD", description="Three-letter currency code")


class ErrorResponse(BaseModel):
    """Body returned with every 4xx and 5xx response."""

    error_code: str = Field(..., description="Stable code clients can branch on, e.g. INSUFFICIENT_STOCK")
    message: str = Field(..., description="Explanation for humans")
    details: dict[str, Any] = Field(default_factory=dict, description="Code-specific context")
    retryable: bool = Field(default=False, description="True when resending the same request can succeed")
    request_id: str | None = Field(default=None, description="Echo of X-Request-ID")


class PaginationSchema(BaseModel):
    current_page: int = Field(..., description="1-based page index")
    total_pages: int
    total_orders: int = Field(..., description="Orders matching the filters across all pages")
    page_size: int
    has_next: bool
    has_prev: bool


# ============================================================================
# Orders
# ============================================================================


class OrderStatusEnum(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class ShippingAddressSchema(BaseModel):
    """Delivery address; surrounding whitespace is stripped before length checks."""

    model_config = ConfigDict(str_strip_whitespace=True)

    street: str = Field(..., min_length=5, max_length=100)
    city: str = Field(..., min_length=2, max_length=50)
    region: str = Field(..., min_length=2, max_length=50, description="State, province or region")
    postal_code: str = Field(..., min_length=1, max_length=20)
    country: str = Field(..., min_length=2, max_length=50)


class OrderLineSchema(BaseModel):
    item_id: str
    item_name: str = Field(..., description="Catalog name when the order was placed")
    quantity: int = Field(..., ge=1)
    unit_price: PriceSchema = Field(..., description="Catalog price when the order was placed")
    line_total: PriceSchema


class OrderStatusHistorySchema(BaseModel):
    """One recorded status change; ``from_status`` is null for creation."""

    from_status: str | None = None
    to_status: str
    reason: str | None = None
    actor: str | None = Field(default=None, description="User ID or role that made the change")
    created_at: datetime


class OrderResponse(BaseModel):
    """Full order as seen by its owner or an admin."""

    id: str
    order_number: str = Field(..., description="Readable reference, e.g. ORD-1700000000000-0001")
    user_id: str
    status: OrderStatusEnum
    shipping_address: ShippingAddressSchema
    lines: list[OrderLineSchema]
    total: PriceSchema
    cancellation_reason: str | None = None
    status_history: list[OrderStatusHistorySchema] = Field(
        default_factory=list, description="Oldest change first"
    )
    created_at: datetime
    updated_at: datetime
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None


class OrderCreatedResponse(OrderResponse):
    unavailable_item_ids: list[str] = Field(
        default_factory=list,
        description="Cart items skipped because the catalog no longer sells them",
    )


class OrderSummarySchema(BaseModel):
    """Listing row without lines or history."""

    id: str
    order_number: str
    user_id: str
    status: OrderStatusEnum
    total: PriceSchema
    item_count: int = Field(..., description="Sum of line quantities")
    created_at: datetime


class OrdersListResponse(BaseModel):
    items: list[OrderSummarySchema]
    pagination: PaginationSchema


class OrderCreateRequest(BaseModel):
    """Checkout the caller's current cart to this address."""

    shipping_address: ShippingAddressSchema


class OrderCancelRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=200)


class OrderStatusUpdateRequest(BaseModel):
    """Admin move of an order to ``status``."""

    status: OrderStatusEnum
    reason: str | None = Field(default=None, max_length=200, description="Stored in the status history")
