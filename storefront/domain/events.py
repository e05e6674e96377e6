"""Order lifecycle events.

Recorded by the Order aggregate and written to the structured log once
the enclosing transaction has committed. ``aggregate_id`` is the order ID.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import ClassVar

from storefront.domain.base import DomainEvent


@dataclass(frozen=True, kw_only=True)
class OrderCreated(DomainEvent):
    """A pending order was created from a validated cart."""

    event_type: ClassVar[str] = "order.created"

    order_number: str
    user_id: str
    line_count: int
    total_cents: int
    currency: str


@dataclass(frozen=True, kw_only=True)
class OrderConfirmed(DomainEvent):
    """The order was confirmed and its stock reserved."""

    event_type: ClassVar[str] = "order.confirmed"

    actor: str
    confirmed_at: datetime


@dataclass(frozen=True, kw_only=True)
class OrderReverted(DomainEvent):
    """A confirmed order went back to pending and released its stock."""

    event_type: ClassVar[str] = "order.reverted"

    actor: str
    reason: str | None = None


@dataclass(frozen=True, kw_only=True)
class OrderShipped(DomainEvent):
    event_type: ClassVar[str] = "order.shipped"

    actor: str
    shipped_at: datetime


@dataclass(frozen=True, kw_only=True)
class OrderDelivered(DomainEvent):
    event_type: ClassVar[str] = "order.delivered"

    actor: str
    delivered_at: datetime


@dataclass(frozen=True, kw_only=True)
class OrderCancelled(DomainEvent):
    """The order was cancelled; ``stock_released`` is set if it had been confirmed."""

    event_type: ClassVar[str] = "order.cancelled"

    cancelled_by: str
    reason: str | None = None
    stock_released: bool = False
