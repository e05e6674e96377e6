"""Domain layer - Entities, value objects, state machine, domain events.

- **Entities**: Objects with identity (Order, InventoryItem)
- **Value Objects**: Immutable objects compared by value (Money, OrderLine, typed IDs)
- **State Machine**: OrderStatus with its transition table and stock effects
- **Domain Events**: Significant order lifecycle occurrences
- **Exceptions**: Validation, state, concurrency and not-found errors

Example usage:
    from storefront.domain import CartSnapshot, Order, OrderNumber, OrderStatus

    order = Order.create(
        user_id=UserId("u-1"),
        snapshot=snapshot,
        shipping_address=address,
        order_number=OrderNumber.generate(),
    )
    plan = order.transition_to(OrderStatus.CONFIRMED, actor="admin-1")
    plan.stock_effect  # StockEffect.RESERVE
"""

from storefront.domain.base import AggregateRoot, DomainEvent, Entity, ValueObject
from storefront.domain.entities import InventoryItem, Order, StockRequirement
from storefront.domain.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderReverted,
    OrderShipped,
)
from storefront.domain.exceptions import (
    AlreadyProcessedError,
    ConcurrencyError,
    DomainError,
    EmptyCartError,
    ImmutableOrderError,
    InsufficientStockError,
    InvalidStateTransitionError,
    ItemNotFoundError,
    ItemUnavailableError,
    NotFoundError,
    OrderNotCancellableError,
    OrderNotFoundError,
    ReasonTooLongError,
    StateError,
    TransactionAbortedError,
    TransitionNotPermittedError,
    UserNotActiveError,
    ValidationError,
)
from storefront.domain.state_machines import (
    OrderStatus,
    StockEffect,
    TransitionPlan,
    validate_order_transition,
)
from storefront.domain.value_objects import (
    CartLine,
    CartSnapshot,
    ItemId,
    Money,
    OrderId,
    OrderLine,
    OrderNumber,
    ShippingAddress,
    StatusChange,
    StockShortfall,
    UserId,
)

__all__ = [
    # Base
    "AggregateRoot",
    "DomainEvent",
    "Entity",
    "ValueObject",
    # Entities
    "InventoryItem",
    "Order",
    "StockRequirement",
    # Events
    "OrderCancelled",
    "OrderConfirmed",
    "OrderCreated",
    "OrderDelivered",
    "OrderReverted",
    "OrderShipped",
    # Exceptions
    "AlreadyProcessedError",
    "ConcurrencyError",
    "DomainError",
    "EmptyCartError",
    "ImmutableOrderError",
    "InsufficientStockError",
    "InvalidStateTransitionError",
    "ItemNotFoundError",
    "ItemUnavailableError",
    "NotFoundError",
    "OrderNotCancellableError",
    "OrderNotFoundError",
    "ReasonTooLongError",
    "StateError",
    "TransactionAbortedError",
    "TransitionNotPermittedError",
    "UserNotActiveError",
    "ValidationError",
    # State machine
    "OrderStatus",
    "StockEffect",
    "TransitionPlan",
    "validate_order_transition",
    # Value objects
    "CartLine",
    "CartSnapshot",
    "ItemId",
    "Money",
    "OrderId",
    "OrderLine",
    "OrderNumber",
    "ShippingAddress",
    "StatusChange",
    "StockShortfall",
    "UserId",
]
