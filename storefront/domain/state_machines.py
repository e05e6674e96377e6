"""Order state machine.

Deterministic state machine that defines the valid order transitions and
which of them move stock. The transition table is the single source of
truth for both the aggregate and the lifecycle engine.
"""

from dataclasses import dataclass
from enum import Enum

from storefront.domain.exceptions import (
    AlreadyProcessedError,
    ImmutableOrderError,
    InvalidStateTransitionError,
    OrderNotCancellableError,
)


class StockEffect(str, Enum):
    """What a transition does to the inventory ledger."""

    NONE = "none"
    RESERVE = "reserve"
    RELEASE = "release"


class OrderStatus(str, Enum):
    """Status of an order.

    Transitions:
        PENDING ─────────────────────────────────────► CANCELLED
          │   ▲                                          ▲
          │   │ revert (stock released)                  │
          ▼   │                                          │
        CONFIRMED ───────────────────────────────────────┘
          │              (stock released)
          │ ship
          ▼
        SHIPPED
          │
          │ deliver
          ▼
        DELIVERED

    DELIVERED and CANCELLED are terminal.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"

    def can_transition_to(self, target: "OrderStatus") -> bool:
        return (self, target) in _ORDER_TRANSITIONS

    def allowed_transitions(self) -> list["OrderStatus"]:
        """Statuses reachable in one step, in table order."""
        return [to for (frm, to) in _ORDER_TRANSITIONS if frm == self]

    def is_terminal(self) -> bool:
        return self in {OrderStatus.DELIVERED, OrderStatus.CANCELLED}

    def is_cancellable(self) -> bool:
        """Cancellation is possible until the order ships."""
        return self in {OrderStatus.PENDING, OrderStatus.CONFIRMED}

    def holds_stock(self) -> bool:
        """Whether the order's quantities are currently taken out of the ledger."""
        return self in {OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED}

    def rank(self) -> int:
        """Position along the fulfillment path, used to detect 'or later' states."""
        return _FULFILLMENT_RANK[self]


# (from, to) -> stock effect
_ORDER_TRANSITIONS: dict[tuple[OrderStatus, OrderStatus], StockEffect] = {
    (OrderStatus.PENDING, OrderStatus.CONFIRMED): StockEffect.RESERVE,
    (OrderStatus.PENDING, OrderStatus.CANCELLED): StockEffect.NONE,
    (OrderStatus.CONFIRMED, OrderStatus.PENDING): StockEffect.RELEASE,
    (OrderStatus.CONFIRMED, OrderStatus.CANCELLED): StockEffect.RELEASE,
    (OrderStatus.CONFIRMED, OrderStatus.SHIPPED): StockEffect.NONE,
    (OrderStatus.SHIPPED, OrderStatus.DELIVERED): StockEffect.NONE,
}

_FULFILLMENT_RANK: dict[OrderStatus, int] = {
    OrderStatus.PENDING: 0,
    OrderStatus.CONFIRMED: 1,
    OrderStatus.SHIPPED: 2,
    OrderStatus.DELIVERED: 3,
    OrderStatus.CANCELLED: 3,
}


@dataclass(frozen=True)
class TransitionPlan:
    """A validated transition and its stock effect.

    Attributes:
        from_status: Status before the transition.
        to_status: Status after the transition.
        stock_effect: Ledger operation the transition requires.
    """

    from_status: OrderStatus
    to_status: OrderStatus
    stock_effect: StockEffect

    @property
    def touches_stock(self) -> bool:
        """Whether the ledger must be written as part of the transition."""
        return self.stock_effect is not StockEffect.NONE


def validate_order_transition(
    order_id: str,
    current_status: OrderStatus,
    target_status: OrderStatus,
) -> TransitionPlan:
    """Validate an order transition and return its plan.

    Guards run in a fixed order so that every rejected request maps to
    exactly one error.

    Args:
        order_id: Order identifier for error messages.
        current_status: Current order status.
        target_status: Requested order status.

    Returns:
        TransitionPlan with the stock effect to apply.

    Raises:
        ImmutableOrderError: If the order is delivered or cancelled.
        AlreadyProcessedError: If the order is already in (or past) the target.
        OrderNotCancellableError: If cancelling a shipped order.
        InvalidStateTransitionError: For any other pair outside the table.
    """
    if current_status.is_terminal():
        raise ImmutableOrderError(order_id, current_status.value)

    if current_status == target_status or (
        target_status == OrderStatus.CONFIRMED
        and current_status.rank() > OrderStatus.CONFIRMED.rank()
    ):
        raise AlreadyProcessedError(order_id, current_status.value, target_status.value)

    if target_status == OrderStatus.CANCELLED and not current_status.is_cancellable():
        raise OrderNotCancellableError(order_id, current_status.value)

    effect = _ORDER_TRANSITIONS.get((current_status, target_status))
    if effect is None:
        raise InvalidStateTransitionError(
            order_id,
            current_status.value,
            target_status.value,
            [s.value for s in current_status.allowed_transitions()],
        )
    return TransitionPlan(
        from_status=current_status,
        to_status=target_status,
        stock_effect=effect,
    )
