"""The Order aggregate and the inventory item view it is checked against."""

from dataclasses import dataclass, field
from datetime import datetime

from storefront.domain.base import AggregateRoot, Entity, utc_now
from storefront.domain.events import (
    OrderCancelled,
    OrderConfirmed,
    OrderCreated,
    OrderDelivered,
    OrderReverted,
    OrderShipped,
)
from storefront.domain.exceptions import EmptyCartError, OrderTotalMismatchError
from storefront.domain.state_machines import (
    OrderStatus,
    StockEffect,
    TransitionPlan,
    validate_order_transition,
)
from storefront.domain.value_objects import (
    CartSnapshot,
    ItemId,
    Money,
    OrderId,
    OrderLine,
    OrderNumber,
    ShippingAddress,
    StatusChange,
    UserId,
)


# ============================================================================
# Inventory Item
# ============================================================================


@dataclass(eq=False)
class InventoryItem(Entity[ItemId]):
    """Catalog item as seen by the order core.

    The catalog owns the item; the core reads its availability and price
    and writes its quantity only through the inventory ledger.

    Attributes:
        id: Item identifier.
        name: Display name.
        available: Quantity on hand, never negative.
        active: Whether the item is still sold.
        unit_price: Current catalog price.
    """

    name: str
    available: int
    active: bool
    unit_price: Money

    def __post_init__(self) -> None:
        if self.available < 0:
            raise ValueError(f"Available quantity cannot be negative: {self.available}")

    def can_supply(self, quantity: int) -> bool:
        """Check whether current stock covers the quantity."""
        return self.available >= quantity


# ============================================================================
# Order Aggregate Root
# ============================================================================


@dataclass(frozen=True)
class StockRequirement:
    """Total quantity an order needs from one item."""

    item_id: ItemId
    item_name: str
    quantity: int


@dataclass(kw_only=True, eq=False)
class Order(AggregateRoot[OrderId]):
    """Order aggregate root.

    An order is an immutable record of a checkout: its lines and total
    never change after creation. Only the status (and the fields that
    go with it) moves, and only along the order state machine.

    Attributes:
        id: Unique order identifier.
        user_id: Owning user.
        order_number: Human-readable order number.
        lines: Priced line snapshot.
        total: Sum of the line totals.
        shipping_address: Shipping destination.
        status: Current order status.
        cancellation_reason: Reason given when the order was cancelled.
        status_history: Every status write, oldest first.
    """

    id: OrderId
    user_id: UserId
    order_number: OrderNumber
    lines: tuple[OrderLine, ...]
    total: Money
    shipping_address: ShippingAddress
    status: OrderStatus = OrderStatus.PENDING
    cancellation_reason: str | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    status_history: list[StatusChange] = field(default_factory=list, compare=False)

    def __post_init__(self) -> None:
        """Enforce the line and total invariants."""
        self.lines = tuple(self.lines)
        if not self.lines:
            raise EmptyCartError(str(self.user_id))
        lines_total = self.lines_total
        if lines_total != self.total:
            raise OrderTotalMismatchError(
                str(self.id), self.total.amount_cents, lines_total.amount_cents
            )

    @classmethod
    def create(
        cls,
        user_id: UserId,
        snapshot: CartSnapshot,
        shipping_address: ShippingAddress,
        order_number: OrderNumber,
        order_id: OrderId | None = None,
    ) -> "Order":
        """Create a pending order from a validated cart snapshot.

        Args:
            user_id: Owning user.
            snapshot: Validated, repriced cart lines.
            shipping_address: Shipping destination.
            order_number: Pre-generated order number.
            order_id: Optional pre-generated order ID.

        Returns:
            New Order in PENDING status.

        Raises:
            EmptyCartError: If the snapshot has no lines.
        """
        if snapshot.is_empty:
            raise EmptyCartError(str(user_id), list(snapshot.unavailable_item_ids))

        now = utc_now()
        order = cls(
            id=order_id or OrderId.generate(),
            user_id=user_id,
            order_number=order_number,
            lines=snapshot.lines,
            total=snapshot.total,
            shipping_address=shipping_address,
            created_at=now,
            updated_at=now,
            status_history=[
                StatusChange(
                    from_status=None,
                    to_status=OrderStatus.PENDING,
                    actor=str(user_id),
                    reason="Order created from cart",
                    changed_at=now,
                )
            ],
        )
        order._record_event(
            OrderCreated(
                aggregate_id=str(order.id),
                order_number=str(order.order_number),
                user_id=str(user_id),
                line_count=len(order.lines),
                total_cents=order.total.amount_cents,
                currency=order.total.currency,
            )
        )
        return order

    # -------------------------------------------------------------------------
    # Query Methods
    # -------------------------------------------------------------------------

    @property
    def lines_total(self) -> Money:
        """Recompute the total from the lines."""
        total = Money.zero(self.lines[0].unit_price.currency)
        for line in self.lines:
            total = total + line.line_total
        return total

    @property
    def item_count(self) -> int:
        """Sum of all line quantities."""
        return sum(line.quantity for line in self.lines)

    def is_owned_by(self, user_id: UserId) -> bool:
        return self.user_id == user_id

    def stock_requirements(self) -> list[StockRequirement]:
        """Quantities per item, in ascending item-id order.

        The fixed order keeps concurrent multi-item ledger writes from
        locking rows in opposite orders.
        """
        merged: dict[ItemId, StockRequirement] = {}
        for line in self.lines:
            current = merged.get(line.item_id)
            quantity = line.quantity + (current.quantity if current else 0)
            merged[line.item_id] = StockRequirement(line.item_id, line.item_name, quantity)
        return [merged[key] for key in sorted(merged, key=lambda item_id: item_id.value)]

    # -------------------------------------------------------------------------
    # State Transitions
    # -------------------------------------------------------------------------

    def transition_to(
        self,
        target: OrderStatus,
        actor: str,
        reason: str | None = None,
    ) -> TransitionPlan:
        """Move the order to a new status.

        The caller applies the returned plan's stock effect in the same
        transaction that persists the new status.

        Args:
            target: Requested status.
            actor: Who initiated the transition.
            reason: Optional reason, kept as cancellation reason on cancel.

        Returns:
            The validated TransitionPlan.

        Raises:
            StateError: If the state machine rejects the transition.
        """
        plan = validate_order_transition(str(self.id), self.status, target)
        now = utc_now()

        if target == OrderStatus.CONFIRMED:
            self.confirmed_at = now
        elif target == OrderStatus.PENDING:
            self.confirmed_at = None
        elif target == OrderStatus.SHIPPED:
            self.shipped_at = now
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif target == OrderStatus.CANCELLED:
            self.cancelled_at = now
            self.cancellation_reason = reason or None

        self.status = target
        self.status_history.append(
            StatusChange(
                from_status=plan.from_status,
                to_status=target,
                actor=actor,
                reason=reason,
                changed_at=now,
            )
        )
        self._bump_version(now)
        self._record_transition_event(plan, actor, reason)
        return plan

    def _record_transition_event(
        self, plan: TransitionPlan, actor: str, reason: str | None
    ) -> None:
        common = {"aggregate_id": str(self.id), "actor": actor}
        if plan.to_status == OrderStatus.CONFIRMED:
            self._record_event(OrderConfirmed(**common, confirmed_at=self.confirmed_at))
        elif plan.to_status == OrderStatus.PENDING:
            self._record_event(OrderReverted(**common, reason=reason))
        elif plan.to_status == OrderStatus.SHIPPED:
            self._record_event(OrderShipped(**common, shipped_at=self.shipped_at))
        elif plan.to_status == OrderStatus.DELIVERED:
            self._record_event(OrderDelivered(**common, delivered_at=self.delivered_at))
        elif plan.to_status == OrderStatus.CANCELLED:
            self._record_event(
                OrderCancelled(
                    aggregate_id=str(self.id),
                    cancelled_by=actor,
                    reason=self.cancellation_reason,
                    stock_released=plan.stock_effect == StockEffect.RELEASE,
                )
            )
