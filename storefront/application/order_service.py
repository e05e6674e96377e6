"""Use cases of the order core: checkout, transitions, lookups.

Each use case opens its own transaction. The stock writes of a transition
and its status write commit together or not at all.
"""

import math
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from storefront.application.cart_validator import CartSnapshotValidator
from storefront.application.inventory_ledger import InventoryLedger
from storefront.application.ports import OrderFilter
from storefront.domain.entities import Order
from storefront.domain.exceptions import (
    DomainError,
    OrderNotFoundError,
    ReasonTooLongError,
    TransactionAbortedError,
    TransitionNotPermittedError,
    UserNotActiveError,
)
from storefront.domain.state_machines import OrderStatus, StockEffect, TransitionPlan
from storefront.domain.value_objects import (
    CartLine,
    OrderId,
    OrderNumber,
    ShippingAddress,
    UserId,
)
from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_session_factory
from storefront.infrastructure.repositories import (
    SqlCartStore,
    SqlCatalogReader,
    SqlOrderRepository,
    SqlUserStore,
)
from storefront.infrastructure.unit_of_work import transaction

logger = structlog.get_logger()

MAX_REASON_LENGTH = 200


# ============================================================================
# Service Result Types
# ============================================================================


@dataclass
class Pagination:
    """Pagination block of an order listing."""

    current_page: int
    total_pages: int
    total_orders: int
    page_size: int

    @property
    def has_next(self) -> bool:
        return self.current_page < self.total_pages

    @property
    def has_prev(self) -> bool:
        return self.current_page > 1


@dataclass
class CreateOrderResult:
    """Result of creating an order."""

    order: Order | None = None
    unavailable_item_ids: list[str] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class TransitionOrderResult:
    """Result of an order status transition."""

    order: Order | None = None
    from_status: OrderStatus | None = None
    stock_effect: StockEffect | None = None
    attempts: int = 0
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class GetOrderResult:
    """Result of getting an order."""

    order: Order | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None
    details: dict[str, Any] = field(default_factory=dict)
    retryable: bool = False


@dataclass
class ListOrdersResult:
    """Result of listing orders."""

    orders: list[Order] = field(default_factory=list)
    pagination: Pagination | None = None
    success: bool = True
    error: str | None = None
    error_code: str | None = None


def _failure(exc: DomainError) -> dict[str, Any]:
    """Result fields describing a domain error."""
    return {
        "success": False,
        "error": exc.message,
        "error_code": exc.error_code,
        "details": exc.details,
        "retryable": exc.retryable,
    }


def _parse_order_id(order_id: str) -> OrderId:
    try:
        return OrderId.from_string(order_id)
    except ValueError as e:
        raise OrderNotFoundError(order_id) from e


def _to_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


# ============================================================================
# Order Service
# ============================================================================


class OrderService:
    """Application service for the order core.

    Handles the order lifecycle:
    - Create order from a cart (stock is checked, not taken)
    - Confirm (reserve stock), revert or cancel (release stock)
    - Ship and deliver
    - Lookups and listings

    Only ``TransactionAbortedError`` is retried, and only the transition
    attempt itself, up to ``max_attempts`` times.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession] | None = None,
        request_id: str | None = None,
        max_attempts: int | None = None,
    ) -> None:
        """Initialize service.

        Args:
            session_factory: Factory for transaction sessions.
            request_id: Request ID for correlation.
            max_attempts: Attempts per transition, defaults to settings.

        Raises:
            ValueError: If max_attempts is below 1.
        """
        if max_attempts is None:
            max_attempts = settings.transition_max_attempts
        if max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {max_attempts}")
        self.session_factory = session_factory or get_session_factory()
        self.request_id = request_id
        self.max_attempts = max_attempts

    # -------------------------------------------------------------------------
    # Order Creation
    # -------------------------------------------------------------------------

    async def create_order(
        self,
        user_id: str,
        cart_lines: list[CartLine],
        shipping_address: ShippingAddress,
    ) -> CreateOrderResult:
        """Create a pending order from the given cart lines.

        The lines are revalidated and repriced against the current
        catalog. No stock is taken until the order is confirmed.

        Args:
            user_id: Owning user.
            cart_lines: Lines of the user's cart.
            shipping_address: Shipping destination.

        Returns:
            CreateOrderResult with the created order.
        """
        return await self._create(user_id, shipping_address, cart_lines=cart_lines)

    async def create_order_from_cart(
        self,
        user_id: str,
        shipping_address: ShippingAddress,
    ) -> CreateOrderResult:
        """Create a pending order from the user's stored cart.

        The cart is read and, once the order is written, cleared in the
        same transaction. A failed validation leaves the cart untouched.

        Args:
            user_id: Owning user.
            shipping_address: Shipping destination.

        Returns:
            CreateOrderResult with the created order.
        """
        return await self._create(user_id, shipping_address, cart_lines=None)

    async def _create(
        self,
        user_id: str,
        shipping_address: ShippingAddress,
        cart_lines: list[CartLine] | None,
    ) -> CreateOrderResult:
        try:
            owner = UserId(user_id)
            async with transaction(self.session_factory, "create_order") as session:
                if not await SqlUserStore(session).is_active_user(owner):
                    raise UserNotActiveError(user_id)

                cart_store = SqlCartStore(session)
                from_cart = cart_lines is None
                lines = await cart_store.read_cart(owner) if from_cart else cart_lines

                snapshot = await CartSnapshotValidator(SqlCatalogReader(session)).validate(
                    owner, lines
                )
                order = Order.create(
                    user_id=owner,
                    snapshot=snapshot,
                    shipping_address=shipping_address,
                    order_number=OrderNumber.generate(settings.order_number_prefix),
                )
                await SqlOrderRepository(session).add(order)

                if from_cart:
                    await cart_store.clear_cart(owner)

        except DomainError as e:
            logger.info(
                "Order creation rejected",
                user_id=user_id,
                error_code=e.error_code,
                details=e.details,
                request_id=self.request_id,
            )
            return CreateOrderResult(**_failure(e))

        logger.info(
            "Order created",
            order_id=str(order.id),
            order_number=str(order.order_number),
            user_id=user_id,
            total_cents=order.total.amount_cents,
            line_count=len(order.lines),
            dropped_items=list(snapshot.unavailable_item_ids),
            request_id=self.request_id,
        )
        self._publish_events(order)

        return CreateOrderResult(
            order=order,
            unavailable_item_ids=list(snapshot.unavailable_item_ids),
        )

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def transition_order(
        self,
        order_id: str,
        target_status: OrderStatus,
        acting_user_id: str,
        is_admin: bool,
        reason: str | None = None,
    ) -> TransitionOrderResult:
        """Move an order to a new status.

        Admins may request any transition of the state machine. Other
        users only see their own orders and may only cancel them.

        Args:
            order_id: Order identifier.
            target_status: Requested status.
            acting_user_id: Who requests the transition.
            is_admin: Whether the actor is an administrator.
            reason: Optional reason, stored as cancellation reason on cancel.

        Returns:
            TransitionOrderResult with the updated order.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                order, plan = await self._attempt_transition(
                    order_id, target_status, acting_user_id, is_admin, reason
                )
            except TransactionAbortedError as e:
                if attempt < self.max_attempts:
                    logger.warning(
                        "Retrying aborted transition",
                        order_id=order_id,
                        to_status=target_status.value,
                        attempt=attempt,
                        request_id=self.request_id,
                    )
                    continue
                logger.error(
                    "Transition aborted, attempts exhausted",
                    order_id=order_id,
                    to_status=target_status.value,
                    attempts=attempt,
                    request_id=self.request_id,
                )
                return TransitionOrderResult(attempts=attempt, **_failure(e))
            except DomainError as e:
                logger.info(
                    "Order transition rejected",
                    order_id=order_id,
                    to_status=target_status.value,
                    error_code=e.error_code,
                    actor=acting_user_id,
                    request_id=self.request_id,
                )
                return TransitionOrderResult(attempts=attempt, **_failure(e))
            break

        logger.info(
            "Order status transitioned",
            order_id=order_id,
            from_status=plan.from_status.value,
            to_status=plan.to_status.value,
            stock_effect=plan.stock_effect.value,
            actor=acting_user_id,
            attempts=attempt,
            request_id=self.request_id,
        )
        self._publish_events(order)

        return TransitionOrderResult(
            order=order,
            from_status=plan.from_status,
            stock_effect=plan.stock_effect,
            attempts=attempt,
        )

    async def _attempt_transition(
        self,
        order_id: str,
        target_status: OrderStatus,
        acting_user_id: str,
        is_admin: bool,
        reason: str | None,
    ) -> tuple[Order, TransitionPlan]:
        """Run one transition attempt in its own transaction."""
        if reason is not None and len(reason) > MAX_REASON_LENGTH:
            raise ReasonTooLongError(len(reason), MAX_REASON_LENGTH)

        oid = _parse_order_id(order_id)
        owner = None if is_admin else UserId(acting_user_id)

        async with transaction(self.session_factory, "transition_order", order_id) as session:
            repo = SqlOrderRepository(session)
            order = await repo.get(oid, owner_id=owner, for_update=True)
            if order is None:
                raise OrderNotFoundError(order_id)

            if not is_admin and target_status != OrderStatus.CANCELLED:
                raise TransitionNotPermittedError(order_id, acting_user_id, target_status.value)

            loaded_version = order.version
            plan = order.transition_to(target_status, actor=acting_user_id, reason=reason)
            await repo.save_transition(order, loaded_version)

            ledger = InventoryLedger(session)
            if plan.stock_effect == StockEffect.RESERVE:
                await ledger.reserve_all(order.stock_requirements())
            elif plan.stock_effect == StockEffect.RELEASE:
                await ledger.release_all(order.stock_requirements())

        return order, plan

    async def confirm_order(self, order_id: str, actor: str) -> TransitionOrderResult:
        """Confirm a pending order, reserving its stock (admin)."""
        return await self.transition_order(order_id, OrderStatus.CONFIRMED, actor, is_admin=True)

    async def revert_order(
        self, order_id: str, actor: str, reason: str | None = None
    ) -> TransitionOrderResult:
        """Move a confirmed order back to pending, releasing its stock (admin)."""
        return await self.transition_order(
            order_id, OrderStatus.PENDING, actor, is_admin=True, reason=reason
        )

    async def ship_order(self, order_id: str, actor: str) -> TransitionOrderResult:
        """Mark a confirmed order as shipped (admin)."""
        return await self.transition_order(order_id, OrderStatus.SHIPPED, actor, is_admin=True)

    async def deliver_order(self, order_id: str, actor: str) -> TransitionOrderResult:
        """Mark a shipped order as delivered (admin)."""
        return await self.transition_order(order_id, OrderStatus.DELIVERED, actor, is_admin=True)

    async def cancel_order(
        self,
        order_id: str,
        acting_user_id: str,
        is_admin: bool = False,
        reason: str | None = None,
    ) -> TransitionOrderResult:
        """Cancel an order, releasing its stock if it was confirmed.

        Args:
            order_id: Order identifier.
            acting_user_id: Who cancels.
            is_admin: Whether the actor is an administrator.
            reason: Cancellation reason.

        Returns:
            TransitionOrderResult with the cancelled order.
        """
        return await self.transition_order(
            order_id, OrderStatus.CANCELLED, acting_user_id, is_admin=is_admin, reason=reason
        )

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_order(self, order_id: str, owner_id: str | None = None) -> GetOrderResult:
        """Get an order by ID.

        Args:
            order_id: Order identifier.
            owner_id: When set, orders of other users are reported as not found.

        Returns:
            GetOrderResult with the order if found.
        """
        try:
            oid = _parse_order_id(order_id)
            owner = UserId(owner_id) if owner_id is not None else None
            async with transaction(self.session_factory, "get_order", order_id) as session:
                order = await SqlOrderRepository(session).get(oid, owner_id=owner)
            if order is None:
                raise OrderNotFoundError(order_id)
        except DomainError as e:
            return GetOrderResult(**_failure(e))

        return GetOrderResult(order=order)

    async def list_orders(
        self,
        filters: OrderFilter | None = None,
        page: int = 1,
        page_size: int | None = None,
    ) -> ListOrdersResult:
        """List orders with pagination and filtering, newest first.

        Args:
            filters: Listing criteria.
            page: Page number (1-based).
            page_size: Orders per page, capped at ``settings.max_page_size``.

        Returns:
            ListOrdersResult with the page and its pagination block.
        """
        filters = filters or OrderFilter()
        filters = OrderFilter(
            status=filters.status,
            user_id=filters.user_id,
            created_from=_to_utc(filters.created_from),
            created_to=_to_utc(filters.created_to),
            min_total_cents=filters.min_total_cents,
            max_total_cents=filters.max_total_cents,
            order_number=filters.order_number,
        )
        page = max(page, 1)
        if not page_size or page_size < 1:
            page_size = settings.default_page_size
        page_size = min(page_size, settings.max_page_size)

        try:
            async with transaction(self.session_factory, "list_orders") as session:
                orders, total = await SqlOrderRepository(session).find(
                    filters,
                    offset=(page - 1) * page_size,
                    limit=page_size,
                )
        except DomainError as e:
            return ListOrdersResult(success=False, error=e.message, error_code=e.error_code)

        return ListOrdersResult(
            orders=orders,
            pagination=Pagination(
                current_page=page,
                total_pages=math.ceil(total / page_size) if total else 0,
                total_orders=total,
                page_size=page_size,
            ),
        )

    # -------------------------------------------------------------------------
    # Events
    # -------------------------------------------------------------------------

    def _publish_events(self, order: Order) -> None:
        """Emit the order's recorded events once its transaction committed."""
        for event in order.collect_events():
            logger.info("Domain event", request_id=self.request_id, **event.to_dict())


# ============================================================================
# Service Factory
# ============================================================================


def get_order_service(
    request_id: str | None = None,
    session_factory: async_sessionmaker[AsyncSession] | None = None,
) -> OrderService:
    """Build an ``OrderService`` bound to one request.

    Args:
        request_id: Request ID for correlation.
        session_factory: Session factory, defaults to the application one.

    Returns:
        OrderService instance.
    """
    return OrderService(session_factory=session_factory, request_id=request_id)
