"""Repositories for database operations.

Maps between the domain model and the SQLAlchemy models. Repositories
are bound to the session of one transaction and never commit.
"""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from storefront.application.ports import CartStore, CatalogReader, OrderFilter, UserStore
from storefront.domain.entities import InventoryItem, Order
from storefront.domain.exceptions import TransactionAbortedError
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import (
    CartLine,
    ItemId,
    Money,
    OrderId,
    OrderLine,
    OrderNumber,
    ShippingAddress,
    StatusChange,
    UserId,
)
from storefront.infrastructure.models import (
    CartLineModel,
    CartModel,
    InventoryItemModel,
    OrderLineModel,
    OrderModel,
    OrderStatusHistoryModel,
    UserModel,
)


def _as_utc(value: datetime | None) -> datetime | None:
    """SQLite hands back naive datetimes; everything is stored in UTC."""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


# ============================================================================
# Order Repository
# ============================================================================


class SqlOrderRepository:
    """Repository for Order aggregates.

    Example usage:
        async with transaction(session_factory, "get_order") as session:
            repo = SqlOrderRepository(session)
            order = await repo.get(order_id)
    """

    def __init__(self, session: AsyncSession) -> None:
        """Bind the repository to the caller's session and transaction."""
        self.session = session

    async def add(self, order: Order) -> None:
        """Insert a new order with its lines and history.

        Args:
            order: Newly created order.
        """
        model = OrderModel(
            id=str(order.id),
            order_number=str(order.order_number),
            user_id=order.user_id.value,
            status=order.status.value,
            total_cents=order.total.amount_cents,
            currency=order.total.currency,
            shipping_street=order.shipping_address.street,
            shipping_city=order.shipping_address.city,
            shipping_region=order.shipping_address.region,
            shipping_postal_code=order.shipping_address.postal_code,
            shipping_country=order.shipping_address.country,
            cancellation_reason=order.cancellation_reason,
            version=order.version,
            created_at=order.created_at,
            updated_at=order.updated_at,
        )
        model.lines = [
            OrderLineModel(
                position=position,
                item_id=line.item_id.value,
                item_name=line.item_name,
                quantity=line.quantity,
                unit_price_cents=line.unit_price.amount_cents,
                line_total_cents=line.line_total.amount_cents,
            )
            for position, line in enumerate(order.lines)
        ]
        model.status_history = [_history_model(change) for change in order.status_history]
        self.session.add(model)
        await self.session.flush()

    async def get(
        self,
        order_id: OrderId,
        owner_id: UserId | None = None,
        for_update: bool = False,
    ) -> Order | None:
        """Get an order by ID.

        Args:
            order_id: Order identifier.
            owner_id: When set, only an order owned by this user is returned.
            for_update: Lock the order row until the transaction ends.

        Returns:
            Order if found (and visible), None otherwise.
        """
        query = (
            select(OrderModel)
            .where(OrderModel.id == str(order_id))
            .options(selectinload(OrderModel.lines), selectinload(OrderModel.status_history))
            .execution_options(populate_existing=True)
        )
        if owner_id is not None:
            query = query.where(OrderModel.user_id == owner_id.value)
        if for_update:
            query = query.with_for_update(of=OrderModel)

        result = await self.session.execute(query)
        model = result.scalar_one_or_none()
        return _to_entity(model) if model else None

    async def save_transition(self, order: Order, expected_version: int) -> None:
        """Persist a status transition.

        The write only applies if the row still carries the version the
        order was loaded with.

        Args:
            order: Order after ``transition_to``.
            expected_version: Version the order had when it was loaded.

        Raises:
            TransactionAbortedError: If another writer changed the order first.
        """
        result = await self.session.execute(
            update(OrderModel)
            .where(
                OrderModel.id == str(order.id),
                OrderModel.version == expected_version,
            )
            .values(
                status=order.status.value,
                cancellation_reason=order.cancellation_reason,
                confirmed_at=order.confirmed_at,
                shipped_at=order.shipped_at,
                delivered_at=order.delivered_at,
                cancelled_at=order.cancelled_at,
                updated_at=order.updated_at,
                version=order.version,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise TransactionAbortedError(
                "transition_order",
                f"order version {expected_version} is stale",
                str(order.id),
            )

        latest = order.status_history[-1]
        history = _history_model(latest)
        history.order_id = str(order.id)
        self.session.add(history)
        await self.session.flush()

    async def find(
        self,
        filters: OrderFilter,
        offset: int = 0,
        limit: int = 10,
    ) -> tuple[list[Order], int]:
        """Find orders matching the filters, newest first.

        Args:
            filters: Listing criteria.
            offset: Number of orders to skip.
            limit: Maximum number of orders to return.

        Returns:
            Tuple of (orders, total count).
        """
        conditions = _filter_conditions(filters)

        count_query = select(func.count()).select_from(OrderModel)
        if conditions:
            count_query = count_query.where(and_(*conditions))
        total = (await self.session.execute(count_query)).scalar_one()

        query = (
            select(OrderModel)
            .options(selectinload(OrderModel.lines), selectinload(OrderModel.status_history))
            .order_by(OrderModel.created_at.desc(), OrderModel.order_number.desc())
            .offset(offset)
            .limit(limit)
        )
        if conditions:
            query = query.where(and_(*conditions))

        result = await self.session.execute(query)
        return [_to_entity(model) for model in result.scalars().all()], total


def _filter_conditions(filters: OrderFilter) -> list[Any]:
    conditions: list[Any] = []
    if filters.status is not None:
        conditions.append(OrderModel.status == filters.status.value)
    if filters.user_id is not None:
        conditions.append(OrderModel.user_id == filters.user_id.value)
    if filters.created_from is not None:
        conditions.append(OrderModel.created_at >= filters.created_from)
    if filters.created_to is not None:
        conditions.append(OrderModel.created_at <= filters.created_to)
    if filters.min_total_cents is not None:
        conditions.append(OrderModel.total_cents >= filters.min_total_cents)
    if filters.max_total_cents is not None:
        conditions.append(OrderModel.total_cents <= filters.max_total_cents)
    if filters.order_number:
        conditions.append(OrderModel.order_number.ilike(f"%{filters.order_number}%"))
    return conditions


def _history_model(change: StatusChange) -> OrderStatusHistoryModel:
    return OrderStatusHistoryModel(
        from_status=change.from_status.value if change.from_status else None,
        to_status=change.to_status.value,
        actor=change.actor,
        reason=change.reason,
        created_at=change.changed_at,
    )


def _to_entity(model: OrderModel) -> Order:
    """Convert OrderModel to the Order aggregate."""
    currency = model.currency
    lines = tuple(
        OrderLine(
            item_id=ItemId(line.item_id),
            item_name=line.item_name,
            quantity=line.quantity,
            unit_price=Money(line.unit_price_cents, currency),
        )
        for line in model.lines
    )
    history = [
        StatusChange(
            from_status=OrderStatus(entry.from_status) if entry.from_status else None,
            to_status=OrderStatus(entry.to_status),
            actor=entry.actor,
            reason=entry.reason,
            changed_at=_as_utc(entry.created_at),
        )
        for entry in model.status_history
    ]
    return Order(
        id=OrderId.from_string(model.id),
        user_id=UserId(model.user_id),
        order_number=OrderNumber(model.order_number),
        lines=lines,
        total=Money(model.total_cents, currency),
        shipping_address=ShippingAddress(
            street=model.shipping_street,
            city=model.shipping_city,
            region=model.shipping_region,
            postal_code=model.shipping_postal_code,
            country=model.shipping_country,
        ),
        status=OrderStatus(model.status),
        cancellation_reason=model.cancellation_reason,
        confirmed_at=_as_utc(model.confirmed_at),
        shipped_at=_as_utc(model.shipped_at),
        delivered_at=_as_utc(model.delivered_at),
        cancelled_at=_as_utc(model.cancelled_at),
        status_history=history,
        version=model.version,
        created_at=_as_utc(model.created_at),
        updated_at=_as_utc(model.updated_at),
    )


# ============================================================================
# Collaborator Adapters
# ============================================================================


class SqlCatalogReader(CatalogReader):
    """Catalog lookups against the inventory_items table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def lookup_item(self, item_id: ItemId) -> InventoryItem | None:
        result = await self.session.execute(
            select(InventoryItemModel).where(InventoryItemModel.id == item_id.value)
        )
        model = result.scalar_one_or_none()
        if model is None:
            return None
        return InventoryItem(
            id=ItemId(model.id),
            name=model.name,
            available=model.quantity,
            active=model.is_active,
            unit_price=Money(model.price_cents, model.currency),
        )


class SqlCartStore(CartStore):
    """Cart reads and clearing against the carts tables."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def read_cart(self, user_id: UserId) -> list[CartLine]:
        result = await self.session.execute(
            select(CartLineModel)
            .join(CartModel, CartModel.id == CartLineModel.cart_id)
            .where(CartModel.user_id == user_id.value)
            .order_by(CartLineModel.id)
        )
        rows: Sequence[CartLineModel] = result.scalars().all()
        return [
            CartLine(
                item_id=ItemId(row.item_id),
                quantity=row.quantity,
                unit_price=Money(row.unit_price_cents, row.currency),
            )
            for row in rows
        ]

    async def clear_cart(self, user_id: UserId) -> None:
        cart_ids = select(CartModel.id).where(CartModel.user_id == user_id.value)
        await self.session.execute(
            delete(CartLineModel)
            .where(CartLineModel.cart_id.in_(cart_ids))
            .execution_options(synchronize_session=False)
        )


class SqlUserStore(UserStore):
    """User lookups against the users table."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def is_active_user(self, user_id: UserId) -> bool:
        result = await self.session.execute(
            select(UserModel.is_active).where(UserModel.id == user_id.value)
        )
        return bool(result.scalar_one_or_none())
