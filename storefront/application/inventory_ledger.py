"""Inventory ledger.

Owns the per-item available quantity. All writes are single SQL
statements evaluated by the database against the row's current value,
so two concurrent reservations of the same item can never both succeed
when together they exceed the stock:

    UPDATE inventory_items
       SET quantity = quantity - :qty, version = version + 1
     WHERE id = :item_id AND quantity >= :qty

The ledger never commits. It writes inside the caller's transaction so
the stock change and the order status write become visible together.
"""

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.entities import StockRequirement
from storefront.domain.exceptions import (
    InsufficientStockError,
    InvalidQuantityError,
    ItemNotFoundError,
)
from storefront.domain.value_objects import ItemId, StockShortfall
from storefront.infrastructure.models import InventoryItemModel

logger = structlog.get_logger()


class InventoryLedger:
    """Atomic reserve/release operations on inventory quantities.

    Example usage:
        async with transaction(session_factory, "confirm") as session:
            ledger = InventoryLedger(session)
            remaining = await ledger.reserve(ItemId("sku-1"), 3)
    """

    def __init__(self, session: AsyncSession) -> None:
        """Initialize ledger with the session of the enclosing transaction.

        Args:
            session: Async SQLAlchemy session.
        """
        self.session = session

    async def available(self, item_id: ItemId) -> int:
        """Get the current quantity of an item.

        Raises:
            ItemNotFoundError: If the item does not exist.
        """
        result = await self.session.execute(
            select(InventoryItemModel.quantity).where(InventoryItemModel.id == item_id.value)
        )
        quantity = result.scalar_one_or_none()
        if quantity is None:
            raise ItemNotFoundError(item_id.value)
        return quantity

    async def reserve(self, item_id: ItemId, quantity: int, item_name: str | None = None) -> int:
        """Take quantity out of stock.

        Args:
            item_id: Item to decrement.
            quantity: Units to take (at least 1).
            item_name: Name reported in a shortfall.

        Returns:
            The quantity left after the decrement.

        Raises:
            InvalidQuantityError: If quantity is below 1.
            InsufficientStockError: If the item holds less than quantity.
            ItemNotFoundError: If the item does not exist.
        """
        shortfall = await self._try_reserve(item_id, quantity, item_name)
        if shortfall is not None:
            raise InsufficientStockError([shortfall])
        return await self.available(item_id)

    async def release(self, item_id: ItemId, quantity: int) -> int | None:
        """Put quantity back into stock.

        Releasing to an item that no longer exists is a no-op.

        Args:
            item_id: Item to increment.
            quantity: Units to return (at least 1).

        Returns:
            The quantity after the increment, or None if the item is gone.
        """
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        result = await self.session.execute(
            update(InventoryItemModel)
            .where(InventoryItemModel.id == item_id.value)
            .values(
                quantity=InventoryItemModel.quantity + quantity,
                version=InventoryItemModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.warning(
                "Stock release skipped for missing item",
                item_id=item_id.value,
                quantity=quantity,
            )
            return None

        remaining = await self.available(item_id)
        logger.debug("Stock released", item_id=item_id.value, quantity=quantity, available=remaining)
        return remaining

    async def reserve_all(self, requirements: list[StockRequirement]) -> None:
        """Reserve every requirement or report all shortfalls.

        Requirements are written in ascending item-id order. Every item is
        tried so the error lists all shortfalls; decrements that did
        succeed are undone when the caller's transaction rolls back.

        Raises:
            InsufficientStockError: If any item is short.
            ItemNotFoundError: If any item does not exist.
        """
        shortfalls: list[StockShortfall] = []
        for requirement in sorted(requirements, key=lambda r: r.item_id.value):
            shortfall = await self._try_reserve(
                requirement.item_id, requirement.quantity, requirement.item_name
            )
            if shortfall is not None:
                shortfalls.append(shortfall)

        if shortfalls:
            logger.info(
                "Stock reservation rejected",
                shortfalls=[s.item_id for s in shortfalls],
            )
            raise InsufficientStockError(shortfalls)

    async def release_all(self, requirements: list[StockRequirement]) -> None:
        """Release every requirement, in ascending item-id order."""
        for requirement in sorted(requirements, key=lambda r: r.item_id.value):
            await self.release(requirement.item_id, requirement.quantity)

    async def _try_reserve(
        self, item_id: ItemId, quantity: int, item_name: str | None
    ) -> StockShortfall | None:
        if quantity < 1:
            raise InvalidQuantityError(quantity)

        result = await self.session.execute(
            update(InventoryItemModel)
            .where(
                InventoryItemModel.id == item_id.value,
                InventoryItemModel.quantity >= quantity,
            )
            .values(
                quantity=InventoryItemModel.quantity - quantity,
                version=InventoryItemModel.version + 1,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            logger.debug("Stock reserved", item_id=item_id.value, quantity=quantity)
            return None

        # Either the row is missing or the guard failed
        row = (
            await self.session.execute(
                select(InventoryItemModel.quantity, InventoryItemModel.name).where(
                    InventoryItemModel.id == item_id.value
                )
            )
        ).one_or_none()
        if row is None:
            raise ItemNotFoundError(item_id.value)
        return StockShortfall(
            item_id=item_id.value,
            requested=quantity,
            available=row.quantity,
            item_name=item_name or row.name,
        )
