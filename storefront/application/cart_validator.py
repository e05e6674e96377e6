"""Cart snapshot validation.

Turns a mutable cart into an immutable, repriced line snapshot. The
validator only reads: it never touches the inventory ledger and never
writes the cart. Stock is taken later, when the order is confirmed.
"""

import structlog

from storefront.application.ports import CatalogReader
from storefront.domain.exceptions import (
    EmptyCartError,
    InsufficientStockError,
    ItemUnavailableError,
)
from storefront.domain.value_objects import (
    CartLine,
    CartSnapshot,
    ItemId,
    OrderLine,
    StockShortfall,
    UserId,
)

logger = structlog.get_logger()


def merge_cart_lines(lines: list[CartLine]) -> list[CartLine]:
    """Merge lines that reference the same item, keeping first-seen order.

    The merged line keeps the price captured by the first line.
    """
    merged: dict[ItemId, CartLine] = {}
    for line in lines:
        current = merged.get(line.item_id)
        if current is None:
            merged[line.item_id] = line
        else:
            merged[line.item_id] = CartLine(
                item_id=line.item_id,
                quantity=current.quantity + line.quantity,
                unit_price=current.unit_price,
            )
    return list(merged.values())


class CartSnapshotValidator:
    """Validates cart lines against the current catalog.

    For every line the current catalog item is looked up:

    - missing or inactive items are dropped from the snapshot and listed
      in ``unavailable_item_ids`` (or rejected outright in strict mode);
    - items that cannot cover the requested quantity are collected and
      reported together in one ``InsufficientStockError``;
    - the unit price is replaced by the current catalog price.
    """

    def __init__(self, catalog: CatalogReader) -> None:
        self.catalog = catalog

    async def validate(
        self,
        user_id: UserId,
        lines: list[CartLine],
        strict: bool = False,
    ) -> CartSnapshot:
        """Build a priced snapshot of the cart.

        Args:
            user_id: Owner of the cart, for errors and logs.
            lines: Cart lines as read from the cart store.
            strict: Reject the whole cart on the first unavailable item
                instead of dropping it.

        Returns:
            CartSnapshot with at least one line.

        Raises:
            ItemUnavailableError: In strict mode, if an item is missing or inactive.
            InsufficientStockError: If any item is short, listing every shortfall.
            EmptyCartError: If no orderable line remains.
        """
        order_lines: list[OrderLine] = []
        unavailable: list[str] = []
        shortfalls: list[StockShortfall] = []

        for line in merge_cart_lines(lines):
            item = await self.catalog.lookup_item(line.item_id)

            if item is None or not item.active:
                if strict:
                    raise ItemUnavailableError(line.item_id.value, item.name if item else None)
                logger.info(
                    "Dropping unavailable cart line",
                    user_id=user_id.value,
                    item_id=line.item_id.value,
                    reason="missing" if item is None else "inactive",
                )
                unavailable.append(line.item_id.value)
                continue

            if not item.can_supply(line.quantity):
                shortfalls.append(
                    StockShortfall(
                        item_id=line.item_id.value,
                        requested=line.quantity,
                        available=item.available,
                        item_name=item.name,
                    )
                )
                continue

            if item.unit_price != line.unit_price:
                logger.info(
                    "Cart price refreshed",
                    user_id=user_id.value,
                    item_id=line.item_id.value,
                    cart_price_cents=line.unit_price.amount_cents,
                    current_price_cents=item.unit_price.amount_cents,
                )

            order_lines.append(
                OrderLine(
                    item_id=line.item_id,
                    item_name=item.name,
                    quantity=line.quantity,
                    unit_price=item.unit_price,
                )
            )

        if shortfalls:
            raise InsufficientStockError(shortfalls)

        if not order_lines:
            raise EmptyCartError(user_id.value, unavailable)

        return CartSnapshot(lines=tuple(order_lines), unavailable_item_ids=tuple(unavailable))
