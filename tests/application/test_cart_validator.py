"""Tests for cart snapshot validation."""

import pytest

from storefront.application.cart_validator import CartSnapshotValidator, merge_cart_lines
from storefront.application.ports import CatalogReader
from storefront.domain import CartLine, InventoryItem, ItemId, Money, UserId
from storefront.domain.exceptions import (
    EmptyCartError,
    InsufficientStockError,
    ItemUnavailableError,
)
from storefront.infrastructure.repositories import SqlCatalogReader

USER = UserId("user-1")


class InMemoryCatalog(CatalogReader):
    """Catalog backed by a dict."""

    def __init__(self, *items: InventoryItem) -> None:
        self.items = {item.id: item for item in items}
        self.lookups: list[str] = []

    async def lookup_item(self, item_id: ItemId) -> InventoryItem | None:
        self.lookups.append(item_id.value)
        return self.items.get(item_id)


def make_item(item_id: str, available: int = 10, price: int = 1000, active: bool = True) -> InventoryItem:
    """Create a catalog item."""
    return InventoryItem(
        id=ItemId(item_id),
        name=f"Item {item_id}",
        available=available,
        active=active,
        unit_price=Money(price),
    )


def line(item_id: str, quantity: int, price: int = 1000) -> CartLine:
    """Create a cart line."""
    return CartLine(ItemId(item_id), quantity, Money(price))


class TestMergeCartLines:
    """Tests for duplicate line merging."""

    def test_duplicates_are_summed_in_first_seen_order(self) -> None:
        """Lines for the same item are merged."""
        merged = merge_cart_lines([line("B", 1), line("A", 2), line("B", 3)])
        assert [(m.item_id.value, m.quantity) for m in merged] == [("B", 4), ("A", 2)]


class TestCartSnapshotValidator:
    """Tests for CartSnapshotValidator."""

    @pytest.mark.asyncio
    async def test_prices_are_refreshed(self) -> None:
        """Lines are repriced at the current catalog price."""
        validator = CartSnapshotValidator(InMemoryCatalog(make_item("A", price=1200)))

        snapshot = await validator.validate(USER, [line("A", 2, price=1000)])

        (order_line,) = snapshot.lines
        assert order_line.unit_price == Money(1200)
        assert order_line.item_name == "Item A"
        assert snapshot.total == Money(2400)

    @pytest.mark.asyncio
    async def test_inactive_item_is_dropped(self) -> None:
        """A deactivated item is dropped while other lines remain."""
        catalog = InMemoryCatalog(make_item("A"), make_item("B", active=False))

        snapshot = await CartSnapshotValidator(catalog).validate(USER, [line("A", 1), line("B", 1)])

        assert [l.item_id.value for l in snapshot.lines] == ["A"]
        assert snapshot.unavailable_item_ids == ("B",)

    @pytest.mark.asyncio
    async def test_only_unavailable_items_is_empty_cart(self) -> None:
        """If nothing remains after dropping, the cart is empty."""
        catalog = InMemoryCatalog(make_item("B", active=False))

        with pytest.raises(EmptyCartError) as exc_info:
            await CartSnapshotValidator(catalog).validate(USER, [line("B", 1), line("gone", 1)])

        assert exc_info.value.details["unavailable_item_ids"] == ["B", "gone"]

    @pytest.mark.asyncio
    async def test_empty_cart(self) -> None:
        """A cart without lines is empty."""
        with pytest.raises(EmptyCartError):
            await CartSnapshotValidator(InMemoryCatalog()).validate(USER, [])

    @pytest.mark.asyncio
    async def test_strict_mode_rejects_unavailable_item(self) -> None:
        """Strict validation fails on the first unavailable item."""
        catalog = InMemoryCatalog(make_item("A"), make_item("B", active=False))

        with pytest.raises(ItemUnavailableError) as exc_info:
            await CartSnapshotValidator(catalog).validate(
                USER, [line("A", 1), line("B", 1)], strict=True
            )

        assert exc_info.value.item_id == "B"

    @pytest.mark.asyncio
    async def test_all_shortfalls_reported(self) -> None:
        """Every short item is itemized in one error."""
        catalog = InMemoryCatalog(make_item("A", available=1), make_item("B", available=0), make_item("C"))

        with pytest.raises(InsufficientStockError) as exc_info:
            await CartSnapshotValidator(catalog).validate(
                USER, [line("A", 2), line("B", 1), line("C", 1)]
            )

        assert [(s.item_id, s.requested, s.available) for s in exc_info.value.shortfalls] == [
            ("A", 2, 1),
            ("B", 1, 0),
        ]

    @pytest.mark.asyncio
    async def test_merged_quantity_is_checked(self) -> None:
        """Stock is checked against the merged quantity."""
        catalog = InMemoryCatalog(make_item("A", available=3))

        with pytest.raises(InsufficientStockError):
            await CartSnapshotValidator(catalog).validate(USER, [line("A", 2), line("A", 2)])

        assert catalog.lookups == ["A"]

    @pytest.mark.asyncio
    async def test_against_sql_catalog(self, session_factory, db) -> None:
        """The validator works over the SQL catalog and never writes stock."""
        await db.item("A", quantity=5, price_cents=250)

        async with session_factory() as session:
            snapshot = await CartSnapshotValidator(SqlCatalogReader(session)).validate(
                USER, [line("A", 5, price=100)]
            )

        assert snapshot.total == Money(1250)
        assert await db.stock("A") == 5
