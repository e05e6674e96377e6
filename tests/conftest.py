"""Shared fixtures.

Integration tests run against a temporary SQLite file through aiosqlite,
so the real SQL paths (conditional stock updates, version checks,
BEGIN IMMEDIATE serialization) are exercised.
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from storefront.application.order_service import OrderService
from storefront.domain.value_objects import ShippingAddress
from storefront.infrastructure.database import (
    create_engine_for,
    create_session_factory,
    init_models,
)
from storefront.infrastructure.models import (
    CartLineModel,
    CartModel,
    InventoryItemModel,
    UserModel,
)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a fresh SQLite database with the full schema."""
    engine = create_engine_for(
        f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}",
        poolclass=NullPool,
    )
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database."""
    return create_session_factory(engine)


@pytest.fixture
def service(session_factory: async_sessionmaker[AsyncSession]) -> OrderService:
    """Order service bound to the test database."""
    return OrderService(session_factory=session_factory, request_id="test-request")


# ============================================================================
# Seed Data
# ============================================================================


class Seeder:
    """Writes collaborator data (users, catalog, carts) straight to the database."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def user(self, user_id: str = "user-1", active: bool = True, role: str = "user") -> str:
        async with self.session_factory() as session, session.begin():
            session.add(
                UserModel(
                    id=user_id,
                    email=f"{user_id}@example.com",
                    name=user_id.title(),
                    role=role,
                    is_active=active,
                )
            )
        return user_id

    async def item(
        self,
        item_id: str,
        quantity: int,
        price_cents: int,
        name: str | None = None,
        active: bool = True,
    ) -> str:
        async with self.session_factory() as session, session.begin():
            session.add(
                InventoryItemModel(
                    id=item_id,
                    name=name or f"Item {item_id}",
                    price_cents=price_cents,
                    quantity=quantity,
                    is_active=active,
                )
            )
        return item_id

    async def update_item(self, item_id: str, **values) -> None:
        async with self.session_factory() as session, session.begin():
            await session.execute(
                update(InventoryItemModel).where(InventoryItemModel.id == item_id).values(**values)
            )

    async def delete_item(self, item_id: str) -> None:
        async with self.session_factory() as session, session.begin():
            item = await session.get(InventoryItemModel, item_id)
            await session.delete(item)

    async def stock(self, item_id: str) -> int | None:
        async with self.session_factory() as session:
            result = await session.execute(
                select(InventoryItemModel.quantity).where(InventoryItemModel.id == item_id)
            )
            return result.scalar_one_or_none()

    async def cart(self, user_id: str, lines: list[tuple[str, int, int]]) -> None:
        """Fill the user's cart with (item_id, quantity, price_cents) lines."""
        async with self.session_factory() as session, session.begin():
            cart = CartModel(user_id=user_id)
            cart.lines = [
                CartLineModel(item_id=item_id, quantity=quantity, unit_price_cents=price)
                for item_id, quantity, price in lines
            ]
            session.add(cart)

    async def cart_size(self, user_id: str) -> int:
        async with self.session_factory() as session:
            result = await session.execute(
                select(CartLineModel)
                .join(CartModel, CartModel.id == CartLineModel.cart_id)
                .where(CartModel.user_id == user_id)
            )
            return len(result.scalars().all())


@pytest.fixture
def db(session_factory: async_sessionmaker[AsyncSession]) -> Seeder:
    """Seed helper for the test database."""
    return Seeder(session_factory)


# ============================================================================
# Domain Fixtures
# ============================================================================


@pytest.fixture
def address() -> ShippingAddress:
    """A valid shipping address."""
    return ShippingAddress(
        street="742 Evergreen Terrace",
        city="Springfield",
        region="Oregon",
        postal_code="97403",
        country="USA",
    )

