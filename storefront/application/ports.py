"""Contracts of the collaborators the order core consumes.

The catalog, the cart store and the user store are owned by other parts
of the storefront. The core only needs the narrow operations below; the
SQL implementations live in ``storefront.infrastructure.repositories``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime

from storefront.domain.entities import InventoryItem
from storefront.domain.state_machines import OrderStatus
from storefront.domain.value_objects import CartLine, ItemId, UserId


class CatalogReader(ABC):
    """Read-only view of the catalog."""

    @abstractmethod
    async def lookup_item(self, item_id: ItemId) -> InventoryItem | None:
        """Get the current availability and price of an item.

        Args:
            item_id: Catalog item identifier.

        Returns:
            The item, or None if the catalog no longer has it.
        """


class CartStore(ABC):
    """Per-user cart storage."""

    @abstractmethod
    async def read_cart(self, user_id: UserId) -> list[CartLine]:
        """Get the lines of the user's cart, oldest first."""

    @abstractmethod
    async def clear_cart(self, user_id: UserId) -> None:
        """Remove every line of the user's cart."""


class UserStore(ABC):
    """User directory."""

    @abstractmethod
    async def is_active_user(self, user_id: UserId) -> bool:
        """Check that the user exists and may place orders."""


@dataclass(frozen=True)
class OrderFilter:
    """Criteria for order listings. Unset fields do not filter.

    Attributes:
        status: Only orders in this status.
        user_id: Only orders owned by this user.
        created_from: Created at or after this instant.
        created_to: Created at or before this instant.
        min_total_cents: Total at least this amount.
        max_total_cents: Total at most this amount.
        order_number: Case-insensitive substring of the order number.
    """

    status: OrderStatus | None = None
    user_id: UserId | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    min_total_cents: int | None = None
    max_total_cents: int | None = None
    order_number: str | None = None
