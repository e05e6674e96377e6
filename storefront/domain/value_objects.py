"""Immutable values of the order domain: identifiers, prices, addresses, lines."""

import itertools
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Self
from uuid import UUID, uuid4

from storefront.domain.base import ValueObject, utc_now
from storefront.domain.exceptions import (
    CurrencyMismatchError,
    InvalidQuantityError,
    NegativeMoneyError,
)
from storefront.domain.state_machines import OrderStatus


# ============================================================================
# Typed Identifiers
# ============================================================================


@dataclass(frozen=True)
class OrderId(ValueObject):
    """UUID assigned to an order when it is created."""

    value: UUID

    @classmethod
    def generate(cls) -> Self:
        return cls(value=uuid4())

    @classmethod
    def from_string(cls, value: str) -> Self:
        """Parse the textual form used in URLs and the database.

        Raises:
            ValueError: ``value`` is not a UUID.
        """
        return cls(value=UUID(value))

    def __str__(self) -> str:
        return str(self.value)


def _require_text(value: str, label: str) -> None:
    if not value or not value.strip():
        raise ValueError(f"{label} cannot be empty")


@dataclass(frozen=True)
class UserId(ValueObject):
    """Opaque ID of the shopper, as sent by the gateway."""

    value: str

    def __post_init__(self) -> None:
        _require_text(self.value, "User ID")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ItemId(ValueObject):
    """Catalog key of a sellable inventory item."""

    value: str

    def __post_init__(self) -> None:
        _require_text(self.value, "Item ID")

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Order Number
# ============================================================================


_order_sequence = itertools.count(1)


@dataclass(frozen=True)
class OrderNumber(ValueObject):
    """Human-readable order number.

    Format: ``<PREFIX>-<epoch millis>-<sequence>``. The wall-clock part
    distinguishes deployments and restarts; the per-process sequence
    distinguishes orders created within the same millisecond.
    """

    value: str

    @classmethod
    def generate(cls, prefix: str = "ORD", now_ms: int | None = None) -> Self:
        """Generate the next order number.

        Args:
            prefix: Number prefix.
            now_ms: Wall-clock milliseconds, defaults to the current time.

        Returns:
            New OrderNumber.
        """
        millis = now_ms if now_ms is not None else time.time_ns() // 1_000_000
        sequence = next(_order_sequence)
        return cls(value=f"{prefix}-{millis}-{sequence:04d}")

    def __str__(self) -> str:
        return self.value


# ============================================================================
# Money Value Object
# ============================================================================


_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€", "GBP": "£"}
_CENT = Decimal("0.01")


@dataclass(frozen=True)
class Money(ValueObject):
    """Non-negative price or total, held as an integer count of cents.

    Attributes:
        amount_cents: Minor units; never negative.
        currency: Upper-cased ISO 4217 code.
    """

    amount_cents: int
    currency: str = "USD"

    def __post_init__(self) -> None:
        if self.amount_cents < 0:
            raise NegativeMoneyError(self.amount_cents)
        object.__setattr__(self, "currency", self.currency.upper())

    @classmethod
    def zero(cls, currency: str = "USD") -> Self:
        return cls(0, currency)

    @classmethod
    def from_decimal(cls, amount: Decimal, currency: str = "USD") -> Self:
        """Convert a major-unit amount such as ``Decimal("19.995")``.

        Half cents round up.
        """
        rounded = amount.quantize(_CENT, rounding=ROUND_HALF_UP)
        return cls(int(rounded.scaleb(2)), currency)

    def to_decimal(self) -> Decimal:
        return Decimal(self.amount_cents).scaleb(-2)

    def _same_currency(self, other: "Money") -> None:
        if other.currency != self.currency:
            raise CurrencyMismatchError(self.currency, other.currency)

    def __add__(self, other: "Money") -> "Money":
        self._same_currency(other)
        return Money(self.amount_cents + other.amount_cents, self.currency)

    def __mul__(self, quantity: int) -> "Money":
        return Money(self.amount_cents * quantity, self.currency)

    __rmul__ = __mul__

    def __str__(self) -> str:
        major = self.to_decimal().quantize(_CENT)
        return f"{_CURRENCY_SYMBOLS.get(self.currency, '')}{major} {self.currency}"


# ============================================================================
# Shipping Address
# ============================================================================


@dataclass(frozen=True)
class ShippingAddress(ValueObject):
    """Where an order is delivered. All parts are required and stored trimmed."""

    street: str
    city: str
    region: str
    postal_code: str
    country: str

    _PARTS = ("street", "city", "region", "postal_code", "country")

    def __post_init__(self) -> None:
        for name in self._PARTS:
            value = getattr(self, name)
            _require_text(value, f"Shipping address {name}")
            object.__setattr__(self, name, value.strip())

    def format_single_line(self) -> str:
        return ", ".join(getattr(self, name) for name in self._PARTS)


# ============================================================================
# Cart and Order Lines
# ============================================================================


@dataclass(frozen=True)
class CartLine(ValueObject):
    """A line of a user's cart as read from the cart store.

    The captured price is informational only; it is replaced by the
    catalog price when the cart is validated.

    Attributes:
        item_id: Referenced inventory item.
        quantity: Requested quantity (at least 1).
        unit_price: Price captured when the item was added.
    """

    item_id: ItemId
    quantity: int
    unit_price: Money

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidQuantityError(self.quantity)


@dataclass(frozen=True)
class OrderLine(ValueObject):
    """An immutable priced line of an order.

    The item name is denormalized so the order history survives the
    catalog item being renamed, repriced or deleted.

    Attributes:
        item_id: Weak reference to the inventory item.
        item_name: Item name at the time of order.
        quantity: Ordered quantity.
        unit_price: Price per unit at the time of order.
    """

    item_id: ItemId
    item_name: str
    quantity: int
    unit_price: Money

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise InvalidQuantityError(self.quantity)

    @property
    def line_total(self) -> Money:
        """Unit price multiplied by quantity."""
        return self.unit_price * self.quantity


@dataclass(frozen=True)
class CartSnapshot(ValueObject):
    """Point-in-time, revalidated and repriced copy of a cart.

    Attributes:
        lines: Orderable lines at current catalog prices.
        unavailable_item_ids: Items dropped because they are missing or inactive.
    """

    lines: tuple[OrderLine, ...]
    unavailable_item_ids: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.lines

    @property
    def total(self) -> Money:
        """Sum of the line totals."""
        if not self.lines:
            return Money.zero()
        total = Money.zero(self.lines[0].unit_price.currency)
        for line in self.lines:
            total = total + line.line_total
        return total


@dataclass(frozen=True)
class StockShortfall(ValueObject):
    """Requested versus available quantity for one item.

    Attributes:
        item_id: Item that is short.
        item_name: Item name, when known.
        requested: Quantity the order needs.
        available: Quantity the ledger holds.
    """

    item_id: str
    requested: int
    available: int
    item_name: str | None = None

    @property
    def missing(self) -> int:
        return max(self.requested - self.available, 0)


# ============================================================================
# Status History
# ============================================================================


@dataclass(frozen=True)
class StatusChange(ValueObject):
    """One entry of an order's status history."""

    from_status: OrderStatus | None
    to_status: OrderStatus
    actor: str | None = None
    reason: str | None = None
    changed_at: datetime = field(default_factory=utc_now)
