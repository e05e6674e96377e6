"""Error taxonomy of the order domain.

Every error belongs to one family, and the family tells the caller what
to do next:

- ``ValidationError``: the caller can fix the input (empty cart, missing
  stock, unavailable item). Never retried automatically.
- ``StateError``: the order's status does not allow the request.
- ``ConcurrencyError``: a conflicting writer aborted the atomic unit.
  Only these may be retried, and only with the same transition.
- ``NotFoundError``: no order or item with that identifier.
"""

from typing import TYPE_CHECKING, Any, ClassVar

if TYPE_CHECKING:
    from storefront.domain.value_objects import StockShortfall


class DomainError(Exception):
    """Root of the order domain errors.

    Attributes:
        error_code: Stable code returned to API clients.
        retryable: True when repeating the same call can succeed.
        message: Text for humans and logs.
        details: JSON-friendly context for the error body.
    """

    error_code: ClassVar[str] = "DOMAIN_ERROR"
    retryable: ClassVar[bool] = False

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = {} if details is None else details


class ValidationError(DomainError):
    error_code: ClassVar[str] = "VALIDATION_ERROR"


class StateError(DomainError):
    error_code: ClassVar[str] = "STATE_ERROR"


class ConcurrencyError(DomainError):
    error_code: ClassVar[str] = "CONCURRENCY_ERROR"
    retryable: ClassVar[bool] = True


class NotFoundError(DomainError):
    error_code: ClassVar[str] = "NOT_FOUND"


# ============================================================================
# Validation
# ============================================================================


class EmptyCartError(ValidationError):
    """The cart has nothing that can still be ordered.

    ``unavailable_item_ids`` lists the lines that were dropped, so the
    client can tell an empty cart from one whose items all went away.
    """

    error_code: ClassVar[str] = "EMPTY_CART"

    def __init__(self, user_id: str, unavailable_item_ids: list[str] | None = None) -> None:
        super().__init__(
            f"Cart of user {user_id} has no orderable items",
            details={"user_id": user_id, "unavailable_item_ids": list(unavailable_item_ids or [])},
        )


class ItemUnavailableError(ValidationError):
    """A cart line points at an item that is gone or inactive."""

    error_code: ClassVar[str] = "ITEM_UNAVAILABLE"

    def __init__(self, item_id: str, item_name: str | None = None) -> None:
        super().__init__(
            f"Item {item_name or item_id} is no longer available",
            details={"item_id": item_id, "item_name": item_name},
        )
        self.item_id = item_id


class InsufficientStockError(ValidationError):
    """At least one item cannot cover its requested quantity.

    All shortfalls of the request are reported together.
    """

    error_code: ClassVar[str] = "INSUFFICIENT_STOCK"

    def __init__(self, shortfalls: list["StockShortfall"]) -> None:
        summary = "; ".join(
            f"{s.item_name or s.item_id}: requested {s.requested}, available {s.available}"
            for s in shortfalls
        )
        super().__init__(
            f"Insufficient stock ({summary})",
            details={
                "shortfalls": [
                    {
                        "item_id": s.item_id,
                        "item_name": s.item_name,
                        "requested": s.requested,
                        "available": s.available,
                        "missing": s.missing,
                    }
                    for s in shortfalls
                ]
            },
        )
        self.shortfalls = list(shortfalls)


class InvalidQuantityError(ValidationError):
    """Line and ledger quantities start at 1."""

    error_code: ClassVar[str] = "INVALID_QUANTITY"

    def __init__(self, quantity: int) -> None:
        super().__init__(
            f"Quantity must be at least 1, got {quantity}",
            details={"quantity": quantity},
        )


class ReasonTooLongError(ValidationError):
    error_code: ClassVar[str] = "REASON_TOO_LONG"

    def __init__(self, length: int, max_length: int) -> None:
        super().__init__(
            f"Reason is {length} characters long, at most {max_length} are allowed",
            details={"length": length, "max_length": max_length},
        )


class UserNotActiveError(ValidationError):
    """The user store does not know the caller or has deactivated them."""

    error_code: ClassVar[str] = "USER_NOT_ACTIVE"

    def __init__(self, user_id: str) -> None:
        super().__init__(
            f"User {user_id} is not an active user",
            details={"user_id": user_id},
        )


# ============================================================================
# State
# ============================================================================


class _OrderStateError(StateError):
    """State error about one order in one status."""

    def __init__(self, message: str, order_id: str, current_status: str, **extra: Any) -> None:
        super().__init__(
            message,
            details={"order_id": order_id, "current_status": current_status, **extra},
        )


class InvalidStateTransitionError(_OrderStateError):
    """The requested status is not reachable from the current one."""

    error_code: ClassVar[str] = "INVALID_TRANSITION"

    def __init__(
        self,
        order_id: str,
        current_status: str,
        target_status: str,
        allowed_transitions: list[str],
    ) -> None:
        super().__init__(
            f"Order {order_id} cannot move from '{current_status}' to '{target_status}' "
            f"(allowed: {', '.join(allowed_transitions) or 'none'})",
            order_id,
            current_status,
            target_status=target_status,
            allowed_transitions=allowed_transitions,
        )


class ImmutableOrderError(_OrderStateError):
    """Delivered and cancelled orders accept no transition at all."""

    error_code: ClassVar[str] = "IMMUTABLE_ORDER"

    def __init__(self, order_id: str, current_status: str) -> None:
        super().__init__(
            f"Order {order_id} is '{current_status}' and can no longer be modified",
            order_id,
            current_status,
        )


class OrderNotCancellableError(_OrderStateError):
    """Shipped orders can no longer be cancelled."""

    error_code: ClassVar[str] = "NOT_CANCELLABLE"

    def __init__(self, order_id: str, current_status: str) -> None:
        super().__init__(
            f"Order {order_id} has left the warehouse ('{current_status}') and cannot be cancelled",
            order_id,
            current_status,
        )


class AlreadyProcessedError(_OrderStateError):
    """The order already reached the requested status, or went past it.

    This is what the loser of two concurrent confirm attempts observes.
    """

    error_code: ClassVar[str] = "ALREADY_PROCESSED"

    def __init__(self, order_id: str, current_status: str, target_status: str) -> None:
        super().__init__(
            f"Order {order_id} is already '{current_status}', "
            f"transition to '{target_status}' was already processed",
            order_id,
            current_status,
            target_status=target_status,
        )


class TransitionNotPermittedError(StateError):
    """Shoppers may cancel their own orders; every other move is admin-only."""

    error_code: ClassVar[str] = "TRANSITION_NOT_PERMITTED"

    def __init__(self, order_id: str, user_id: str, target_status: str) -> None:
        super().__init__(
            f"User {user_id} may only cancel order {order_id}, not move it to '{target_status}'",
            details={
                "order_id": order_id,
                "user_id": user_id,
                "target_status": target_status,
            },
        )


class OrderTotalMismatchError(StateError):
    """Stored total and the sum of the stored lines disagree."""

    error_code: ClassVar[str] = "ORDER_TOTAL_MISMATCH"

    def __init__(self, order_id: str, total_cents: int, lines_total_cents: int) -> None:
        super().__init__(
            f"Order {order_id} total {total_cents} does not match line total {lines_total_cents}",
            details={
                "order_id": order_id,
                "total_cents": total_cents,
                "lines_total_cents": lines_total_cents,
            },
        )


# ============================================================================
# Concurrency
# ============================================================================


class TransactionAbortedError(ConcurrencyError):
    """The atomic unit lost to a conflicting writer and was rolled back.

    Order and stock are exactly as they were before the attempt.
    """

    error_code: ClassVar[str] = "TRANSACTION_ABORTED"

    def __init__(self, operation: str, reason: str, order_id: str | None = None) -> None:
        super().__init__(
            f"{operation} aborted by a conflicting writer: {reason}",
            details={"operation": operation, "reason": reason, "order_id": order_id},
        )


# ============================================================================
# Not found
# ============================================================================


class OrderNotFoundError(NotFoundError):
    """No order with that ID, or the caller may not see it."""

    error_code: ClassVar[str] = "ORDER_NOT_FOUND"

    def __init__(self, order_id: str) -> None:
        super().__init__(f"Order not found: {order_id}", details={"order_id": order_id})


class ItemNotFoundError(NotFoundError):
    error_code: ClassVar[str] = "ITEM_NOT_FOUND"

    def __init__(self, item_id: str) -> None:
        super().__init__(f"Inventory item not found: {item_id}", details={"item_id": item_id})


# ============================================================================
# Money
# ============================================================================


class CurrencyMismatchError(ValidationError):
    """Amounts in two currencies were added together."""

    error_code: ClassVar[str] = "CURRENCY_MISMATCH"

    def __init__(self, expected: str, actual: str) -> None:
        super().__init__(
            f"Expected an amount in {expected}, got {actual}",
            details={"expected": expected, "actual": actual},
        )


class NegativeMoneyError(ValidationError):
    error_code: ClassVar[str] = "NEGATIVE_MONEY"

    def __init__(self, amount_cents: int) -> None:
        super().__init__(
            f"Amounts cannot be negative, got {amount_cents} cents",
            details={"amount_cents": amount_cents},
        )
