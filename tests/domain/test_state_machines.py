"""Tests for the order state machine."""

import pytest

from storefront.domain import OrderStatus, StockEffect
from storefront.domain.exceptions import (
    AlreadyProcessedError,
    ImmutableOrderError,
    InvalidStateTransitionError,
    OrderNotCancellableError,
    StateError,
)
from storefront.domain.state_machines import validate_order_transition


class TestOrderStatus:
    """Tests for OrderStatus state machine."""

    def test_pending_can_be_confirmed_or_cancelled(self) -> None:
        """PENDING can transition to CONFIRMED or CANCELLED."""
        assert set(OrderStatus.PENDING.allowed_transitions()) == {
            OrderStatus.CONFIRMED,
            OrderStatus.CANCELLED,
        }

    def test_confirmed_transitions(self) -> None:
        """CONFIRMED can be shipped, cancelled or reverted to PENDING."""
        assert set(OrderStatus.CONFIRMED.allowed_transitions()) == {
            OrderStatus.PENDING,
            OrderStatus.SHIPPED,
            OrderStatus.CANCELLED,
        }

    def test_shipped_can_only_be_delivered(self) -> None:
        """SHIPPED can only transition to DELIVERED."""
        assert OrderStatus.SHIPPED.allowed_transitions() == [OrderStatus.DELIVERED]

    def test_pending_cannot_skip_to_shipped(self) -> None:
        """PENDING cannot transition directly to SHIPPED."""
        assert not OrderStatus.PENDING.can_transition_to(OrderStatus.SHIPPED)

    @pytest.mark.parametrize("status", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_states_have_no_transitions(self, status: OrderStatus) -> None:
        """DELIVERED and CANCELLED are terminal."""
        assert status.is_terminal()
        assert status.allowed_transitions() == []

    def test_cancellable_states(self) -> None:
        """Only PENDING and CONFIRMED orders are cancellable."""
        cancellable = {s for s in OrderStatus if s.is_cancellable()}
        assert cancellable == {OrderStatus.PENDING, OrderStatus.CONFIRMED}

    def test_stock_is_held_from_confirmation_on(self) -> None:
        """Confirmed, shipped and delivered orders hold stock."""
        assert not OrderStatus.PENDING.holds_stock()
        assert OrderStatus.CONFIRMED.holds_stock()
        assert OrderStatus.DELIVERED.holds_stock()
        assert not OrderStatus.CANCELLED.holds_stock()


class TestStockEffects:
    """Tests for the stock effect of each transition."""

    @pytest.mark.parametrize(
        ("current", "target", "effect"),
        [
            (OrderStatus.PENDING, OrderStatus.CONFIRMED, StockEffect.RESERVE),
            (OrderStatus.PENDING, OrderStatus.CANCELLED, StockEffect.NONE),
            (OrderStatus.CONFIRMED, OrderStatus.PENDING, StockEffect.RELEASE),
            (OrderStatus.CONFIRMED, OrderStatus.CANCELLED, StockEffect.RELEASE),
            (OrderStatus.CONFIRMED, OrderStatus.SHIPPED, StockEffect.NONE),
            (OrderStatus.SHIPPED, OrderStatus.DELIVERED, StockEffect.NONE),
        ],
    )
    def test_transition_table(
        self, current: OrderStatus, target: OrderStatus, effect: StockEffect
    ) -> None:
        """Each allowed transition carries its stock effect."""
        plan = validate_order_transition("ord-1", current, target)
        assert plan.from_status == current
        assert plan.to_status == target
        assert plan.stock_effect == effect
        assert plan.touches_stock == (effect != StockEffect.NONE)


class TestValidateOrderTransition:
    """Tests for guard order of validate_order_transition."""

    @pytest.mark.parametrize("target", list(OrderStatus))
    def test_delivered_order_is_immutable(self, target: OrderStatus) -> None:
        """Any request on a DELIVERED order fails with ImmutableOrderError."""
        with pytest.raises(ImmutableOrderError):
            validate_order_transition("ord-1", OrderStatus.DELIVERED, target)

    @pytest.mark.parametrize("target", list(OrderStatus))
    def test_cancelled_order_is_immutable(self, target: OrderStatus) -> None:
        """Any request on a CANCELLED order fails with ImmutableOrderError."""
        with pytest.raises(ImmutableOrderError):
            validate_order_transition("ord-1", OrderStatus.CANCELLED, target)

    def test_confirming_a_confirmed_order_is_already_processed(self) -> None:
        """A second confirm observes AlreadyProcessed, not a stock error."""
        with pytest.raises(AlreadyProcessedError) as exc_info:
            validate_order_transition("ord-1", OrderStatus.CONFIRMED, OrderStatus.CONFIRMED)
        assert exc_info.value.details["current_status"] == "confirmed"

    def test_confirming_a_shipped_order_is_already_processed(self) -> None:
        """Confirming an order that is already past confirmation is AlreadyProcessed."""
        with pytest.raises(AlreadyProcessedError):
            validate_order_transition("ord-1", OrderStatus.SHIPPED, OrderStatus.CONFIRMED)

    def test_cancelling_a_shipped_order_is_rejected(self) -> None:
        """SHIPPED -> CANCELLED fails with OrderNotCancellableError."""
        with pytest.raises(OrderNotCancellableError) as exc_info:
            validate_order_transition("ord-1", OrderStatus.SHIPPED, OrderStatus.CANCELLED)
        assert exc_info.value.error_code == "NOT_CANCELLABLE"

    def test_skipping_states_is_invalid(self) -> None:
        """PENDING -> DELIVERED fails with InvalidStateTransitionError."""
        with pytest.raises(InvalidStateTransitionError) as exc_info:
            validate_order_transition("ord-1", OrderStatus.PENDING, OrderStatus.DELIVERED)
        assert set(exc_info.value.details["allowed_transitions"]) == {"confirmed", "cancelled"}

    def test_shipped_back_to_pending_is_invalid(self) -> None:
        """SHIPPED -> PENDING is not part of the table."""
        with pytest.raises(InvalidStateTransitionError):
            validate_order_transition("ord-1", OrderStatus.SHIPPED, OrderStatus.PENDING)

    def test_state_errors_are_not_retryable(self) -> None:
        """State errors are caller logic errors."""
        with pytest.raises(StateError) as exc_info:
            validate_order_transition("ord-1", OrderStatus.CANCELLED, OrderStatus.PENDING)
        assert exc_info.value.retryable is False
