"""Tests for Order API endpoints."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from storefront.infrastructure.config import settings
from storefront.infrastructure.database import get_session_factory
from storefront.main import app

ADDRESS = {
    "street": "742 Evergreen Terrace",
    "city": "Springfield",
    "region": "Oregon",
    "postal_code": "97403",
    "country": "USA",
}


def user_headers(user_id: str = "user-1", role: str = "user") -> dict[str, str]:
    """Headers of an authenticated gateway call on behalf of a user."""
    return {
        "Authorization": f"Bearer {settings.storefront_api_key}",
        "X-User-ID": user_id,
        "X-User-Role": role,
    }


ADMIN = user_headers("admin-1", "admin")


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create an HTTP client bound to the test database."""
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
async def stocked_cart(db) -> None:
    """User-1 with A (10.00 x 2) and B (5.00 x 1) in the cart, stock 10 each."""
    await db.user("user-1")
    await db.item("A", quantity=10, price_cents=1000, name="Widget")
    await db.item("B", quantity=10, price_cents=500, name="Gadget")
    await db.cart("user-1", [("A", 2, 1000), ("B", 1, 500)])


async def create_order(client: AsyncClient) -> dict:
    """Place an order from user-1's cart."""
    response = await client.post(
        "/orders", json={"shipping_address": ADDRESS}, headers=user_headers()
    )
    assert response.status_code == 201, response.text
    return response.json()


# ============================================================================
# Authentication
# ============================================================================


class TestAuthentication:
    """Tests for gateway and user authentication."""

    @pytest.mark.asyncio
    async def test_missing_api_key(self, client) -> None:
        """Requests without an API key are rejected."""
        response = await client.get("/orders/mine", headers={"X-User-ID": "user-1"})

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHORIZED"

    @pytest.mark.asyncio
    async def test_invalid_api_key(self, client) -> None:
        """A wrong key is rejected."""
        response = await client.get(
            "/orders/mine", headers={"Authorization": "Bearer wrong", "X-User-ID": "user-1"}
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "INVALID_API_KEY"

    @pytest.mark.asyncio
    async def test_missing_user(self, client) -> None:
        """A valid key without a user identity is rejected."""
        response = await client.get(
            "/orders/mine", headers={"Authorization": f"Bearer {settings.storefront_api_key}"}
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "UNAUTHENTICATED_USER"

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        ("method", "path"),
        [
            ("GET", "/orders"),
            ("GET", "/orders/00000000-0000-0000-0000-000000000000"),
            ("PATCH", "/orders/00000000-0000-0000-0000-000000000000/status"),
        ],
    )
    async def test_admin_routes_reject_users(self, client, method, path) -> None:
        """Admin endpoints refuse ordinary users."""
        response = await client.request(
            method, path, json={"status": "confirmed"}, headers=user_headers()
        )

        assert response.status_code == 403
        assert response.json()["error_code"] == "ADMIN_REQUIRED"


# ============================================================================
# Customer Endpoints
# ============================================================================


class TestCreateOrder:
    """Tests for POST /orders."""

    @pytest.mark.asyncio
    async def test_create_from_cart(self, client, stocked_cart, db) -> None:
        """An order is created from the cart and the cart is emptied."""
        data = await create_order(client)

        assert data["status"] == "pending"
        assert data["total"] == {"amount": 2500, "currency": "USD"}
        assert [line["item_name"] for line in data["lines"]] == ["Widget", "Gadget"]
        assert data["unavailable_item_ids"] == []
        assert data["status_history"][0]["to_status"] == "pending"
        assert await db.cart_size("user-1") == 0

    @pytest.mark.asyncio
    async def test_insufficient_stock(self, client, db) -> None:
        """Shortfalls come back as 400 with every item listed."""
        await db.user("user-1")
        await db.item("A", quantity=1, price_cents=1000)
        await db.cart("user-1", [("A", 2, 1000)])

        response = await client.post(
            "/orders", json={"shipping_address": ADDRESS}, headers=user_headers()
        )

        assert response.status_code == 400
        body = response.json()
        assert body["error_code"] == "INSUFFICIENT_STOCK"
        assert body["details"]["shortfalls"][0]["missing"] == 1
        assert body["retryable"] is False
        assert body["request_id"]

    @pytest.mark.asyncio
    async def test_empty_cart(self, client, db) -> None:
        """Ordering with an empty cart is a 400."""
        await db.user("user-1")

        response = await client.post(
            "/orders", json={"shipping_address": ADDRESS}, headers=user_headers()
        )

        assert response.status_code == 400
        assert response.json()["error_code"] == "EMPTY_CART"

    @pytest.mark.asyncio
    async def test_invalid_address(self, client, stocked_cart) -> None:
        """Address fields are validated."""
        response = await client.post(
            "/orders",
            json={"shipping_address": {**ADDRESS, "street": "x"}},
            headers=user_headers(),
        )

        assert response.status_code == 422
        body = response.json()
        assert body["error_code"] == "INVALID_REQUEST"
        assert body["details"]["errors"][0]["field"].endswith("street")


class TestMyOrders:
    """Tests for the caller's own orders."""

    @pytest.mark.asyncio
    async def test_list_and_get(self, client, stocked_cart) -> None:
        """Users list and read their own orders."""
        created = await create_order(client)

        listing = await client.get("/orders/mine", headers=user_headers())
        detail = await client.get(f"/orders/mine/{created['id']}", headers=user_headers())

        assert listing.status_code == 200
        assert [o["id"] for o in listing.json()["items"]] == [created["id"]]
        assert listing.json()["pagination"]["total_orders"] == 1
        assert detail.json()["order_number"] == created["order_number"]

    @pytest.mark.asyncio
    async def test_list_filtered_by_status(self, client, stocked_cart) -> None:
        """Users filter their own listing by status."""
        created = await create_order(client)
        await client.post(f"/orders/mine/{created['id']}/cancel", headers=user_headers())

        cancelled = await client.get(
            "/orders/mine", params={"status": "cancelled"}, headers=user_headers()
        )
        pending = await client.get(
            "/orders/mine", params={"status": "pending"}, headers=user_headers()
        )
        unknown = await client.get(
            "/orders/mine", params={"status": "refunded"}, headers=user_headers()
        )

        assert [o["id"] for o in cancelled.json()["items"]] == [created["id"]]
        assert pending.json()["items"] == []
        assert pending.json()["pagination"]["total_orders"] == 0
        assert unknown.status_code == 422

    @pytest.mark.asyncio
    async def test_other_users_order_is_hidden(self, client, stocked_cart) -> None:
        """Another user's order is reported as not found."""
        created = await create_order(client)

        response = await client.get(f"/orders/mine/{created['id']}", headers=user_headers("user-2"))

        assert response.status_code == 404
        assert response.json()["error_code"] == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_cancel(self, client, stocked_cart, db) -> None:
        """Users cancel their confirmed orders and stock comes back."""
        created = await create_order(client)
        await client.patch(
            f"/orders/{created['id']}/status", json={"status": "confirmed"}, headers=ADMIN
        )
        assert await db.stock("A") == 8

        response = await client.post(
            f"/orders/mine/{created['id']}/cancel",
            json={"reason": "Ordered by mistake"},
            headers=user_headers(),
        )

        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"
        assert response.json()["cancellation_reason"] == "Ordered by mistake"
        assert await db.stock("A") == 10

    @pytest.mark.asyncio
    async def test_cancel_without_body(self, client, stocked_cart) -> None:
        """The cancellation reason is optional."""
        created = await create_order(client)

        response = await client.post(
            f"/orders/mine/{created['id']}/cancel", headers=user_headers()
        )

        assert response.status_code == 200
        assert response.json()["cancellation_reason"] is None

    @pytest.mark.asyncio
    async def test_cancel_twice_conflicts(self, client, stocked_cart) -> None:
        """A cancelled order can no longer change."""
        created = await create_order(client)
        path = f"/orders/mine/{created['id']}/cancel"
        await client.post(path, headers=user_headers())

        response = await client.post(path, headers=user_headers())

        assert response.status_code == 409
        assert response.json()["error_code"] == "IMMUTABLE_ORDER"


# ============================================================================
# Admin Endpoints
# ============================================================================


class TestAdminOrders:
    """Tests for admin order management."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, client, stocked_cart, db) -> None:
        """Admins drive an order to delivery."""
        created = await create_order(client)
        path = f"/orders/{created['id']}/status"

        for target in ("confirmed", "shipped", "delivered"):
            response = await client.patch(path, json={"status": target}, headers=ADMIN)
            assert response.status_code == 200, response.text
            assert response.json()["status"] == target

        detail = await client.get(f"/orders/{created['id']}", headers=ADMIN)
        assert [h["to_status"] for h in detail.json()["status_history"]] == [
            "pending",
            "confirmed",
            "shipped",
            "delivered",
        ]
        assert await db.stock("A") == 8

    @pytest.mark.asyncio
    async def test_cancel_shipped_conflicts(self, client, stocked_cart) -> None:
        """Shipped orders cannot be cancelled."""
        created = await create_order(client)
        path = f"/orders/{created['id']}/status"
        await client.patch(path, json={"status": "confirmed"}, headers=ADMIN)
        await client.patch(path, json={"status": "shipped"}, headers=ADMIN)

        response = await client.patch(path, json={"status": "cancelled"}, headers=ADMIN)

        assert response.status_code == 409
        assert response.json()["error_code"] == "NOT_CANCELLABLE"

    @pytest.mark.asyncio
    async def test_confirm_twice_is_already_processed(self, client, stocked_cart) -> None:
        """A repeated confirmation conflicts."""
        created = await create_order(client)
        path = f"/orders/{created['id']}/status"
        await client.patch(path, json={"status": "confirmed"}, headers=ADMIN)

        response = await client.patch(path, json={"status": "confirmed"}, headers=ADMIN)

        assert response.status_code == 409
        assert response.json()["error_code"] == "ALREADY_PROCESSED"

    @pytest.mark.asyncio
    async def test_unknown_order(self, client) -> None:
        """Unknown orders are 404 in the standard error format."""
        response = await client.patch(
            "/orders/00000000-0000-0000-0000-000000000000/status",
            json={"status": "confirmed"},
            headers=ADMIN,
        )

        assert response.status_code == 404
        body = response.json()
        assert set(body) == {"error_code", "message", "details", "retryable", "request_id"}
        assert body["error_code"] == "ORDER_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_unknown_status_value(self, client) -> None:
        """Statuses outside the lifecycle are rejected."""
        response = await client.patch(
            "/orders/00000000-0000-0000-0000-000000000000/status",
            json={"status": "refunded"},
            headers=ADMIN,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_list_with_filters(self, client, stocked_cart) -> None:
        """Admins filter the order listing by status."""
        created = await create_order(client)
        await client.patch(
            f"/orders/{created['id']}/status", json={"status": "confirmed"}, headers=ADMIN
        )

        confirmed = await client.get("/orders", params={"status": "confirmed"}, headers=ADMIN)
        pending = await client.get("/orders", params={"status": "pending"}, headers=ADMIN)

        assert [o["id"] for o in confirmed.json()["items"]] == [created["id"]]
        assert confirmed.json()["items"][0]["item_count"] == 3
        assert pending.json()["items"] == []

    @pytest.mark.asyncio
    async def test_blank_user_filter_is_rejected(self, client) -> None:
        """A whitespace-only owner filter is a validation error, not a server error."""
        response = await client.get("/orders", params={"user_id": " "}, headers=ADMIN)

        assert response.status_code == 422
        assert response.json()["error_code"] == "INVALID_REQUEST"

    @pytest.mark.asyncio
    async def test_user_filter_is_trimmed(self, client, stocked_cart) -> None:
        """Surrounding whitespace in the owner filter is ignored."""
        created = await create_order(client)

        response = await client.get("/orders", params={"user_id": " user-1 "}, headers=ADMIN)

        assert response.status_code == 200
        assert [o["id"] for o in response.json()["items"]] == [created["id"]]

    @pytest.mark.asyncio
    async def test_page_size_limit(self, client) -> None:
        """Page sizes above the maximum are rejected."""
        response = await client.get("/orders", params={"page_size": 101}, headers=ADMIN)

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_request_id_is_echoed(self, client) -> None:
        """The caller's request ID comes back in header and error body."""
        response = await client.get(
            "/orders/not-a-uuid", headers={**ADMIN, "X-Request-ID": "req-123"}
        )

        assert response.status_code == 404
        assert response.headers["X-Request-ID"] == "req-123"
        assert response.json()["request_id"] == "req-123"
