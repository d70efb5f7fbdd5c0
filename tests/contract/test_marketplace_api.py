"""
Contract tests for marketplace API endpoints.

Tests verify:
- Role enforcement on customer, vendor and delivery-partner routes
- Domain error envelopes (detail, error_code and extra fields)
- Order placement and status update response shapes
- Health, readiness and metrics endpoints
"""

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from api.src.dependencies import (
    get_current_user,
    get_dispatch_service,
    get_order_service,
)
from api.src.exceptions import BadRequestError, ConflictError
from api.src.main import app
from api.src.models.auth import Role
from api.src.models.order import OrderStatus
from api.src.rate_limit import limiter
from api.src.services.order_service import CONCURRENT_UPDATE_MESSAGE
from tests.support.factories import make_order, make_user, new_id


@pytest.fixture
def order_service():
    return AsyncMock()


@pytest.fixture
def dispatch_service():
    return AsyncMock()


@pytest.fixture
def client(order_service, dispatch_service):
    limiter.enabled = False
    app.dependency_overrides[get_order_service] = lambda: order_service
    app.dependency_overrides[get_dispatch_service] = lambda: dispatch_service
    yield TestClient(app)
    app.dependency_overrides.clear()
    limiter.enabled = True


def login_as(role: Role):
    user = make_user(role)
    app.dependency_overrides[get_current_user] = lambda: user
    return user


def order_payload(**overrides):
    data = {
        "restaurant_id": new_id(),
        "items": [{"menu_item_id": new_id(), "quantity": 2}],
        "delivery_address": {
            "address_line1": "1 Residency Road",
            "city": "Bengaluru",
            "state": "Karnataka",
            "pincode": "560001",
        },
    }
    data.update(overrides)
    return data


# ============================================================================
# ROLE ENFORCEMENT
# ============================================================================


class TestRoleEnforcement:
    @pytest.mark.parametrize("method,path,role", [
        ("post", "/api/customer/orders", Role.VENDOR),
        ("get", "/api/vendor/orders", Role.CUSTOMER),
        ("get", "/api/delivery-partner/orders", Role.VENDOR),
        ("get", "/api/admin/audit-logs", Role.VENDOR),
    ])
    def test_wrong_role_forbidden(self, client, method, path, role):
        login_as(role)

        response = getattr(client, method)(path)

        assert response.status_code == 403
        assert response.json()["detail"].startswith("Access denied. Required role:")


# ============================================================================
# CUSTOMER ORDERS
# ============================================================================


class TestPlaceOrderContract:
    def test_created(self, client, order_service):
        customer = login_as(Role.CUSTOMER)
        order = make_order(customer_id=customer.id)
        order_service.place_order.return_value = order

        response = client.post("/api/customer/orders", json=order_payload())

        assert response.status_code == 201
        body = response.json()
        assert body["order_id"] == order.id
        assert body["order_number"] == order.order_number
        assert body["total_amount"] == 385.0
        assert body["status"] == "placed"

    def test_address_required(self, client, order_service):
        login_as(Role.CUSTOMER)
        payload = order_payload()
        del payload["delivery_address"]

        response = client.post("/api/customer/orders", json=payload)

        assert response.status_code == 422
        order_service.place_order.assert_not_awaited()

    def test_closed_restaurant_body(self, client, order_service):
        login_as(Role.CUSTOMER)
        order_service.place_order.side_effect = BadRequestError(
            "Restaurant is currently closed", extra={"closure_reason": "Festival holiday"}
        )

        response = client.post("/api/customer/orders", json=order_payload())

        assert response.status_code == 400
        assert response.json() == {
            "detail": "Restaurant is currently closed",
            "error_code": "BAD_REQUEST",
            "closure_reason": "Festival holiday",
        }

    def test_cancel_conflict(self, client, order_service):
        login_as(Role.CUSTOMER)
        order_service.cancel_by_customer.side_effect = ConflictError(CONCURRENT_UPDATE_MESSAGE)

        response = client.post(f"/api/customer/orders/{new_id()}/cancel")

        assert response.status_code == 409
        assert response.json()["detail"] == CONCURRENT_UPDATE_MESSAGE

    def test_rating_bounds(self, client, order_service):
        login_as(Role.CUSTOMER)

        response = client.post(
            f"/api/customer/orders/{new_id()}/rating",
            json={"food": 6, "delivery": 4, "overall": 4},
        )

        assert response.status_code == 422
        order_service.rate_order.assert_not_awaited()


# ============================================================================
# VENDOR ORDERS
# ============================================================================


class TestVendorOrderContract:
    def test_status_update(self, client, order_service):
        vendor_user = login_as(Role.VENDOR)
        order = make_order(status=OrderStatus.CONFIRMED)
        order_service.update_status_by_vendor.return_value = order

        response = client.put(f"/api/vendor/orders/{order.id}", json={"status": "confirmed"})

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "Order status updated to confirmed"
        assert body["order"]["status"] == "confirmed"
        args = order_service.update_status_by_vendor.await_args.args
        assert args[0].id == vendor_user.id
        assert args[1] == order.id

    def test_disallowed_transition_lists_allowed(self, client, order_service):
        login_as(Role.VENDOR)
        order_service.update_status_by_vendor.side_effect = BadRequestError(
            "Cannot change order status from placed to ready",
            extra={"allowed": ["cancelled", "confirmed"]},
        )

        response = client.put(f"/api/vendor/orders/{new_id()}", json={"status": "ready"})

        assert response.status_code == 400
        assert response.json()["allowed"] == ["cancelled", "confirmed"]

    def test_unknown_status(self, client):
        login_as(Role.VENDOR)

        response = client.put(f"/api/vendor/orders/{new_id()}", json={"status": "teleported"})

        assert response.status_code == 422

    def test_assign_delivery(self, client, dispatch_service):
        login_as(Role.VENDOR)
        order = make_order(status=OrderStatus.ASSIGNED, partner_id=new_id())
        dispatch_service.assign_delivery_partner.return_value = order

        response = client.post("/api/vendor/orders/assign-delivery", json={
            "order_id": order.id, "delivery_partner_id": order.partner_id,
        })

        assert response.status_code == 200
        assert response.json()["order"]["delivery_details"]["partner_id"] == order.partner_id


# ============================================================================
# DELIVERY PARTNER ORDERS
# ============================================================================


class TestPartnerOrderContract:
    def test_list(self, client, dispatch_service):
        login_as(Role.DELIVERY_PARTNER)
        dispatch_service.list_partner_orders.return_value = {
            "orders": [], "stats": {"available": 0, "assigned": 0, "active": 0, "completed": 0},
            "type": "active",
        }

        response = client.get("/api/delivery-partner/orders", params={"type": "active"})

        assert response.status_code == 200
        assert response.json()["type"] == "active"

    def test_action_conflict(self, client, dispatch_service):
        login_as(Role.DELIVERY_PARTNER)
        dispatch_service.apply_partner_action.side_effect = ConflictError(CONCURRENT_UPDATE_MESSAGE)

        response = client.post(f"/api/delivery-partner/orders/{new_id()}/accept")

        assert response.status_code == 409
        assert response.json()["error_code"] == "CONFLICT"


# ============================================================================
# OPERATIONAL ENDPOINTS
# ============================================================================


class TestOperationalEndpoints:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["uptime_seconds"] >= 0
        assert response.headers["x-content-type-options"] == "nosniff"
        assert response.headers["x-correlation-id"]

    def test_correlation_id_echoed(self, client):
        response = client.get("/health", headers={"X-Correlation-ID": "abc-123"})
        assert response.headers["x-correlation-id"] == "abc-123"

    def test_ready_without_database(self, client):
        response = client.get("/ready")

        assert response.status_code == 503
        body = response.json()
        assert body["status"] == "not_ready"
        assert body["checks"]["database"] == "unhealthy"

    def test_metrics(self, client):
        client.get("/health")

        response = client.get("/metrics")

        assert response.status_code == 200
        assert "http_requests_total" in response.text
