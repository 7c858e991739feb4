"""
HTTP tests for the v1 API.

Requests go through the ASGI app in process; the database dependency is
bound to the per-test SQLite database and the lock dependency to the
test lock manager.
"""

import uuid
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import patch

import pytest
from httpx import ASGITransport, AsyncClient

from telecore.core.exceptions import (
    InsufficientBalanceError,
    PricingPlanNotFoundError,
    TelecoreError,
)
from telecore.core.locks import get_lock_manager
from telecore.database.connection import get_db
from telecore.main import ERROR_STATUS_CODES, app, status_code_for

API = "/api/v1"


@pytest.fixture
async def client(session_factory, locks) -> AsyncGenerator[AsyncClient, None]:
    async def override_get_db():
        async with session_factory() as db_session:
            yield db_session
            await db_session.commit()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_lock_manager] = lambda: locks
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as http_client:
            yield http_client
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def order_payload(products, country, customer_id) -> dict:
    return {
        "customer_id": str(customer_id),
        "product_id": str(products["did"].id),
        "country_id": str(country.id),
        "quantity": 1,
    }


async def create_order(client: AsyncClient, payload: dict) -> dict:
    response = await client.post(f"{API}/orders/", json=payload)
    assert response.status_code == 201
    return response.json()["order"]


# ============================================================================
# Error Mapping
# ============================================================================


class TestErrorMapping:
    def test_subclasses_follow_their_base(self) -> None:
        assert status_code_for(InsufficientBalanceError("low")) == 400
        assert status_code_for(PricingPlanNotFoundError("p", "c")) == 404

    def test_unmapped_error_is_internal(self) -> None:
        assert status_code_for(TelecoreError("boom")) == 500

    def test_every_mapping_is_a_client_error(self) -> None:
        assert all(400 <= code < 500 for _, code in ERROR_STATUS_CODES)


# ============================================================================
# Health
# ============================================================================


class TestHealth:
    async def test_health(self, client) -> None:
        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_request_id_is_echoed(self, client) -> None:
        response = await client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    async def test_ready_reports_database_failure(self, client) -> None:
        with patch("telecore.main.get_session", side_effect=RuntimeError("down")):
            response = await client.get("/ready")

        assert response.status_code == 503
        assert response.json()["database"] == "unhealthy"


# ============================================================================
# Order Lifecycle
# ============================================================================


class TestOrderFlow:
    async def test_create_to_delivered(self, client, order_payload, did_plan, customer_id) -> None:
        order_payload["desired_pricing"] = {"mrc": "$2.00"}
        response = await client.post(f"{API}/orders/", json=order_payload)
        assert response.status_code == 201
        body = response.json()
        assert body["pricing_state"] == "recorded"
        order_id = body["order"]["id"]
        assert body["order"]["status"] == "In Progress"

        response = await client.post(f"{API}/orders/{order_id}/confirm", json={})
        assert response.status_code == 200
        assert response.json()["status"] == "Confirmed"
        assert Decimal(response.json()["total_amount"]) == Decimal("2.00")

        response = await client.post(f"{API}/orders/{order_id}/mark-paid", json={})
        assert response.json()["status"] == "Amount Paid"

        response = await client.post(
            f"{API}/orders/{order_id}/numbers", json={"number": "+442071234567"}
        )
        assert response.status_code == 201
        number_id = response.json()["id"]

        response = await client.post(f"{API}/orders/{order_id}/deliver", json={})
        assert response.status_code == 200
        assert response.json()["status"] == "Delivered"

        response = await client.get(f"{API}/numbers/{number_id}")
        assert response.json()["customer_id"] == str(customer_id)

        response = await client.get(f"{API}/orders/{order_id}/history")
        assert [entry["to_status"] for entry in response.json()] == [
            "In Progress",
            "Confirmed",
            "Amount Paid",
            "Delivered",
        ]

        response = await client.get(f"{API}/orders/{order_id}/pricing")
        pricing = response.json()
        assert Decimal(pricing["desired"]["rates"]["mrc"]) == Decimal("2.00")
        assert Decimal(pricing["current"]["rates"]["mrc"]) == Decimal("2.00")
        assert pricing["current"]["terms"] == {"contract_term": "12 months"}

    async def test_unknown_order_is_404(self, client) -> None:
        response = await client.get(f"{API}/orders/{uuid.uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"
        assert "request_id" in response.json()

    async def test_invalid_transition_is_409(self, client, order_payload) -> None:
        order = await create_order(client, order_payload)

        response = await client.post(f"{API}/orders/{order['id']}/mark-paid", json={})

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_TRANSITION"

    async def test_unpriced_confirm_is_422(self, client, order_payload) -> None:
        order = await create_order(client, order_payload)

        response = await client.post(f"{API}/orders/{order['id']}/confirm", json={})

        assert response.status_code == 422
        assert response.json()["error"] == "PRICING_UNAVAILABLE"

        response = await client.get(f"{API}/orders/{order['id']}")
        assert response.json()["status"] == "In Progress"

    async def test_confirm_with_override(self, client, order_payload) -> None:
        order = await create_order(client, order_payload)

        response = await client.post(
            f"{API}/orders/{order['id']}/confirm",
            json={"current_override": {"mrc": "7.25"}},
        )

        assert response.status_code == 200
        assert Decimal(response.json()["total_amount"]) == Decimal("7.25")

    async def test_request_validation_is_422(self, client, order_payload) -> None:
        order_payload["quantity"] = 0

        response = await client.post(f"{API}/orders/", json=order_payload)

        assert response.status_code == 422
        assert response.json()["error"] == "REQUEST_VALIDATION_ERROR"

    async def test_pay_from_empty_wallet_is_400(self, client, order_payload, did_plan) -> None:
        order = await create_order(client, order_payload)
        await client.post(f"{API}/orders/{order['id']}/confirm", json={})

        response = await client.post(f"{API}/orders/{order['id']}/pay-from-wallet", json={})

        assert response.status_code == 400
        assert response.json()["error"] == "INSUFFICIENT_BALANCE"

    async def test_list_orders_by_status(self, client, order_payload, customer_id) -> None:
        await create_order(client, order_payload)

        response = await client.get(
            f"{API}/orders/",
            params={"customer_id": str(customer_id), "status": "In Progress"},
        )

        assert response.status_code == 200
        assert len(response.json()) == 1


# ============================================================================
# Wallet
# ============================================================================


class TestWalletEndpoints:
    async def test_credit_and_balance(self, client) -> None:
        user_id = uuid.uuid4()

        response = await client.post(
            f"{API}/wallet/{user_id}/credit", json={"amount": "25", "description": "Top-up"}
        )
        assert response.status_code == 201
        assert Decimal(response.json()["new_balance"]) == Decimal("25")

        response = await client.get(f"{API}/wallet/{user_id}")
        body = response.json()
        assert Decimal(body["balance"]) == Decimal("25")
        assert body["is_low"] is False

        response = await client.put(f"{API}/wallet/{user_id}/threshold", json={"threshold": "30"})
        assert response.json()["is_low"] is True

        response = await client.get(f"{API}/wallet/{user_id}/transactions")
        assert len(response.json()) == 1

    async def test_non_positive_credit_is_400(self, client) -> None:
        response = await client.post(f"{API}/wallet/{uuid.uuid4()}/credit", json={"amount": "0"})

        assert response.status_code == 400
        assert response.json()["error"] == "VALIDATION_ERROR"


# ============================================================================
# Invoices
# ============================================================================


class TestInvoiceEndpoints:
    async def test_generate_and_correct_usage(self, client, driver) -> None:
        order = await driver.delivered(quantity=2, current_override={"mrc": "10"})

        response = await client.post(
            f"{API}/invoices/", json={"order_id": str(order.id), "period": "2024-05"}
        )
        assert response.status_code == 201
        invoice = response.json()
        assert Decimal(invoice["amount"]) == Decimal("20")

        response = await client.put(
            f"{API}/invoices/{invoice['id']}/usage", json={"usage_amount": "12.3456"}
        )
        assert Decimal(response.json()["amount"]) == Decimal("32.3456")

        response = await client.post(f"{API}/invoices/{invoice['id']}/mark-paid")
        assert response.json()["status"] == "Paid"

        response = await client.put(
            f"{API}/invoices/{invoice['id']}/usage", json={"usage_amount": "1"}
        )
        assert response.status_code == 409

    async def test_duplicate_period_is_409(self, client, driver) -> None:
        order = await driver.delivered(current_override={"mrc": "10"})
        payload = {"order_id": str(order.id), "period": "2024-05"}
        await client.post(f"{API}/invoices/", json=payload)

        response = await client.post(f"{API}/invoices/", json=payload)

        assert response.status_code == 409
        assert response.json()["error"] == "CONFLICT"

    async def test_overdue_batch(self, client) -> None:
        response = await client.post(
            f"{API}/invoices/batches/overdue", params={"today": "2024-01-01"}
        )

        assert response.status_code == 200
        assert response.json() == {"updated": 0}
