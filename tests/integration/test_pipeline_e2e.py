"""
End-to-End Pipeline Tests

Order API -> Kafka -> partner service / notification service -> PostgreSQL,
every service running in-process against real containers.

TEST STRATEGY:
- An order placed over HTTP shows up in the partner's order listing
- Walking the lifecycle over HTTP produces the customer notifications
- Order data survives a restart of the order API (state lives in PostgreSQL)

DEPENDENCIES:
- Kafka and PostgreSQL testcontainers
"""

import time
import uuid

import pytest
from fastapi.testclient import TestClient

from fooddelivery.notifications.api import create_app as create_notification_app
from fooddelivery.notifications.config import NotificationServiceConfig
from fooddelivery.orders.api import create_app as create_order_app
from fooddelivery.orders.config import OrderServiceConfig
from fooddelivery.partners.api import create_app as create_partner_app
from fooddelivery.partners.config import PartnerServiceConfig


def wait_until(predicate, timeout=30.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.2)
    return False


@pytest.fixture
def infra(postgres_url, kafka_bootstrap):
    """Connection settings shared by every service under test."""
    return {
        "database_url": postgres_url,
        "kafka_bootstrap_servers": kafka_bootstrap,
        "consumer_poll_timeout": 0.5,
    }


@pytest.fixture
def order_client(infra):
    app = create_order_app(OrderServiceConfig(partner_service_url="", **infra))
    with TestClient(app) as client:
        yield client


@pytest.fixture
def partner_client(infra):
    config = PartnerServiceConfig(consumer_group_id=f"partner-e2e-{uuid.uuid4()}", **infra)
    with TestClient(create_partner_app(config)) as client:
        yield client


@pytest.fixture
def notification_client(infra):
    config = NotificationServiceConfig(
        consumer_group_id=f"notifications-e2e-{uuid.uuid4()}", **infra
    )
    with TestClient(create_notification_app(config)) as client:
        yield client


def _order_request(partner_id: int) -> dict:
    return {
        "customer_id": 7,
        "partner_id": partner_id,
        "delivery_address": "22 Baker Street",
        "delivery_fee": 29.0,
        "items": [
            {"food_item_id": 1, "name": "Margherita Pizza", "quantity": 2, "unit_price": 120.0},
        ],
    }


@pytest.mark.integration
@pytest.mark.slow
def test_placed_order_reaches_partner(order_client, partner_client):
    partner = partner_client.post("/partners", json={"name": "Pizza Palace", "address": "1 Main St"})
    partner_id = partner.json()["id"]

    created = order_client.post("/orders", json=_order_request(partner_id))
    assert created.status_code == 201
    order_id = created.json()["id"]

    def partner_sees_order():
        pending = partner_client.get(f"/partners/{partner_id}/orders/pending").json()
        return any(o["order_id"] == order_id for o in pending)

    assert wait_until(partner_sees_order)

    order_client.post(f"/orders/{order_id}/reject", json={"reason": "Closed"})

    def rejected():
        orders = partner_client.get(f"/partners/{partner_id}/orders").json()
        return any(o["order_id"] == order_id and o["status"] == "Rejected" for o in orders)

    assert wait_until(rejected)


@pytest.mark.integration
@pytest.mark.slow
def test_lifecycle_notifies_customer(order_client, notification_client):
    order_id = order_client.post("/orders", json=_order_request(3)).json()["id"]

    order_client.post(f"/orders/{order_id}/accept", json={"estimated_minutes": 20})
    order_client.post(f"/orders/{order_id}/assign-agent", json={"agent_id": 5})
    order_client.post(f"/orders/{order_id}/ready")
    order_client.post(f"/orders/{order_id}/pickup")
    assert order_client.post(f"/orders/{order_id}/complete-delivery").status_code == 200

    expected = ["ORDER_ACCEPTED", "ORDER_READY", "ORDER_PICKED_UP", "ORDER_DELIVERED"]

    def all_notified():
        kinds = [n["type"] for n in notification_client.get(f"/notifications/order/{order_id}").json()]
        return sorted(kinds) == sorted(expected)

    assert wait_until(all_notified)


@pytest.mark.integration
@pytest.mark.slow
def test_order_survives_api_restart(infra):
    config = OrderServiceConfig(partner_service_url="", **infra)

    with TestClient(create_order_app(config)) as client:
        order_id = client.post("/orders", json=_order_request(3)).json()["id"]
        client.post(f"/orders/{order_id}/accept")

    with TestClient(create_order_app(config)) as client:
        order = client.get(f"/orders/{order_id}").json()

    assert order["status"] == "Accepted"
    assert order["items"][0]["name"] == "Margherita Pizza"
