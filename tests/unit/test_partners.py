"""
Unit Tests for the Partner Service

TEST STRATEGY:
- Relays keep partner order copies in step with lifecycle events
- Redelivered order-created keeps the existing copy
- Events for unknown orders are skipped
- HTTP registry and order listings
"""

import pytest
from fastapi.testclient import TestClient

from fooddelivery.partners.api import create_app
from fooddelivery.partners.config import PartnerServiceConfig
from fooddelivery.partners.models import PartnerOrder
from fooddelivery.partners.relays import PartnerOrderRelay
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.events import (
    AgentAssigned,
    OrderAccepted,
    OrderCreated,
    OrderDelivered,
    OrderPickedUp,
    OrderReady,
    OrderRejected,
)


def _created(order_id=10, partner_id=3, total=150.0) -> OrderCreated:
    return OrderCreated(
        order_id=order_id,
        customer_id=7,
        partner_id=partner_id,
        delivery_address="22 Baker Street",
        items=[{"name": "Pizza", "quantity": 2}],
        total_amount=total,
    )


@pytest.fixture
def relay(partners_db):
    return PartnerOrderRelay(partners_db)


def _copy(db, order_id) -> PartnerOrder:
    with db.get_session() as session:
        return session.get(PartnerOrder, order_id)


# ==============================================================================
# RELAYS
# ==============================================================================


@pytest.mark.unit
def test_order_created_stores_copy(relay, partners_db):
    relay.on_order_created(_created())

    copy = _copy(partners_db, 10)
    assert copy.status == "Placed"
    assert copy.partner_id == 3
    assert copy.items == [{"name": "Pizza", "quantity": 2}]
    assert float(copy.total_amount) == 150.0


@pytest.mark.unit
def test_redelivered_order_created_keeps_first_copy(relay, partners_db):
    relay.on_order_created(_created(total=150.0))
    relay.on_order_created(_created(total=999.0))

    assert float(_copy(partners_db, 10).total_amount) == 150.0
    with partners_db.get_session() as session:
        assert session.query(PartnerOrder).count() == 1


@pytest.mark.unit
def test_lifecycle_updates_copy(relay, partners_db):
    relay.on_order_created(_created())
    relay.on_order_accepted(
        OrderAccepted(
            order_id=10, customer_id=7, partner_id=3, delivery_address="x", delivery_fee=29.0
        )
    )
    relay.on_agent_assigned(
        AgentAssigned(
            order_id=10,
            partner_id=3,
            customer_id=7,
            agent_id=5,
            delivery_address="x",
            delivery_fee=29.0,
        )
    )
    relay.on_order_ready(OrderReady(order_id=10, customer_id=7, partner_id=3))
    relay.on_order_picked_up(OrderPickedUp(order_id=10, customer_id=7, partner_id=3, agent_id=5))
    relay.on_order_delivered(OrderDelivered(order_id=10, customer_id=7))

    copy = _copy(partners_db, 10)
    assert copy.status == "Delivered"
    assert copy.agent_id == 5
    assert copy.accepted_at is not None
    assert copy.ready_at is not None
    assert copy.picked_up_at is not None
    assert copy.delivered_at is not None


@pytest.mark.unit
def test_agent_assigned_keeps_status(relay, partners_db):
    relay.on_order_created(_created())
    relay.on_agent_assigned(
        AgentAssigned(
            order_id=10, partner_id=3, customer_id=7, agent_id=8,
            delivery_address="x", delivery_fee=0,
        )
    )

    copy = _copy(partners_db, 10)
    assert copy.status == "Placed"
    assert copy.agent_id == 8


@pytest.mark.unit
def test_rejection_stores_reason(relay, partners_db):
    relay.on_order_created(_created())
    relay.on_order_rejected(OrderRejected(order_id=10, customer_id=7, partner_id=3, reason="Closed"))

    copy = _copy(partners_db, 10)
    assert copy.status == "Rejected"
    assert copy.rejection_reason == "Closed"


@pytest.mark.unit
def test_event_for_unknown_order_is_skipped(relay, partners_db):
    relay.on_order_ready(OrderReady(order_id=404, customer_id=7, partner_id=3))

    assert _copy(partners_db, 404) is None


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.fixture
def consumer(kafka_consumer):
    return EventConsumer(PartnerServiceConfig(), consumer=kafka_consumer)


@pytest.fixture
def client(partners_db, consumer):
    app = create_app(PartnerServiceConfig(), db=partners_db, consumer=consumer, start_consumer=False)
    with TestClient(app) as test_client:
        yield test_client


@pytest.mark.unit
def test_register_and_get_partner(client):
    created = client.post("/partners", json={"name": "Pizza Palace", "address": "1 Main St"})

    assert created.status_code == 201
    partner_id = created.json()["id"]
    body = client.get(f"/partners/{partner_id}").json()
    assert body["name"] == "Pizza Palace"
    assert body["address"] == "1 Main St"
    assert [p["id"] for p in client.get("/partners").json()] == [partner_id]


@pytest.mark.unit
def test_unknown_partner_is_404(client):
    response = client.get("/partners/99")

    assert response.status_code == 404
    assert response.headers["content-type"].startswith("application/problem+json")


@pytest.mark.unit
def test_consumed_events_show_in_listings(client, consumer, make_message):
    assert set(consumer.topics) == {
        topics.ORDER_CREATED,
        topics.ORDER_ACCEPTED,
        topics.ORDER_REJECTED,
        topics.ORDER_READY,
        topics.AGENT_ASSIGNED,
        topics.ORDER_PICKED_UP,
        topics.ORDER_DELIVERED,
    }

    consumer.dispatch(make_message(topics.ORDER_CREATED, _created(order_id=1)))
    consumer.dispatch(make_message(topics.ORDER_CREATED, _created(order_id=2)))
    consumer.dispatch(
        make_message(
            topics.ORDER_REJECTED,
            OrderRejected(order_id=1, customer_id=7, partner_id=3, reason="Closed"),
        )
    )

    all_orders = client.get("/partners/3/orders").json()
    pending = client.get("/partners/3/orders/pending").json()

    assert {o["order_id"] for o in all_orders} == {1, 2}
    assert [o["order_id"] for o in pending] == [2]
