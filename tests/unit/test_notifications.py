"""
Unit Tests for the Notification Service

Each consumed lifecycle event must produce exactly one notification with the
customer-facing text for its type.
"""

from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fooddelivery.notifications.api import create_app
from fooddelivery.notifications.config import NotificationServiceConfig
from fooddelivery.notifications.models import Notification
from fooddelivery.notifications.service import NotificationNotFoundError, NotificationService
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.events import (
    DriverArriving,
    OrderAccepted,
    OrderDelivered,
    OrderPickedUp,
    OrderReady,
    OrderRejected,
)

EVENTS = [
    (
        topics.ORDER_ACCEPTED,
        OrderAccepted(
            order_id=1, customer_id=7, partner_id=3, delivery_address="x", delivery_fee=29.0
        ),
        "ORDER_ACCEPTED",
        "Your order has been accepted by the restaurant!",
    ),
    (
        topics.ORDER_REJECTED,
        OrderRejected(order_id=1, customer_id=7, partner_id=3, reason="Out of stock"),
        "ORDER_REJECTED",
        "Your order was rejected: Out of stock",
    ),
    (
        topics.ORDER_READY,
        OrderReady(order_id=1, customer_id=7, partner_id=3),
        "ORDER_READY",
        "Your order is ready for pickup! 🎉",
    ),
    (
        topics.ORDER_PICKED_UP,
        OrderPickedUp(order_id=1, customer_id=7, partner_id=3, agent_id=5),
        "ORDER_PICKED_UP",
        "Driver is on the way with your order! 🚗",
    ),
    (
        topics.ORDER_DELIVERED,
        OrderDelivered(order_id=1, customer_id=7),
        "ORDER_DELIVERED",
        "Your food has been delivered! Enjoy your meal!",
    ),
    (
        topics.DRIVER_ARRIVING,
        DriverArriving(order_id=1, customer_id=7, estimated_minutes=2),
        "DRIVER_ARRIVING",
        "Driver is arriving soon! Estimated 2 minutes away 🚗",
    ),
]


@pytest.fixture
def consumer(kafka_consumer):
    return EventConsumer(NotificationServiceConfig(), consumer=kafka_consumer)


@pytest.fixture
def service(notifications_db, consumer):
    service = NotificationService(notifications_db)
    service.register(consumer)
    return service


def _count(db) -> int:
    with db.get_session() as session:
        return session.query(Notification).count()


# ==============================================================================
# RELAYS
# ==============================================================================


@pytest.mark.unit
@pytest.mark.parametrize("topic, event, kind, message", EVENTS)
def test_event_produces_one_notification(
    service, consumer, notifications_db, make_message, topic, event, kind, message
):
    consumer.dispatch(make_message(topic, event))

    assert _count(notifications_db) == 1
    notification = service.list_all()[0]
    assert notification.type == kind
    assert notification.message == message
    assert notification.order_id == 1
    assert notification.customer_id == 7
    assert notification.is_read is False


@pytest.mark.unit
def test_registered_topics(service, consumer):
    assert set(consumer.topics) == {topic for topic, _, _, _ in EVENTS}


@pytest.mark.unit
def test_redelivery_creates_second_row(service, consumer, notifications_db, make_message):
    msg = make_message(topics.ORDER_READY, OrderReady(order_id=1, customer_id=7, partner_id=3))

    consumer.dispatch(msg)
    consumer.dispatch(msg)

    assert _count(notifications_db) == 2
    assert service.notifications_created == 2


# ==============================================================================
# QUERIES
# ==============================================================================


@pytest.mark.unit
def test_order_notifications_oldest_first(service):
    base = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)
    service.on_order_ready(
        OrderReady(order_id=1, customer_id=7, partner_id=3, timestamp=base + timedelta(minutes=20))
    )
    service.on_order_accepted(
        OrderAccepted(
            order_id=1,
            customer_id=7,
            partner_id=3,
            delivery_address="x",
            delivery_fee=29.0,
            timestamp=base,
        )
    )
    service.on_order_picked_up(
        OrderPickedUp(
            order_id=1,
            customer_id=7,
            partner_id=3,
            agent_id=5,
            timestamp=base + timedelta(minutes=30),
        )
    )

    kinds = [n.type for n in service.list_for_order(1)]

    assert kinds == ["ORDER_ACCEPTED", "ORDER_READY", "ORDER_PICKED_UP"]
    assert [n.type for n in service.list_all()] == list(reversed(kinds))
    assert service.list_for_order(2) == []


@pytest.mark.unit
def test_mark_read(service):
    service.on_order_ready(OrderReady(order_id=1, customer_id=7, partner_id=3))
    service.on_order_ready(OrderReady(order_id=2, customer_id=8, partner_id=3))
    first = service.list_unread(customer_id=7)[0]

    service.mark_read(first.id)

    assert service.list_unread(customer_id=7) == []
    assert len(service.list_unread()) == 1


@pytest.mark.unit
def test_mark_read_unknown_raises(service):
    with pytest.raises(NotificationNotFoundError):
        service.mark_read("missing")


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.mark.unit
def test_http_endpoints(notifications_db, consumer, make_message):
    app = create_app(
        NotificationServiceConfig(), db=notifications_db, consumer=consumer, start_consumer=False
    )
    with TestClient(app) as client:
        consumer.dispatch(
            make_message(topics.ORDER_READY, OrderReady(order_id=4, customer_id=7, partner_id=3))
        )

        listed = client.get("/notifications").json()
        assert len(listed) == 1
        assert client.get("/notifications/order/4").json()[0]["type"] == "ORDER_READY"

        notification_id = listed[0]["id"]
        response = client.post(f"/notifications/{notification_id}/mark-read")
        assert response.status_code == 200
        assert client.get("/notifications/unread").json() == []

        missing = client.post("/notifications/nope/mark-read")
        assert missing.status_code == 404
        assert missing.json()["title"] == "Notification not found"
