"""
Notification Service

Turns order lifecycle events into customer notifications and serves them
over HTTP.

EVENT → NOTIFICATION:
    order-accepted   ORDER_ACCEPTED   "Your order has been accepted by the restaurant!"
    order-rejected   ORDER_REJECTED   "Your order was rejected: {reason}"
    order-ready      ORDER_READY      "Your order is ready for pickup! 🎉"
    order-pickedup   ORDER_PICKED_UP  "Driver is on the way with your order! 🚗"
    order-delivered  ORDER_DELIVERED  "Your food has been delivered! Enjoy your meal!"
    driver-arriving  DRIVER_ARRIVING  "Driver is arriving soon! Estimated {n} minutes away 🚗"

One row per consumed event. A redelivered event produces a second row.
"""

import logging
from typing import List, Optional

from sqlalchemy import select

from fooddelivery.notifications.models import Notification
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.database import DatabaseManager
from fooddelivery.shared.events import (
    BaseEvent,
    DriverArriving,
    OrderAccepted,
    OrderDelivered,
    OrderPickedUp,
    OrderReady,
    OrderRejected,
)


class NotificationNotFoundError(LookupError):
    def __init__(self, notification_id: str):
        super().__init__(f"Notification {notification_id} not found")
        self.notification_id = notification_id


class NotificationService:
    """
    Attributes:
        db: DatabaseManager for the notifications database
        notifications_created: Count of rows written by the relays
    """

    def __init__(self, db: DatabaseManager):
        self.db = db
        self.logger = logging.getLogger(__name__)
        self.notifications_created = 0

    def register(self, consumer: EventConsumer) -> None:
        consumer.register(topics.ORDER_ACCEPTED, self.on_order_accepted)
        consumer.register(topics.ORDER_REJECTED, self.on_order_rejected)
        consumer.register(topics.ORDER_READY, self.on_order_ready)
        consumer.register(topics.ORDER_PICKED_UP, self.on_order_picked_up)
        consumer.register(topics.ORDER_DELIVERED, self.on_order_delivered)
        consumer.register(topics.DRIVER_ARRIVING, self.on_driver_arriving)

    # ------------------------------------------------------------------
    # Relays
    # ------------------------------------------------------------------

    def _create(self, event: BaseEvent, kind: str, message: str, emoji: str) -> Notification:
        notification = Notification(
            order_id=event.order_id,
            customer_id=getattr(event, "customer_id", None),
            type=kind,
            message=message,
            emoji=emoji,
            timestamp=event.timestamp,
            is_read=False,
        )

        def _insert(session):
            session.add(notification)
            return notification

        self.db.run_with_retry(_insert)
        self.notifications_created += 1
        self.logger.info(
            "Notification created",
            extra={
                "correlation_id": event.order_id,
                "notification_id": notification.id,
                "type": kind,
                "customer_id": notification.customer_id,
            },
        )
        return notification

    def on_order_accepted(self, event: OrderAccepted) -> None:
        self._create(event, "ORDER_ACCEPTED", "Your order has been accepted by the restaurant!", "✅")

    def on_order_rejected(self, event: OrderRejected) -> None:
        self._create(event, "ORDER_REJECTED", f"Your order was rejected: {event.reason}", "❌")

    def on_order_ready(self, event: OrderReady) -> None:
        self._create(event, "ORDER_READY", "Your order is ready for pickup! 🎉", "🎉")

    def on_order_picked_up(self, event: OrderPickedUp) -> None:
        self._create(event, "ORDER_PICKED_UP", "Driver is on the way with your order! 🚗", "🚗")

    def on_order_delivered(self, event: OrderDelivered) -> None:
        self._create(
            event, "ORDER_DELIVERED", "Your food has been delivered! Enjoy your meal!", "🍽️"
        )

    def on_driver_arriving(self, event: DriverArriving) -> None:
        self._create(
            event,
            "DRIVER_ARRIVING",
            f"Driver is arriving soon! Estimated {event.estimated_minutes} minutes away 🚗",
            "📍",
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def _query(self, *criteria, newest_first: bool = True) -> List[Notification]:
        order = Notification.timestamp.desc() if newest_first else Notification.timestamp.asc()
        stmt = select(Notification).where(*criteria).order_by(order)
        with self.db.get_session() as session:
            return list(session.scalars(stmt).all())

    def list_all(self) -> List[Notification]:
        return self._query()

    def list_for_order(self, order_id: int) -> List[Notification]:
        return self._query(Notification.order_id == order_id, newest_first=False)

    def list_unread(self, customer_id: Optional[int] = None) -> List[Notification]:
        criteria = [Notification.is_read.is_(False)]
        if customer_id is not None:
            criteria.append(Notification.customer_id == customer_id)
        return self._query(*criteria)

    def mark_read(self, notification_id: str) -> Notification:
        with self.db.get_session() as session:
            notification = session.get(Notification, notification_id)
            if notification is None:
                raise NotificationNotFoundError(notification_id)
            notification.is_read = True
        return notification
