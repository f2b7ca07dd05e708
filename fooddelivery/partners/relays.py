"""
Partner order relays.

Keeps ``partner_orders`` in step with the order lifecycle:

    order-created    insert copy in Placed (a copy that already exists is kept)
    order-accepted   Accepted,  accepted_at
    order-rejected   Rejected,  rejection_reason
    order-ready      Ready,     ready_at
    agent-assigned   agent_id
    order-pickedup   PickedUp,  picked_up_at
    order-delivered  Delivered, delivered_at

Events for orders this service never saw are logged and skipped.
"""

import logging
from decimal import Decimal
from typing import Optional

from sqlalchemy.orm import Session

from fooddelivery.partners.models import PartnerOrder
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.database import DatabaseManager
from fooddelivery.shared.events import (
    AgentAssigned,
    OrderAccepted,
    OrderCreated,
    OrderDelivered,
    OrderPickedUp,
    OrderReady,
    OrderRejected,
)
from fooddelivery.shared.logger import CorrelationAdapter


class PartnerOrderRelay:
    def __init__(self, db: DatabaseManager):
        self.db = db
        self.logger = logging.getLogger(__name__)

    def register(self, consumer: EventConsumer) -> None:
        consumer.register(topics.ORDER_CREATED, self.on_order_created)
        consumer.register(topics.ORDER_ACCEPTED, self.on_order_accepted)
        consumer.register(topics.ORDER_REJECTED, self.on_order_rejected)
        consumer.register(topics.ORDER_READY, self.on_order_ready)
        consumer.register(topics.AGENT_ASSIGNED, self.on_agent_assigned)
        consumer.register(topics.ORDER_PICKED_UP, self.on_order_picked_up)
        consumer.register(topics.ORDER_DELIVERED, self.on_order_delivered)

    def on_order_created(self, event: OrderCreated) -> None:
        log = CorrelationAdapter(self.logger, {"correlation_id": event.order_id})

        def _insert(session: Session) -> bool:
            if session.get(PartnerOrder, event.order_id) is not None:
                return False
            session.add(
                PartnerOrder(
                    order_id=event.order_id,
                    partner_id=event.partner_id,
                    customer_id=event.customer_id,
                    delivery_address=event.delivery_address,
                    items=[item.model_dump() for item in event.items],
                    total_amount=Decimal(str(event.total_amount)),
                    status="Placed",
                    created_at=event.timestamp,
                )
            )
            return True

        if self.db.run_with_retry(_insert):
            log.info("Partner order stored", extra={"partner_id": event.partner_id})
        else:
            log.warning("Partner order already stored, skipping", extra={"event_id": event.event_id})

    def _advance(self, order_id: int, status: Optional[str], **fields) -> bool:
        log = CorrelationAdapter(self.logger, {"correlation_id": order_id})

        def _update(session: Session) -> bool:
            order = session.get(PartnerOrder, order_id)
            if order is None:
                return False
            if status is not None:
                order.status = status
            for name, value in fields.items():
                setattr(order, name, value)
            return True

        if not self.db.run_with_retry(_update):
            log.warning("Unknown partner order, skipping", extra={"status": status})
            return False

        log.info("Partner order updated", extra={"status": status, "fields": sorted(fields)})
        return True

    def on_order_accepted(self, event: OrderAccepted) -> None:
        self._advance(event.order_id, "Accepted", accepted_at=event.timestamp)

    def on_order_rejected(self, event: OrderRejected) -> None:
        self._advance(event.order_id, "Rejected", rejection_reason=event.reason)

    def on_order_ready(self, event: OrderReady) -> None:
        self._advance(event.order_id, "Ready", ready_at=event.timestamp)

    def on_agent_assigned(self, event: AgentAssigned) -> None:
        self._advance(event.order_id, None, agent_id=event.agent_id)

    def on_order_picked_up(self, event: OrderPickedUp) -> None:
        self._advance(event.order_id, "PickedUp", picked_up_at=event.timestamp)

    def on_order_delivered(self, event: OrderDelivered) -> None:
        self._advance(event.order_id, "Delivered", delivered_at=event.timestamp)
