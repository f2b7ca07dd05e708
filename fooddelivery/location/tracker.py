"""
GPS Delivery Tracker

Simulates a driver's position for every picked-up order.

TRACKING LOOP (one thread per order):
    for n in 1..N:
        position = start + (end - start) * n / N
        publish location-update(n)
        if n == arriving_at_update: publish driver-arriving (once)
        wait interval (returns early when cancelled)
    optionally publish order-delivered

At most one tracking per order; a second pickup event for an order that is
already tracked is ignored. order-delivered from the order service cancels
tracking for that order.
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from fooddelivery.location.config import LocationServiceConfig
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer, EventPublisher
from fooddelivery.shared.events import (
    DriverArriving,
    LocationUpdate,
    OrderDelivered,
    OrderPickedUp,
)
from fooddelivery.shared.logger import CorrelationAdapter


def interpolate(
    start: Tuple[float, float], end: Tuple[float, float], fraction: float
) -> Tuple[float, float]:
    """Linear interpolation between two (lat, lon) points."""
    return (
        start[0] + (end[0] - start[0]) * fraction,
        start[1] + (end[1] - start[1]) * fraction,
    )


@dataclass
class Tracking:
    pickup: OrderPickedUp
    cancelled: threading.Event = field(default_factory=threading.Event)
    thread: Optional[threading.Thread] = None
    updates_sent: int = 0


class DeliveryTracker:
    """
    Attributes:
        active: order_id -> Tracking for drives in progress
    """

    def __init__(self, config: LocationServiceConfig, publisher: EventPublisher):
        self.config = config
        self.publisher = publisher
        self.logger = logging.getLogger(__name__)
        self.active: Dict[int, Tracking] = {}
        self._lock = threading.Lock()

    def register(self, consumer: EventConsumer) -> None:
        consumer.register(topics.ORDER_PICKED_UP, self.on_order_picked_up)
        consumer.register(topics.ORDER_DELIVERED, self.on_order_delivered)

    def active_orders(self) -> List[int]:
        with self._lock:
            return sorted(self.active)

    # ------------------------------------------------------------------
    # Relays
    # ------------------------------------------------------------------

    def on_order_picked_up(self, event: OrderPickedUp) -> None:
        self.start_tracking(event)

    def on_order_delivered(self, event: OrderDelivered) -> None:
        if self.cancel(event.order_id):
            self.logger.info(
                "Order delivered, tracking cancelled",
                extra={"correlation_id": event.order_id},
            )

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def start_tracking(self, pickup: OrderPickedUp) -> bool:
        """Start a tracking thread; False if the order is already tracked."""
        with self._lock:
            if pickup.order_id in self.active:
                self.logger.warning(
                    "Order already tracked, ignoring pickup",
                    extra={"correlation_id": pickup.order_id, "event_id": pickup.event_id},
                )
                return False
            tracking = Tracking(pickup=pickup)
            tracking.thread = threading.Thread(
                target=self._run,
                args=(tracking,),
                name=f"tracking-{pickup.order_id}",
                daemon=True,
            )
            self.active[pickup.order_id] = tracking

        self.logger.info(
            "Tracking started",
            extra={
                "correlation_id": pickup.order_id,
                "agent_id": pickup.agent_id,
                "updates": self.config.tracking_updates,
            },
        )
        tracking.thread.start()
        return True

    def cancel(self, order_id: int) -> bool:
        with self._lock:
            tracking = self.active.pop(order_id, None)
        if tracking is None:
            return False
        tracking.cancelled.set()
        return True

    def stop(self, timeout: float = 5.0) -> None:
        """Cancel every active tracking and wait for the threads."""
        with self._lock:
            trackings = list(self.active.values())
            self.active.clear()
        for tracking in trackings:
            tracking.cancelled.set()
        for tracking in trackings:
            if tracking.thread is not threading.current_thread():
                tracking.thread.join(timeout)
        self.logger.info("Tracker stopped", extra={"cancelled": len(trackings)})

    def _run(self, tracking: Tracking) -> None:
        pickup = tracking.pickup
        log = CorrelationAdapter(self.logger, {"correlation_id": pickup.order_id})
        total = self.config.tracking_updates
        start = (self.config.start_latitude, self.config.start_longitude)
        end = (self.config.end_latitude, self.config.end_longitude)

        try:
            for n in range(1, total + 1):
                if tracking.cancelled.is_set():
                    log.info("Tracking cancelled", extra={"updates_sent": tracking.updates_sent})
                    return

                latitude, longitude = interpolate(start, end, n / total)
                self.publisher.publish(
                    topics.LOCATION_UPDATE,
                    LocationUpdate(
                        order_id=pickup.order_id,
                        customer_id=pickup.customer_id,
                        agent_id=pickup.agent_id,
                        latitude=latitude,
                        longitude=longitude,
                        update_number=n,
                        total_updates=total,
                    ),
                )
                tracking.updates_sent = n
                log.debug(
                    "Location update published",
                    extra={"update": n, "latitude": latitude, "longitude": longitude},
                )

                if n == self.config.arriving_at_update:
                    self.publisher.publish(
                        topics.DRIVER_ARRIVING,
                        DriverArriving(
                            order_id=pickup.order_id,
                            customer_id=pickup.customer_id,
                            agent_id=pickup.agent_id,
                            estimated_minutes=self.config.arriving_estimated_minutes,
                        ),
                    )
                    log.info("Driver arriving published", extra={"update": n})

                if n < total and tracking.cancelled.wait(self.config.tracking_interval_seconds):
                    log.info("Tracking cancelled", extra={"updates_sent": tracking.updates_sent})
                    return

            log.info("Driver arrived at destination", extra={"updates_sent": total})

            if self.config.publish_delivered_on_arrival:
                self.publisher.publish(
                    topics.ORDER_DELIVERED,
                    OrderDelivered(
                        order_id=pickup.order_id,
                        customer_id=pickup.customer_id,
                        partner_id=pickup.partner_id,
                        agent_id=pickup.agent_id,
                        photo_url=self.config.delivery_photo_url,
                    ),
                )
        except Exception:
            log.error("Tracking failed", exc_info=True)
        finally:
            with self._lock:
                if self.active.get(pickup.order_id) is tracking:
                    del self.active[pickup.order_id]
