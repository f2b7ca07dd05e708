"""
Order Lifecycle Events

Pydantic models for every message carried on the bus. Each topic carries
exactly one event type; ``TOPIC_EVENTS`` maps topic name to model so that
consumers can validate incoming JSON without knowing the producer.

WIRE FORMAT:
- JSON, UTF-8, snake_case keys
- Kafka key: order_id (keeps an order's events on one partition)
- ``event_id`` is a fresh uuid4 per publish; consumers do not deduplicate on it

EXAMPLE (order-accepted):
{
  "event_id": "6f1c...",
  "event_type": "OrderAccepted",
  "timestamp": "2025-01-10T14:30:00.123000Z",
  "order_id": 42,
  "customer_id": 7,
  "partner_id": 3,
  "partner_name": "Pasta Palace",
  "partner_address": "Vesterbrogade 1",
  "delivery_address": "Nørrebrogade 10",
  "delivery_fee": 29.0,
  "items": [{"name": "Lasagne", "quantity": 2}],
  "estimated_minutes": 25
}
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Type

from pydantic import BaseModel, Field

from fooddelivery.shared import topics


def utc_now() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def new_event_id() -> str:
    return str(uuid.uuid4())


class EventItem(BaseModel):
    """Line item as carried in events (no prices)."""

    name: str
    quantity: int = Field(..., gt=0)


class BaseEvent(BaseModel):
    """Envelope fields shared by every event."""

    event_id: str = Field(default_factory=new_event_id)
    event_type: str
    timestamp: datetime = Field(default_factory=utc_now)

    def partition_key(self) -> Optional[str]:
        order_id = getattr(self, "order_id", None)
        return None if order_id is None else str(order_id)

    def to_bytes(self) -> bytes:
        """Serialize to UTF-8 JSON for Kafka."""
        return self.model_dump_json().encode("utf-8")


# ==============================================================================
# ORDER LIFECYCLE
# ==============================================================================


class OrderCreated(BaseEvent):
    event_type: Literal["OrderCreated"] = "OrderCreated"
    order_id: int
    customer_id: int
    partner_id: int
    delivery_address: str
    items: List[EventItem]
    total_amount: float


class OrderAccepted(BaseEvent):
    event_type: Literal["OrderAccepted"] = "OrderAccepted"
    order_id: int
    customer_id: int
    partner_id: int
    partner_name: str = ""
    partner_address: str = ""
    delivery_address: str
    delivery_fee: float
    items: List[EventItem] = Field(default_factory=list)
    estimated_minutes: Optional[int] = None


class OrderRejected(BaseEvent):
    event_type: Literal["OrderRejected"] = "OrderRejected"
    order_id: int
    customer_id: int
    partner_id: int
    reason: str


class OrderReady(BaseEvent):
    event_type: Literal["OrderReady"] = "OrderReady"
    order_id: int
    customer_id: int
    partner_id: int
    partner_name: str = ""
    partner_address: str = ""
    agent_id: Optional[int] = None


class AgentAssigned(BaseEvent):
    event_type: Literal["AgentAssigned"] = "AgentAssigned"
    order_id: int
    partner_id: int
    customer_id: int
    agent_id: int
    partner_name: str = ""
    partner_address: str = ""
    delivery_address: str
    delivery_fee: float
    items: List[EventItem] = Field(default_factory=list)


class OrderPickedUp(BaseEvent):
    event_type: Literal["OrderPickedUp"] = "OrderPickedUp"
    order_id: int
    customer_id: int
    partner_id: int
    agent_id: int
    delivery_address: str = ""


class OrderDelivered(BaseEvent):
    event_type: Literal["OrderDelivered"] = "OrderDelivered"
    order_id: int
    customer_id: int
    partner_id: Optional[int] = None
    agent_id: Optional[int] = None
    photo_url: Optional[str] = None


# ==============================================================================
# DELIVERY TRACKING
# ==============================================================================


class LocationUpdate(BaseEvent):
    event_type: Literal["LocationUpdate"] = "LocationUpdate"
    order_id: int
    customer_id: int
    agent_id: Optional[int] = None
    latitude: float
    longitude: float
    update_number: int
    total_updates: int


class DriverArriving(BaseEvent):
    event_type: Literal["DriverArriving"] = "DriverArriving"
    order_id: int
    customer_id: int
    agent_id: Optional[int] = None
    estimated_minutes: int


# ==============================================================================
# LOGGING
# ==============================================================================


class LogEntry(BaseEvent):
    """Application log record shipped to the collector."""

    event_type: Literal["LogEntry"] = "LogEntry"
    id: str = Field(default_factory=new_event_id)
    type: Literal["System", "Audit"] = "System"
    level: str
    service_name: str
    category: str
    message: str
    exception: Optional[str] = None
    properties: Dict[str, Any] = Field(default_factory=dict)
    user_id: Optional[str] = None
    user_role: Optional[str] = None
    action: Optional[str] = None
    resource: Optional[str] = None
    resource_id: Optional[str] = None
    trace_id: Optional[str] = None
    machine_name: Optional[str] = None

    def partition_key(self) -> Optional[str]:
        return self.service_name


TOPIC_EVENTS: Dict[str, Type[BaseEvent]] = {
    topics.ORDER_CREATED: OrderCreated,
    topics.ORDER_ACCEPTED: OrderAccepted,
    topics.ORDER_REJECTED: OrderRejected,
    topics.ORDER_READY: OrderReady,
    topics.ORDER_PICKED_UP: OrderPickedUp,
    topics.ORDER_DELIVERED: OrderDelivered,
    topics.AGENT_ASSIGNED: AgentAssigned,
    topics.LOCATION_UPDATE: LocationUpdate,
    topics.DRIVER_ARRIVING: DriverArriving,
    topics.APP_LOGS: LogEntry,
}
