"""
Websocket Gateways

Relays that push order events to connected clients.

    CustomerGateway   /ws/customers/{customer_id}
        order-accepted, order-rejected, order-ready, order-pickedup,
        order-delivered, location-update, driver-arriving  -> event.customer_id

    PartnerGateway    /ws/partners/{partner_id}
        order-created, agent-assigned, order-pickedup       -> event.partner_id

    AgentGateway      /ws/agents (room), /ws/agents/{agent_id} (personal)
        order-accepted                                      -> room
        agent-assigned                                      -> room + event.agent_id
        order-ready                                         -> event.agent_id

Consumer handlers run on the consumer thread and hand the push to the app's
event loop through LoopBridge.
"""

import logging
from typing import Awaitable, Callable, Dict, Optional, Tuple

from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.events import AgentAssigned, BaseEvent, OrderAccepted, OrderReady
from fooddelivery.websockets.config import GatewayConfig
from fooddelivery.websockets.registry import (
    BroadcastRoom,
    ConnectionRegistry,
    LoopBridge,
    build_frame,
    event_frame,
)

CUSTOMER_TOPICS = (
    topics.ORDER_ACCEPTED,
    topics.ORDER_REJECTED,
    topics.ORDER_READY,
    topics.ORDER_PICKED_UP,
    topics.ORDER_DELIVERED,
    topics.LOCATION_UPDATE,
    topics.DRIVER_ARRIVING,
)

PARTNER_TOPICS = (
    topics.ORDER_CREATED,
    topics.AGENT_ASSIGNED,
    topics.ORDER_PICKED_UP,
)


class WebsocketGateway:
    """
    Base class: holds the per-key registry and the loop bridge.

    Attributes:
        role: customer | partner | agent
        connections: Per-key registry (latest-connection-wins)
        bridge: LoopBridge bound to the serving event loop at startup
    """

    role = ""

    def __init__(self, config: GatewayConfig, bridge: Optional[LoopBridge] = None):
        self.config = config
        self.logger = logging.getLogger(__name__)
        self.connections = ConnectionRegistry(f"{self.role}s")
        self.bridge = bridge or LoopBridge(timeout=config.send_timeout_seconds)

    def register(self, consumer: EventConsumer) -> None:
        raise NotImplementedError

    def relay(self, deliver: Callable[[BaseEvent], Awaitable]) -> Callable[[BaseEvent], None]:
        """Wrap an async push as a consumer handler."""

        def _handler(event: BaseEvent) -> None:
            self.bridge.run(deliver(event))

        return _handler

    async def push(self, key, event: BaseEvent) -> bool:
        delivered = await self.connections.send(key, event_frame(event))
        self.logger.info(
            "Event pushed" if delivered else "Recipient not connected, event dropped",
            extra={
                "correlation_id": getattr(event, "order_id", None),
                "role": self.role,
                "key": key,
                "event_type": event.event_type,
            },
        )
        return delivered

    async def test_send(self, key: str, message: str) -> bool:
        return await self.connections.send(key, build_frame("TestMessage", {"message": message}))

    def status(self) -> Dict[str, object]:
        return {
            "role": self.role,
            "connections": self.connections.count(),
            "keys": self.connections.keys(),
        }


class CustomerGateway(WebsocketGateway):
    role = "customer"

    def register(self, consumer: EventConsumer) -> None:
        handler = self.relay(self.push_to_customer)
        for topic in CUSTOMER_TOPICS:
            consumer.register(topic, handler)

    async def push_to_customer(self, event: BaseEvent) -> bool:
        return await self.push(event.customer_id, event)


class PartnerGateway(WebsocketGateway):
    role = "partner"

    def register(self, consumer: EventConsumer) -> None:
        handler = self.relay(self.push_to_partner)
        for topic in PARTNER_TOPICS:
            consumer.register(topic, handler)

    async def push_to_partner(self, event: BaseEvent) -> bool:
        return await self.push(event.partner_id, event)


class AgentGateway(WebsocketGateway):
    """
    Agents get a shared room (new orders up for grabs) plus a personal
    channel for orders assigned to them.
    """

    role = "agent"

    def __init__(self, config: GatewayConfig, bridge: Optional[LoopBridge] = None):
        super().__init__(config, bridge)
        self.room = BroadcastRoom("agents")

    def register(self, consumer: EventConsumer) -> None:
        consumer.register(topics.ORDER_ACCEPTED, self.relay(self.on_order_accepted))
        consumer.register(topics.AGENT_ASSIGNED, self.relay(self.on_agent_assigned))
        consumer.register(topics.ORDER_READY, self.relay(self.on_order_ready))

    async def on_order_accepted(self, event: OrderAccepted) -> int:
        delivered = await self.room.broadcast(event_frame(event))
        self.logger.info(
            "Accepted order broadcast to agents",
            extra={"correlation_id": event.order_id, "delivered": delivered},
        )
        return delivered

    async def on_agent_assigned(self, event: AgentAssigned) -> Tuple[int, bool]:
        delivered = await self.room.broadcast(event_frame(event))
        personal = await self.push(event.agent_id, event)
        return delivered, personal

    async def on_order_ready(self, event: OrderReady) -> bool:
        if event.agent_id is None:
            self.logger.warning(
                "Order ready without an assigned agent, nobody to notify",
                extra={"correlation_id": event.order_id},
            )
            return False
        return await self.push(event.agent_id, event)

    def status(self) -> Dict[str, object]:
        result = super().status()
        result["broadcast_connections"] = self.room.count()
        return result


GATEWAYS = {
    "customer": CustomerGateway,
    "partner": PartnerGateway,
    "agent": AgentGateway,
}
