"""
Unit Tests for the Websocket Registry and Gateways

Sockets are in-memory fakes exposing the starlette WebSocket surface the
registry uses (client/application state, send_text, close).
"""

import asyncio
import json
import threading

import pytest
from starlette.websockets import WebSocketState

from fooddelivery.shared.events import AgentAssigned, LocationUpdate, OrderAccepted, OrderReady
from fooddelivery.websockets.config import (
    AgentGatewayConfig,
    CustomerGatewayConfig,
    PartnerGatewayConfig,
)
from fooddelivery.websockets.gateways import (
    CUSTOMER_TOPICS,
    PARTNER_TOPICS,
    AgentGateway,
    CustomerGateway,
    PartnerGateway,
)
from fooddelivery.websockets.registry import (
    REPLACED_CLOSE_CODE,
    REPLACED_REASON,
    BroadcastRoom,
    ConnectionRegistry,
    LoopBridge,
    build_frame,
)
from fooddelivery.shared.bus import EventConsumer


class FakeSocket:
    def __init__(self, fail_on_send=False):
        self.client_state = WebSocketState.CONNECTED
        self.application_state = WebSocketState.CONNECTED
        self.sent = []
        self.closed_with = None
        self.fail_on_send = fail_on_send

    async def send_text(self, text):
        if self.fail_on_send:
            raise RuntimeError("connection reset")
        self.sent.append(json.loads(text))

    async def close(self, code=1000, reason=None):
        self.closed_with = (code, reason)
        self.application_state = WebSocketState.DISCONNECTED


def run(coro):
    return asyncio.run(coro)


# ==============================================================================
# CONNECTION REGISTRY
# ==============================================================================


@pytest.mark.unit
def test_second_registration_replaces_and_closes_first():
    registry = ConnectionRegistry("customers")
    first, second = FakeSocket(), FakeSocket()

    run(registry.register(7, first))
    run(registry.register(7, second))

    assert registry.get(7) is second
    assert registry.count() == 1
    assert first.closed_with == (REPLACED_CLOSE_CODE, REPLACED_REASON)
    assert second.closed_with is None


@pytest.mark.unit
def test_unregister_by_identity_keeps_successor():
    registry = ConnectionRegistry("customers")
    first, second = FakeSocket(), FakeSocket()
    run(registry.register("7", first))
    run(registry.register("7", second))

    # the replaced session's disconnect handler runs late
    assert registry.unregister("7", first) is False
    assert registry.get("7") is second

    assert registry.unregister("7", second) is True
    assert registry.count() == 0


@pytest.mark.unit
def test_send_delivers_frame():
    registry = ConnectionRegistry("customers")
    socket = FakeSocket()
    run(registry.register(7, socket))

    assert run(registry.send(7, build_frame("TestMessage", {"message": "hi"}))) is True

    assert socket.sent[0]["event_type"] == "TestMessage"
    assert socket.sent[0]["payload"] == {"message": "hi"}
    assert "timestamp" in socket.sent[0]


@pytest.mark.unit
def test_send_to_missing_key_returns_false():
    assert run(ConnectionRegistry("customers").send(1, build_frame("X", {}))) is False


@pytest.mark.unit
def test_failed_send_removes_entry():
    registry = ConnectionRegistry("customers")
    run(registry.register(7, FakeSocket(fail_on_send=True)))

    assert run(registry.send(7, build_frame("X", {}))) is False
    assert registry.get(7) is None


@pytest.mark.unit
def test_closed_socket_is_dropped_on_send():
    registry = ConnectionRegistry("customers")
    socket = FakeSocket()
    socket.client_state = WebSocketState.DISCONNECTED
    run(registry.register(7, socket))

    assert run(registry.send(7, build_frame("X", {}))) is False
    assert registry.count() == 0


# ==============================================================================
# BROADCAST ROOM
# ==============================================================================


@pytest.mark.unit
def test_broadcast_skips_and_removes_dead_sockets():
    room = BroadcastRoom("agents")
    alive, broken, closed = FakeSocket(), FakeSocket(fail_on_send=True), FakeSocket()
    closed.application_state = WebSocketState.DISCONNECTED
    for socket in (alive, broken, closed):
        room.add(socket)

    delivered = run(room.broadcast(build_frame("OrderAccepted", {"order_id": 1})))

    assert delivered == 1
    assert room.count() == 1
    assert len(alive.sent) == 1


@pytest.mark.unit
def test_room_remove():
    room = BroadcastRoom("agents")
    connection_id = room.add(FakeSocket())

    assert room.remove(connection_id) is True
    assert room.remove(connection_id) is False


# ==============================================================================
# LOOP BRIDGE
# ==============================================================================


@pytest.mark.unit
def test_bridge_without_loop_raises():
    async def noop():
        return 1

    with pytest.raises(RuntimeError):
        LoopBridge().run(noop())


@pytest.mark.unit
def test_bridge_runs_coroutine_on_bound_loop():
    loop = asyncio.new_event_loop()
    thread = threading.Thread(target=loop.run_forever, daemon=True)
    thread.start()
    try:
        bridge = LoopBridge(timeout=5)
        bridge.bind(loop)

        async def which_loop():
            return asyncio.get_running_loop()

        assert bridge.run(which_loop()) is loop
    finally:
        loop.call_soon_threadsafe(loop.stop)
        thread.join(5)
        loop.close()


# ==============================================================================
# GATEWAYS
# ==============================================================================


def _accepted(order_id=1) -> OrderAccepted:
    return OrderAccepted(
        order_id=order_id, customer_id=7, partner_id=3, delivery_address="x", delivery_fee=29.0
    )


@pytest.mark.unit
def test_customer_gateway_routes_by_customer_id():
    gateway = CustomerGateway(CustomerGatewayConfig())
    mine, other = FakeSocket(), FakeSocket()

    async def scenario():
        await gateway.connections.register(7, mine)
        await gateway.connections.register(8, other)
        update = LocationUpdate(
            order_id=1, customer_id=7, latitude=1.0, longitude=2.0, update_number=1, total_updates=12
        )
        return await gateway.push_to_customer(update)

    assert run(scenario()) is True
    assert mine.sent[0]["event_type"] == "LocationUpdate"
    assert mine.sent[0]["payload"]["latitude"] == 1.0
    assert other.sent == []


@pytest.mark.unit
def test_partner_gateway_drops_when_partner_offline():
    gateway = PartnerGateway(PartnerGatewayConfig())

    assert run(gateway.push_to_partner(_accepted())) is False


@pytest.mark.unit
def test_agent_assigned_goes_to_room_and_agent():
    gateway = AgentGateway(AgentGatewayConfig())
    watcher, agent = FakeSocket(), FakeSocket()
    event = AgentAssigned(
        order_id=1, partner_id=3, customer_id=7, agent_id=5, delivery_address="x", delivery_fee=29.0
    )

    async def scenario():
        gateway.room.add(watcher)
        await gateway.connections.register(5, agent)
        return await gateway.on_agent_assigned(event)

    assert run(scenario()) == (1, True)
    assert watcher.sent[0]["event_type"] == "AgentAssigned"
    assert agent.sent[0]["payload"]["agent_id"] == 5


@pytest.mark.unit
def test_order_ready_without_agent_is_not_pushed():
    gateway = AgentGateway(AgentGatewayConfig())

    assert run(gateway.on_order_ready(OrderReady(order_id=1, customer_id=7, partner_id=3))) is False


@pytest.mark.unit
def test_gateway_topic_registration():
    customer = EventConsumer(CustomerGatewayConfig())
    partner = EventConsumer(PartnerGatewayConfig())
    agent = EventConsumer(AgentGatewayConfig())

    CustomerGateway(CustomerGatewayConfig()).register(customer)
    PartnerGateway(PartnerGatewayConfig()).register(partner)
    AgentGateway(AgentGatewayConfig()).register(agent)

    assert set(customer.topics) == set(CUSTOMER_TOPICS)
    assert set(partner.topics) == set(PARTNER_TOPICS)
    assert set(agent.topics) == {"order-accepted", "agent-assigned", "order-ready"}


@pytest.mark.unit
def test_agent_status_counts_room():
    gateway = AgentGateway(AgentGatewayConfig())
    gateway.room.add(FakeSocket())

    assert gateway.status() == {
        "role": "agent",
        "connections": 0,
        "keys": [],
        "broadcast_connections": 1,
    }
