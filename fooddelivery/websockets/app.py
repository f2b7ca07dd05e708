"""
Websocket gateway apps.

Each role runs as its own service:

    customer  /ws/customers/{customer_id}
    partner   /ws/partners/{partner_id}
    agent     /ws/agents  and  /ws/agents/{agent_id}

Common HTTP endpoints:
    GET  /status               connection counts
    POST /test-send/{key}      push a TestMessage frame, {"delivered": bool}
    GET  /health

A plain HTTP GET on a websocket path answers 400.
"""

import logging
from typing import Optional

from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel

from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.http import create_service_app, problem_response
from fooddelivery.shared.runtime import ServiceRuntime
from fooddelivery.websockets.config import (
    AgentGatewayConfig,
    CustomerGatewayConfig,
    GatewayConfig,
    PartnerGatewayConfig,
)
from fooddelivery.websockets.gateways import GATEWAYS, AgentGateway, WebsocketGateway

logger = logging.getLogger(__name__)

CONFIGS = {
    "customer": CustomerGatewayConfig,
    "partner": PartnerGatewayConfig,
    "agent": AgentGatewayConfig,
}


class SendTestRequest(BaseModel):
    message: str = "Test message from server"


async def _serve(websocket: WebSocket, gateway: WebsocketGateway, key: str) -> None:
    """Register, drain inbound frames until disconnect, unregister by identity."""
    if gateway.bridge.loop is None:
        gateway.bridge.bind()

    await websocket.accept()
    await gateway.connections.register(key, websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect as e:
        logger.info(
            "Websocket disconnected",
            extra={"role": gateway.role, "key": key, "code": e.code},
        )
    finally:
        gateway.connections.unregister(key, websocket)


async def _serve_room(websocket: WebSocket, gateway: AgentGateway) -> None:
    if gateway.bridge.loop is None:
        gateway.bridge.bind()

    await websocket.accept()
    connection_id = gateway.room.add(websocket)
    try:
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        logger.info("Broadcast websocket disconnected", extra={"connection_id": connection_id})
    finally:
        gateway.room.remove(connection_id)


def create_app(
    role: str,
    config: Optional[GatewayConfig] = None,
    consumer: Optional[EventConsumer] = None,
    start_consumer: bool = True,
) -> FastAPI:
    """
    Build the gateway app for ``role`` (customer, partner or agent).

    Raises:
        ValueError: Unknown role
    """
    if role not in GATEWAYS:
        raise ValueError(f"Unknown gateway role: {role}")

    config = config or CONFIGS[role]()
    consumer = consumer or EventConsumer(config, name=f"websocket-{role}")
    gateway = GATEWAYS[role](config)
    gateway.register(consumer)

    runtime = ServiceRuntime(config, consumer=consumer, start_consumer=start_consumer)
    runtime.on_startup(gateway.bridge.bind)

    app = create_service_app(
        f"Websocket {role.capitalize()} Gateway", config.service_name, lifespan=runtime.lifespan()
    )
    app.state.gateway = gateway
    app.state.consumer = consumer

    path = f"/ws/{role}s/{{key}}"

    @app.websocket(path)
    async def personal_socket(websocket: WebSocket, key: str):
        await _serve(websocket, gateway, key)

    @app.get(path, include_in_schema=False)
    async def personal_socket_http(key: str, request: Request):
        return problem_response(request, 400, "WebSocket connection expected")

    if isinstance(gateway, AgentGateway):

        @app.websocket("/ws/agents")
        async def room_socket(websocket: WebSocket):
            await _serve_room(websocket, gateway)

        @app.get("/ws/agents", include_in_schema=False)
        async def room_socket_http(request: Request):
            return problem_response(request, 400, "WebSocket connection expected")

    @app.get("/status")
    def status():
        return gateway.status()

    @app.post("/test-send/{key}")
    async def test_send(key: str, body: Optional[SendTestRequest] = None):
        message = body.message if body else SendTestRequest().message
        return {"key": key, "delivered": await gateway.test_send(key, message)}

    return app
