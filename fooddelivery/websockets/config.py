"""Websocket gateway configuration, one class per role."""

from pydantic import Field

from fooddelivery.shared.config import ServiceConfig


class GatewayConfig(ServiceConfig):
    send_timeout_seconds: float = Field(
        default=5.0,
        gt=0,
        le=60,
        description="Max seconds a consumer thread waits for a socket push",
    )


class CustomerGatewayConfig(GatewayConfig):
    service_name: str = Field(default="websocket-customer-service")
    consumer_group_id: str = Field(default="websocket-customer-service")
    http_port: int = Field(default=8005, ge=1, le=65535)


class PartnerGatewayConfig(GatewayConfig):
    service_name: str = Field(default="websocket-partner-service")
    consumer_group_id: str = Field(default="websocket-partner-service")
    http_port: int = Field(default=8006, ge=1, le=65535)


class AgentGatewayConfig(GatewayConfig):
    service_name: str = Field(default="websocket-agent-service")
    consumer_group_id: str = Field(default="websocket-agent-service")
    http_port: int = Field(default=8007, ge=1, le=65535)
