"""Notification service configuration."""

from pydantic import Field

from fooddelivery.shared.config import ServiceConfig


class NotificationServiceConfig(ServiceConfig):
    service_name: str = Field(default="notification-service")
    postgres_db: str = Field(default="notifications")
    consumer_group_id: str = Field(default="notification-service")
    http_port: int = Field(default=8003, ge=1, le=65535)


def load_config() -> NotificationServiceConfig:
    """Load and validate notification service configuration."""
    return NotificationServiceConfig()
