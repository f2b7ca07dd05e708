"""Partner service configuration."""

from pydantic import Field

from fooddelivery.shared.config import ServiceConfig


class PartnerServiceConfig(ServiceConfig):
    service_name: str = Field(default="partner-service")
    postgres_db: str = Field(default="partners")
    consumer_group_id: str = Field(default="partner-service")
    http_port: int = Field(default=8002, ge=1, le=65535)


def load_config() -> PartnerServiceConfig:
    """Load and validate partner service configuration."""
    return PartnerServiceConfig()
