"""Order service configuration."""

from pydantic import Field

from fooddelivery.shared.config import ServiceConfig


class OrderServiceConfig(ServiceConfig):
    """
    Order API settings.

    Adds the service-fee bands and the partner service location on top of
    the shared Kafka/database/logging settings.
    """

    service_name: str = Field(default="order-service")
    postgres_db: str = Field(default="orders")
    consumer_group_id: str = Field(default="order-service")
    http_port: int = Field(default=8001, ge=1, le=65535)

    # === SERVICE FEE BANDS ===
    fee_low_threshold: float = Field(
        default=100.0,
        gt=0,
        description="Items total at or below which the high rate applies",
    )

    fee_high_threshold: float = Field(
        default=1000.0,
        gt=0,
        description="Items total at or above which the low rate applies",
    )

    fee_high_rate: float = Field(default=0.06, ge=0, le=1, description="Rate for small orders")
    fee_low_rate: float = Field(default=0.03, ge=0, le=1, description="Rate for large orders")

    # === DOWNSTREAM ===
    partner_service_url: str = Field(
        default="http://localhost:8002",
        description="Base URL of the partner service (name/address lookup)",
    )

    partner_lookup_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Seconds before a partner lookup is abandoned",
    )


def load_config() -> OrderServiceConfig:
    """Load and validate order service configuration."""
    return OrderServiceConfig()
