"""Location (GPS simulator) service configuration."""

from pydantic import Field

from fooddelivery.shared.config import ServiceConfig


class LocationServiceConfig(ServiceConfig):
    """
    Tracking defaults: 12 updates one second apart, from the restaurant
    (55.6761, 12.5683) to the customer (55.6867, 12.5700), with a
    driver-arriving notice at update 10.
    """

    service_name: str = Field(default="location-service")
    consumer_group_id: str = Field(default="location-service")
    http_port: int = Field(default=8004, ge=1, le=65535)

    # === TRACKING ===
    tracking_updates: int = Field(default=12, ge=1, le=1000, description="Updates per delivery")
    tracking_interval_seconds: float = Field(
        default=1.0, ge=0, le=60, description="Delay between updates"
    )
    arriving_at_update: int = Field(
        default=10, ge=1, description="Update number that triggers driver-arriving"
    )
    arriving_estimated_minutes: int = Field(default=1, ge=0)

    start_latitude: float = Field(default=55.6761, ge=-90, le=90)
    start_longitude: float = Field(default=12.5683, ge=-180, le=180)
    end_latitude: float = Field(default=55.6867, ge=-90, le=90)
    end_longitude: float = Field(default=12.5700, ge=-180, le=180)

    publish_delivered_on_arrival: bool = Field(
        default=False,
        description="Publish order-delivered when the simulated drive ends",
    )
    delivery_photo_url: str = Field(default="https://example.com/delivery-photo.jpg")


def load_config() -> LocationServiceConfig:
    """Load and validate location service configuration."""
    return LocationServiceConfig()
