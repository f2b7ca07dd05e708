"""
Simulator Configuration

ENVIRONMENT VARIABLES:
    ORDER_SERVICE_URL        Base URL of the order API
    SIMULATOR_RATE           Orders per second (0.1-100)
    SIMULATOR_DURATION       Run duration in seconds (0 = until stopped)
    SIMULATOR_SEED           Random seed for reproducible data
    SIMULATOR_NUM_CUSTOMERS / SIMULATOR_NUM_PARTNERS
"""

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

load_dotenv()


class SimulatorConfig(BaseSettings):
    """
    Mock order simulator settings.

    Example:
        >>> config = SimulatorConfig(simulator_rate=2, simulator_duration=30)
        >>> config.order_service_url
        'http://localhost:8001'
    """

    order_service_url: str = Field(
        default="http://localhost:8001",
        description="Base URL of the order API",
    )

    request_timeout: float = Field(default=5.0, gt=0, le=60, description="HTTP timeout (seconds)")

    # === LOAD SHAPE ===
    simulator_rate: float = Field(
        default=1.0,
        gt=0,
        le=100,
        description="Orders placed per second",
    )

    simulator_duration: int = Field(
        default=60,
        ge=0,
        description="Run duration in seconds (0 = run until stopped)",
    )

    # === MOCK DATA ===
    simulator_seed: int = Field(default=42, description="Random seed for Faker and random")
    simulator_num_customers: int = Field(default=100, ge=1, le=10000)
    simulator_num_partners: int = Field(default=10, ge=1, le=1000)

    # === LOGGING ===
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log output format (json or text)")

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


def load_config() -> SimulatorConfig:
    """Load and validate simulator configuration."""
    return SimulatorConfig()
