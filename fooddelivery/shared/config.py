"""
Service Configuration Base

Every service in the platform reads the same families of settings: Kafka
connection, database connection, HTTP bind address and logging. This module
defines them once in ``ServiceConfig``; each service subclasses it and only
overrides defaults (service name, database name, consumer group, port).

Settings load from environment variables (case-insensitive) and an optional
``.env`` file, validated by Pydantic.

ENVIRONMENT VARIABLES (common to all services):
    KAFKA_BOOTSTRAP_SERVERS    Kafka broker addresses
    CONSUMER_GROUP_ID          Consumer group for the service's relays
    POSTGRES_HOST / POSTGRES_PORT / POSTGRES_DB / POSTGRES_USER / POSTGRES_PASSWORD
    DATABASE_URL               Full SQLAlchemy URL, overrides POSTGRES_*
    HTTP_HOST / HTTP_PORT      Bind address for the FastAPI app
    LOG_LEVEL / LOG_FORMAT     Logging level and json|text output
    LOG_TO_KAFKA               Also ship log records to the app-logs topic
"""

from typing import Optional

from dotenv import load_dotenv
from pydantic import Field
from pydantic_settings import BaseSettings

# Load .env file if present (local development)
load_dotenv()


class ServiceConfig(BaseSettings):
    """
    Settings shared by every service.

    Subclasses override ``service_name``, ``postgres_db``,
    ``consumer_group_id`` and ``http_port`` defaults.
    """

    service_name: str = Field(
        default="fooddelivery",
        description="Service identifier used in logs and client ids",
    )

    # === KAFKA SETTINGS ===
    kafka_bootstrap_servers: str = Field(
        default="localhost:9092",
        description="Kafka broker addresses",
    )

    consumer_group_id: str = Field(
        default="fooddelivery",
        description="Consumer group ID for the service's relays",
    )

    consumer_client_id: Optional[str] = Field(
        default=None,
        description="Consumer client identifier (defaults to <service>-consumer)",
    )

    consumer_auto_offset_reset: str = Field(
        default="earliest",
        description="Where to start consuming: earliest or latest",
    )

    enable_auto_commit: bool = Field(
        default=False,
        description="Auto-commit offsets (False = commit after each handled message)",
    )

    consumer_poll_timeout: float = Field(
        default=1.0,
        gt=0,
        le=30,
        description="Seconds to block in each consumer poll",
    )

    producer_client_id: Optional[str] = Field(
        default=None,
        description="Producer client identifier (defaults to <service>-producer)",
    )

    producer_compression: str = Field(
        default="snappy",
        description="Compression codec: none, gzip, snappy, lz4, zstd",
    )

    # === DATABASE SETTINGS ===
    database_url: Optional[str] = Field(
        default=None,
        description="Full SQLAlchemy URL; overrides the postgres_* fields",
    )

    postgres_host: str = Field(default="localhost", description="PostgreSQL host")
    postgres_port: int = Field(default=5432, description="PostgreSQL port")
    postgres_db: str = Field(default="fooddelivery", description="PostgreSQL database name")
    postgres_user: str = Field(default="postgres", description="PostgreSQL username")
    postgres_password: str = Field(default="postgres", description="PostgreSQL password")

    db_pool_size: int = Field(
        default=5,
        ge=1,
        le=20,
        description="SQLAlchemy connection pool size",
    )

    # === PROCESSING SETTINGS ===
    max_retries: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Max retries for transient database failures",
    )

    retry_backoff_ms: int = Field(
        default=1000,
        ge=100,
        le=10000,
        description="Retry backoff in milliseconds",
    )

    # === HTTP SETTINGS ===
    http_host: str = Field(default="0.0.0.0", description="HTTP bind host")
    http_port: int = Field(default=8000, ge=1, le=65535, description="HTTP bind port")

    # === LOGGING ===
    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="json", description="Log output format (json or text)")
    log_to_kafka: bool = Field(
        default=False,
        description="Publish log records to the app-logs topic",
    )

    class Config:
        """Pydantic configuration."""

        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"

    def get_consumer_config(self) -> dict:
        """Get Kafka consumer configuration dictionary."""
        return {
            "bootstrap.servers": self.kafka_bootstrap_servers,
            "group.id": self.consumer_group_id,
            "client.id": self.consumer_client_id or f"{self.service_name}-consumer",
            "auto.offset.reset": self.consumer_auto_offset_reset,
            "enable.auto.commit": self.enable_auto_commit,
        }

    def get_producer_config(self) -> dict:
        """
        Get Kafka producer configuration dictionary.

        Idempotence requires acks=all; librdkafka then also caps in-flight
        requests at 5 and retries indefinitely.
        """
        return {
            "bootstrap.servers": self.kafka_bootstrap_servers,
            "client.id": self.producer_client_id or f"{self.service_name}-producer",
            "enable.idempotence": True,
            "acks": "all",
            "compression.type": self.producer_compression,
            "linger.ms": 10,
            "retry.backoff.ms": 100,
            "request.timeout.ms": 30000,
            "max.in.flight.requests.per.connection": 5,
        }

    def get_database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql://{self.postgres_user}:{self.postgres_password}"
            f"@{self.postgres_host}:{self.postgres_port}/{self.postgres_db}"
        )
