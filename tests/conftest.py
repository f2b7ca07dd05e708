"""
Pytest Configuration and Shared Fixtures

Unit tests run against in-memory SQLite databases and in-process stand-ins
for Kafka (a recording publisher and fake messages). Integration tests use
testcontainers to start real Kafka and PostgreSQL instances.

FIXTURE SCOPES:
- session: Containers (started once, shared across all integration tests)
- function: Databases, publishers, services (fresh for each test)
"""

import json
import os
from typing import Generator, List, Optional, Tuple
from unittest.mock import MagicMock

import pytest

from fooddelivery.shared.config import ServiceConfig
from fooddelivery.shared.database import DatabaseManager
from fooddelivery.shared.events import BaseEvent

# ==============================================================================
# KAFKA STAND-INS
# ==============================================================================


class RecordingPublisher:
    """EventPublisher stand-in that keeps (topic, event) pairs in memory."""

    def __init__(self):
        self.published: List[Tuple[str, BaseEvent]] = []
        self.closed = False

    def publish(self, topic: str, event: BaseEvent) -> None:
        self.published.append((topic, event))

    def flush(self, timeout: float = 10.0) -> int:
        return 0

    def close(self) -> None:
        self.closed = True

    def topics(self) -> List[str]:
        return [topic for topic, _ in self.published]

    def events(self, topic: str) -> List[BaseEvent]:
        return [event for t, event in self.published if t == topic]


def build_message(topic: str, value, key: Optional[str] = None, offset: int = 0):
    """
    Fake confluent_kafka.Message.

    ``value`` may be an event model, a dict (JSON-encoded) or raw bytes.
    """
    if isinstance(value, BaseEvent):
        payload = value.to_bytes()
    elif isinstance(value, dict):
        payload = json.dumps(value).encode("utf-8")
    else:
        payload = value

    msg = MagicMock()
    msg.topic.return_value = topic
    msg.value.return_value = payload
    msg.key.return_value = key.encode("utf-8") if key is not None else None
    msg.partition.return_value = 0
    msg.offset.return_value = offset
    msg.error.return_value = None
    return msg


@pytest.fixture
def make_message():
    """Factory fixture for fake Kafka messages (see build_message)."""
    return build_message


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def kafka_consumer() -> MagicMock:
    """Stand-in for confluent_kafka.Consumer (records subscribe/commit/close)."""
    return MagicMock()


# ==============================================================================
# DATABASE FIXTURES
# ==============================================================================


def sqlite_database(base, config: Optional[ServiceConfig] = None) -> DatabaseManager:
    """In-memory SQLite DatabaseManager with ``base``'s tables created."""
    db = DatabaseManager(config or ServiceConfig(), database_url="sqlite://")
    db.create_tables(base)
    return db


@pytest.fixture
def orders_db() -> Generator[DatabaseManager, None, None]:
    from fooddelivery.orders.models import Base

    db = sqlite_database(Base)
    yield db
    db.close()


@pytest.fixture
def partners_db() -> Generator[DatabaseManager, None, None]:
    from fooddelivery.partners.models import Base

    db = sqlite_database(Base)
    yield db
    db.close()


@pytest.fixture
def notifications_db() -> Generator[DatabaseManager, None, None]:
    from fooddelivery.notifications.models import Base

    db = sqlite_database(Base)
    yield db
    db.close()


@pytest.fixture
def logs_db() -> Generator[DatabaseManager, None, None]:
    from fooddelivery.logcollector.models import Base

    db = sqlite_database(Base)
    yield db
    db.close()


# ==============================================================================
# ORDER FIXTURES
# ==============================================================================


@pytest.fixture
def order_config():
    from fooddelivery.orders.config import OrderServiceConfig

    return OrderServiceConfig(partner_service_url="")


@pytest.fixture
def partner_directory():
    from fooddelivery.orders.partners import PartnerInfo, StaticPartnerDirectory

    return StaticPartnerDirectory({3: PartnerInfo(name="Pizza Palace", address="1 Main St")})


@pytest.fixture
def order_service(order_config, orders_db, publisher, partner_directory):
    from fooddelivery.orders.service import OrderService

    return OrderService(order_config, orders_db, publisher, partner_directory)


@pytest.fixture
def sample_order_request() -> dict:
    """
    Valid POST /orders body.

    Items total 2*120 + 1*40 = 280, which falls in the sliding fee band.
    """
    return {
        "customer_id": 7,
        "partner_id": 3,
        "delivery_address": "22 Baker Street",
        "delivery_fee": 29.0,
        "items": [
            {"food_item_id": 1, "name": "Margherita Pizza", "quantity": 2, "unit_price": 120.0},
            {"food_item_id": 14, "name": "French Fries", "quantity": 1, "unit_price": 40.0},
        ],
    }


# ==============================================================================
# INTEGRATION FIXTURES (testcontainers)
# ==============================================================================


@pytest.fixture(scope="session")
def postgres_container():
    """PostgreSQL testcontainer shared by the whole session."""
    from testcontainers.postgres import PostgresContainer

    with PostgresContainer("postgres:15", driver="psycopg2") as postgres:
        postgres.get_connection_url()
        yield postgres


@pytest.fixture(scope="session")
def kafka_container():
    """Kafka testcontainer shared by the whole session."""
    from testcontainers.kafka import KafkaContainer

    with KafkaContainer() as kafka:
        kafka.get_bootstrap_server()
        yield kafka


@pytest.fixture
def postgres_url(postgres_container) -> str:
    return postgres_container.get_connection_url()


@pytest.fixture
def kafka_bootstrap(kafka_container) -> str:
    return kafka_container.get_bootstrap_server()


# ==============================================================================
# TEST ENVIRONMENT CONFIGURATION
# ==============================================================================


def pytest_configure(config):
    """Test environment variables and custom markers."""
    os.environ["ENVIRONMENT"] = "test"
    os.environ["LOG_LEVEL"] = "DEBUG"

    config.addinivalue_line(
        "markers", "integration: mark test as integration test (requires containers)"
    )
    config.addinivalue_line("markers", "slow: mark test as slow (takes more than 5 seconds)")
    config.addinivalue_line("markers", "unit: mark test as unit test (no external dependencies)")
