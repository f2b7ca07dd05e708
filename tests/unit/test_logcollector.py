"""
Unit Tests for the Log Collector

Audit entries land in SQLite; system entries are written to a JSON-lines
file under a per-test temporary directory.
"""

import json
import logging
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from fooddelivery.logcollector.api import create_app
from fooddelivery.logcollector.collector import LogCollector
from fooddelivery.logcollector.config import LogCollectorConfig
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.events import LogEntry

BASE_TIME = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)


def _audit(action="OrderCreated", service="order-service", user_id="7", minutes=0, **kwargs):
    return LogEntry(
        type="Audit",
        level="INFO",
        service_name=service,
        category="fooddelivery.orders.service",
        message=f"{action} audited",
        action=action,
        resource="Order",
        resource_id="1",
        user_id=user_id,
        user_role="Customer",
        trace_id="1",
        timestamp=BASE_TIME + timedelta(minutes=minutes),
        **kwargs,
    )


def _system(message="Consumer started"):
    return LogEntry(
        level="INFO", service_name="partner-service", category="fooddelivery.shared.runtime",
        message=message,
    )


@pytest.fixture
def config(tmp_path):
    return LogCollectorConfig(system_log_dir=str(tmp_path))


@pytest.fixture
def collector(config, logs_db):
    collector = LogCollector(config, logs_db)
    yield collector
    collector.close()


# ==============================================================================
# STORAGE
# ==============================================================================


@pytest.mark.unit
def test_audit_entry_saved(collector):
    entry = _audit(properties={"status": "Placed"})

    collector.on_log_entry(entry)

    rows = collector.query_audit()
    assert len(rows) == 1
    assert rows[0].id == entry.id
    assert rows[0].action == "OrderCreated"
    assert rows[0].properties == {"status": "Placed"}
    assert collector.audit_saved == 1


@pytest.mark.unit
def test_duplicate_audit_entry_skipped(collector, caplog):
    entry = _audit()

    assert collector.save_audit(entry) is True
    with caplog.at_level(logging.WARNING):
        assert collector.save_audit(entry) is False

    # an expected duplicate is not reported as a database error
    assert not [r for r in caplog.records if r.levelno >= logging.ERROR]

    assert len(collector.query_audit()) == 1
    assert collector.audit_duplicates == 1


@pytest.mark.unit
def test_system_entry_written_as_json_line(collector, config, tmp_path):
    collector.on_log_entry(_system("first"))
    collector.on_log_entry(_system("second"))

    lines = (tmp_path / config.system_log_file).read_text(encoding="utf-8").splitlines()

    assert [json.loads(line)["message"] for line in lines] == ["first", "second"]
    assert json.loads(lines[0])["type"] == "System"
    assert collector.system_written == 2
    assert collector.query_audit() == []


@pytest.mark.unit
def test_system_log_files_listing(collector, config):
    collector.write_system(_system())

    files = collector.system_log_files()

    assert [f["name"] for f in files] == [config.system_log_file]
    assert files[0]["size_bytes"] > 0


# ==============================================================================
# QUERIES
# ==============================================================================


@pytest.mark.unit
def test_query_filters(collector):
    collector.save_audit(_audit("OrderCreated", minutes=0))
    collector.save_audit(_audit("OrderAccepted", service="partner-service", user_id="3", minutes=5))
    collector.save_audit(_audit("OrderCreated", user_id="8", minutes=10))

    assert len(collector.query_audit(action="OrderCreated")) == 2
    assert [r.action for r in collector.query_audit(service_name="partner-service")] == [
        "OrderAccepted"
    ]
    assert [r.user_id for r in collector.query_audit(user_id="8")] == ["8"]

    window = collector.query_audit(
        start=BASE_TIME + timedelta(minutes=1), end=BASE_TIME + timedelta(minutes=6)
    )
    assert [r.action for r in window] == ["OrderAccepted"]


@pytest.mark.unit
def test_query_newest_first_with_limit(collector):
    for minute in range(5):
        collector.save_audit(_audit(user_id=str(minute), minutes=minute))

    rows = collector.query_audit(limit=2)

    assert [r.user_id for r in rows] == ["4", "3"]


# ==============================================================================
# HTTP
# ==============================================================================


@pytest.mark.unit
def test_http_endpoints(config, logs_db, kafka_consumer, make_message):
    consumer = EventConsumer(config, consumer=kafka_consumer)
    app = create_app(config, db=logs_db, consumer=consumer, start_consumer=False)

    assert consumer.topics == [topics.APP_LOGS]

    with TestClient(app) as client:
        consumer.dispatch(make_message(topics.APP_LOGS, _audit()))
        consumer.dispatch(make_message(topics.APP_LOGS, _system()))

        audit = client.get("/logs/audit", params={"action": "OrderCreated"}).json()
        files = client.get("/logs/system/files").json()
        too_many = client.get("/logs/audit", params={"limit": 5000})

    assert len(audit) == 1
    assert audit[0]["resource"] == "Order"
    assert files[0]["name"] == config.system_log_file
    assert too_many.status_code == 400
