"""
Log collector API.

    GET /logs/audit?service_name=&action=&user_id=&start_date=&end_date=&limit=
    GET /logs/system/files
"""

from datetime import datetime
from typing import Optional

from fastapi import FastAPI, Query, Request

from fooddelivery.logcollector.collector import MAX_AUDIT_LIMIT, LogCollector
from fooddelivery.logcollector.config import LogCollectorConfig, load_config
from fooddelivery.logcollector.models import Base
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.database import DatabaseManager, init_database
from fooddelivery.shared.http import create_service_app
from fooddelivery.shared.runtime import ServiceRuntime


def create_app(
    config: Optional[LogCollectorConfig] = None,
    db: Optional[DatabaseManager] = None,
    consumer: Optional[EventConsumer] = None,
    start_consumer: bool = True,
) -> FastAPI:
    config = config or load_config()
    db = db or init_database(config, Base)
    consumer = consumer or EventConsumer(config, name="log-collector")

    collector = LogCollector(config, db)
    collector.register(consumer)

    runtime = ServiceRuntime(config, db=db, consumer=consumer, start_consumer=start_consumer)
    runtime.on_shutdown(collector.close)

    app = create_service_app("Log Collector", config.service_name, lifespan=runtime.lifespan())
    app.state.collector = collector
    app.state.consumer = consumer

    @app.get("/logs/audit")
    def audit_logs(
        request: Request,
        service_name: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[str] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
        limit: int = Query(default=100, ge=1, le=MAX_AUDIT_LIMIT),
    ):
        rows = request.app.state.collector.query_audit(
            service_name=service_name,
            action=action,
            user_id=user_id,
            start=start_date,
            end=end_date,
            limit=limit,
        )
        return [row.to_dict() for row in rows]

    @app.get("/logs/system/files")
    def system_files(request: Request):
        return request.app.state.collector.system_log_files()

    return app
