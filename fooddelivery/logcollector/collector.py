"""
Log Collector

Consumes ``app-logs`` and stores entries by type:

- Audit entries -> audit_logs table (a duplicate id is logged and skipped)
- System entries -> JSON lines in a size-rotated file under system_log_dir
"""

import logging
import os
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from fooddelivery.logcollector.config import LogCollectorConfig
from fooddelivery.logcollector.models import AuditLog
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.database import DatabaseManager
from fooddelivery.shared.events import LogEntry

MAX_AUDIT_LIMIT = 1000


class LogCollector:
    """
    Attributes:
        audit_saved / audit_duplicates / system_written: Counters
    """

    def __init__(self, config: LogCollectorConfig, db: DatabaseManager):
        self.config = config
        self.db = db
        self.logger = logging.getLogger(__name__)
        self.audit_saved = 0
        self.audit_duplicates = 0
        self.system_written = 0

        self.log_dir = Path(config.system_log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self._file_handler = RotatingFileHandler(
            self.log_dir / config.system_log_file,
            maxBytes=config.system_log_max_bytes,
            backupCount=config.system_log_backup_count,
            encoding="utf-8",
        )
        self._file_handler.setFormatter(logging.Formatter("%(message)s"))

        # Private sink: never propagates into the service's own handlers
        self._sink = logging.getLogger(f"{__name__}.sink.{id(self)}")
        self._sink.propagate = False
        self._sink.setLevel(logging.DEBUG)
        self._sink.addHandler(self._file_handler)

    def register(self, consumer: EventConsumer) -> None:
        consumer.register(topics.APP_LOGS, self.on_log_entry)

    def on_log_entry(self, entry: LogEntry) -> None:
        if entry.type == "Audit":
            self.save_audit(entry)
        else:
            self.write_system(entry)

    def save_audit(self, entry: LogEntry) -> bool:
        row = AuditLog(
            id=entry.id,
            timestamp=entry.timestamp,
            service_name=entry.service_name,
            level=entry.level,
            message=entry.message,
            user_id=entry.user_id,
            user_role=entry.user_role,
            action=entry.action,
            resource=entry.resource,
            resource_id=entry.resource_id,
            trace_id=entry.trace_id,
            properties=entry.properties,
        )

        def _insert(session) -> bool:
            if session.get(AuditLog, entry.id) is not None:
                return False
            session.add(row)
            return True

        try:
            saved = self.db.run_with_retry(_insert)
        except IntegrityError:
            # same id inserted concurrently by another collector
            saved = False

        if not saved:
            self.audit_duplicates += 1
            self.logger.warning(
                "Duplicate audit entry, skipping",
                extra={"entry_id": entry.id, "audit_duplicates": self.audit_duplicates},
            )
            return False

        self.audit_saved += 1
        self.logger.debug(
            "Audit entry saved",
            extra={"entry_id": entry.id, "action": entry.action, "service_name": entry.service_name},
        )
        return True

    def write_system(self, entry: LogEntry) -> None:
        self._sink.info(entry.model_dump_json())
        self.system_written += 1

    def query_audit(
        self,
        service_name: Optional[str] = None,
        action: Optional[str] = None,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[AuditLog]:
        stmt = select(AuditLog)
        if service_name:
            stmt = stmt.where(AuditLog.service_name == service_name)
        if action:
            stmt = stmt.where(AuditLog.action == action)
        if user_id:
            stmt = stmt.where(AuditLog.user_id == user_id)
        if start is not None:
            stmt = stmt.where(AuditLog.timestamp >= start)
        if end is not None:
            stmt = stmt.where(AuditLog.timestamp <= end)
        stmt = stmt.order_by(AuditLog.timestamp.desc()).limit(min(max(limit, 1), MAX_AUDIT_LIMIT))
        with self.db.get_session() as session:
            return list(session.scalars(stmt).all())

    def system_log_files(self) -> List[dict]:
        """Active file plus rotated backups (system.log, system.log.1, ...)."""
        files = []
        for path in sorted(self.log_dir.glob(f"{self.config.system_log_file}*")):
            files.append({"name": path.name, "size_bytes": os.path.getsize(path)})
        return files

    def close(self) -> None:
        self._sink.removeHandler(self._file_handler)
        self._file_handler.close()
