"""
Structured JSON Logging Configuration

Structured logging for every service in the platform (order API, relays,
websocket gateways, GPS simulator, log collector).

WHY STRUCTURED LOGGING?
- One JSON object per line on stdout, easy to ship and query
- Same shape across services, so an order can be followed end to end
- correlation_id carries the order id (or the HTTP request id)

EXAMPLE OUTPUT:
{
  "timestamp": "2025-01-10T14:30:00.123Z",
  "level": "INFO",
  "service": "order-service",
  "logger": "fooddelivery.orders.service",
  "correlation_id": "42",
  "message": "Order accepted",
  "extra": {"partner_id": 3, "topic": "order-accepted"}
}

CENTRAL LOG SHIPPING:
``KafkaLogHandler`` additionally turns records into ``LogEntry`` events on the
``app-logs`` topic, where the log collector stores audit entries in a table
and system entries in rotating files. Records carrying an ``audit_action``
extra become Audit entries.
"""

import json
import logging
import re
import socket
import sys
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fooddelivery.shared.events import LogEntry
from fooddelivery.shared.topics import APP_LOGS


# ==============================================================================
# JSON FORMATTER
# ==============================================================================

# Attributes every LogRecord has; anything else arrived through extra={...}
STANDARD_ATTRS = frozenset(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {
    "message",
    "asctime",
    "taskName",
    "correlation_id",
}


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the fields a caller attached via ``extra={...}``."""
    return {
        key: value
        for key, value in record.__dict__.items()
        if key not in STANDARD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record: timestamp (UTC, ms), level, service, logger,
    message, plus correlation_id, exception and extra when present.
    """

    def __init__(self, service_name: str = "fooddelivery", include_extra: bool = True):
        super().__init__()
        self.service_name = service_name
        self.include_extra = include_extra

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": utc_timestamp(record.created),
            "level": record.levelname,
            "service": self.service_name,
            "logger": record.name,
            "message": record.getMessage(),
        }

        correlation_id = getattr(record, "correlation_id", None)
        if correlation_id is not None:
            entry["correlation_id"] = correlation_id

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        fields = extra_fields(record) if self.include_extra else {}
        if fields:
            entry["extra"] = fields

        return json.dumps(entry, default=str, ensure_ascii=False)


def utc_timestamp(created: float) -> str:
    """2025-01-10T14:30:00.123Z"""
    moment = datetime.fromtimestamp(created, tz=timezone.utc)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


# ==============================================================================
# PLAIN TEXT FORMATTER (local development)
# ==============================================================================


class PlainTextFormatter(logging.Formatter):
    """[2025-01-10 14:30:00] INFO [order-service] Order accepted"""

    def __init__(self, service_name: str = "fooddelivery"):
        super().__init__(
            fmt=f"[%(asctime)s] %(levelname)s [{service_name}] %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )


# ==============================================================================
# KAFKA LOG HANDLER
# ==============================================================================

# Records from these loggers are never shipped, or shipping would log itself
EXCLUDED_CATEGORY_PREFIXES = (
    "confluent_kafka",
    "fooddelivery.shared.bus",
    "fooddelivery.shared.logger",
)


class KafkaLogHandler(logging.Handler):
    """
    Logging handler that publishes records as ``LogEntry`` events.

    Records are classified as:
    - Audit: the record has an ``audit_action`` extra. ``audit_resource``,
      ``audit_resource_id``, ``user_id`` and ``user_role`` fill the matching
      LogEntry fields.
    - System: everything else.

    Publishing failures go through ``handleError`` and never reach the
    code that logged.
    """

    def __init__(self, publisher, service_name: str, level: int = logging.INFO):
        """
        Args:
            publisher: EventPublisher used to ship entries
            service_name: Value for LogEntry.service_name
            level: Minimum level shipped
        """
        super().__init__(level=level)
        self.publisher = publisher
        self.service_name = service_name
        self.machine_name = socket.gethostname()
        self._local = threading.local()

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.startswith(EXCLUDED_CATEGORY_PREFIXES):
            return
        # Re-entrant emit from inside publish() on the same thread
        if getattr(self._local, "emitting", False):
            return

        self._local.emitting = True
        try:
            self.publisher.publish(APP_LOGS, self.build_entry(record))
        except Exception:
            self.handleError(record)
        finally:
            self._local.emitting = False

    def build_entry(self, record: logging.LogRecord) -> LogEntry:
        fields = extra_fields(record)
        action = fields.pop("audit_action", None)

        exception = None
        if record.exc_info:
            exception = logging.Formatter().formatException(record.exc_info)

        def _opt(key: str) -> Optional[str]:
            value = fields.pop(key, None)
            return None if value is None else str(value)

        correlation_id = getattr(record, "correlation_id", None)

        return LogEntry(
            type="Audit" if action else "System",
            level=record.levelname,
            service_name=self.service_name,
            category=record.name,
            message=record.getMessage(),
            exception=exception,
            action=action,
            resource=_opt("audit_resource"),
            resource_id=_opt("audit_resource_id"),
            user_id=_opt("user_id"),
            user_role=_opt("user_role"),
            trace_id=None if correlation_id is None else str(correlation_id),
            machine_name=self.machine_name,
            properties=json.loads(json.dumps(fields, default=str)),
        )


# ==============================================================================
# LOGGER SETUP
# ==============================================================================


def setup_logger(
    name: str,
    service_name: str,
    log_level: str = "INFO",
    log_format: str = "json"
) -> logging.Logger:
    """
    Set up structured logger for a service.

    Services call this once with ``name="fooddelivery"`` so that every module
    logger (``logging.getLogger(__name__)``) inherits the handler.

    Args:
        name: Logger name
        service_name: Service identifier (e.g., "order-service")
        log_level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format ("json" or "text")

    Returns:
        Configured logging.Logger instance

    Example:
        >>> logger = setup_logger("fooddelivery", "order-service", "INFO", "json")
        >>> logger.info("Order created", extra={"correlation_id": "42"})
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    # Prevent duplicate handlers if logger already configured
    if logger.handlers:
        return logger

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)

    if log_format.lower() == "json":
        formatter = JSONFormatter(service_name=service_name)
    else:
        formatter = PlainTextFormatter(service_name=service_name)

    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    return logger


def attach_kafka_handler(logger: logging.Logger, publisher, service_name: str) -> KafkaLogHandler:
    """Ship ``logger``'s records to the app-logs topic as well as stdout."""
    handler = KafkaLogHandler(publisher, service_name, level=logger.level or logging.INFO)
    logger.addHandler(handler)
    return handler


# ==============================================================================
# CORRELATION ID ADAPTER
# ==============================================================================


class CorrelationAdapter(logging.LoggerAdapter):
    """
    Logger adapter that adds correlation_id to every record.

    Example:
        >>> log = CorrelationAdapter(logging.getLogger(__name__), {"correlation_id": "42"})
        >>> log.info("Processing order")  # correlation_id included
    """

    def process(self, msg: str, kwargs: dict) -> tuple:
        extra = kwargs.get('extra', {})

        if 'correlation_id' in self.extra:
            extra['correlation_id'] = self.extra['correlation_id']

        kwargs['extra'] = extra
        return msg, kwargs


# ==============================================================================
# LOG SANITIZING
# ==============================================================================

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_for_log(value: Optional[str], max_length: int = 200) -> str:
    """Strip control characters (log forging) and truncate."""
    if not value:
        return ""
    cleaned = _CONTROL_CHARS.sub("", value)
    if len(cleaned) > max_length:
        return cleaned[:max_length] + "..."
    return cleaned
