"""
Service Launcher - Main Entry Point

Runs one platform service as a FastAPI app under uvicorn. Every service reads
its settings from the environment (see ``fooddelivery.shared.config``); the
command line only overrides bind address and logging.

SERVICES:
    orders               Order API (owns the lifecycle, publishes events)
    partners             Partner registry + partner order copies
    notifications        Customer notifications
    location             GPS simulator
    websocket-customer   Customer push gateway
    websocket-partner    Partner push gateway
    websocket-agent      Agent push gateway + broadcast room
    logcollector         Central log collector

USAGE:
    python -m fooddelivery.main orders
    python -m fooddelivery.main websocket-agent --port 8007 --log-format text
    python -m fooddelivery.main logcollector --log-level DEBUG
"""

import argparse
import logging
import sys
from functools import partial
from typing import Callable, Dict, Tuple

import uvicorn

from fooddelivery.location import api as location_api
from fooddelivery.location.config import LocationServiceConfig
from fooddelivery.logcollector import api as logcollector_api
from fooddelivery.logcollector.config import LogCollectorConfig
from fooddelivery.notifications import api as notifications_api
from fooddelivery.notifications.config import NotificationServiceConfig
from fooddelivery.orders import api as orders_api
from fooddelivery.orders.config import OrderServiceConfig
from fooddelivery.partners import api as partners_api
from fooddelivery.partners.config import PartnerServiceConfig
from fooddelivery.shared.bus import EventPublisher
from fooddelivery.shared.logger import attach_kafka_handler, setup_logger
from fooddelivery.websockets import app as websockets_app
from fooddelivery.websockets.config import (
    AgentGatewayConfig,
    CustomerGatewayConfig,
    PartnerGatewayConfig,
)

# name -> (config class, app factory taking the config)
SERVICES: Dict[str, Tuple[type, Callable]] = {
    "orders": (OrderServiceConfig, orders_api.create_app),
    "partners": (PartnerServiceConfig, partners_api.create_app),
    "notifications": (NotificationServiceConfig, notifications_api.create_app),
    "location": (LocationServiceConfig, location_api.create_app),
    "websocket-customer": (CustomerGatewayConfig, partial(websockets_app.create_app, "customer")),
    "websocket-partner": (PartnerGatewayConfig, partial(websockets_app.create_app, "partner")),
    "websocket-agent": (AgentGatewayConfig, partial(websockets_app.create_app, "agent")),
    "logcollector": (LogCollectorConfig, logcollector_api.create_app),
}


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run a food delivery platform service",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fooddelivery.main orders
  python -m fooddelivery.main websocket-customer --port 9005
  python -m fooddelivery.main partners --log-level DEBUG --log-format text
        """,
    )
    parser.add_argument("service", choices=sorted(SERVICES), help="Service to run")
    parser.add_argument("--host", type=str, help="Bind host (default: from config)")
    parser.add_argument("--port", type=int, help="Bind port (default: from config)")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: from config)",
    )
    parser.add_argument(
        "--log-format",
        type=str,
        choices=["json", "text"],
        help="Log output format (default: from config)",
    )
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Launch the selected service.

    Returns:
        Exit code (0 = clean shutdown, 1 = startup failure)
    """
    args = parse_args(argv)
    config_class, factory = SERVICES[args.service]
    config = config_class()

    if args.host:
        config.http_host = args.host
    if args.port:
        config.http_port = args.port
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    logger = setup_logger("fooddelivery", config.service_name, config.log_level, config.log_format)

    log_publisher = None
    if config.log_to_kafka:
        log_publisher = EventPublisher(config)
        attach_kafka_handler(logger, log_publisher, config.service_name)

    logger.info(
        "Service starting",
        extra={
            "service": args.service,
            "host": config.http_host,
            "port": config.http_port,
            "kafka_bootstrap_servers": config.kafka_bootstrap_servers,
            "log_to_kafka": config.log_to_kafka,
        },
    )

    try:
        app = factory(config)
    except RuntimeError as e:
        logger.error("Service failed to start", extra={"service": args.service, "error": str(e)})
        return 1

    try:
        uvicorn.run(
            app,
            host=config.http_host,
            port=config.http_port,
            log_level=config.log_level.lower(),
        )
    finally:
        if log_publisher is not None:
            # Detach first so shutdown records don't hit a closed producer
            for handler in list(logger.handlers):
                if getattr(handler, "publisher", None) is log_publisher:
                    logger.removeHandler(handler)
            log_publisher.close()
        logging.shutdown()

    return 0


if __name__ == "__main__":
    sys.exit(main())
