"""
Mock Order Simulator - Main Entry Point

Places generated orders against the order API at a fixed rate, so the rest
of the pipeline (partner copies, notifications, websocket pushes, tracking)
has traffic to work with.

RUN MODES:
- Timed: stop after SIMULATOR_DURATION seconds
- Continuous: SIMULATOR_DURATION=0, run until Ctrl+C / SIGTERM

USAGE:
    python -m fooddelivery.simulator.main
    python -m fooddelivery.simulator.main --rate 5 --duration 120
    python -m fooddelivery.simulator.main --order-service-url http://orders:8001 --duration 0
"""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import Any, Dict, Optional

import httpx

from fooddelivery.shared.logger import setup_logger
from fooddelivery.simulator.config import SimulatorConfig, load_config
from fooddelivery.simulator.generator import MockOrderGenerator

logger = logging.getLogger(__name__)

# Set by the signal handler; checked once per loop iteration
shutdown_requested = threading.Event()


def signal_handler(signum, frame):
    logger.warning("Shutdown signal received", extra={"signal": signum})
    shutdown_requested.set()


class OrderApiClient:
    """Thin httpx client for ``POST /orders``."""

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self.client = client or httpx.Client(base_url=self.base_url, timeout=timeout)

    def place_order(self, order: Dict[str, Any]) -> int:
        """
        Create an order.

        Returns:
            The new order id

        Raises:
            httpx.HTTPStatusError: Non-2xx response
            httpx.HTTPError: Transport failure
        """
        response = self.client.post("/orders", json=order)
        response.raise_for_status()
        return response.json()["id"]

    def close(self) -> None:
        self.client.close()


def run_simulator(
    config: SimulatorConfig,
    client: Optional[OrderApiClient] = None,
    stop_event: Optional[threading.Event] = None,
) -> int:
    """
    Run the rate-limited order loop.

    Args:
        config: Simulator configuration
        client: Order API client (built from config when omitted)
        stop_event: Set to stop the loop (defaults to the signal-driven event)

    Returns:
        Exit code (0 = every order placed, 1 = at least one failure)
    """
    stop_event = stop_event or shutdown_requested
    client = client or OrderApiClient(config.order_service_url, timeout=config.request_timeout)
    generator = MockOrderGenerator(
        seed=config.simulator_seed,
        num_customers=config.simulator_num_customers,
        num_partners=config.simulator_num_partners,
    )

    sleep_interval = 1.0 / config.simulator_rate
    logger.info(
        "Order simulator starting",
        extra={
            "order_service_url": config.order_service_url,
            "rate": config.simulator_rate,
            "duration": config.simulator_duration if config.simulator_duration > 0 else "infinite",
            "seed": config.simulator_seed,
        },
    )

    orders_placed = 0
    errors = 0
    start_time = time.monotonic()

    try:
        while not stop_event.is_set():
            elapsed = time.monotonic() - start_time
            if config.simulator_duration > 0 and elapsed >= config.simulator_duration:
                logger.info("Duration limit reached", extra={"elapsed_seconds": round(elapsed, 2)})
                break

            order = generator.generate_order()
            try:
                order_id = client.place_order(order)
            except httpx.HTTPError as e:
                errors += 1
                logger.error(
                    "Failed to place order",
                    extra={"customer_id": order["customer_id"], "error": str(e)},
                )
            else:
                orders_placed += 1
                logger.debug(
                    "Order placed",
                    extra={"correlation_id": str(order_id), "items": len(order["items"])},
                )
                if orders_placed % 100 == 0:
                    logger.info(
                        "Simulation progress",
                        extra={"orders_placed": orders_placed, "errors": errors},
                    )

            stop_event.wait(sleep_interval)
    finally:
        client.close()
        elapsed = time.monotonic() - start_time
        logger.info(
            "Order simulator stopped",
            extra={
                "orders_placed": orders_placed,
                "errors": errors,
                "elapsed_seconds": round(elapsed, 2),
                "actual_rate": round(orders_placed / elapsed, 2) if elapsed > 0 else 0,
            },
        )

    return 0 if errors == 0 else 1


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Mock order simulator - place fake orders against the order API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m fooddelivery.simulator.main --rate 5 --duration 60
  python -m fooddelivery.simulator.main --duration 0 --log-format text
        """,
    )
    parser.add_argument("--order-service-url", type=str, help="Order API base URL")
    parser.add_argument("--rate", type=float, help="Orders per second")
    parser.add_argument("--duration", type=int, help="Run duration in seconds (0=infinite)")
    parser.add_argument("--seed", type=int, help="Random seed for reproducible orders")
    parser.add_argument(
        "--log-level", type=str, choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Logging level"
    )
    parser.add_argument("--log-format", type=str, choices=["json", "text"], help="Log output format")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    args = parse_args(argv)
    config = load_config()

    if args.order_service_url:
        config.order_service_url = args.order_service_url
    if args.rate:
        config.simulator_rate = args.rate
    if args.duration is not None:  # Allow 0
        config.simulator_duration = args.duration
    if args.seed is not None:
        config.simulator_seed = args.seed
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    setup_logger("fooddelivery", "order-simulator", config.log_level, config.log_format)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    return run_simulator(config)


if __name__ == "__main__":
    sys.exit(main())
