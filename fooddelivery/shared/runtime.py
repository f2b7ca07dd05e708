"""
Service runtime: owns the long-lived resources of one service process
(database manager, event publisher, background consumer) and starts and
stops them with the FastAPI lifespan.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, List, Optional

from fastapi import FastAPI

from fooddelivery.shared.bus import EventConsumer, EventPublisher
from fooddelivery.shared.config import ServiceConfig
from fooddelivery.shared.database import DatabaseManager


class ServiceRuntime:
    """
    Attributes:
        config: Service configuration
        db: DatabaseManager or None for stateless services
        publisher: EventPublisher or None for services that never publish
        consumer: EventConsumer with the service's relays registered
        start_consumer: False in tests that dispatch messages by hand
    """

    def __init__(
        self,
        config: ServiceConfig,
        db: Optional[DatabaseManager] = None,
        publisher: Optional[EventPublisher] = None,
        consumer: Optional[EventConsumer] = None,
        start_consumer: bool = True,
    ):
        self.config = config
        self.db = db
        self.publisher = publisher
        self.consumer = consumer
        self.start_consumer = start_consumer
        self.logger = logging.getLogger(__name__)
        self._startup_hooks: List[Callable[[], None]] = []
        self._shutdown_hooks: List[Callable[[], None]] = []

    def on_startup(self, hook: Callable[[], None]) -> None:
        self._startup_hooks.append(hook)

    def on_shutdown(self, hook: Callable[[], None]) -> None:
        self._shutdown_hooks.append(hook)

    def start(self) -> None:
        for hook in self._startup_hooks:
            hook()
        if self.start_consumer and self.consumer is not None and self.consumer.handlers:
            self.consumer.run_in_background()
        self.logger.info(
            "Service started",
            extra={
                "service": self.config.service_name,
                "topics": self.consumer.topics if self.consumer else [],
                "consumer_running": bool(self.start_consumer and self.consumer),
            },
        )

    def stop(self) -> None:
        """Stop the consumer first so no handler publishes into a closed producer."""
        self.logger.info("Service stopping", extra={"service": self.config.service_name})

        if self.consumer is not None:
            self.consumer.stop()
            self.consumer.join(timeout=self.config.consumer_poll_timeout + 5)

        for hook in self._shutdown_hooks:
            try:
                hook()
            except Exception:
                self.logger.error("Shutdown hook failed", exc_info=True)

        if self.publisher is not None:
            self.publisher.close()
        if self.db is not None:
            self.db.close()

    def lifespan(self):
        """FastAPI lifespan bound to this runtime."""

        @asynccontextmanager
        async def _lifespan(app: FastAPI):
            app.state.runtime = self
            self.start()
            try:
                yield
            finally:
                self.stop()

        return _lifespan
