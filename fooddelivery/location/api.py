"""Location service app: GPS tracker relays plus a small status API."""

from typing import Optional

from fastapi import FastAPI, Request

from fooddelivery.location.config import LocationServiceConfig, load_config
from fooddelivery.location.tracker import DeliveryTracker
from fooddelivery.shared.bus import EventConsumer, EventPublisher
from fooddelivery.shared.http import create_service_app
from fooddelivery.shared.runtime import ServiceRuntime


def create_app(
    config: Optional[LocationServiceConfig] = None,
    publisher: Optional[EventPublisher] = None,
    consumer: Optional[EventConsumer] = None,
    start_consumer: bool = True,
) -> FastAPI:
    config = config or load_config()
    publisher = publisher or EventPublisher(config)
    consumer = consumer or EventConsumer(config, name="gps-tracker")

    tracker = DeliveryTracker(config, publisher)
    tracker.register(consumer)

    runtime = ServiceRuntime(
        config, publisher=publisher, consumer=consumer, start_consumer=start_consumer
    )
    runtime.on_shutdown(tracker.stop)

    app = create_service_app("Location Service", config.service_name, lifespan=runtime.lifespan())
    app.state.tracker = tracker
    app.state.consumer = consumer

    @app.get("/tracking")
    def active_tracking(request: Request):
        orders = request.app.state.tracker.active_orders()
        return {"active_orders": orders, "count": len(orders)}

    return app
