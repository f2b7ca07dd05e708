"""
Notification API.

    GET  /notifications                      all, newest first
    GET  /notifications/unread               unread, newest first (?customer_id=)
    GET  /notifications/order/{order_id}     one order's, oldest first
    POST /notifications/{id}/mark-read       404 if unknown
"""

from typing import Optional

from fastapi import APIRouter, FastAPI, Request

from fooddelivery.notifications.config import NotificationServiceConfig, load_config
from fooddelivery.notifications.models import Base
from fooddelivery.notifications.service import NotificationNotFoundError, NotificationService
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.database import DatabaseManager, init_database
from fooddelivery.shared.http import create_service_app
from fooddelivery.shared.runtime import ServiceRuntime

router = APIRouter(prefix="/notifications", tags=["notifications"])


def _service(request: Request) -> NotificationService:
    return request.app.state.notification_service


@router.get("")
def all_notifications(request: Request):
    return [n.to_dict() for n in _service(request).list_all()]


@router.get("/unread")
def unread_notifications(request: Request, customer_id: Optional[int] = None):
    return [n.to_dict() for n in _service(request).list_unread(customer_id)]


@router.get("/order/{order_id}")
def order_notifications(order_id: int, request: Request):
    return [n.to_dict() for n in _service(request).list_for_order(order_id)]


@router.post("/{notification_id}/mark-read")
def mark_read(notification_id: str, request: Request):
    notification = _service(request).mark_read(notification_id)
    return {"message": "Notification marked as read", "id": notification.id}


def create_app(
    config: Optional[NotificationServiceConfig] = None,
    db: Optional[DatabaseManager] = None,
    consumer: Optional[EventConsumer] = None,
    start_consumer: bool = True,
) -> FastAPI:
    config = config or load_config()
    db = db or init_database(config, Base)
    consumer = consumer or EventConsumer(config, name="notifications")

    service = NotificationService(db)
    service.register(consumer)

    runtime = ServiceRuntime(config, db=db, consumer=consumer, start_consumer=start_consumer)
    app = create_service_app(
        "Notification Service",
        config.service_name,
        lifespan=runtime.lifespan(),
        domain_errors={NotificationNotFoundError: (404, "Notification not found", True)},
    )
    app.state.notification_service = service
    app.state.consumer = consumer
    app.include_router(router)
    return app
