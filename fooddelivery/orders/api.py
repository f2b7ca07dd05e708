"""
Order API (FastAPI)

ENDPOINTS:
    POST /orders                              create, 201 {"id": n}
    GET  /orders/available                    Accepted/Ready orders without an agent
    GET  /orders/{id}                         one order
    POST /orders/{id}/accept                  {"estimated_minutes": 25}
    POST /orders/{id}/reject                  {"reason": "..."}
    POST /orders/{id}/ready
    POST /orders/{id}/assign-agent            {"agent_id": 9}
    POST /orders/{id}/pickup
    POST /orders/{id}/complete-delivery
    GET  /orders/customers/{id}?start_date=&end_date=
    GET  /orders/partners/{id}?start_date=&end_date=
    GET  /orders/agents/{id}?start_date=&end_date=
    GET  /health

ERRORS (problem+json):
    404 order not found, 400 invalid status / no agent, 409 agent already assigned,
    503 Kafka or database unavailable, 500 anything else
"""

from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, FastAPI, Request, status

from fooddelivery.orders.config import OrderServiceConfig, load_config
from fooddelivery.orders.models import Base
from fooddelivery.orders.partners import PartnerDirectory, StaticPartnerDirectory
from fooddelivery.orders.schemas import (
    AcceptOrderRequest,
    AssignAgentRequest,
    OrderCreateRequest,
    OrderCreateResponse,
    OrderResponse,
    RejectOrderRequest,
    StatusResponse,
)
from fooddelivery.orders.service import (
    AgentAlreadyAssignedError,
    EmptyOrderError,
    InvalidOrderStatusError,
    NoAgentAssignedError,
    OrderNotFoundError,
    OrderService,
)
from fooddelivery.shared.bus import EventPublisher
from fooddelivery.shared.database import DatabaseManager, init_database
from fooddelivery.shared.http import create_service_app
from fooddelivery.shared.runtime import ServiceRuntime

DOMAIN_ERRORS = {
    OrderNotFoundError: (404, "Order not found", True),
    InvalidOrderStatusError: (400, "Invalid order status", True),
    NoAgentAssignedError: (400, "No agent assigned", True),
    AgentAlreadyAssignedError: (409, "Agent already assigned", True),
    EmptyOrderError: (400, "Invalid request", True),
}

router = APIRouter(prefix="/orders", tags=["orders"])


def _service(request: Request) -> OrderService:
    return request.app.state.order_service


def _status(order, message: str) -> StatusResponse:
    return StatusResponse(id=order.id, status=order.status.value, message=message)


@router.post("", status_code=status.HTTP_201_CREATED, response_model=OrderCreateResponse)
def create_order(body: OrderCreateRequest, request: Request):
    order = _service(request).create_order(body)
    return OrderCreateResponse(id=order.id)


@router.get("/available", response_model=List[OrderResponse])
def available_orders(request: Request):
    return [o.to_dict() for o in _service(request).list_available_orders()]


@router.get("/customers/{customer_id}", response_model=List[OrderResponse])
def customer_orders(
    customer_id: int,
    request: Request,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    orders = _service(request).list_customer_orders(customer_id, start_date, end_date)
    return [o.to_dict() for o in orders]


@router.get("/partners/{partner_id}", response_model=List[OrderResponse])
def partner_orders(
    partner_id: int,
    request: Request,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    orders = _service(request).list_partner_orders(partner_id, start_date, end_date)
    return [o.to_dict() for o in orders]


@router.get("/agents/{agent_id}", response_model=List[OrderResponse])
def agent_orders(
    agent_id: int,
    request: Request,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    orders = _service(request).list_agent_orders(agent_id, start_date, end_date)
    return [o.to_dict() for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
def get_order(order_id: int, request: Request):
    return _service(request).get_order(order_id).to_dict()


@router.post("/{order_id}/accept", response_model=StatusResponse)
def accept_order(order_id: int, request: Request, body: Optional[AcceptOrderRequest] = None):
    minutes = body.estimated_minutes if body else None
    order = _service(request).accept_order(order_id, estimated_minutes=minutes)
    return _status(order, "Order accepted")


@router.post("/{order_id}/reject", response_model=StatusResponse)
def reject_order(order_id: int, request: Request, body: Optional[RejectOrderRequest] = None):
    order = _service(request).reject_order(order_id, reason=body.reason if body else None)
    return _status(order, "Order rejected")


@router.post("/{order_id}/ready", response_model=StatusResponse)
def set_ready(order_id: int, request: Request):
    return _status(_service(request).set_ready(order_id), "Order is ready for pickup")


@router.post("/{order_id}/assign-agent", response_model=StatusResponse)
def assign_agent(order_id: int, body: AssignAgentRequest, request: Request):
    order = _service(request).assign_agent(order_id, body.agent_id)
    return _status(order, f"Agent {body.agent_id} assigned")


@router.post("/{order_id}/pickup", response_model=StatusResponse)
def pickup_order(order_id: int, request: Request):
    return _status(_service(request).pickup_order(order_id), "Order picked up")


@router.post("/{order_id}/complete-delivery", response_model=StatusResponse)
def complete_delivery(order_id: int, request: Request):
    return _status(_service(request).complete_delivery(order_id), "Order delivered")


def create_app(
    config: Optional[OrderServiceConfig] = None,
    db: Optional[DatabaseManager] = None,
    publisher: Optional[EventPublisher] = None,
    partners=None,
) -> FastAPI:
    """
    Build the order API.

    Missing collaborators are created from config: a verified database with
    tables, a Kafka publisher and an httpx partner directory.
    """
    config = config or load_config()
    db = db or init_database(config, Base)
    publisher = publisher or EventPublisher(config)
    if partners is None:
        if config.partner_service_url:
            partners = PartnerDirectory(config.partner_service_url, config.partner_lookup_timeout)
        else:
            partners = StaticPartnerDirectory()

    runtime = ServiceRuntime(config, db=db, publisher=publisher)
    runtime.on_shutdown(partners.close)

    app = create_service_app(
        "Order Service",
        config.service_name,
        lifespan=runtime.lifespan(),
        domain_errors=DOMAIN_ERRORS,
    )
    app.state.order_service = OrderService(config, db, publisher, partners)
    app.include_router(router)
    return app
