"""
Order Lifecycle Service

Owns the order table and publishes one event per successful transition.

STATE MACHINE:
    create            -> Placed                       order-created
    accept            Placed -> Accepted              order-accepted
    reject            Placed -> Rejected              order-rejected
    set_ready         Accepted -> Ready               order-ready
    assign_agent      Accepted|Ready, no agent yet    agent-assigned
    pickup            Ready + agent -> PickedUp       order-pickedup
    complete_delivery PickedUp + agent -> Delivered   order-delivered

ORDERING:
The database transaction commits before the event is published. A failed
precondition raises before anything is written or published. Partner details
are looked up before the status changes, so the lookup cannot leave a
committed row without its event.

SERVICE FEE:
    items_total <= 100    6%
    items_total >= 1000   3%
    otherwise             linear from 6% down to 3%
"""

import logging
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from fooddelivery.orders.config import OrderServiceConfig
from fooddelivery.orders.models import Order, OrderItem, OrderStatus
from fooddelivery.orders.partners import PartnerDirectory
from fooddelivery.orders.schemas import OrderCreateRequest
from fooddelivery.shared import topics
from fooddelivery.shared.bus import EventPublisher
from fooddelivery.shared.database import DatabaseManager
from fooddelivery.shared.events import (
    AgentAssigned,
    EventItem,
    OrderAccepted,
    OrderCreated,
    OrderDelivered,
    OrderPickedUp,
    OrderReady,
    OrderRejected,
)

DEFAULT_REJECT_REASON = "No reason provided"
CENTS = Decimal("0.01")

# ==============================================================================
# ERRORS
# ==============================================================================


class OrderServiceError(Exception):
    """Base class for order lifecycle errors."""


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found")
        self.order_id = order_id


class InvalidOrderStatusError(OrderServiceError):
    def __init__(self, order_id: int, status: OrderStatus, action: str):
        super().__init__(f"Cannot {action} order {order_id} in status {status.value}")
        self.order_id = order_id
        self.status = status


class AgentAlreadyAssignedError(OrderServiceError):
    def __init__(self, order_id: int, agent_id: int):
        super().__init__(f"Order {order_id} already has agent {agent_id} assigned")
        self.order_id = order_id
        self.agent_id = agent_id


class NoAgentAssignedError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} has no agent assigned")
        self.order_id = order_id


class EmptyOrderError(OrderServiceError):
    def __init__(self):
        super().__init__("An order needs at least one item")


# ==============================================================================
# FEES
# ==============================================================================


def calculate_service_fee(
    items_total: Decimal,
    low_threshold: Decimal = Decimal("100"),
    high_threshold: Decimal = Decimal("1000"),
    high_rate: Decimal = Decimal("0.06"),
    low_rate: Decimal = Decimal("0.03"),
) -> Decimal:
    """
    Service fee for an items total, rounded to cents.

    Args:
        items_total: Sum of quantity * unit_price
        low_threshold: At or below this total, ``high_rate`` applies
        high_threshold: At or above this total, ``low_rate`` applies
        high_rate / low_rate: Rates at the two ends of the sliding band

    Example:
        >>> calculate_service_fee(Decimal("550"))
        Decimal('24.75')
    """
    if items_total <= low_threshold:
        rate = high_rate
    elif items_total >= high_threshold:
        rate = low_rate
    else:
        fraction = (items_total - low_threshold) / (high_threshold - low_threshold)
        rate = high_rate - fraction * (high_rate - low_rate)
    return (items_total * rate).quantize(CENTS, rounding=ROUND_HALF_UP)


def sanitize_reason(reason: Optional[str]) -> str:
    """Single-line rejection reason; blank becomes the default."""
    if reason is None or not reason.strip():
        return DEFAULT_REJECT_REASON
    return reason.replace("\r", "").replace("\n", " ").strip()


def _event_items(order: Order) -> List[EventItem]:
    return [EventItem(name=item.name, quantity=item.quantity) for item in order.items]


# ==============================================================================
# SERVICE
# ==============================================================================


class OrderService:
    """
    Order lifecycle operations.

    Attributes:
        db: DatabaseManager for the orders database
        publisher: EventPublisher for lifecycle events
        partners: Partner name/address lookup
    """

    def __init__(
        self,
        config: OrderServiceConfig,
        db: DatabaseManager,
        publisher: EventPublisher,
        partners: PartnerDirectory,
    ):
        self.config = config
        self.db = db
        self.publisher = publisher
        self.partners = partners
        self.logger = logging.getLogger(__name__)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_order(self, request: OrderCreateRequest) -> Order:
        """
        Persist a new order in Placed and publish order-created.

        Raises:
            EmptyOrderError: No items
        """
        if not request.items:
            raise EmptyOrderError()

        items_total = sum(
            (Decimal(str(i.unit_price)) * i.quantity for i in request.items), Decimal("0")
        )
        delivery_fee = Decimal(str(request.delivery_fee)).quantize(CENTS)
        service_fee = calculate_service_fee(
            items_total,
            low_threshold=Decimal(str(self.config.fee_low_threshold)),
            high_threshold=Decimal(str(self.config.fee_high_threshold)),
            high_rate=Decimal(str(self.config.fee_high_rate)),
            low_rate=Decimal(str(self.config.fee_low_rate)),
        )

        order = Order(
            customer_id=request.customer_id,
            partner_id=request.partner_id,
            delivery_address=request.delivery_address,
            delivery_fee=delivery_fee,
            service_fee=service_fee,
            total_amount=(items_total + service_fee + delivery_fee).quantize(CENTS),
            status=OrderStatus.PLACED,
            items=[
                OrderItem(
                    food_item_id=i.food_item_id,
                    name=i.name,
                    quantity=i.quantity,
                    unit_price=Decimal(str(i.unit_price)),
                )
                for i in request.items
            ],
        )

        with self.db.get_session() as session:
            session.add(order)
            session.flush()

        self.publisher.publish(
            topics.ORDER_CREATED,
            OrderCreated(
                order_id=order.id,
                customer_id=order.customer_id,
                partner_id=order.partner_id,
                delivery_address=order.delivery_address,
                items=_event_items(order),
                total_amount=float(order.total_amount),
            ),
        )

        self.logger.info(
            "Order created",
            extra={
                "correlation_id": order.id,
                "customer_id": order.customer_id,
                "partner_id": order.partner_id,
                "items_total": float(items_total),
                "service_fee": float(service_fee),
                "total_amount": float(order.total_amount),
                "audit_action": "OrderCreated",
                "audit_resource": "Order",
                "audit_resource_id": order.id,
                "user_id": order.customer_id,
                "user_role": "Customer",
            },
        )
        return order

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _load(self, session: Session, order_id: int) -> Order:
        order = session.get(Order, order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _load_in(
        self, session: Session, order_id: int, allowed: Iterable[OrderStatus], action: str
    ) -> Order:
        order = self._load(session, order_id)
        if order.status not in tuple(allowed):
            raise InvalidOrderStatusError(order_id, order.status, action)
        return order

    def _audit(self, message: str, order: Order, action: str, role: str, **extra) -> None:
        self.logger.info(
            message,
            extra={
                "correlation_id": order.id,
                "status": order.status.value,
                "audit_action": action,
                "audit_resource": "Order",
                "audit_resource_id": order.id,
                "user_role": role,
                **extra,
            },
        )

    def accept_order(self, order_id: int, estimated_minutes: Optional[int] = None) -> Order:
        """Placed -> Accepted; publishes order-accepted."""
        with self.db.get_session() as session:
            order = self._load_in(session, order_id, (OrderStatus.PLACED,), "accept")
            partner = self.partners.get_partner(order.partner_id)
            order.status = OrderStatus.ACCEPTED

        self.publisher.publish(
            topics.ORDER_ACCEPTED,
            OrderAccepted(
                order_id=order.id,
                customer_id=order.customer_id,
                partner_id=order.partner_id,
                partner_name=partner.name,
                partner_address=partner.address,
                delivery_address=order.delivery_address,
                delivery_fee=float(order.delivery_fee),
                items=_event_items(order),
                estimated_minutes=estimated_minutes,
            ),
        )
        self._audit("Order accepted", order, "OrderAccepted", "Partner", user_id=order.partner_id)
        return order

    def reject_order(self, order_id: int, reason: Optional[str] = None) -> Order:
        """Placed -> Rejected; publishes order-rejected with a sanitized reason."""
        clean_reason = sanitize_reason(reason)

        with self.db.get_session() as session:
            order = self._load_in(session, order_id, (OrderStatus.PLACED,), "reject")
            order.status = OrderStatus.REJECTED

        self.publisher.publish(
            topics.ORDER_REJECTED,
            OrderRejected(
                order_id=order.id,
                customer_id=order.customer_id,
                partner_id=order.partner_id,
                reason=clean_reason,
            ),
        )
        self._audit(
            "Order rejected", order, "OrderRejected", "Partner",
            user_id=order.partner_id, reason=clean_reason,
        )
        return order

    def set_ready(self, order_id: int) -> Order:
        """Accepted -> Ready; publishes order-ready."""
        with self.db.get_session() as session:
            order = self._load_in(session, order_id, (OrderStatus.ACCEPTED,), "mark ready")
            partner = self.partners.get_partner(order.partner_id)
            order.status = OrderStatus.READY

        self.publisher.publish(
            topics.ORDER_READY,
            OrderReady(
                order_id=order.id,
                customer_id=order.customer_id,
                partner_id=order.partner_id,
                partner_name=partner.name,
                partner_address=partner.address,
                agent_id=order.agent_id,
            ),
        )
        self._audit("Order ready", order, "OrderReady", "Partner", user_id=order.partner_id)
        return order

    def assign_agent(self, order_id: int, agent_id: int) -> Order:
        """
        Attach a delivery agent to an Accepted or Ready order.

        Raises:
            OrderNotFoundError, InvalidOrderStatusError, AgentAlreadyAssignedError
        """
        with self.db.get_session() as session:
            order = self._load_in(
                session, order_id, (OrderStatus.ACCEPTED, OrderStatus.READY), "assign agent to"
            )
            if order.agent_id is not None:
                raise AgentAlreadyAssignedError(order_id, order.agent_id)
            partner = self.partners.get_partner(order.partner_id)
            order.agent_id = agent_id

        self.publisher.publish(
            topics.AGENT_ASSIGNED,
            AgentAssigned(
                order_id=order.id,
                partner_id=order.partner_id,
                customer_id=order.customer_id,
                agent_id=agent_id,
                partner_name=partner.name,
                partner_address=partner.address,
                delivery_address=order.delivery_address,
                delivery_fee=float(order.delivery_fee),
                items=_event_items(order),
            ),
        )
        self._audit("Agent assigned", order, "AgentAssigned", "Agent", user_id=agent_id)
        return order

    def pickup_order(self, order_id: int) -> Order:
        """Ready -> PickedUp (agent required); publishes order-pickedup."""
        with self.db.get_session() as session:
            order = self._load_in(session, order_id, (OrderStatus.READY,), "pick up")
            if order.agent_id is None:
                raise NoAgentAssignedError(order_id)
            order.status = OrderStatus.PICKED_UP

        self.publisher.publish(
            topics.ORDER_PICKED_UP,
            OrderPickedUp(
                order_id=order.id,
                customer_id=order.customer_id,
                partner_id=order.partner_id,
                agent_id=order.agent_id,
                delivery_address=order.delivery_address,
            ),
        )
        self._audit("Order picked up", order, "OrderPickedUp", "Agent", user_id=order.agent_id)
        return order

    def complete_delivery(self, order_id: int) -> Order:
        """PickedUp -> Delivered (agent required); publishes order-delivered."""
        with self.db.get_session() as session:
            order = self._load_in(session, order_id, (OrderStatus.PICKED_UP,), "complete delivery of")
            if order.agent_id is None:
                raise NoAgentAssignedError(order_id)
            order.status = OrderStatus.DELIVERED

        self.publisher.publish(
            topics.ORDER_DELIVERED,
            OrderDelivered(
                order_id=order.id,
                customer_id=order.customer_id,
                partner_id=order.partner_id,
                agent_id=order.agent_id,
            ),
        )
        self._audit("Order delivered", order, "OrderDelivered", "Agent", user_id=order.agent_id)
        return order

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_order(self, order_id: int) -> Order:
        with self.db.get_session() as session:
            return self._load(session, order_id)

    def _list(
        self, *criteria, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[Order]:
        stmt = select(Order).where(*criteria)
        if start is not None:
            stmt = stmt.where(Order.created_at >= start)
        if end is not None:
            stmt = stmt.where(Order.created_at <= end)
        stmt = stmt.order_by(Order.created_at.desc(), Order.id.desc())
        with self.db.get_session() as session:
            return list(session.scalars(stmt).all())

    def list_customer_orders(self, customer_id: int, start=None, end=None) -> List[Order]:
        return self._list(Order.customer_id == customer_id, start=start, end=end)

    def list_partner_orders(self, partner_id: int, start=None, end=None) -> List[Order]:
        return self._list(Order.partner_id == partner_id, start=start, end=end)

    def list_agent_orders(self, agent_id: int, start=None, end=None) -> List[Order]:
        return self._list(Order.agent_id == agent_id, start=start, end=end)

    def list_available_orders(self) -> List[Order]:
        """Accepted or Ready orders still waiting for an agent."""
        return self._list(
            Order.status.in_((OrderStatus.ACCEPTED, OrderStatus.READY)),
            Order.agent_id.is_(None),
        )
