"""
SQLAlchemy ORM Models for the Order Service

The order service is the only writer of these tables. Other services keep
their own copies, built from published events.

TABLES:
- orders: one row per order, status follows the lifecycle
      Placed -> Accepted -> Ready -> PickedUp -> Delivered
      Placed -> Rejected
- order_items: line items (food item id, name, quantity, unit price)
"""

import enum
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import (
    DECIMAL,
    TIMESTAMP,
    CheckConstraint,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for order service models."""

    pass


class OrderStatus(str, enum.Enum):
    PLACED = "Placed"
    ACCEPTED = "Accepted"
    REJECTED = "Rejected"
    READY = "Ready"
    PICKED_UP = "PickedUp"
    DELIVERED = "Delivered"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Order(Base):
    """
    Order row.

    Attributes:
        id: Auto-increment primary key, also the Kafka key for its events
        customer_id / partner_id: Who ordered, who cooks
        agent_id: Delivery agent, set by assign_agent
        delivery_fee / service_fee / total_amount: Money, 2 decimals
        status: OrderStatus
        created_at: UTC creation time
    """

    __tablename__ = "orders"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    partner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    agent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)
    delivery_fee: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    service_fee: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    status: Mapped[OrderStatus] = mapped_column(
        Enum(OrderStatus, name="order_status", values_callable=lambda e: [m.value for m in e]),
        nullable=False,
        default=OrderStatus.PLACED,
    )
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )

    items: Mapped[List["OrderItem"]] = relationship(
        back_populates="order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    __table_args__ = (
        CheckConstraint("delivery_fee >= 0", name="check_delivery_fee_non_negative"),
        CheckConstraint("total_amount >= 0", name="check_total_non_negative"),
        Index("idx_orders_customer_created", "customer_id", "created_at"),
        Index("idx_orders_partner_created", "partner_id", "created_at"),
        Index("idx_orders_agent_created", "agent_id", "created_at"),
        Index("idx_orders_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Order(id={self.id}, status={self.status.value}, total={self.total_amount})>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "partner_id": self.partner_id,
            "agent_id": self.agent_id,
            "delivery_address": self.delivery_address,
            "delivery_fee": float(self.delivery_fee),
            "service_fee": float(self.service_fee),
            "total_amount": float(self.total_amount),
            "status": self.status.value,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "items": [item.to_dict() for item in self.items],
        }


class OrderItem(Base):
    __tablename__ = "order_items"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("orders.id", ondelete="CASCADE"), nullable=False)
    food_item_id: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)

    order: Mapped[Order] = relationship(back_populates="items")

    __table_args__ = (
        CheckConstraint("quantity > 0", name="check_quantity_positive"),
        CheckConstraint("unit_price >= 0", name="check_unit_price_non_negative"),
    )

    def to_dict(self) -> dict:
        return {
            "food_item_id": self.food_item_id,
            "name": self.name,
            "quantity": self.quantity,
            "unit_price": float(self.unit_price),
        }
