"""
Partner service tables.

- partners: restaurants (name and address are looked up by the order service)
- partner_orders: the partner's own copy of each order, keyed by the order id
  and advanced by consuming lifecycle events
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from sqlalchemy import DECIMAL, JSON, TIMESTAMP, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in unit tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for partner service models."""

    pass


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Partner(Base):
    __tablename__ = "partners"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    address: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), nullable=False, default=_utcnow
    )

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "address": self.address}


class PartnerOrder(Base):
    """
    Denormalized order as seen by the partner.

    ``order_id`` is the order service's id, not a local sequence. Status
    values mirror the order service's (Placed, Accepted, ...).
    """

    __tablename__ = "partner_orders"

    order_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=False)
    partner_id: Mapped[int] = mapped_column(Integer, nullable=False)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    delivery_address: Mapped[str] = mapped_column(String(500), nullable=False)
    items: Mapped[list] = mapped_column(JSONType, nullable=False)
    total_amount: Mapped[Decimal] = mapped_column(DECIMAL(10, 2), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Placed")
    rejection_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    agent_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)
    accepted_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    ready_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    picked_up_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    delivered_at: Mapped[Optional[datetime]] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    __table_args__ = (
        Index("idx_partner_orders_partner_status", "partner_id", "status"),
    )

    def to_dict(self) -> dict:
        def _iso(value: Optional[datetime]) -> Optional[str]:
            return value.isoformat() if value else None

        return {
            "order_id": self.order_id,
            "partner_id": self.partner_id,
            "customer_id": self.customer_id,
            "delivery_address": self.delivery_address,
            "items": self.items,
            "total_amount": float(self.total_amount),
            "status": self.status,
            "rejection_reason": self.rejection_reason,
            "agent_id": self.agent_id,
            "created_at": _iso(self.created_at),
            "accepted_at": _iso(self.accepted_at),
            "ready_at": _iso(self.ready_at),
            "picked_up_at": _iso(self.picked_up_at),
            "delivered_at": _iso(self.delivered_at),
        }
