"""
Partner service API.

    POST /partners                          register a partner, 201
    GET  /partners                          list partners
    GET  /partners/{id}                     one partner (used by the order service)
    GET  /partners/{id}/orders              the partner's order copies, newest first
    GET  /partners/{id}/orders/pending      copies still in Placed
"""

from typing import List, Optional

from fastapi import APIRouter, FastAPI, HTTPException, Request, status
from pydantic import BaseModel, Field
from sqlalchemy import select

from fooddelivery.partners.config import PartnerServiceConfig, load_config
from fooddelivery.partners.models import Base, Partner, PartnerOrder
from fooddelivery.partners.relays import PartnerOrderRelay
from fooddelivery.shared.bus import EventConsumer
from fooddelivery.shared.database import DatabaseManager, init_database
from fooddelivery.shared.http import create_service_app
from fooddelivery.shared.runtime import ServiceRuntime


class PartnerCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200)
    address: str = Field(..., min_length=1, max_length=500)


router = APIRouter(prefix="/partners", tags=["partners"])


def _db(request: Request) -> DatabaseManager:
    return request.app.state.db


@router.post("", status_code=status.HTTP_201_CREATED)
def create_partner(body: PartnerCreateRequest, request: Request):
    partner = Partner(name=body.name, address=body.address)
    with _db(request).get_session() as session:
        session.add(partner)
        session.flush()
    return partner.to_dict()


@router.get("")
def list_partners(request: Request) -> List[dict]:
    with _db(request).get_session() as session:
        return [p.to_dict() for p in session.scalars(select(Partner).order_by(Partner.id))]


@router.get("/{partner_id}")
def get_partner(partner_id: int, request: Request):
    with _db(request).get_session() as session:
        partner = session.get(Partner, partner_id)
        if partner is None:
            raise HTTPException(status_code=404, detail=f"Partner {partner_id} not found")
        return partner.to_dict()


def _orders(request: Request, partner_id: int, order_status: Optional[str] = None) -> List[dict]:
    stmt = select(PartnerOrder).where(PartnerOrder.partner_id == partner_id)
    if order_status is not None:
        stmt = stmt.where(PartnerOrder.status == order_status)
    stmt = stmt.order_by(PartnerOrder.created_at.desc(), PartnerOrder.order_id.desc())
    with _db(request).get_session() as session:
        return [o.to_dict() for o in session.scalars(stmt)]


@router.get("/{partner_id}/orders")
def partner_orders(partner_id: int, request: Request):
    return _orders(request, partner_id)


@router.get("/{partner_id}/orders/pending")
def pending_orders(partner_id: int, request: Request):
    return _orders(request, partner_id, "Placed")


def create_app(
    config: Optional[PartnerServiceConfig] = None,
    db: Optional[DatabaseManager] = None,
    consumer: Optional[EventConsumer] = None,
    start_consumer: bool = True,
) -> FastAPI:
    config = config or load_config()
    db = db or init_database(config, Base)
    consumer = consumer or EventConsumer(config, name="partner-orders")
    PartnerOrderRelay(db).register(consumer)

    runtime = ServiceRuntime(config, db=db, consumer=consumer, start_consumer=start_consumer)
    app = create_service_app("Partner Service", config.service_name, lifespan=runtime.lifespan())
    app.state.db = db
    app.state.consumer = consumer
    app.include_router(router)
    return app
