"""Request and response bodies for the order API."""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field


class OrderItemRequest(BaseModel):
    food_item_id: int
    name: str = Field(..., min_length=1, max_length=200)
    quantity: int = Field(..., gt=0)
    unit_price: float = Field(..., ge=0)


class OrderCreateRequest(BaseModel):
    customer_id: int
    partner_id: int
    delivery_address: str = Field(..., min_length=1, max_length=500)
    delivery_fee: float = Field(default=0.0, ge=0)
    items: List[OrderItemRequest] = Field(..., min_length=1)


class OrderCreateResponse(BaseModel):
    id: int


class AcceptOrderRequest(BaseModel):
    estimated_minutes: Optional[int] = Field(default=None, ge=0, le=600)


class RejectOrderRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class AssignAgentRequest(BaseModel):
    agent_id: int


class OrderItemResponse(BaseModel):
    food_item_id: int
    name: str
    quantity: int
    unit_price: float


class OrderResponse(BaseModel):
    id: int
    customer_id: int
    partner_id: int
    agent_id: Optional[int] = None
    delivery_address: str
    delivery_fee: float
    service_fee: float
    total_amount: float
    status: str
    created_at: Optional[datetime] = None
    items: List[OrderItemResponse]


class StatusResponse(BaseModel):
    id: int
    status: str
    message: str
