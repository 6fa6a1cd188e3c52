from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class OrderItemIn(BaseModel):
    product_id: str
    name: str
    price: float = Field(..., ge=0)
    quantity: int = Field(..., ge=1)
    note: Optional[str] = None
    option: Optional[str] = None


class CustomerIn(BaseModel):
    name: str
    phone: str


class AddressIn(BaseModel):
    postal_code: str = ""
    street: str
    number: str
    neighborhood: str
    complement: Optional[str] = None


class OrderDraft(BaseModel):
    customer: CustomerIn
    address: AddressIn
    items: List[OrderItemIn]
    payment_method: str
    delivery_date: str
    idempotency_key: Optional[str] = Field(default=None, max_length=64)


class StatusUpdate(BaseModel):
    status: str


class DeliveryFeeUpdate(BaseModel):
    delivery_fee: float = Field(..., ge=0)


class PaymentLinkUpdate(BaseModel):
    payment_link: Optional[str] = None


class CheckoutRequest(BaseModel):
    delivery_fee: float = Field(..., ge=0)
    payment_link: Optional[str] = None


class AddressRemoval(BaseModel):
    address: AddressIn
