import uuid

import sqlalchemy as sa
from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


def _new_order_id() -> str:
    return uuid.uuid4().hex


class Order(Base):
    __tablename__ = "orders"

    # id opaco (vai para o localStorage do cliente); order_number é o número exibido
    id = Column(String(32), primary_key=True, default=_new_order_id)
    order_number = Column(Integer, nullable=False, unique=True, index=True)

    # new / pending_payment / confirmed / shipped / completed / archived
    status = Column(String(32), default="new", nullable=False, index=True)

    customer_name = Column(String(120), default="", nullable=False)
    customer_phone = Column(String(20), nullable=False, index=True)

    delivery_address = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)
    items = Column(JSONB().with_variant(sa.JSON(), "sqlite"), nullable=False)

    # em centavos; total não inclui a taxa de entrega
    total_cents = Column(Integer, default=0, nullable=False)
    delivery_fee_cents = Column(Integer, nullable=True)

    payment_method = Column(String(40), default="", nullable=False)
    payment_link = Column(Text, nullable=True)
    delivery_date = Column(String(10), nullable=False)

    idempotency_key = Column(String(64), nullable=True, unique=True)
    client_synced = Column(Boolean, default=False, nullable=False, index=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
