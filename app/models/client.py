import sqlalchemy as sa
from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB

from app.core.database import Base


class Client(Base):
    __tablename__ = "clients"

    # telefone normalizado (só dígitos, com DDI) é a chave do cliente
    phone = Column(String(20), primary_key=True)
    name = Column(String(120), default="", nullable=False, index=True)

    first_order_at = Column(DateTime(timezone=True), nullable=True)
    last_order_at = Column(DateTime(timezone=True), nullable=True)
    total_orders = Column(Integer, default=0, nullable=False)
    total_spent_cents = Column(Integer, default=0, nullable=False)

    addresses = Column(JSONB().with_variant(sa.JSON(), "sqlite"), default=list, nullable=False)
    order_ids = Column(JSONB().with_variant(sa.JSON(), "sqlite"), default=list, nullable=False)

    version = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __mapper_args__ = {"version_id_col": version}
