from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.database import get_db
from app.core.errors import OrderServiceError
from app.deps import require_admin_token, to_http_error
from app.models.client import Client
from app.schemas.order import AddressRemoval
from app.services import client_aggregate

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/admin/clients",
    tags=["admin-clients"],
    dependencies=[Depends(require_admin_token)],
)


def client_to_dict(client: Client) -> Dict[str, Any]:
    total_orders = int(client.total_orders or 0)
    total_spent_cents = int(client.total_spent_cents or 0)
    return {
        "phone": client.phone,
        "name": client.name,
        "total_orders": total_orders,
        "total_spent_cents": total_spent_cents,
        "average_ticket_cents": int(total_spent_cents / total_orders) if total_orders else 0,
        "first_order_at": client.first_order_at.isoformat() if client.first_order_at else None,
        "last_order_at": client.last_order_at.isoformat() if client.last_order_at else None,
        "addresses": list(client.addresses or []),
        "order_ids": list(client.order_ids or []),
    }


@router.get("")
def list_clients(db: Session = Depends(get_db)):
    try:
        return [client_to_dict(client) for client in client_aggregate.list_clients(db)]
    except SQLAlchemyError:
        logger.warning("client listing failed", exc_info=True)
        return []


@router.get("/{phone}")
def get_client(phone: str, db: Session = Depends(get_db)):
    try:
        client = client_aggregate.require_client(db, phone)
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return client_to_dict(client)


@router.delete("/{phone}/addresses")
def remove_client_address(phone: str, payload: AddressRemoval, db: Session = Depends(get_db)):
    try:
        client = client_aggregate.remove_client_address(db, phone, payload.address.model_dump())
    except OrderServiceError as exc:
        raise to_http_error(exc) from exc
    return client_to_dict(client)
