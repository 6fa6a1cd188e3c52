from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.errors import ConcurrencyConflict, NotFound
from app.models.client import Client
from app.models.order import Order
from app.services.orders import normalize_address
from app.services.phones import normalize_phone

logger = logging.getLogger(__name__)

CLIENT_UPDATE_ATTEMPTS = 3


def _set_add(values: list[Any] | None, value: Any) -> list[Any]:
    current = list(values or [])
    if value in current:
        return current
    return current + [value]


def _set_remove(values: list[Any] | None, value: Any) -> list[Any]:
    return [item for item in (values or []) if item != value]


def apply_order_to_client(db: Session, order: Order) -> Client:
    """Soma o pedido no agregado do cliente (cria o cliente no primeiro pedido).

    Roda uma vez por pedido: um pedido já marcado como client_synced, ou cujo id
    já está em order_ids, não é contado de novo. Não faz commit.
    """
    client = db.get(Client, order.customer_phone, populate_existing=True)
    if order.client_synced and client is not None:
        return client

    now = datetime.now(timezone.utc)
    address = dict(order.delivery_address or {})
    total_cents = int(order.total_cents or 0)

    if client is None:
        client = Client(
            phone=order.customer_phone,
            name=order.customer_name,
            first_order_at=now,
            last_order_at=now,
            total_orders=1,
            total_spent_cents=total_cents,
            addresses=[address],
            order_ids=[order.id],
        )
        db.add(client)
    elif order.id not in (client.order_ids or []):
        client.total_orders = int(client.total_orders or 0) + 1
        client.total_spent_cents = int(client.total_spent_cents or 0) + total_cents
        client.addresses = _set_add(client.addresses, address)
        client.order_ids = _set_add(client.order_ids, order.id)
        client.last_order_at = now
        client.name = order.customer_name or client.name

    order.client_synced = True
    return client


def update_client_for_order(db: Session, order_id: str, *, attempts: int = CLIENT_UPDATE_ATTEMPTS) -> Client | None:
    for attempt in range(1, attempts + 1):
        order = db.get(Order, order_id, populate_existing=True)
        if order is None:
            logger.warning("client aggregate skipped, order missing", extra={"order_id": order_id})
            return None
        try:
            client = apply_order_to_client(db, order)
            db.commit()
            return client
        except (StaleDataError, IntegrityError):
            db.rollback()
            logger.warning(
                "client aggregate conflict attempt=%s/%s",
                attempt,
                attempts,
                extra={"order_id": order_id},
            )
        except Exception:
            db.rollback()
            raise
    raise ConcurrencyConflict(f"client aggregate update kept conflicting for order {order_id}")


def sync_pending_orders(db: Session, *, limit: int = 500) -> int:
    """Aplica nos clientes os pedidos que ficaram sem agregação (handler perdido)."""
    pending_ids = [
        row.id
        for row in (
            db.query(Order.id)
            .filter(Order.client_synced.is_(False))
            .order_by(Order.order_number.asc())
            .limit(limit)
            .all()
        )
    ]
    synced = 0
    for order_id in pending_ids:
        if update_client_for_order(db, order_id) is not None:
            synced += 1
    if synced:
        logger.info("client aggregate sweep applied %s pending orders", synced)
    return synced


def get_client(db: Session, phone: str) -> Client | None:
    return db.get(Client, normalize_phone(phone))


def require_client(db: Session, phone: str) -> Client:
    client = get_client(db, phone)
    if client is None:
        raise NotFound("client", phone)
    return client


def list_clients(db: Session) -> list[Client]:
    return db.query(Client).order_by(Client.name.asc(), Client.phone.asc()).all()


def remove_client_address(db: Session, phone: str, address: dict[str, Any]) -> Client:
    client = require_client(db, phone)
    client.addresses = _set_remove(client.addresses, normalize_address(address))
    try:
        db.commit()
    except StaleDataError as exc:
        db.rollback()
        raise ConcurrencyConflict("client changed while removing address") from exc
    db.refresh(client)
    return client
