from __future__ import annotations

import logging
from datetime import date, datetime, timezone
from typing import Any

from sqlalchemy import desc
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from app.core.config import ORDER_CREATE_MAX_ATTEMPTS
from app.core.errors import ConcurrencyConflict, NotFound, ValidationFailure
from app.models.order import Order
from app.schemas.order import AddressIn, OrderDraft
from app.services.event_bus import EventBus, event_bus
from app.services.order_events import emit_order_created, emit_order_status_changed, emit_order_updated
from app.services.order_status import (
    CUSTOMER_CLOSED_STATUSES,
    ensure_transition,
    is_known_status,
    normalize_status,
)
from app.services.phones import digits_only, normalize_phone
from app.services.sequence import SequenceAllocator, default_allocator


logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_cents(value: float) -> int:
    return int(round(float(value) * 100))


def _required_text(value: str | None, field: str) -> str:
    text = (value or "").strip()
    if not text:
        raise ValidationFailure(f"campo obrigatório: {field}", field=field)
    return text


def normalize_address(address: AddressIn | dict[str, Any]) -> dict[str, Any]:
    """Forma canônica do endereço; é ela que dá semântica de conjunto no cliente."""
    data = address.model_dump() if isinstance(address, AddressIn) else dict(address)
    complement = str(data.get("complement") or "").strip()
    return {
        "postal_code": digits_only(data.get("postal_code")),
        "street": _required_text(data.get("street"), "address.street"),
        "number": _required_text(str(data.get("number") or ""), "address.number"),
        "neighborhood": _required_text(data.get("neighborhood"), "address.neighborhood"),
        "complement": complement or None,
    }


def _normalize_items(draft: OrderDraft) -> tuple[list[dict[str, Any]], int]:
    items: list[dict[str, Any]] = []
    total_cents = 0
    for index, entry in enumerate(draft.items):
        if entry.quantity < 1:
            raise ValidationFailure("quantidade deve ser >= 1", field=f"items[{index}].quantity")
        unit_price_cents = to_cents(entry.price)
        items.append(
            {
                "product_id": _required_text(entry.product_id, f"items[{index}].product_id"),
                "name": _required_text(entry.name, f"items[{index}].name"),
                "unit_price_cents": unit_price_cents,
                "quantity": int(entry.quantity),
                "note": (entry.note or "").strip() or None,
                "option": (entry.option or "").strip() or None,
            }
        )
        total_cents += unit_price_cents * int(entry.quantity)
    return items, total_cents


def _validate_delivery_date(value: str) -> str:
    text = _required_text(value, "delivery_date")
    try:
        return date.fromisoformat(text).isoformat()
    except ValueError as exc:
        raise ValidationFailure("data de entrega inválida", field="delivery_date") from exc


def _is_serialization_failure(exc: OperationalError) -> bool:
    message = str(getattr(exc, "orig", exc)).lower()
    pgcode = getattr(getattr(exc, "orig", None), "pgcode", None)
    return pgcode in {"40001", "40P01"} or "database is locked" in message


def find_by_idempotency_key(db: Session, key: str | None) -> Order | None:
    if not key:
        return None
    return db.query(Order).filter(Order.idempotency_key == key).first()


def create_order(
    db: Session,
    draft: OrderDraft,
    *,
    allocator: SequenceAllocator | None = None,
    bus: EventBus = event_bus,
) -> Order:
    """Aloca o número e grava o pedido no mesmo commit.

    Falha de serialização vira ConcurrencyConflict sem nada gravado; quem chama
    repete a operação inteira (ver create_order_with_retry).
    """
    allocator = allocator or default_allocator

    customer_name = _required_text(draft.customer.name, "customer.name")
    customer_phone = normalize_phone(draft.customer.phone)
    delivery_address = normalize_address(draft.address)
    items, total_cents = _normalize_items(draft)
    delivery_date = _validate_delivery_date(draft.delivery_date)
    payment_method = _required_text(draft.payment_method, "payment_method")
    idempotency_key = (draft.idempotency_key or "").strip() or None

    existing = find_by_idempotency_key(db, idempotency_key)
    if existing is not None:
        logger.info("order create replayed idempotency_key order_number=%s", existing.order_number)
        return existing

    now = _utcnow()
    try:
        order_number = allocator.allocate(db)
        order = Order(
            order_number=order_number,
            status="new",
            customer_name=customer_name,
            customer_phone=customer_phone,
            delivery_address=delivery_address,
            items=items,
            total_cents=total_cents,
            payment_method=payment_method,
            delivery_date=delivery_date,
            idempotency_key=idempotency_key,
            client_synced=False,
            created_at=now,
            updated_at=now,
        )
        db.add(order)
        db.commit()
    except (StaleDataError, IntegrityError) as exc:
        db.rollback()
        replay = find_by_idempotency_key(db, idempotency_key)
        if replay is not None:
            return replay
        raise ConcurrencyConflict("order number allocation conflicted; retry the whole create") from exc
    except OperationalError as exc:
        db.rollback()
        if _is_serialization_failure(exc):
            raise ConcurrencyConflict("order create could not be serialized") from exc
        raise
    except Exception:
        db.rollback()
        raise

    db.refresh(order)
    logger.info(
        "order created order_number=%s items=%s total_cents=%s",
        order.order_number,
        len(items),
        order.total_cents,
        extra={"order_id": order.id},
    )
    emit_order_created(order, bus)
    return order


def create_order_with_retry(
    db: Session,
    draft: OrderDraft,
    *,
    attempts: int = ORDER_CREATE_MAX_ATTEMPTS,
    allocator: SequenceAllocator | None = None,
    bus: EventBus = event_bus,
) -> Order:
    attempts = max(attempts, 1)
    for attempt in range(1, attempts):
        try:
            return create_order(db, draft, allocator=allocator, bus=bus)
        except ConcurrencyConflict:
            logger.warning("order create conflict attempt=%s/%s", attempt, attempts)
    return create_order(db, draft, allocator=allocator, bus=bus)


def get_order(db: Session, order_id: str) -> Order | None:
    return db.get(Order, order_id)


def require_order(db: Session, order_id: str) -> Order:
    order = get_order(db, order_id)
    if order is None:
        raise NotFound("order", order_id)
    return order


def _commit_order(db: Session, order: Order) -> Order:
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
    db.refresh(order)
    return order


def update_status(db: Session, order_id: str, new_status: str, *, bus: EventBus = event_bus) -> Order:
    order = require_order(db, order_id)
    previous_status = order.status
    order.status = ensure_transition(previous_status, new_status)
    order.updated_at = _utcnow()
    _commit_order(db, order)
    logger.info(
        "order status changed %s -> %s order_number=%s",
        previous_status,
        order.status,
        order.order_number,
        extra={"order_id": order.id},
    )
    emit_order_status_changed(order, previous_status, bus)
    return order


def set_delivery_fee(db: Session, order_id: str, fee_cents: int, *, bus: EventBus = event_bus) -> Order:
    if fee_cents is None or int(fee_cents) < 0:
        raise ValidationFailure("taxa de entrega inválida", field="delivery_fee")
    order = require_order(db, order_id)
    order.delivery_fee_cents = int(fee_cents)
    order.updated_at = _utcnow()
    _commit_order(db, order)
    emit_order_updated(order, bus)
    return order


def set_payment_link(db: Session, order_id: str, link: str | None, *, bus: EventBus = event_bus) -> Order:
    order = require_order(db, order_id)
    order.payment_link = (link or "").strip() or None
    order.updated_at = _utcnow()
    _commit_order(db, order)
    emit_order_updated(order, bus)
    return order


def checkout_order(
    db: Session,
    order_id: str,
    fee_cents: int,
    payment_link: str | None,
    *,
    bus: EventBus = event_bus,
) -> Order:
    """Taxa + link + new -> pending_payment numa única gravação."""
    if fee_cents is None or int(fee_cents) < 0:
        raise ValidationFailure("taxa de entrega inválida", field="delivery_fee")
    order = require_order(db, order_id)
    previous_status = order.status
    target = ensure_transition(previous_status, "pending_payment")
    order.delivery_fee_cents = int(fee_cents)
    order.payment_link = (payment_link or "").strip() or None
    order.status = target
    order.updated_at = _utcnow()
    _commit_order(db, order)
    emit_order_status_changed(order, previous_status, bus)
    return order


def list_orders(db: Session) -> list[Order]:
    return db.query(Order).order_by(desc(Order.order_number)).all()


def list_orders_by_status(db: Session, status: str) -> list[Order]:
    if not is_known_status(status):
        raise ValidationFailure(f"status desconhecido: {status}", field="status")
    return (
        db.query(Order)
        .filter(Order.status == normalize_status(status))
        .order_by(desc(Order.order_number))
        .all()
    )


def count_orders_by_status(db: Session, status: str) -> int:
    if not is_known_status(status):
        raise ValidationFailure(f"status desconhecido: {status}", field="status")
    return db.query(Order).filter(Order.status == normalize_status(status)).count()


def list_orders_by_date_range(db: Session, start: datetime, end: datetime) -> list[Order]:
    start_utc = _as_utc(start)
    end_utc = _as_utc(end)
    if start_utc > end_utc:
        raise ValidationFailure("intervalo inválido", field="start")
    return (
        db.query(Order)
        .filter(Order.created_at >= start_utc, Order.created_at <= end_utc)
        .order_by(Order.created_at.asc(), Order.order_number.asc())
        .all()
    )


def list_orders_by_customer(db: Session, phone: str) -> list[Order]:
    normalized_phone = normalize_phone(phone)
    return (
        db.query(Order)
        .filter(Order.customer_phone == normalized_phone)
        .order_by(desc(Order.order_number))
        .all()
    )


def list_open_orders_for_customer(db: Session, phone: str) -> list[Order]:
    return [
        order
        for order in list_orders_by_customer(db, phone)
        if order.status not in CUSTOMER_CLOSED_STATUSES
    ]
