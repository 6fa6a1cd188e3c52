from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

from sqlalchemy.orm import Session

from app.core import database
from app.models.order import Order
from app.services.event_bus import EventBus, event_bus

ORDER_CREATED = "order.created"
ORDER_STATUS_CHANGED = "order.status.changed"
ORDER_UPDATED = "order.updated"

NEW_STATUS = "new"

ORDER_CHANGE_EVENTS = (ORDER_CREATED, ORDER_STATUS_CHANGED, ORDER_UPDATED)


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    # SQLite devolve datetime sem fuso; tudo é gravado em UTC
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def build_order_payload(order: Order, previous_status: str | None = None) -> dict[str, Any]:
    return {
        "id": order.id,
        "order_number": order.order_number,
        "status": order.status,
        "previous_status": previous_status,
        "customer": {
            "name": order.customer_name,
            "phone": order.customer_phone,
        },
        "delivery_address": dict(order.delivery_address or {}),
        "items": [dict(item) for item in (order.items or [])],
        "total_cents": int(order.total_cents or 0),
        "delivery_fee_cents": order.delivery_fee_cents,
        "payment_method": order.payment_method,
        "payment_link": order.payment_link,
        "delivery_date": order.delivery_date,
        "created_at": _iso(order.created_at),
        "updated_at": _iso(order.updated_at),
    }


def emit_order_created(order: Order, bus: EventBus = event_bus) -> None:
    bus.emit(ORDER_CREATED, build_order_payload(order))


def emit_order_status_changed(order: Order, previous_status: str | None, bus: EventBus = event_bus) -> None:
    if previous_status and previous_status == order.status:
        return
    bus.emit(ORDER_STATUS_CHANGED, build_order_payload(order, previous_status=previous_status))


def emit_order_updated(order: Order, bus: EventBus = event_bus) -> None:
    bus.emit(ORDER_UPDATED, build_order_payload(order))


def subscribe_to_order(
    order_id: str,
    on_change: Callable[[dict[str, Any]], None],
    bus: EventBus = event_bus,
) -> Callable[[], None]:
    """Entrega cada mudança posterior de um pedido até o unsubscribe."""

    def _handler(payload: dict[str, Any]) -> None:
        if payload.get("id") == order_id:
            on_change(payload)

    unsubscribers = [bus.subscribe(event_name, _handler) for event_name in ORDER_CHANGE_EVENTS]

    def _unsubscribe() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    return _unsubscribe


def subscribe_to_new_orders(
    on_change: Callable[[int, list[dict[str, Any]]], None],
    bus: EventBus = event_bus,
    session_factory: Callable[[], Session] | None = None,
) -> Callable[[], None]:
    """Avisa o painel a cada pedido que entra ou sai do status new.

    on_change recebe a contagem atual de pedidos new e os pedidos que acabaram
    de chegar (vazio quando a mudança é só de status).
    """

    def _count_new() -> int:
        from app.services.orders import count_orders_by_status

        db = (session_factory or database.SessionLocal)()
        try:
            return count_orders_by_status(db, NEW_STATUS)
        finally:
            db.close()

    def _on_created(payload: dict[str, Any]) -> None:
        if payload.get("status") == NEW_STATUS:
            on_change(_count_new(), [payload])

    def _on_status_changed(payload: dict[str, Any]) -> None:
        if NEW_STATUS in (payload.get("status"), payload.get("previous_status")):
            on_change(_count_new(), [])

    unsubscribers = [
        bus.subscribe(ORDER_CREATED, _on_created),
        bus.subscribe(ORDER_STATUS_CHANGED, _on_status_changed),
    ]

    def _unsubscribe() -> None:
        for unsubscribe in unsubscribers:
            unsubscribe()

    return _unsubscribe
